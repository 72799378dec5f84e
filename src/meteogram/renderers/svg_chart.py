"""SVG meteogram renderer.

Produces a self-contained SVG document string from a ForecastSeries. All
colors, line widths and opacities come from the Theme, so the same series
with two themes yields structurally identical documents.

Layout (viewBox 0 0 960 540):
  top margin 64, right 36, bottom 80, left 72
  plot area split top→bottom into temperature (55%), precipitation (25%)
  and wind (20%) bands sharing one time axis.
"""

from __future__ import annotations

import html
import math
from dataclasses import dataclass
from datetime import timezone

from meteogram.config import Theme
from meteogram.i18n import format_day, format_timestamp, t
from meteogram.models import ForecastSeries

WIDTH = 960
HEIGHT = 540
MARGIN_TOP = 64
MARGIN_RIGHT = 36
MARGIN_BOTTOM = 80
MARGIN_LEFT = 72

INNER_WIDTH = WIDTH - MARGIN_LEFT - MARGIN_RIGHT
INNER_HEIGHT = HEIGHT - MARGIN_TOP - MARGIN_BOTTOM
TEMP_BAND = INNER_HEIGHT * 0.55
PRECIP_BAND = INNER_HEIGHT * 0.25
WIND_BAND = INNER_HEIGHT * 0.2

_LABEL_EVERY = 3


@dataclass(frozen=True)
class ChartScales:
    """Data → pixel mapping for one series. Computed once per render."""

    x_step: float
    temp_min: float
    temp_max: float
    temp_range: float
    wind_max: float
    precip_max: float

    @property
    def precip_base(self) -> float:
        return MARGIN_TOP + TEMP_BAND + PRECIP_BAND

    @property
    def wind_base(self) -> float:
        return self.precip_base + WIND_BAND

    def x(self, index: int) -> float:
        return MARGIN_LEFT + self.x_step * index

    def temp_y(self, value: float) -> float:
        return MARGIN_TOP + (self.temp_max - value) / self.temp_range * TEMP_BAND

    def wind_y(self, value: float) -> float:
        return self.wind_base - value / self.wind_max * WIND_BAND

    def precip_height(self, value: float) -> float:
        return value / self.precip_max * PRECIP_BAND


def compute_scales(series: ForecastSeries) -> ChartScales:
    """Derive axis extents with their floors (±5 °C, 5 m/s, 1 mm)."""
    pts = series.points
    temperatures = [p.temperature for p in pts]
    speeds = [p.wind_speed for p in pts]
    gusts = [p.wind_gust if p.wind_gust is not None else p.wind_speed for p in pts]
    precip = [p.precipitation or 0.0 for p in pts]

    temp_max = max(*temperatures, 5)
    temp_min = min(*temperatures, -5)
    return ChartScales(
        # n == 1 collapses every point onto the left margin
        x_step=INNER_WIDTH / (len(pts) - 1) if len(pts) > 1 else 0.0,
        temp_min=temp_min,
        temp_max=temp_max,
        temp_range=max(temp_max - temp_min, 5),
        wind_max=max(*gusts, *speeds, 5),
        precip_max=max(*precip, 1),
    )


def temperature_ticks(scales: ChartScales) -> list[int]:
    """Whole-degree ticks from the first step multiple ≥ min up to max."""
    if scales.temp_range <= 10:
        step = 1
    elif scales.temp_range <= 20:
        step = 2
    else:
        step = 5
    ticks: list[int] = []
    val = math.ceil(scales.temp_min / step) * step
    while val <= scales.temp_max:
        ticks.append(val)
        val += step
    return ticks


def wind_ticks(scales: ChartScales) -> list[int]:
    """Ticks from 0 to wind_max inclusive."""
    if scales.wind_max <= 10:
        step = 2
    elif scales.wind_max <= 20:
        step = 5
    else:
        step = 10
    return list(range(0, math.floor(scales.wind_max) + 1, step))


def _polyline(coords: list[tuple[float, float]]) -> str:
    """``M x,y L x,y ...`` through every vertex in order."""
    return " ".join(
        f"{'M' if i == 0 else 'L'}{x:.2f},{y:.2f}" for i, (x, y) in enumerate(coords)
    )


def _num(value: float) -> str:
    """Theme dimensions: ``1.0`` → ``1``, ``0.35`` → ``0.35``."""
    return f"{value:g}"


def render_meteogram(series: ForecastSeries, theme: Theme, lang: str = "en") -> str:
    """Return a complete SVG document for the series.

    The output depends only on the arguments: the "Updated" line is derived
    from ``series.updated_at`` and day/hour labels use UTC, so identical input
    renders byte-identical output.

    Args:
        series: Non-empty forecast series.
        theme: Colors and line dimensions.
        lang: Label language ('en' or 'nb').

    Returns:
        SVG document string starting with an XML declaration.
    """
    pts = series.points
    scales = compute_scales(series)
    right = WIDTH - MARGIN_RIGHT
    grid = theme.grid_line_color
    muted = theme.secondary_text_color
    main = theme.main_text_color

    temp_path = _polyline([(scales.x(i), scales.temp_y(p.temperature)) for i, p in enumerate(pts)])
    wind_path = _polyline([(scales.x(i), scales.wind_y(p.wind_speed)) for i, p in enumerate(pts)])
    gust_path = _polyline(
        [
            (scales.x(i), scales.wind_y(p.wind_gust if p.wind_gust is not None else p.wind_speed))
            for i, p in enumerate(pts)
        ]
    )

    # --- Temperature grid + labels ---
    grid_parts: list[str] = []
    tick_label_parts: list[str] = []
    for val in temperature_ticks(scales):
        y = f"{scales.temp_y(val):.2f}"
        grid_parts.append(
            f'<line x1="{MARGIN_LEFT}" y1="{y}" x2="{right}" y2="{y}" stroke="{grid}"'
            f' stroke-width="{_num(theme.grid_line_width)}" stroke-opacity="{_num(theme.grid_line_opacity)}" />'
        )
        tick_label_parts.append(
            f'<text x="{MARGIN_LEFT - 10}" y="{y}" text-anchor="end" dominant-baseline="middle"'
            f' font-size="12" fill="{muted}" class="y-axis-label">{val:.0f}°</text>'
        )

    # --- Precipitation bars ---
    bar_parts: list[str] = []
    bar_width = max(4.0, scales.x_step * 0.7)
    for i, p in enumerate(pts):
        value = p.precipitation or 0.0
        if value <= 0:
            continue
        bar_height = max(2.0, scales.precip_height(value))
        x = scales.x(i) - bar_width / 2
        y = scales.precip_base - bar_height
        bar_parts.append(
            f'<rect x="{x:.2f}" y="{y:.2f}" width="{bar_width:.2f}" height="{bar_height:.2f}"'
            f' fill="{theme.precipitation_bar_color}" />'
        )

    # --- Wind grid + labels ---
    wind_parts: list[str] = []
    for val in wind_ticks(scales):
        y = f"{scales.wind_y(val):.2f}"
        wind_parts.append(
            f'<line x1="{MARGIN_LEFT}" y1="{y}" x2="{right}" y2="{y}" stroke="{grid}"'
            f' stroke-width="0.5" stroke-opacity="{_num(theme.grid_line_opacity * 0.5)}" />'
        )
        wind_parts.append(
            f'<text x="{right + 8}" y="{y}" font-size="11" fill="{muted}" class="y-axis-label"'
            f' dominant-baseline="middle">{val:.0f} m/s</text>'
        )

    # --- Time axis labels ---
    label_y = HEIGHT - MARGIN_BOTTOM + 20
    x_label_parts: list[str] = []
    for i, p in enumerate(pts):
        if i % _LABEL_EVERY:
            continue
        when = p.time.astimezone(timezone.utc)
        x = f"{scales.x(i):.2f}"
        day = ""
        if when.hour == 0:
            day = (
                f'<text x="{x}" y="{label_y + 18}" text-anchor="middle" font-size="12"'
                f' fill="{main}" class="day-label">{html.escape(format_day(when, lang))}</text>'
            )
        x_label_parts.append(
            f'<g><text x="{x}" y="{label_y}" text-anchor="middle" font-size="12"'
            f' fill="{muted}" class="hour-label">{when:%H}</text>{day}</g>'
        )

    updated = t("chart_updated", lang).format(
        when=format_timestamp(series.updated_at.astimezone(timezone.utc), lang)
    )

    grid_svg = "\n    ".join(grid_parts)
    tick_labels_svg = "\n    ".join(tick_label_parts)
    bars_svg = "\n    ".join(bar_parts)
    wind_svg = "\n    ".join(wind_parts)
    x_labels_svg = "\n    ".join(x_label_parts)

    return f"""<?xml version="1.0" encoding="UTF-8"?>
<svg xmlns="http://www.w3.org/2000/svg" viewBox="0 0 {WIDTH} {HEIGHT}" role="img" aria-labelledby="meteogramTitle meteogramDesc">
  <title id="meteogramTitle">{html.escape(t("chart_title", lang))}</title>
  <desc id="meteogramDesc">{html.escape(t("chart_desc", lang))}</desc>
  <rect x="0" y="0" width="{WIDTH}" height="{HEIGHT}" fill="{theme.overall_background}" />
  <g font-family="sans-serif">
    <text x="{MARGIN_LEFT}" y="32" font-size="20" fill="{main}">{html.escape(t("chart_heading", lang))}</text>
    <text x="{MARGIN_LEFT}" y="52" font-size="12" fill="{muted}" class="updated-label">{html.escape(updated)}</text>
  </g>
  <g class="temperature">
    {grid_svg}
    {tick_labels_svg}
    <path d="{temp_path}" fill="none" stroke="{theme.temperature_line_color}" stroke-width="{_num(theme.temperature_line_width)}" />
  </g>
  <g class="precipitation">
    {bars_svg}
  </g>
  <g class="wind">
    <path d="{wind_path}" fill="none" stroke="{theme.wind_line_color}" stroke-width="{_num(theme.wind_line_width)}" />
    <path d="{gust_path}" fill="none" stroke="{theme.wind_gust_line_color}" stroke-width="{_num(theme.wind_line_width)}" stroke-dasharray="6 4" />
    {wind_svg}
  </g>
  <g class="time-axis">
    {x_labels_svg}
    <line x1="{MARGIN_LEFT}" y1="{HEIGHT - MARGIN_BOTTOM}" x2="{right}" y2="{HEIGHT - MARGIN_BOTTOM}" stroke="{grid}" stroke-width="1" stroke-opacity="{_num(theme.grid_line_opacity)}" />
  </g>
  <g font-size="12">
    <text x="{MARGIN_LEFT}" y="{MARGIN_TOP - 20}" fill="{main}">{html.escape(t("band_temperature", lang))}</text>
    <text x="{MARGIN_LEFT}" y="{scales.precip_base - PRECIP_BAND - 8:.2f}" fill="{main}">{html.escape(t("band_precipitation", lang))}</text>
    <text x="{MARGIN_LEFT}" y="{scales.wind_base - WIND_BAND - 8:.2f}" fill="{main}">{html.escape(t("band_wind", lang))}</text>
  </g>
</svg>"""
