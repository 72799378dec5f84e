"""Host wrapper for sanitized markup.

Documents fetched straight from yr.no carry their own palette. Rather than
rewrite the document, the wrapper ships a stylesheet scoped to one container
class that maps the known yr.no colors and hooks onto the theme. The same
wrapper holds charts rendered locally; those already use theme colors, so
only the text and padding rules affect them.
"""

import re
from dataclasses import fields

from meteogram.config import Theme

DEFAULT_SCOPE = "meteogram"

_SCOPE_NAME = re.compile(r"^[A-Za-z][A-Za-z0-9_-]*$")
_CSS_BREAKOUT = re.compile(r"[{}<>;\\]")


def _num(value: float) -> str:
    return f"{value:g}"


def _css_safe(theme: Theme) -> Theme:
    """Drop characters that could close a declaration, rule or the style element."""
    cleaned = {}
    for f in fields(theme):
        value = getattr(theme, f.name)
        if isinstance(value, str):
            cleaned[f.name] = _CSS_BREAKOUT.sub("", value)
    return theme.replace(**cleaned)


def scoped_css(theme: Theme, scope: str = DEFAULT_SCOPE) -> str:
    """Stylesheet recoloring a yr.no meteogram inside ``.<scope>``."""
    if not _SCOPE_NAME.match(scope):
        raise ValueError(f"invalid scope class: {scope!r}")
    theme = _css_safe(theme)
    s = f".{scope} svg"
    return f"""
.{scope} {{
  box-sizing: border-box; width: 100%; height: 100%; padding: {_num(theme.padding)}px;
  display: flex; align-items: center; justify-content: center; overflow: hidden;
  background-color: {theme.overall_background};
}}
.{scope} > svg {{
  width: 100%; height: auto; max-height: 100%; display: block;
  background-color: {theme.overall_background} !important;
}}

{s} .location-header, {s} .day-label, {s} .served-by-header, {s} .legend-label,
{s} text {{ fill: {theme.main_text_color} !important; }}
{s} .hour-label, {s} .y-axis-label, {s} .updated-label {{ fill: {theme.secondary_text_color} !important; }}

{s} [fill="#56616c"], {s} [stroke="#56616c"], {s} [style*="fill:#56616c"],
{s} [style*="stroke:#56616c"], {s} [style*="rgb(86,97,108)"] {{
  fill: {theme.y_axis_icon_color} !important; stroke: {theme.y_axis_icon_color} !important;
}}
{s} [stroke="currentColor"] {{ stroke: {theme.y_axis_icon_color} !important; }}
{s} [fill="currentColor"] {{ fill: {theme.y_axis_icon_color} !important; }}

{s} line[stroke="#c3d0d8"], {s} line[stroke="#56616c"] {{
  stroke: {theme.grid_line_color} !important;
  stroke-width: {_num(theme.grid_line_width)}px !important;
  stroke-opacity: {_num(theme.grid_line_opacity)} !important;
}}

{s} path[stroke="url(#temperature-curve-gradient)"] {{ stroke: {theme.temperature_line_color} !important; }}
{s} path[stroke="#aa00f2"]:not([stroke-dasharray]) {{ stroke: {theme.wind_line_color} !important; }}
{s} path[stroke="#aa00f2"][stroke-dasharray] {{ stroke: {theme.wind_gust_line_color} !important; }}

{s} svg rect[fill="#c60000"] {{ fill: {theme.temperature_line_color} !important; }}
{s} svg rect[fill="#aa00f2"]:not([rx]) {{ fill: {theme.wind_line_color} !important; }}
{s} svg rect[fill="#aa00f2"][rx] {{ fill: {theme.wind_gust_line_color} !important; }}

{s} rect[fill="#006edb"] {{ fill: {theme.precipitation_bar_color} !important; }}
{s} line[stroke="#006edb"], {s} path[stroke="#006edb"] {{ stroke: {theme.precipitation_bar_color} !important; }}
{s} #max-precipitation-pattern rect {{ fill: {theme.max_precipitation_color} !important; opacity: 0.3 !important; }}
{s} #max-precipitation-pattern line {{ stroke: {theme.max_precipitation_color} !important; opacity: 1 !important; }}

{s} svg[x="16"] circle {{ fill: {theme.yr_logo_background_color} !important; }}
{s} svg[x="16"] path {{ fill: {theme.yr_logo_text_color} !important; }}
{s} svg[x="624"] path, {s} svg[x="675.5"] path {{ fill: {theme.logo_color} !important; }}
"""


def wrap_document(markup: str, theme: Theme, scope: str = DEFAULT_SCOPE) -> str:
    """Embeddable HTML fragment: scoped stylesheet plus the markup in its container."""
    return f'<style>{scoped_css(theme, scope)}</style>\n<div class="{scope}">{markup}</div>'
