"""Forecast acquisition layer — api.met.no request and payload normalization."""

import math
from datetime import datetime, timezone
from typing import Any

import httpx
import structlog

from meteogram.config import Settings
from meteogram.errors import EmptyResultError, ParseError, TransportError
from meteogram.models import Coordinates, ForecastPoint, ForecastSeries

MAX_POINTS = 48

log = structlog.get_logger(__name__)


async def fetch_forecast(
    client: httpx.AsyncClient,
    coords: Coordinates,
    settings: Settings,
) -> ForecastSeries:
    """Single locationforecast call. Retrying is the caller's business.

    Args:
        client: Shared async HTTP client.
        coords: Location to forecast for.
        settings: Endpoint and User-Agent.

    Returns:
        A non-empty ForecastSeries.

    Raises:
        TransportError: On network failure or non-2xx status.
        ParseError: When the body is not JSON.
        EmptyResultError: When the payload holds no usable time steps.
    """
    params = {"lat": str(coords.lat), "lon": str(coords.lon)}
    headers = {
        "Accept": "application/json",
        "Cache-Control": "no-store",
        "User-Agent": settings.user_agent,
    }
    try:
        resp = await client.get(settings.forecast_endpoint, params=params, headers=headers)
    except httpx.HTTPError as exc:
        raise TransportError(f"Forecast request failed: {type(exc).__name__}: {exc}") from exc
    if not resp.is_success:
        raise TransportError(f"Forecast HTTP {resp.status_code}", status_code=resp.status_code)

    try:
        data = resp.json()
    except ValueError as exc:
        raise ParseError("Forecast body is not valid JSON") from exc

    series = transform_forecast(data)
    if series is None:
        raise EmptyResultError("No forecast points available.")
    log.debug("forecast_fetched", lat=coords.lat, lon=coords.lon, points=len(series.points))
    return series


def transform_forecast(data: Any) -> ForecastSeries | None:
    """Normalize a locationforecast/2.0 payload into a ForecastSeries.

    Only the first 48 time steps are considered. A step without a timestamp or
    without numeric instant temperature and wind speed is dropped silently.

    Gust falls back instant → next_1_hours → next_6_hours. Precipitation
    falls back next_1_hours → next_6_hours / 6 (hourly-equivalent rate).

    Args:
        data: Decoded JSON body.

    Returns:
        ForecastSeries in source order, or None when nothing usable remains.
    """
    properties = _get(data, "properties")
    timeseries = _get(properties, "timeseries")
    if not isinstance(timeseries, list) or not timeseries:
        return None

    points: list[ForecastPoint] = []
    for entry in timeseries[:MAX_POINTS]:
        time = _parse_time(_get(entry, "time"))
        instant = _get(entry, "data", "instant", "details") or {}
        temperature = _number(_get(instant, "air_temperature"))
        wind_speed = _number(_get(instant, "wind_speed"))
        if time is None or temperature is None or wind_speed is None:
            continue

        next1 = _get(entry, "data", "next_1_hours", "details")
        next6 = _get(entry, "data", "next_6_hours", "details")

        gust = _first_number(
            _get(instant, "wind_speed_of_gust"),
            _get(next1, "wind_speed_of_gust"),
            _get(next6, "wind_speed_of_gust"),
        )

        precipitation = _number(_get(next1, "precipitation_amount"))
        if precipitation is None:
            six_hour = _number(_get(next6, "precipitation_amount"))
            precipitation = six_hour / 6 if six_hour is not None else None

        points.append(
            ForecastPoint(
                time=time,
                temperature=temperature,
                wind_speed=wind_speed,
                wind_gust=gust,
                precipitation=precipitation,
            )
        )

    if not points:
        return None

    updated_at = _parse_time(_get(properties, "meta", "updated_at"))
    return ForecastSeries(
        updated_at=updated_at or datetime.now(timezone.utc),
        points=tuple(points),
    )


def _get(obj: Any, *keys: str) -> Any:
    """Walk nested dicts; any missing level yields None."""
    for key in keys:
        if not isinstance(obj, dict):
            return None
        obj = obj.get(key)
    return obj


def _number(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    # json accepts NaN and Infinity
    if not math.isfinite(value):
        return None
    return float(value)


def _first_number(*values: Any) -> float | None:
    for value in values:
        number = _number(value)
        if number is not None:
            return number
    return None


def _parse_time(value: Any) -> datetime | None:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC."""
    if not isinstance(value, str) or not value:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
