"""Detect a ``lat,lon`` pair encoded in a source URL path."""

import math
import re
from urllib.parse import unquote, urlsplit

from meteogram.models import Coordinates

_COORD_SEGMENT = re.compile(r"-?\d+\.\d+,-?\d+\.\d+")


def extract_coordinates(url: str) -> Coordinates | None:
    """Return the first path segment that looks like ``lat,lon``, or None.

    A URL such as ``https://www.yr.no/en/forecast/graph/60.10,10.75/Oslo``
    yields ``Coordinates(lat=60.10, lon=10.75)``. Anything unparseable,
    non-finite or out of range means "no coordinates"; this never raises.
    """
    try:
        path = urlsplit(url).path
    except (TypeError, ValueError, AttributeError):
        return None

    segments = [unquote(s) for s in path.split("/") if s]
    segment = next((s for s in segments if _COORD_SEGMENT.search(s)), None)
    if segment is None:
        return None

    lat_raw, lon_raw = segment.split(",")[:2]
    try:
        lat = float(_leading_number(lat_raw))
        lon = float(_leading_number(lon_raw))
    except ValueError:
        return None
    if not (math.isfinite(lat) and math.isfinite(lon)):
        return None
    if not (-90 <= lat <= 90 and -180 <= lon <= 180):
        return None
    return Coordinates(lat=lat, lon=lon)


def _leading_number(text: str) -> str:
    """Mimic lenient float parsing: keep the leading numeric prefix (``"10.75z"`` → ``"10.75"``)."""
    match = re.match(r"\s*[-+]?\d*\.?\d+(?:[eE][-+]?\d+)?", text)
    if match is None:
        raise ValueError(f"not a number: {text!r}")
    return match.group(0)
