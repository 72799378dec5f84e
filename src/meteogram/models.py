"""Data model definitions — explicit boundaries between acquisition, transform, and render layers."""

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class Coordinates:
    """A lat/lon pair found in a source URL."""

    lat: float  # Latitude (decimal degrees, -90..90)
    lon: float  # Longitude (decimal degrees, -180..180)


@dataclass(frozen=True)
class ForecastPoint:
    """A single forecast time step."""

    time: datetime  # Step timestamp (UTC)
    temperature: float  # Air temperature (°C)
    wind_speed: float  # Instantaneous wind speed (m/s)
    wind_gust: float | None  # Gust (m/s), None when the source has none
    precipitation: float | None  # Hourly-equivalent precipitation (mm)


@dataclass(frozen=True)
class ForecastSeries:
    """The sole input to the chart renderer. Never empty."""

    updated_at: datetime  # Freshness timestamp reported by the source
    points: tuple[ForecastPoint, ...]  # Source order, at most 48 entries


@dataclass(frozen=True)
class AcquiredDocument:
    """A successfully acquired meteogram."""

    raw_svg: str  # Last-known-good source document, persisted back to config
    sanitized_html: str  # Theme-dependent markup derived from raw_svg


# --- Acquisition states ---
# Exactly one is current; the controller replaces it as a whole.


@dataclass(frozen=True)
class Idle:
    """Nothing configured, nothing shown."""


@dataclass(frozen=True)
class Loading:
    """A fetch/transform/render sequence is in progress."""

    attempt: int = 1  # 1-based attempt number within the current retry chain


@dataclass(frozen=True)
class Ready:
    """A document is available (fresh or stale fallback)."""

    document: AcquiredDocument
    stale: bool = False  # True when served from the retained fallback


@dataclass(frozen=True)
class Degraded:
    """Direct acquisition failed for good; show the upstream URL as an external view."""

    external_url: str


@dataclass(frozen=True)
class Failed:
    """Terminal failure with a short user-facing message."""

    message: str


AcquisitionState = Idle | Loading | Ready | Degraded | Failed
