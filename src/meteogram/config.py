"""Configuration consumed by the pipeline: environment settings, source and theme."""

import os
import re
from dataclasses import dataclass, fields, replace
from typing import Any, Mapping

FORECAST_ENDPOINT = "https://api.met.no/weatherapi/locationforecast/2.0/compact"
DEFAULT_USER_AGENT = "meteogram/0.1 (https://github.com/meteogram/meteogram)"


@dataclass(frozen=True)
class Settings:
    """Process-wide knobs. Read from the environment (and .env via python-dotenv)."""

    forecast_endpoint: str = FORECAST_ENDPOINT
    user_agent: str = DEFAULT_USER_AGENT  # met.no rejects anonymous clients
    direct_timeout: float = 15.0  # Seconds, whole request, direct SVG fetch only
    max_attempts: int = 5
    retry_delay: float = 1.0  # Seconds; attempt k waits retry_delay * k
    log_level: str = "INFO"
    log_format: str = "json"  # "json" or "console"

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from ``METEOGRAM_*`` environment variables."""
        env = os.environ
        return cls(
            forecast_endpoint=env.get("METEOGRAM_FORECAST_ENDPOINT", FORECAST_ENDPOINT),
            user_agent=env.get("METEOGRAM_USER_AGENT", DEFAULT_USER_AGENT),
            direct_timeout=float(env.get("METEOGRAM_DIRECT_TIMEOUT", "15")),
            max_attempts=int(env.get("METEOGRAM_MAX_ATTEMPTS", "5")),
            retry_delay=float(env.get("METEOGRAM_RETRY_DELAY", "1.0")),
            log_level=env.get("METEOGRAM_LOG_LEVEL", "INFO"),
            log_format=env.get("METEOGRAM_LOG_FORMAT", "json").lower(),
        )


@dataclass(frozen=True)
class SourceConfig:
    """Where the meteogram comes from. Immutable per acquisition attempt."""

    source_url: str = ""
    svg_code: str = ""  # Literal fallback SVG; also the persist-on-success slot
    auto_refresh_enabled: bool = False
    refresh_interval: float = 0  # Minutes

    @property
    def kind(self) -> str:
        """``"url"``, ``"literal"`` or ``"none"``, in routing priority order."""
        if self.source_url:
            return "url"
        if self.svg_code and not self.svg_code.strip().startswith("<!--"):
            return "literal"
        return "none"

    def replace(self, **changes: Any) -> "SourceConfig":
        return replace(self, **changes)


@dataclass(frozen=True)
class Theme:
    """Flat color/dimension options. Owned by the host, read-only to the core."""

    overall_background: str = "#ffffff"
    main_text_color: str = "#21292b"
    secondary_text_color: str = "#56616c"

    grid_line_color: str = "#c3d0d8"
    grid_line_width: float = 1.0
    grid_line_opacity: float = 1.0

    temperature_line_color: str = "#c60000"
    temperature_line_width: float = 2.5
    wind_line_color: str = "#aa00f2"
    wind_gust_line_color: str = "#aa00f2"
    wind_line_width: float = 2.0

    precipitation_bar_color: str = "#006edb"
    max_precipitation_color: str = "#006edb"

    y_axis_icon_color: str = "#56616c"
    yr_logo_background_color: str = "#00b9f1"
    yr_logo_text_color: str = "#ffffff"
    logo_color: str = "#21292b"

    padding: float = 0

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> "Theme":
        """Build a theme from snake_case or camelCase keys. Unknown keys are ignored.

        Values are coerced to the type of the field default, so JSON numbers
        and strings from a host config both work.
        """
        defaults = cls()
        known = {f.name: f for f in fields(cls)}
        values: dict[str, Any] = {}
        for key, value in mapping.items():
            name = _snake_case(key)
            if name not in known or value is None:
                continue
            default = getattr(defaults, name)
            if isinstance(default, (int, float)):
                values[name] = float(value)
            else:
                values[name] = str(value)
        return cls(**values)

    def replace(self, **changes: Any) -> "Theme":
        return replace(self, **changes)


def _snake_case(key: str) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "_", key).lower()
