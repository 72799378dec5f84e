from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

import httpx
import pytest

from meteogram.config import Settings, Theme


class RecordingSleep:
    """Stand-in for asyncio.sleep that records every requested delay.

    Delays at or above ``block_from`` never return (until cancelled), which
    lets auto-refresh timers be observed without firing.
    """

    def __init__(self, block_from: float | None = None) -> None:
        self.delays: list[float] = []
        self.block_from = block_from

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        if self.block_from is not None and delay >= self.block_from:
            await asyncio.Event().wait()
        await asyncio.sleep(0)


def forecast_payload(
    temps: list[float],
    winds: list[float] | None = None,
    start: datetime = datetime(2024, 1, 1, 0, tzinfo=timezone.utc),
    updated_at: str | None = "2024-01-01T00:00:00Z",
) -> dict[str, Any]:
    """Minimal locationforecast/2.0 body with hourly steps."""
    winds = winds if winds is not None else [3.0] * len(temps)
    timeseries = []
    for i, (temp, wind) in enumerate(zip(temps, winds)):
        when = start + timedelta(hours=i)
        timeseries.append(
            {
                "time": when.strftime("%Y-%m-%dT%H:%M:%SZ"),
                "data": {"instant": {"details": {"air_temperature": temp, "wind_speed": wind}}},
            }
        )
    meta = {"updated_at": updated_at} if updated_at else {}
    return {"type": "Feature", "properties": {"meta": meta, "timeseries": timeseries}}


def mock_client(handler: Callable[[httpx.Request], Any]) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.fixture()
def theme() -> Theme:
    # Distinct colors so tests can find each series by its stroke/fill
    return Theme(
        overall_background="#102030",
        main_text_color="#eeeeee",
        secondary_text_color="#aaaaaa",
        grid_line_color="#445566",
        temperature_line_color="#ff3300",
        wind_line_color="#00aa44",
        wind_gust_line_color="#0044aa",
        precipitation_bar_color="#3388ff",
    )


@pytest.fixture()
def settings() -> Settings:
    return Settings(retry_delay=1.0, max_attempts=5, direct_timeout=15.0)


@pytest.fixture()
def sleep() -> RecordingSleep:
    return RecordingSleep()
