"""Acquisition state machine: routing, retries, fallbacks and auto-refresh.

The controller is the only owner of the AcquisitionState. It runs on a single
asyncio loop: at most one pipeline task (a retry chain) and one refresh task
exist at any time, and every new trigger cancels the previous chain. A
generation counter guards against completions from superseded chains.
"""

import asyncio
from typing import Awaitable, Callable

import httpx
import structlog

from meteogram.config import Settings, SourceConfig, Theme
from meteogram.coordinates import extract_coordinates
from meteogram.direct import fetch_svg_document
from meteogram.errors import ExhaustedRetriesError, MeteogramError, ParseError
from meteogram.forecast import fetch_forecast
from meteogram.models import (
    AcquiredDocument,
    AcquisitionState,
    Coordinates,
    Degraded,
    Failed,
    Idle,
    Loading,
    Ready,
)
from meteogram.renderers.svg_chart import render_meteogram
from meteogram.sanitize import sanitize_svg

FORECAST_FAILED = "Unable to load forecast data."
INVALID_SVG = "Invalid SVG content"

Sleep = Callable[[float], Awaitable[None]]

log = structlog.get_logger(__name__)


def looks_like_svg(text: str | None) -> bool:
    """Cheap check used before trusting a retained document as a fallback."""
    stripped = (text or "").strip()
    return stripped.startswith("<svg") or stripped.startswith("<?xml")


def _fetch_relevant(old: SourceConfig, new: SourceConfig) -> bool:
    """True when a source change needs a new acquisition (not just a re-theme)."""
    if (
        old.source_url != new.source_url
        or old.auto_refresh_enabled != new.auto_refresh_enabled
        or old.refresh_interval != new.refresh_interval
    ):
        return True
    # svg_code is the persist slot while a URL is set; only a literal source reacts to it
    return not new.source_url and old.svg_code != new.svg_code


class AcquisitionController:
    """Drive acquisition for one meteogram container.

    Args:
        source: Initial source configuration.
        theme: Initial theme.
        client: HTTP client; one is created (and closed on teardown) when None.
        settings: Endpoint, timeouts and retry budget; read from env when None.
        on_state: Called with every new state.
        on_persist: Called with each freshly acquired SVG so the host can store
            it as its ``svg_code``.
        sleep: Timer primitive; tests inject a recording fake.
    """

    def __init__(
        self,
        source: SourceConfig,
        theme: Theme,
        *,
        client: httpx.AsyncClient | None = None,
        settings: Settings | None = None,
        on_state: Callable[[AcquisitionState], None] | None = None,
        on_persist: Callable[[str], None] | None = None,
        sleep: Sleep = asyncio.sleep,
        lang: str = "en",
    ) -> None:
        self._source = source
        self._theme = theme
        self._settings = settings or Settings.from_env()
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            follow_redirects=True, timeout=httpx.Timeout(self._settings.direct_timeout)
        )
        self._on_state = on_state
        self._on_persist = on_persist
        self._sleep = sleep
        self._lang = lang

        self._state: AcquisitionState = Idle()
        self._raw_svg: str | None = None  # one-slot stale fallback
        self._generation = 0
        self._pipeline: asyncio.Task[None] | None = None
        self._refresher: asyncio.Task[None] | None = None
        self._closed = False

    # --- public surface ---

    @property
    def state(self) -> AcquisitionState:
        return self._state

    @property
    def source(self) -> SourceConfig:
        return self._source

    @property
    def theme(self) -> Theme:
        return self._theme

    @property
    def refresh_period(self) -> float | None:
        """Auto-refresh period in seconds, or None when auto-refresh is off."""
        src = self._source
        if src.auto_refresh_enabled and src.refresh_interval > 0 and src.source_url:
            return src.refresh_interval * 60
        return None

    def start(self) -> None:
        """Mount: evaluate the source and arm auto-refresh. Needs a running loop."""
        self._ensure_open()
        self._evaluate_source()
        self._arm_refresh()

    def configure(self, source: SourceConfig | None = None, theme: Theme | None = None) -> None:
        """Reconfiguration event from the host.

        Source changes that affect fetching restart the pipeline and re-arm
        auto-refresh. A theme-only change re-sanitizes the retained document
        without any network activity.
        """
        self._ensure_open()
        old_source = self._source
        old_theme = self._theme
        if source is not None:
            self._source = source
        if theme is not None:
            self._theme = theme

        if _fetch_relevant(old_source, self._source):
            self._evaluate_source()
            self._arm_refresh()
        elif self._theme != old_theme and isinstance(self._state, Ready):
            self._rethemed(self._state)

    def refresh(self) -> None:
        """Manual re-trigger of the full pipeline (the refresh button)."""
        self._ensure_open()
        self._evaluate_source()

    async def wait(self) -> AcquisitionState:
        """Wait for the active pipeline run, if any, and return the state."""
        # a trigger during the wait replaces the task; follow the newest one
        while self._pipeline is not None and not self._pipeline.done():
            await asyncio.wait({self._pipeline})
        task = self._pipeline
        if task is not None and not task.cancelled() and task.exception() is not None:
            raise task.exception()
        return self._state

    async def aclose(self) -> None:
        """Teardown: cancel the retry chain and refresh timer. Idempotent."""
        if self._closed:
            return
        self._closed = True
        self._generation += 1
        pipeline, self._pipeline = self._pipeline, None
        refresher, self._refresher = self._refresher, None
        await _cancel(pipeline)
        await _cancel(refresher)
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "AcquisitionController":
        self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    # --- state handling ---

    def _ensure_open(self) -> None:
        if self._closed:
            raise RuntimeError("AcquisitionController is closed")

    def _set_state(self, state: AcquisitionState) -> None:
        self._state = state
        if self._on_state is not None:
            self._on_state(state)

    def _ready(self, raw_svg: str, *, stale: bool = False) -> None:
        """Sanitize and commit. Raises ParseError and leaves state untouched on bad input."""
        html = sanitize_svg(raw_svg, self._theme)
        self._raw_svg = raw_svg
        self._set_state(Ready(AcquiredDocument(raw_svg=raw_svg, sanitized_html=html), stale=stale))

    def _rethemed(self, current: Ready) -> None:
        try:
            self._ready(current.document.raw_svg, stale=current.stale)
        except ParseError as exc:
            log.warning("retheme_failed", error=str(exc))

    # --- routing ---

    def _evaluate_source(self) -> None:
        self._generation += 1
        generation = self._generation
        if self._pipeline is not None and not self._pipeline.done():
            self._pipeline.cancel()
        self._pipeline = None

        src = self._source
        kind = src.kind
        if kind == "url":
            self._set_state(Loading(attempt=1))
            self._pipeline = asyncio.get_running_loop().create_task(
                self._run_chain(src.source_url, generation),
                name=f"meteogram-acquire-{generation}",
            )
        elif kind == "literal":
            self._show_literal(src.svg_code)
        else:
            self._raw_svg = None
            self._set_state(Idle())

    def _show_literal(self, svg_code: str) -> None:
        try:
            self._ready(svg_code)
        except ParseError as exc:
            log.warning("literal_svg_invalid", error=str(exc))
            if not self._fall_back_to_stale():
                self._set_state(Failed(INVALID_SVG))

    def _fall_back_to_stale(self) -> bool:
        """Serve the retained (or configured) document. False if none is usable."""
        for candidate in (self._raw_svg, self._source.svg_code):
            if not looks_like_svg(candidate):
                continue
            try:
                self._ready(candidate, stale=True)
            except ParseError:
                continue
            return True
        return False

    # --- pipeline ---

    async def _attempt(self, url: str, coords: Coordinates | None) -> str:
        if coords is not None:
            series = await fetch_forecast(self._client, coords, self._settings)
            return render_meteogram(series, self._theme, lang=self._lang)
        return await fetch_svg_document(self._client, url, self._settings)

    async def _run_chain(self, url: str, generation: int) -> None:
        coords = extract_coordinates(url)
        path = "forecast" if coords is not None else "direct"
        max_attempts = self._settings.max_attempts
        last_error: Exception | None = None

        for attempt in range(1, max_attempts + 1):
            if attempt > 1:
                self._set_state(Loading(attempt=attempt))
            try:
                raw_svg = await self._attempt(url, coords)
                if generation != self._generation:
                    return
                self._ready(raw_svg)
            except MeteogramError as exc:
                last_error = exc
                log.warning(
                    f"{path}_fetch_failed", url=url, attempt=attempt, error=str(exc)
                )
                if attempt < max_attempts:
                    delay = self._settings.retry_delay * attempt
                    log.info("acquisition_retry_scheduled", path=path, attempt=attempt, delay=delay)
                    await self._sleep(delay)
                    if generation != self._generation:
                        return
                continue

            log.info("acquisition_ready", path=path, attempt=attempt)
            if self._on_persist is not None:
                self._on_persist(raw_svg)
            return

        if generation != self._generation:
            return
        self._exhausted(url, path, ExhaustedRetriesError(max_attempts, last_error))

    def _exhausted(self, url: str, path: str, error: ExhaustedRetriesError) -> None:
        log.error("acquisition_exhausted", path=path, url=url, error=str(error))
        if self._fall_back_to_stale():
            log.info("acquisition_stale_fallback", path=path)
            return
        if path == "direct":
            log.info("acquisition_degraded", url=url)
            self._set_state(Degraded(external_url=url))
        else:
            self._set_state(Failed(FORECAST_FAILED))

    # --- auto-refresh ---

    def _arm_refresh(self) -> None:
        if self._refresher is not None and not self._refresher.done():
            self._refresher.cancel()
        self._refresher = None
        period = self.refresh_period
        if period is None:
            return
        log.info("auto_refresh_armed", period=period, url=self._source.source_url)
        self._refresher = asyncio.get_running_loop().create_task(
            self._refresh_loop(period), name="meteogram-refresh"
        )

    async def _refresh_loop(self, period: float) -> None:
        while True:
            await self._sleep(period)
            self._evaluate_source()


async def _cancel(task: asyncio.Task[None] | None) -> None:
    if task is None or task.done():
        return
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass


async def acquire_once(
    source: SourceConfig,
    theme: Theme,
    *,
    settings: Settings | None = None,
    client: httpx.AsyncClient | None = None,
    lang: str = "en",
) -> tuple[AcquisitionState, str | None]:
    """Run one acquisition to completion and tear down.

    Returns:
        The final state and the SVG to persist (None if nothing new was fetched).
    """
    persisted: list[str] = []
    controller = AcquisitionController(
        source.replace(auto_refresh_enabled=False),
        theme,
        client=client,
        settings=settings,
        on_persist=persisted.append,
        lang=lang,
    )
    async with controller:
        state = await controller.wait()
    return state, persisted[-1] if persisted else None
