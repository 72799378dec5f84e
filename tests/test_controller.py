import asyncio
import re

import httpx
import pytest

from conftest import RecordingSleep, forecast_payload, mock_client
from meteogram.config import Settings, SourceConfig, Theme
from meteogram.controller import (
    FORECAST_FAILED,
    INVALID_SVG,
    AcquisitionController,
    acquire_once,
    looks_like_svg,
)
from meteogram.models import Degraded, Failed, Idle, Loading, Ready

FORECAST_URL = "https://www.yr.no/en/forecast/graph/63.4,10.4/Trondheim"
DIRECT_URL = "https://example.com/meteogram.svg"
SVG_A = '<svg xmlns="http://www.w3.org/2000/svg" width="10" height="10"><rect fill="red"/></svg>'
SVG_B = '<svg xmlns="http://www.w3.org/2000/svg" width="20" height="20"><rect fill="blue"/></svg>'


class Harness:
    """Controller wired to a mock transport, recording states and persisted SVGs."""

    def __init__(self, handler, source, theme, settings, sleep=None):
        self.requests: list[httpx.Request] = []
        self.states: list = []
        self.persisted: list[str] = []

        def recording(request):
            self.requests.append(request)
            return handler(request)

        self.client = mock_client(recording)
        self.controller = AcquisitionController(
            source,
            theme,
            client=self.client,
            settings=settings,
            on_state=self.states.append,
            on_persist=self.persisted.append,
            sleep=sleep or RecordingSleep(),
        )

    async def close(self):
        await self.controller.aclose()
        await self.client.aclose()


def _failing(request):
    return httpx.Response(500)


def test_forecast_end_to_end(theme, settings, sleep):
    payload = forecast_payload(
        [10.0, 11.0, 12.0, 13.0, 14.0, 15.0],
        winds=[2.0, 2.5, 3.0, 3.5, 4.0, 5.0],
    )

    async def scenario():
        h = Harness(lambda r: httpx.Response(200, json=payload), SourceConfig(source_url=FORECAST_URL), theme, settings, sleep)
        h.controller.start()
        assert h.controller.state == Loading(attempt=1)
        state = await h.controller.wait()
        await h.close()
        return h, state

    h, state = asyncio.run(scenario())
    assert isinstance(state, Ready) and not state.stale
    (request,) = h.requests
    assert request.url.host == "api.met.no"
    assert request.url.params["lat"] == "63.4"

    raw = state.document.raw_svg
    temp_path = re.search(r'<path d="([^"]+)" fill="none" stroke="#ff3300"', raw).group(1)
    assert len(re.findall(r"[ML]", temp_path)) == 6
    assert temp_path.count("M") == 1
    # warming series: every vertex sits higher than the one before
    ys = [float(y) for y in re.findall(r",(-?[\d.]+)", temp_path)]
    assert ys == sorted(ys, reverse=True) and len(set(ys)) == 6
    precip_group = re.search(r'<g class="precipitation">(.*?)</g>', raw, re.S).group(1)
    assert "<rect" not in precip_group
    assert h.persisted == [raw]
    assert sleep.delays == []


def test_forecast_retries_with_linear_backoff_then_fails(theme, settings, sleep):
    async def scenario():
        h = Harness(_failing, SourceConfig(source_url=FORECAST_URL), theme, settings, sleep)
        h.controller.start()
        state = await h.controller.wait()
        await h.close()
        return h, state

    h, state = asyncio.run(scenario())
    assert sleep.delays == [1.0, 2.0, 3.0, 4.0]
    assert len(h.requests) == 5
    assert state == Failed(FORECAST_FAILED)
    assert h.states == [Loading(1), Loading(2), Loading(3), Loading(4), Loading(5), Failed(FORECAST_FAILED)]
    assert h.persisted == []


def test_retry_budget_comes_from_settings(theme, sleep):
    async def scenario():
        h = Harness(_failing, SourceConfig(source_url=FORECAST_URL), theme, Settings(max_attempts=2, retry_delay=0.5), sleep)
        h.controller.start()
        state = await h.controller.wait()
        await h.close()
        return h, state

    h, state = asyncio.run(scenario())
    assert sleep.delays == [0.5]
    assert len(h.requests) == 2
    assert isinstance(state, Failed)


def test_recovers_on_later_attempt(theme, settings, sleep):
    responses = iter([httpx.Response(503), httpx.Response(200, text=SVG_A)])

    async def scenario():
        h = Harness(lambda r: next(responses), SourceConfig(source_url=DIRECT_URL), theme, settings, sleep)
        h.controller.start()
        state = await h.controller.wait()
        await h.close()
        return h, state

    h, state = asyncio.run(scenario())
    assert sleep.delays == [1.0]
    assert isinstance(state, Ready)
    assert state.document.raw_svg == SVG_A


def test_succeeds_on_last_attempt(theme, settings, sleep):
    payload = forecast_payload([10.0, 11.0])
    responses = iter([httpx.Response(500)] * 4 + [httpx.Response(200, json=payload)])

    async def scenario():
        h = Harness(lambda r: next(responses), SourceConfig(source_url=FORECAST_URL), theme, settings, sleep)
        h.controller.start()
        state = await h.controller.wait()
        await h.close()
        return h, state

    h, state = asyncio.run(scenario())
    assert sleep.delays == [1.0, 2.0, 3.0, 4.0]
    assert isinstance(state, Ready) and not state.stale
    assert h.states[-2] == Loading(5)


def test_direct_exhausted_degrades_to_external_view(theme, settings, sleep):
    async def scenario():
        h = Harness(_failing, SourceConfig(source_url=DIRECT_URL), theme, settings, sleep)
        h.controller.start()
        state = await h.controller.wait()
        await h.close()
        return h, state

    h, state = asyncio.run(scenario())
    assert state == Degraded(external_url=DIRECT_URL)
    assert len(h.requests) == 5


def test_unparseable_fetched_svg_counts_as_failed_attempt(theme, settings, sleep):
    async def scenario():
        h = Harness(lambda r: httpx.Response(200, text="<svg><broken"), SourceConfig(source_url=DIRECT_URL), theme, settings, sleep)
        h.controller.start()
        state = await h.controller.wait()
        await h.close()
        return h, state

    h, state = asyncio.run(scenario())
    assert len(h.requests) == 5
    assert isinstance(state, Degraded)


def test_exhausted_with_prior_document_serves_stale(theme, settings, sleep):
    calls = {"n": 0}

    def handler(request):
        calls["n"] += 1
        return httpx.Response(200, text=SVG_A) if calls["n"] == 1 else httpx.Response(500)

    async def scenario():
        h = Harness(handler, SourceConfig(source_url=DIRECT_URL), theme, settings, sleep)
        h.controller.start()
        first = await h.controller.wait()
        h.controller.refresh()
        second = await h.controller.wait()
        await h.close()
        return first, second

    first, second = asyncio.run(scenario())
    assert isinstance(first, Ready) and not first.stale
    assert isinstance(second, Ready) and second.stale
    assert second.document.raw_svg == SVG_A


def test_configured_svg_code_is_the_stale_fallback(theme, settings, sleep):
    source = SourceConfig(source_url=FORECAST_URL, svg_code=SVG_B)

    async def scenario():
        h = Harness(_failing, source, theme, settings, sleep)
        h.controller.start()
        state = await h.controller.wait()
        await h.close()
        return state

    state = asyncio.run(scenario())
    assert isinstance(state, Ready) and state.stale
    assert state.document.raw_svg == SVG_B


def test_theme_change_rethemes_without_network(settings, sleep):
    fo_svg = (
        '<svg xmlns="http://www.w3.org/2000/svg"><foreignObject>'
        '<div xmlns="http://www.w3.org/1999/xhtml">x</div></foreignObject></svg>'
    )

    async def scenario():
        h = Harness(lambda r: httpx.Response(200, text=fo_svg), SourceConfig(source_url=DIRECT_URL), Theme(), settings, sleep)
        h.controller.start()
        before = await h.controller.wait()
        h.controller.configure(theme=Theme(overall_background="#000000"))
        after = h.controller.state
        await h.controller.wait()
        await h.close()
        return h, before, after

    h, before, after = asyncio.run(scenario())
    assert len(h.requests) == 1
    assert isinstance(after, Ready)
    assert after.document.raw_svg == before.document.raw_svg
    assert "background:#000000 !important;" in after.document.sanitized_html
    assert "background:#000000" not in before.document.sanitized_html


def test_literal_svg_is_shown_without_network(theme, settings, sleep):
    async def scenario():
        h = Harness(_failing, SourceConfig(svg_code=SVG_A), theme, settings, sleep)
        h.controller.start()
        state = h.controller.state
        await h.close()
        return h, state

    h, state = asyncio.run(scenario())
    assert h.requests == []
    assert isinstance(state, Ready)
    assert state.document.raw_svg == SVG_A
    assert h.persisted == []


def test_placeholder_comment_is_idle(theme, settings, sleep):
    async def scenario():
        h = Harness(_failing, SourceConfig(svg_code="<!-- paste SVG here -->"), theme, settings, sleep)
        h.controller.start()
        state = h.controller.state
        await h.close()
        return state

    assert asyncio.run(scenario()) == Idle()


def test_invalid_literal_fails(theme, settings, sleep):
    async def scenario():
        h = Harness(_failing, SourceConfig(svg_code="<svg><oops"), theme, settings, sleep)
        h.controller.start()
        state = h.controller.state
        await h.close()
        return state

    assert asyncio.run(scenario()) == Failed(INVALID_SVG)


def test_svg_code_change_with_url_does_not_refetch(theme, settings, sleep):
    async def scenario():
        h = Harness(lambda r: httpx.Response(200, text=SVG_A), SourceConfig(source_url=DIRECT_URL), theme, settings, sleep)
        h.controller.start()
        await h.controller.wait()
        # host writes the persisted document back into svg_code
        h.controller.configure(source=h.controller.source.replace(svg_code=h.persisted[-1]))
        await h.controller.wait()
        await h.close()
        return h

    h = asyncio.run(scenario())
    assert len(h.requests) == 1


def test_clearing_source_goes_idle(theme, settings, sleep):
    async def scenario():
        h = Harness(_failing, SourceConfig(svg_code=SVG_A), theme, settings, sleep)
        h.controller.start()
        h.controller.configure(source=SourceConfig())
        state = h.controller.state
        await h.close()
        return state

    assert asyncio.run(scenario()) == Idle()


def test_new_source_supersedes_running_chain(theme, settings, sleep):
    async def scenario():
        release = asyncio.Event()

        async def handler(request):
            if request.url.host == "a.example":
                await release.wait()
                return httpx.Response(200, text=SVG_A)
            return httpx.Response(200, text=SVG_B)

        h = Harness(handler, SourceConfig(source_url="https://a.example/m.svg"), theme, settings, sleep)
        h.controller.start()
        while not h.requests:
            await asyncio.sleep(0)
        h.controller.configure(source=SourceConfig(source_url="https://b.example/m.svg"))
        release.set()
        state = await h.controller.wait()
        await asyncio.sleep(0)
        await h.close()
        return h, state

    h, state = asyncio.run(scenario())
    assert state.document.raw_svg == SVG_B
    ready = [s for s in h.states if isinstance(s, Ready)]
    assert [s.document.raw_svg for s in ready] == [SVG_B]
    assert h.persisted == [SVG_B]


def test_auto_refresh_reruns_pipeline(theme, settings):
    async def scenario():
        gate = asyncio.Event()
        delays: list[float] = []

        async def sleep(delay):
            delays.append(delay)
            if delay >= 60:
                await gate.wait()
                gate.clear()

        source = SourceConfig(source_url=DIRECT_URL, auto_refresh_enabled=True, refresh_interval=1)
        h = Harness(lambda r: httpx.Response(200, text=SVG_A), source, theme, settings, sleep)
        assert h.controller.refresh_period == 60
        h.controller.start()
        await h.controller.wait()
        assert len(h.requests) == 1

        gate.set()
        while len(h.requests) < 2:
            await asyncio.sleep(0)
        state = await h.controller.wait()
        await h.close()
        return h, state, delays

    h, state, delays = asyncio.run(scenario())
    assert isinstance(state, Ready)
    assert len(h.persisted) == 2
    assert delays[:2] == [60, 60]


@pytest.mark.parametrize(
    "source",
    [
        SourceConfig(source_url=DIRECT_URL, auto_refresh_enabled=False, refresh_interval=5),
        SourceConfig(source_url=DIRECT_URL, auto_refresh_enabled=True, refresh_interval=0),
        SourceConfig(svg_code=SVG_A, auto_refresh_enabled=True, refresh_interval=5),
    ],
)
def test_no_refresh_period(source, theme, settings):
    controller = AcquisitionController(source, theme, client=mock_client(_failing), settings=settings)
    assert controller.refresh_period is None


def test_teardown_cancels_pending_work(theme, settings):
    sleep = RecordingSleep(block_from=1.0)

    async def scenario():
        source = SourceConfig(source_url=DIRECT_URL, auto_refresh_enabled=True, refresh_interval=10)
        h = Harness(_failing, source, theme, settings, sleep)
        h.controller.start()
        while 1.0 not in sleep.delays:
            await asyncio.sleep(0)
        states_at_close = list(h.states)
        await h.controller.aclose()
        await h.controller.aclose()  # idempotent
        pending = asyncio.all_tasks() - {asyncio.current_task()}
        with pytest.raises(RuntimeError):
            h.controller.refresh()
        await h.client.aclose()
        return h, states_at_close, pending

    h, states_at_close, pending = asyncio.run(scenario())
    assert pending == set()
    assert h.states == states_at_close
    assert 600 in sleep.delays


def test_acquire_once_returns_persisted_document(theme, settings):
    async def scenario():
        async with mock_client(lambda r: httpx.Response(200, text=SVG_A)) as client:
            source = SourceConfig(source_url=DIRECT_URL, auto_refresh_enabled=True, refresh_interval=5)
            result = await acquire_once(source, theme, settings=settings, client=client)
            pending = asyncio.all_tasks() - {asyncio.current_task()}
            return result, pending

    (state, persisted), pending = asyncio.run(scenario())
    assert isinstance(state, Ready)
    assert persisted == SVG_A
    assert pending == set()


def test_acquire_once_literal_persists_nothing(theme, settings):
    async def scenario():
        async with mock_client(_failing) as client:
            return await acquire_once(SourceConfig(svg_code=SVG_B), theme, settings=settings, client=client)

    state, persisted = asyncio.run(scenario())
    assert isinstance(state, Ready)
    assert persisted is None


@pytest.mark.parametrize(
    "text, expected",
    [
        (SVG_A, True),
        ('  <?xml version="1.0"?><svg/>', True),
        ("<!-- placeholder -->", False),
        ("", False),
        (None, False),
    ],
)
def test_looks_like_svg(text, expected):
    assert looks_like_svg(text) is expected


def test_non_finite_forecast_is_retried_then_fails(theme, settings, sleep):
    body = (
        '{"properties": {"timeseries": [{"time": "2024-01-01T00:00:00Z", '
        '"data": {"instant": {"details": {"air_temperature": 1.0, "wind_speed": Infinity}}}}]}}'
    )

    async def scenario():
        h = Harness(lambda r: httpx.Response(200, text=body), SourceConfig(source_url=FORECAST_URL), theme, settings, sleep)
        h.controller.start()
        state = await h.controller.wait()
        await h.close()
        return h, state

    h, state = asyncio.run(scenario())
    assert len(h.requests) == 5
    assert sleep.delays == [1.0, 2.0, 3.0, 4.0]
    assert state == Failed(FORECAST_FAILED)
