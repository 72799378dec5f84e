"""Direct document acquisition. Fetch a ready-made SVG (or an HTML page embedding one)."""

import asyncio
import time
from html.parser import HTMLParser
from typing import Callable

import httpx
import structlog

from meteogram.config import Settings
from meteogram.errors import ParseError, TransportError

ACCEPT = "image/svg+xml,text/html;q=0.9,*/*;q=0.8"

log = structlog.get_logger(__name__)


def _epoch_ms() -> int:
    return int(time.time() * 1000)


def cache_busted(url: str, stamp: int) -> str:
    """Set ``nocache=<stamp>`` on the URL; fall back to string append if it won't parse."""
    try:
        parsed = httpx.URL(url)
        if not parsed.scheme or not parsed.host:
            raise httpx.InvalidURL(f"not an absolute URL: {url}")
        return str(parsed.copy_set_param("nocache", str(stamp)))
    except (httpx.InvalidURL, TypeError, ValueError):
        separator = "&" if "?" in url else "?"
        return f"{url}{separator}nocache={stamp}"


async def fetch_svg_document(
    client: httpx.AsyncClient,
    url: str,
    settings: Settings,
    now_ms: Callable[[], int] = _epoch_ms,
) -> str:
    """Fetch a URL and return SVG markup from it.

    The whole request (connect through body) runs under one timeout scope;
    hitting it cancels the transfer.

    Args:
        client: Shared async HTTP client.
        url: Source URL as configured (a cache-busting parameter is added).
        settings: Supplies the timeout.
        now_ms: Clock for the cache-busting stamp.

    Returns:
        The SVG document verbatim when the body is SVG/XML, otherwise the
        first ``<svg>`` element found in the HTML.

    Raises:
        TransportError: On timeout, network failure or non-2xx status.
        ParseError: When an HTML body holds no ``<svg>`` element.
    """
    request_url = cache_busted(url, now_ms())
    headers = {"Accept": ACCEPT, "Cache-Control": "no-store"}
    try:
        async with asyncio.timeout(settings.direct_timeout):
            # the enclosing scope is the only limit
            resp = await client.get(request_url, headers=headers, timeout=None)
            body = resp.text
    except TimeoutError as exc:
        raise TransportError(f"Timed out after {settings.direct_timeout:g}s: {url}") from exc
    except (httpx.HTTPError, httpx.InvalidURL) as exc:
        raise TransportError(f"Request failed: {type(exc).__name__}: {exc}") from exc

    if not resp.is_success:
        raise TransportError(f"HTTP {resp.status_code}", status_code=resp.status_code)

    return extract_svg(body)


def extract_svg(body: str) -> str:
    """Return SVG markup from a response body (content sniffing, not headers)."""
    text = body.strip()
    if text.startswith("<svg") or text.startswith("<?xml"):
        return text

    finder = _SvgFinder(text)
    finder.feed(text)
    finder.close()
    if finder.markup is None:
        raise ParseError("No SVG element found in fetched content.")
    return finder.markup


class _SvgFinder(HTMLParser):
    """Locate the first ``<svg>`` element in an HTML document and slice out its source.

    Nested ``<svg>`` elements are tracked by depth so the slice ends at the
    matching close tag. An unterminated element runs to the end of the text.
    """

    def __init__(self, source: str) -> None:
        super().__init__(convert_charrefs=True)
        self._source = source
        self._line_offsets = [0]
        # getpos() counts lines on "\n" only
        for line in source.split("\n"):
            self._line_offsets.append(self._line_offsets[-1] + len(line) + 1)
        self._start: int | None = None
        self._depth = 0
        self.markup: str | None = None

    def _offset(self) -> int:
        line, col = self.getpos()
        return self._line_offsets[line - 1] + col

    def handle_starttag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        if tag != "svg" or self.markup is not None:
            return
        if self._start is None:
            self._start = self._offset()
        self._depth += 1

    def handle_startendtag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        if tag != "svg" or self.markup is not None:
            return
        if self._start is None:
            self.markup = self.get_starttag_text()

    def handle_endtag(self, tag: str) -> None:
        if tag != "svg" or self._start is None or self.markup is not None:
            return
        self._depth -= 1
        if self._depth == 0:
            end = self._source.find(">", self._offset()) + 1
            self.markup = self._source[self._start : end]

    def close(self) -> None:
        super().close()
        if self.markup is None and self._start is not None:
            self.markup = self._source[self._start :]
