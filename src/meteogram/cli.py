"""CLI entry point for meteogram acquisition.

Fetch once and write embeddable HTML:
    uv run meteogram https://www.yr.no/en/forecast/graph/63.4,10.4/Trondheim -o meteogram.html

Keep refreshing every 30 minutes until interrupted:
    uv run meteogram <url> -o meteogram.html --watch --interval 30
"""

import argparse
import asyncio
import html
import json
import sys
from pathlib import Path

from dotenv import load_dotenv

from meteogram.config import Settings, SourceConfig, Theme
from meteogram.controller import AcquisitionController, acquire_once
from meteogram.embed import wrap_document
from meteogram.i18n import t
from meteogram.logconfig import init_logging
from meteogram.models import AcquisitionState, Degraded, Failed, Ready


def render_state(state: AcquisitionState, theme: Theme) -> str | None:
    """Markup for a settled state. None for Idle/Loading/Failed."""
    if isinstance(state, Ready):
        return wrap_document(state.document.sanitized_html, theme)
    if isinstance(state, Degraded):
        url = html.escape(state.external_url, quote=True)
        return f'<iframe src="{url}" style="width:100%;height:100%;border:0" title="meteogram"></iframe>'
    return None


def _write(markup: str, output: Path | None) -> None:
    if output is None:
        sys.stdout.write(markup + "\n")
        sys.stdout.flush()
        return
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(markup, encoding="utf-8")


def _load_theme(path: Path | None) -> Theme:
    if path is None:
        return Theme()
    return Theme.from_mapping(json.loads(path.read_text(encoding="utf-8")))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="meteogram",
        description="Acquire a meteogram (remote SVG, met.no forecast or literal SVG) as themed HTML",
    )
    parser.add_argument("url", nargs="?", default="", help="Source URL; a lat,lon path segment selects the forecast API")
    parser.add_argument("--svg", type=Path, help="Fallback SVG file")
    parser.add_argument("--theme", type=Path, help="JSON file with theme options (snake_case or camelCase keys)")
    parser.add_argument("--lang", default="en", choices=["en", "nb"], help="Chart label language")
    parser.add_argument("-o", "--output", type=Path, help="Write HTML here instead of stdout")
    parser.add_argument("--watch", action="store_true", help="Keep running and rewrite output on every refresh")
    parser.add_argument("--interval", type=float, default=30, metavar="MIN", help="Refresh interval for --watch (minutes)")
    return parser


async def _watch(
    source: SourceConfig,
    theme: Theme,
    settings: Settings,
    output: Path | None,
    svg_path: Path | None,
    lang: str,
) -> None:
    def on_state(state: AcquisitionState) -> None:
        markup = render_state(state, theme)
        if markup is not None:
            _write(markup, output)
        elif isinstance(state, Failed):
            print(state.message, file=sys.stderr)

    def on_persist(raw_svg: str) -> None:
        if svg_path is not None:
            svg_path.write_text(raw_svg, encoding="utf-8")

    async with AcquisitionController(
        source, theme, settings=settings, on_state=on_state, on_persist=on_persist, lang=lang
    ):
        await asyncio.Event().wait()


def main(argv: list[str] | None = None) -> int:
    load_dotenv()
    args = build_parser().parse_args(argv)
    settings = Settings.from_env()
    log = init_logging(settings)

    svg_code = args.svg.read_text(encoding="utf-8") if args.svg else ""
    source = SourceConfig(
        source_url=args.url,
        svg_code=svg_code,
        auto_refresh_enabled=args.watch,
        refresh_interval=args.interval,
    )
    theme = _load_theme(args.theme)

    if args.watch:
        try:
            asyncio.run(_watch(source, theme, settings, args.output, args.svg, args.lang))
        except KeyboardInterrupt:
            log.info("watch_stopped")
        return 0

    state, persisted = asyncio.run(acquire_once(source, theme, settings=settings, lang=args.lang))
    if persisted is not None and args.svg is not None:
        args.svg.write_text(persisted, encoding="utf-8")

    if isinstance(state, (Ready, Degraded)):
        _write(render_state(state, theme), args.output)
        return 0
    if isinstance(state, Failed):
        print(state.message, file=sys.stderr)
    else:
        print(t("placeholder", args.lang), file=sys.stderr)
    return 1


if __name__ == "__main__":
    sys.exit(main())
