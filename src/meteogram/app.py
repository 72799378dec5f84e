"""Meteogram — Streamlit host page for the acquisition pipeline."""

import asyncio
import time

import streamlit as st
import streamlit.components.v1 as components
from dotenv import load_dotenv

load_dotenv()

from meteogram.config import Settings, SourceConfig, Theme  # noqa: E402
from meteogram.controller import acquire_once  # noqa: E402
from meteogram.embed import wrap_document  # noqa: E402
from meteogram.errors import ParseError  # noqa: E402
from meteogram.i18n import t  # noqa: E402
from meteogram.logconfig import init_logging  # noqa: E402
from meteogram.models import Degraded, Failed, Idle, Ready  # noqa: E402
from meteogram.sanitize import sanitize_svg  # noqa: E402

_CHART_HEIGHT = 560


@st.cache_resource
def _settings() -> Settings:
    settings = Settings.from_env()
    init_logging(settings)
    return settings


# --- Language (?lang=nb) ---
_lang: str = st.query_params.get("lang", "en")

st.set_page_config(page_title=t("page_title", _lang), page_icon="⛅", layout="wide")

# --- Session state initialization ---
# svg_code is the session-scoped persist slot: every fresh acquisition lands here
if "svg_code" not in st.session_state:
    st.session_state.svg_code = ""
if "acq_state" not in st.session_state:
    st.session_state.acq_state = Idle()
if "acq_key" not in st.session_state:
    st.session_state.acq_key = None
if "acquired_at" not in st.session_state:
    st.session_state.acquired_at = 0.0
if "force_refresh" not in st.session_state:
    st.session_state.force_refresh = False
# persisted SVG from the previous run, applied before the text area is built
if "pending_svg_code" in st.session_state:
    st.session_state.svg_code = st.session_state.pop("pending_svg_code")

# --- Sidebar configuration ---
with st.sidebar:
    source_url = st.text_input(t("label_source_url", _lang), value="")
    svg_code = st.text_area(t("label_svg_code", _lang), key="svg_code", height=120)
    auto_refresh = st.checkbox(t("label_auto_refresh", _lang), value=False)
    interval = st.number_input(t("label_interval", _lang), min_value=0.0, value=30.0, step=5.0)

    st.subheader(t("label_theme", _lang))
    _defaults = Theme()
    theme = Theme(
        overall_background=st.color_picker("Background", _defaults.overall_background),
        main_text_color=st.color_picker("Main text", _defaults.main_text_color),
        secondary_text_color=st.color_picker("Secondary text", _defaults.secondary_text_color),
        grid_line_color=st.color_picker("Grid lines", _defaults.grid_line_color),
        temperature_line_color=st.color_picker("Temperature", _defaults.temperature_line_color),
        wind_line_color=st.color_picker("Wind", _defaults.wind_line_color),
        wind_gust_line_color=st.color_picker("Wind gust", _defaults.wind_gust_line_color),
        precipitation_bar_color=st.color_picker("Precipitation", _defaults.precipitation_bar_color),
        max_precipitation_color=st.color_picker("Max precipitation", _defaults.max_precipitation_color),
        y_axis_icon_color=st.color_picker("Axis icons", _defaults.y_axis_icon_color),
        logo_color=st.color_picker("Logo", _defaults.logo_color),
        padding=st.slider("Padding", 0, 48, int(_defaults.padding)),
    )

source = SourceConfig(
    source_url=source_url.strip(),
    svg_code=svg_code,
    auto_refresh_enabled=auto_refresh,
    refresh_interval=interval,
)
_refresh_every = (
    source.refresh_interval * 60
    if source.auto_refresh_enabled and source.refresh_interval > 0 and source.source_url
    else None
)


def _source_key(src: SourceConfig) -> tuple:
    """Fields whose change means a new acquisition. Theme is not one of them."""
    return (
        src.source_url,
        src.auto_refresh_enabled,
        src.refresh_interval,
        "" if src.source_url else src.svg_code,
    )


def _acquire_if_due(src: SourceConfig) -> None:
    due = st.session_state.force_refresh or st.session_state.acq_key != _source_key(src)
    if _refresh_every is not None:
        due = due or time.monotonic() - st.session_state.acquired_at >= _refresh_every
    if not due:
        return

    with st.spinner(t("loading", _lang)):
        state, persisted = asyncio.run(acquire_once(src, theme, settings=_settings(), lang=_lang))
    st.session_state.acq_state = state
    st.session_state.acq_key = _source_key(src)
    st.session_state.acquired_at = time.monotonic()
    st.session_state.force_refresh = False
    if persisted is not None:
        # widget-bound key: takes effect in the text area on the next run
        st.session_state.pending_svg_code = persisted


def _container(markup: str) -> str:
    return "<style>html,body{margin:0;height:100%}</style>\n" + wrap_document(markup, theme)


@st.fragment(run_every=_refresh_every)
def _meteogram_panel() -> None:
    _acquire_if_due(source)
    state = st.session_state.acq_state

    if source.source_url and st.button(t("btn_refresh", _lang), key="refresh_btn"):
        st.session_state.force_refresh = True
        st.rerun(scope="fragment")

    if isinstance(state, Ready):
        # theme-only changes land here without touching the network
        try:
            markup = sanitize_svg(state.document.raw_svg, theme)
        except ParseError as e:
            st.error(str(e))
            return
        components.html(_container(markup), height=_CHART_HEIGHT, scrolling=False)
    elif isinstance(state, Degraded):
        st.caption(t("degraded_notice", _lang))
        components.iframe(state.external_url, height=_CHART_HEIGHT, scrolling=True)
    elif isinstance(state, Failed):
        st.error(state.message)
    else:
        st.info(t("placeholder", _lang))


_meteogram_panel()
