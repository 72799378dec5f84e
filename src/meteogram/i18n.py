"""Simple two-language (en/nb) translation helper."""

from datetime import datetime

_STRINGS: dict[str, dict[str, str]] = {
    "page_title": {
        "en": "Meteogram",
        "nb": "Meteogram",
    },
    "chart_title": {
        "en": "YR meteogram",
        "nb": "YR-meteogram",
    },
    "chart_desc": {
        "en": "Temperature, precipitation and wind forecast derived from api.met.no",
        "nb": "Temperatur-, nedbør- og vindvarsel fra api.met.no",
    },
    "chart_heading": {
        "en": "Weather forecast",
        "nb": "Værvarsel",
    },
    "chart_updated": {
        "en": "Updated {when}",
        "nb": "Oppdatert {when}",
    },
    "band_temperature": {
        "en": "Temperature (°C)",
        "nb": "Temperatur (°C)",
    },
    "band_precipitation": {
        "en": "Precipitation (mm)",
        "nb": "Nedbør (mm)",
    },
    "band_wind": {
        "en": "Wind speed (m/s)",
        "nb": "Vindstyrke (m/s)",
    },
    "label_source_url": {
        "en": "Source URL",
        "nb": "Kilde-URL",
    },
    "label_svg_code": {
        "en": "Fallback SVG code",
        "nb": "Reserve-SVG",
    },
    "label_auto_refresh": {
        "en": "Auto refresh",
        "nb": "Automatisk oppdatering",
    },
    "label_interval": {
        "en": "Refresh interval (minutes)",
        "nb": "Oppdateringsintervall (minutter)",
    },
    "label_theme": {
        "en": "Theme",
        "nb": "Tema",
    },
    "btn_refresh": {
        "en": "↻ Refresh graph",
        "nb": "↻ Oppdater graf",
    },
    "loading": {
        "en": "Loading meteogram…",
        "nb": "Laster meteogram…",
    },
    "placeholder": {
        "en": "Please configure a Source URL or provide Fallback SVG Code.",
        "nb": "Oppgi en kilde-URL eller lim inn reserve-SVG.",
    },
    "degraded_notice": {
        "en": "Showing the source page directly; the graph could not be loaded inline.",
        "nb": "Viser kildesiden direkte; grafen kunne ikke lastes inn.",
    },
}

_WEEKDAYS: dict[str, tuple[str, ...]] = {
    "en": ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"),
    "nb": ("man.", "tir.", "ons.", "tor.", "fre.", "lør.", "søn."),
}

_MONTHS: dict[str, tuple[str, ...]] = {
    "en": ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"),
    "nb": ("jan.", "feb.", "mar.", "apr.", "mai", "jun.", "jul.", "aug.", "sep.", "okt.", "nov.", "des."),
}


def t(key: str, lang: str) -> str:
    """Return the translated string for key in lang.

    Falls back to 'en', then to the key itself if not found.
    """
    entry = _STRINGS.get(key)
    if entry is None:
        return key
    return entry.get(lang) or entry.get("en") or key


def format_day(when: datetime, lang: str) -> str:
    """Short weekday + month + day, independent of the process locale."""
    weekday = _WEEKDAYS.get(lang, _WEEKDAYS["en"])[when.weekday()]
    month = _MONTHS.get(lang, _MONTHS["en"])[when.month - 1]
    if lang == "nb":
        return f"{weekday} {when.day}. {month}"
    return f"{weekday}, {month} {when.day}"


def format_timestamp(when: datetime, lang: str) -> str:
    """Medium date + short time, e.g. ``Jan 5, 2024, 14:00 UTC``."""
    month = _MONTHS.get(lang, _MONTHS["en"])[when.month - 1]
    if lang == "nb":
        return f"{when.day}. {month} {when.year}, {when:%H:%M} UTC"
    return f"{month} {when.day}, {when.year}, {when:%H:%M} UTC"
