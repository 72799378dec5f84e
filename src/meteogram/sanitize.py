"""Adapt an externally styled SVG to the host theme.

Embedded ``<style>`` blocks and filters are removed so they cannot fight the
host page, opaque white background plates are made transparent, and
``<foreignObject>`` HTML content gets the theme background. Every step is
idempotent: sanitizing sanitized output changes nothing.
"""

import re
import xml.etree.ElementTree as ET
from typing import Protocol

from meteogram.config import Theme
from meteogram.errors import ParseError

SVG_NS = "http://www.w3.org/2000/svg"
XLINK_NS = "http://www.w3.org/1999/xlink"
XHTML_NS = "http://www.w3.org/1999/xhtml"

ET.register_namespace("", SVG_NS)
ET.register_namespace("xlink", XLINK_NS)

_XML_DECL = re.compile(r"^\s*<\?xml[^>]*\?>\s*")
_WHITE_VALUES = {"#fff", "#ffffff", "white", "rgb(255,255,255)"}
_WHITE_FILL_DECL = re.compile(
    r"(^|;)\s*fill\s*:\s*(#fff|#ffffff|white|rgb\(\s*255\s*,\s*255\s*,\s*255\s*\))\s*(!important\s*)?(;|$)",
    re.IGNORECASE,
)
_FILL_DECL = re.compile(r"(^|;)\s*fill\s*:\s*[^;]+;?", re.IGNORECASE)


class SvgCodec(Protocol):
    """Document parser + serializer capability used by the sanitizer."""

    def parse(self, text: str) -> ET.Element: ...

    def serialize(self, element: ET.Element) -> str: ...


class ElementTreeCodec:
    """Default codec on top of ``xml.etree.ElementTree``."""

    def parse(self, text: str) -> ET.Element:
        return ET.fromstring(_XML_DECL.sub("", text, count=1))

    def serialize(self, element: ET.Element) -> str:
        return ET.tostring(element, encoding="unicode")


_DEFAULT_CODEC = ElementTreeCodec()


def _local(tag: object) -> str:
    """``{ns}rect`` → ``rect``. Comments and processing instructions have no string tag."""
    if not isinstance(tag, str):
        return ""
    return tag.rsplit("}", 1)[-1]


def _is_white(value: str | None) -> bool:
    return re.sub(r"\s+", "", value or "").lower() in _WHITE_VALUES


def sanitize_svg(raw_svg: str, theme: Theme, codec: SvgCodec | None = None) -> str:
    """Return embeddable ``<svg>`` markup adapted to the theme.

    Args:
        raw_svg: SVG document (optionally with an XML declaration).
        theme: Supplies the background forced onto foreignObject content.
        codec: Parser/serializer; ElementTree when None.

    Returns:
        Serialized ``<svg>`` element.

    Raises:
        ParseError: When the text does not parse or contains no ``<svg>``.
    """
    codec = codec or _DEFAULT_CODEC
    try:
        root = codec.parse(raw_svg)
    except ET.ParseError as exc:
        raise ParseError("Invalid SVG content") from exc

    svg = root if _local(root.tag) == "svg" else next(
        (el for el in root.iter() if _local(el.tag) == "svg"), None
    )
    if svg is None:
        raise ParseError("Invalid SVG content")

    _fit_to_container(svg)
    _strip_styling(svg)
    _clear_white_plates(svg)
    _theme_foreign_objects(svg, theme)
    return codec.serialize(svg)


def _fit_to_container(svg: ET.Element) -> None:
    if svg.get("viewBox") is None:
        width = (svg.get("width") or "").replace("px", "").strip()
        height = (svg.get("height") or "").replace("px", "").strip()
        if width and height:
            svg.set("viewBox", f"0 0 {width} {height}")

    svg.attrib.pop("width", None)
    svg.attrib.pop("height", None)
    if not svg.get("preserveAspectRatio"):
        svg.set("preserveAspectRatio", "xMidYMid meet")


def _strip_styling(svg: ET.Element) -> None:
    # Snapshot first: removing while iterating skips siblings
    for parent in list(svg.iter()):
        for child in list(parent):
            if _local(child.tag) in ("style", "filter"):
                parent.remove(child)
    for el in svg.iter():
        el.attrib.pop("filter", None)


def _clear_white_plates(svg: ET.Element) -> None:
    for rect in svg.iter():
        if _local(rect.tag) != "rect":
            continue
        style = rect.get("style")
        if not (_is_white(rect.get("fill")) or (style and _WHITE_FILL_DECL.search(style))):
            continue
        rect.set("fill", "none")
        if style is not None:
            cleaned = _FILL_DECL.sub(r"\1", style).strip().strip(";").strip()
            if cleaned:
                rect.set("style", cleaned)
            else:
                del rect.attrib["style"]


def _theme_foreign_objects(svg: ET.Element, theme: Theme) -> None:
    declaration = f"background:{theme.overall_background} !important;"
    for fo in svg.iter():
        if _local(fo.tag) != "foreignObject":
            continue
        content = next((child for child in fo if isinstance(child.tag, str)), None)
        if content is None:
            continue
        style = content.get("style") or ""
        if declaration not in style:
            content.set("style", f"{style.rstrip(';')};{declaration}" if style else declaration)
        # After the style so xmlns always serializes last
        _unqualify_xhtml(content)


def _unqualify_xhtml(content: ET.Element) -> None:
    """Write XHTML content as plain tags with an ``xmlns`` attribute.

    ElementTree can only emit one default namespace, so without this the HTML
    would serialize as ``ns1:div``, which an HTML parser does not recognise.
    """
    prefix = "{" + XHTML_NS + "}"
    if not (isinstance(content.tag, str) and content.tag.startswith(prefix)):
        return
    for el in content.iter():
        if isinstance(el.tag, str) and el.tag.startswith(prefix):
            el.tag = el.tag[len(prefix):]
    content.set("xmlns", XHTML_NS)
