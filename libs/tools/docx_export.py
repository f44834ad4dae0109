from __future__ import annotations

import zipfile
from io import BytesIO
from typing import Sequence
from xml.etree import ElementTree
from xml.sax.saxutils import escape

from docx import Document
from docx.shared import Pt

from libs.core import logging as core_logging
from libs.core.errors import ExportError
from libs.core.models import Suggestion
from libs.core.substitution import is_applicable, replace_literal

LOGGER = core_logging.get_logger("docx_export")

DOCX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
HEADING_MAX_LENGTH = 50
BODY_FONT = "Calibri"
BODY_SIZE_PT = 11
HEADING_SIZE_PT = 14

_CONTENT_TYPES_PART = "[Content_Types].xml"
_CONTENT_TYPES_NS = "{http://schemas.openxmlformats.org/package/2006/content-types}"
_MAIN_CONTENT_TYPE = (
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document.main+xml"
)
_DEFAULT_MAIN_PART = "word/document.xml"
_XML_QUOTE_ENTITIES = {'"': "&quot;", "'": "&apos;"}


def escape_xml(text: str, quotes: bool = True) -> str:
    return escape(text, _XML_QUOTE_ENTITIES if quotes else {})


def is_heading_line(line: str) -> bool:
    stripped = line.strip()
    if not stripped or len(stripped) >= HEADING_MAX_LENGTH:
        return False
    return stripped.isupper() or stripped.endswith(":")


def apply_to_markup(markup: str, suggestions: Sequence[Suggestion]) -> str:
    for suggestion in suggestions:
        if not is_applicable(suggestion):
            continue
        # Word writes quotes literally in text nodes; entity-encoded quotes
        # are matched too, each form replaced in the same form.
        literal = escape_xml(suggestion.original, quotes=False)
        encoded = escape_xml(suggestion.original)
        markup, _ = replace_literal(
            markup, literal, escape_xml(suggestion.suggested, quotes=False)
        )
        if encoded != literal:
            markup, _ = replace_literal(markup, encoded, escape_xml(suggestion.suggested))
    return markup


def _locate_main_part(archive: zipfile.ZipFile) -> str:
    names = set(archive.namelist())
    if _CONTENT_TYPES_PART in names:
        try:
            root = ElementTree.fromstring(archive.read(_CONTENT_TYPES_PART))
        except ElementTree.ParseError as exc:
            raise ExportError(f"docx_content_types_invalid:{exc}") from exc
        for override in root.iter(f"{_CONTENT_TYPES_NS}Override"):
            if override.get("ContentType") == _MAIN_CONTENT_TYPE:
                part_name = (override.get("PartName") or "").lstrip("/")
                if part_name in names:
                    return part_name
    if _DEFAULT_MAIN_PART in names:
        return _DEFAULT_MAIN_PART
    raise ExportError("docx_main_part_missing")


def _verify_docx(payload: bytes) -> None:
    try:
        Document(BytesIO(payload))
    except Exception as exc:  # noqa: BLE001
        raise ExportError(f"docx_container_unreadable:{exc}") from exc


def rewrite_container(container: bytes, suggestions: Sequence[Suggestion]) -> bytes:
    """Apply active suggestions to the main document part of a .docx.

    Only the text inside ``word/document.xml`` changes; every other member is
    copied as-is so styles, numbering and media survive. Text that Word split
    across runs will not match.
    """
    try:
        source = zipfile.ZipFile(BytesIO(container))
    except (zipfile.BadZipFile, OSError) as exc:
        raise ExportError(f"docx_container_invalid:{exc}") from exc
    output = BytesIO()
    with source:
        main_part = _locate_main_part(source)
        try:
            markup = source.read(main_part).decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ExportError(f"docx_main_part_undecodable:{exc}") from exc
        rewritten = apply_to_markup(markup, suggestions)
        with zipfile.ZipFile(output, "w", zipfile.ZIP_DEFLATED) as target:
            for info in source.infolist():
                if info.filename == main_part:
                    target.writestr(info, rewritten.encode("utf-8"))
                else:
                    target.writestr(info, source.read(info.filename))
    payload = output.getvalue()
    _verify_docx(payload)
    return payload


def _add_line(document, line: str) -> None:
    stripped = line.strip()
    if not stripped:
        document.add_paragraph("")
        return
    paragraph = document.add_paragraph()
    run = paragraph.add_run(stripped)
    if is_heading_line(stripped):
        run.bold = True
        run.font.size = Pt(HEADING_SIZE_PT)
        paragraph.paragraph_format.space_before = Pt(12)
        paragraph.paragraph_format.space_after = Pt(4)
        paragraph.paragraph_format.keep_with_next = True
        return
    run.font.size = Pt(BODY_SIZE_PT)
    paragraph.paragraph_format.space_after = Pt(2)


def synthesize_docx(text: str) -> bytes:
    try:
        document = Document()
        normal_style = document.styles["Normal"]
        normal_style.font.name = BODY_FONT
        normal_style.font.size = Pt(BODY_SIZE_PT)
        for line in text.replace("\r\n", "\n").split("\n"):
            _add_line(document, line)
        buffer = BytesIO()
        document.save(buffer)
    except Exception as exc:  # noqa: BLE001
        raise ExportError(f"docx_synthesis_failed:{exc}") from exc
    return buffer.getvalue()


def build_docx(
    container: bytes | None, optimized_text: str, suggestions: Sequence[Suggestion]
) -> bytes:
    if container:
        try:
            return rewrite_container(container, suggestions)
        except ExportError as exc:
            LOGGER.warning("docx_container_rewrite_failed", error=exc.detail)
    return synthesize_docx(optimized_text)
