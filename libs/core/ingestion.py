from __future__ import annotations

import html as html_lib
from io import BytesIO
from pathlib import PurePath
from typing import Tuple

from docx import Document
from pypdf import PdfReader

from . import logging as core_logging
from .errors import IngestionError, UnsupportedFormatError
from .models import CVDocument
from .substitution import render_paragraphs

LOGGER = core_logging.get_logger("ingestion")

SUPPORTED_EXTENSIONS = (".txt", ".md", ".pdf", ".docx")
PASTED_DISPLAY_NAME = "pasted-cv.txt"
_TEXT_ENCODINGS = ("utf-8-sig", "latin-1")
_HEADING_STYLE_PREFIXES = ("Heading", "Title")


def file_extension(filename: str) -> str:
    return PurePath(filename or "").suffix.lower()


def ensure_supported(filename: str) -> str:
    ext = file_extension(filename)
    if ext == ".doc":
        raise UnsupportedFormatError("Legacy .doc is not supported. Convert to .docx.")
    if ext not in SUPPORTED_EXTENSIONS:
        raise UnsupportedFormatError(f"unsupported_file_type:{ext or '<none>'}")
    return ext


def ingest_text(text: str, display_name: str = PASTED_DISPLAY_NAME) -> CVDocument:
    if not isinstance(text, str) or not text.strip():
        raise IngestionError("empty_document", status_code=422)
    return CVDocument(plain_text=text, html=render_paragraphs(text), display_name=display_name)


def ingest_bytes(filename: str, content: bytes) -> CVDocument:
    """Turn an uploaded file into a document.

    The extension is checked before anything is parsed. Word files keep their
    original bytes as the container so exports can rewrite them in place.
    """
    ext = ensure_supported(filename)
    if not content:
        raise IngestionError("empty_file", status_code=422)
    try:
        if ext == ".pdf":
            text, html, container = _extract_pdf(content), None, None
        elif ext == ".docx":
            text, html = _extract_docx(content)
            container = bytes(content)
        else:
            text, html, container = _decode_text(content), None, None
    except IngestionError:
        raise
    except Exception as exc:  # noqa: BLE001
        LOGGER.warning("ingestion_failed", filename=filename, error=str(exc))
        raise IngestionError(f"extraction_failed:{ext}", status_code=422) from exc
    if not text.strip():
        raise IngestionError("empty_document", status_code=422)
    LOGGER.info(
        "document_ingested",
        filename=filename,
        chars=len(text),
        has_container=container is not None,
    )
    return CVDocument(
        plain_text=text,
        html=html if html is not None else render_paragraphs(text),
        container=container,
        display_name=PurePath(filename).name,
    )


def _decode_text(content: bytes) -> str:
    for encoding in _TEXT_ENCODINGS:
        try:
            return content.decode(encoding)
        except UnicodeDecodeError:
            continue
    raise IngestionError("undecodable_text", status_code=422)


def _extract_pdf(content: bytes) -> str:
    reader = PdfReader(BytesIO(content))
    chunks = []
    for page in reader.pages:
        page_text = page.extract_text() or ""
        if page_text.strip():
            chunks.append(page_text.strip("\n"))
    return "\n".join(chunks)


def _extract_docx(content: bytes) -> Tuple[str, str]:
    doc = Document(BytesIO(content))
    lines = []
    parts = []
    for paragraph in doc.paragraphs:
        text = paragraph.text
        lines.append(text)
        style_name = paragraph.style.name if paragraph.style is not None else ""
        escaped = html_lib.escape(text, quote=False)
        if not text.strip():
            parts.append("<p><br></p>")
        elif style_name.startswith(_HEADING_STYLE_PREFIXES):
            parts.append(f"<h2>{escaped}</h2>")
        else:
            parts.append(f"<p>{escaped}</p>")
    return "\n".join(lines), "".join(parts)
