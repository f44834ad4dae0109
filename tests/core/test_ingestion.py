from __future__ import annotations

from io import BytesIO

import pytest
from docx import Document
from PIL import Image

from libs.core.errors import IngestionError, UnsupportedFormatError
from libs.core.ingestion import ingest_bytes, ingest_text
from libs.core.substitution import strip_tags


def _docx_bytes() -> bytes:
    document = Document()
    document.add_heading("EXPERIENCE", level=1)
    document.add_paragraph("Software Developer at TechCorp")
    document.add_paragraph("Fixed bugs & issues")
    buffer = BytesIO()
    document.save(buffer)
    return buffer.getvalue()


def test_ingest_plain_text_file() -> None:
    document = ingest_bytes("cv.txt", "John Doe\nSoftware Engineer".encode("utf-8"))
    assert document.plain_text == "John Doe\nSoftware Engineer"
    assert document.html == "<p>John Doe</p><p>Software Engineer</p>"
    assert document.container is None
    assert document.display_name == "cv.txt"


def test_ingest_text_falls_back_to_latin1() -> None:
    document = ingest_bytes("cv.md", "José García".encode("latin-1"))
    assert document.plain_text == "José García"


def test_ingest_docx_keeps_container_and_headings() -> None:
    content = _docx_bytes()
    document = ingest_bytes("resume.docx", content)
    assert document.container == content
    assert document.plain_text == "EXPERIENCE\nSoftware Developer at TechCorp\nFixed bugs & issues"
    assert document.html.startswith("<h2>EXPERIENCE</h2>")
    assert "Fixed bugs &amp; issues" in document.html
    assert strip_tags(document.html) == document.plain_text


def test_ingest_image_only_pdf_is_empty_document() -> None:
    pdf_bytes = BytesIO()
    Image.new("RGB", (200, 200), "white").save(pdf_bytes, format="PDF")
    with pytest.raises(IngestionError) as excinfo:
        ingest_bytes("scan.pdf", pdf_bytes.getvalue())
    assert excinfo.value.detail == "empty_document"


@pytest.mark.parametrize("filename", ["cv.doc", "cv.rtf", "cv"])
def test_unsupported_extensions_are_rejected_before_parsing(filename: str) -> None:
    with pytest.raises(UnsupportedFormatError) as excinfo:
        ingest_bytes(filename, b"not parsed")
    assert excinfo.value.status_code == 415


def test_corrupt_docx_is_an_extraction_failure() -> None:
    with pytest.raises(IngestionError) as excinfo:
        ingest_bytes("broken.docx", b"this is not a zip")
    assert excinfo.value.detail == "extraction_failed:.docx"
    assert excinfo.value.status_code == 422


def test_empty_upload_is_rejected() -> None:
    with pytest.raises(IngestionError):
        ingest_bytes("cv.txt", b"")
    with pytest.raises(IngestionError):
        ingest_bytes("cv.txt", b"   \n  ")


def test_ingest_pasted_text() -> None:
    document = ingest_text("Jane Roe\nData Analyst")
    assert document.display_name == "pasted-cv.txt"
    assert strip_tags(document.html) == document.plain_text
    with pytest.raises(IngestionError):
        ingest_text("   ")
