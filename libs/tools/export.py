from __future__ import annotations

from pathlib import PurePath
from typing import Optional, Sequence

from PIL import Image

from libs.core import logging as core_logging
from libs.core.errors import ExportError
from libs.core.models import CVDocument, ExportArtifact, ExportFormat, Suggestion
from libs.core.substitution import apply_substitutions

from .docx_export import DOCX_MEDIA_TYPE, build_docx
from .pdf_export import PDF_MEDIA_TYPE, build_pdf, rasterize_view

LOGGER = core_logging.get_logger("export")

DEFAULT_BASE_NAME = "optimized-cv"
TEXT_MEDIA_TYPE = "text/plain; charset=utf-8"


def base_name(display_name: str | None) -> str:
    stem = PurePath(display_name or "").stem.strip()
    return stem or DEFAULT_BASE_NAME


def parse_format(value: str | ExportFormat) -> ExportFormat:
    if isinstance(value, ExportFormat):
        return value
    try:
        return ExportFormat(value)
    except ValueError as exc:
        raise ExportError(f"unsupported_export_format:{value}", status_code=400) from exc


def export_document(
    fmt: str | ExportFormat,
    document: CVDocument,
    suggestions: Sequence[Suggestion],
    rendered_view: Optional[Image.Image] = None,
    *,
    highlight: bool = True,
    dpi: int = 96,
) -> ExportArtifact:
    """Build the downloadable artifact for the current suggestion state.

    ``rendered_view`` is only used for PDF output; without it the optimized
    view is rasterized here.
    """
    export_format = parse_format(fmt)
    result = apply_substitutions(
        document.plain_text, document.html, suggestions, highlight=highlight
    )
    stem = base_name(document.display_name)

    if export_format == ExportFormat.text:
        artifact = ExportArtifact(
            filename=f"{stem}.txt",
            media_type=TEXT_MEDIA_TYPE,
            content=result.text.encode("utf-8"),
        )
    elif export_format == ExportFormat.docx:
        artifact = ExportArtifact(
            filename=f"{stem}.docx",
            media_type=DOCX_MEDIA_TYPE,
            content=build_docx(document.container, result.text, suggestions),
        )
    else:
        bitmap = rendered_view
        if bitmap is None:
            bitmap = rasterize_view(result.html, dpi=dpi, highlight=highlight)
        artifact = ExportArtifact(
            filename=f"{stem}.pdf",
            media_type=PDF_MEDIA_TYPE,
            content=build_pdf(bitmap, dpi=dpi),
        )

    LOGGER.info(
        "export_completed",
        format=export_format.value,
        filename=artifact.filename,
        bytes=len(artifact.content),
    )
    return artifact
