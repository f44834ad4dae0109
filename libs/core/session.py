from __future__ import annotations

import threading
from contextlib import contextmanager
from enum import Enum
from typing import Iterator, List, Optional

from PIL import Image

from libs.tools.export import export_document

from . import logging as core_logging
from .analysis_client import AnalysisClient
from .errors import (
    ExportError,
    IngestionError,
    SessionBusyError,
    SessionStateError,
    SuggestionNotFoundError,
)
from .ingestion import ingest_bytes, ingest_text
from .models import (
    AnalysisResult,
    CVDocument,
    ExportArtifact,
    Notice,
    NoticeVariant,
    RenderedView,
    Suggestion,
    ViewState,
)
from .substitution import apply_substitutions
from .view_state import INITIAL_VIEW_STATE, ViewEvent, render, transition

LOGGER = core_logging.get_logger("session")


class Step(str, Enum):
    upload = "upload"
    job_url = "job-url"
    analysis = "analysis"
    results = "results"


STEP_PROGRESS = {
    Step.upload: 25,
    Step.job_url: 50,
    Step.analysis: 75,
    Step.results: 100,
}


@contextmanager
def _exclusive(lock: threading.Lock, operation: str) -> Iterator[None]:
    if not lock.acquire(blocking=False):
        raise SessionBusyError(f"{operation}_in_progress")
    try:
        yield
    finally:
        lock.release()


class EditingSession:
    """The single editing session: one document, its suggestions and the view.

    Analysis and export each allow one request in flight; a second one is
    rejected with ``SessionBusyError``. Suggestions cannot be toggled while an
    export is running.
    """

    def __init__(self, analysis_client: AnalysisClient, *, pdf_dpi: int = 96) -> None:
        self.analysis_client = analysis_client
        self.pdf_dpi = pdf_dpi
        self._document: Optional[CVDocument] = None
        self._suggestions: List[Suggestion] = []
        self._analysis: Optional[AnalysisResult] = None
        self._view_state: ViewState = INITIAL_VIEW_STATE
        self._notices: List[Notice] = []
        self._state_lock = threading.RLock()
        self._analysis_lock = threading.Lock()
        self._export_lock = threading.Lock()

    @property
    def document(self) -> Optional[CVDocument]:
        return self._document

    @property
    def suggestions(self) -> List[Suggestion]:
        with self._state_lock:
            return [suggestion.model_copy() for suggestion in self._suggestions]

    @property
    def analysis(self) -> Optional[AnalysisResult]:
        return self._analysis

    @property
    def view_state(self) -> ViewState:
        return self._view_state

    @property
    def step(self) -> Step:
        if self._document is None:
            return Step.upload
        if self._analysis_lock.locked():
            return Step.analysis
        if self._analysis is None:
            return Step.job_url
        return Step.results

    def notify(self, title: str, description: str = "", destructive: bool = False) -> None:
        variant = NoticeVariant.destructive if destructive else NoticeVariant.default
        with self._state_lock:
            self._notices.append(Notice(title=title, description=description, variant=variant))

    def drain_notices(self) -> List[Notice]:
        with self._state_lock:
            notices, self._notices = self._notices, []
        return notices

    def _install_document(self, document: CVDocument) -> CVDocument:
        with self._state_lock:
            self._document = document
            self._suggestions = []
            self._analysis = None
            self._view_state = INITIAL_VIEW_STATE
        self.notify(
            "CV Uploaded Successfully",
            f"{document.display_name} has been uploaded and processed.",
        )
        return document

    def load_file(self, filename: str, content: bytes) -> CVDocument:
        try:
            document = ingest_bytes(filename, content)
        except IngestionError as exc:
            self.notify("Upload failed", exc.detail, destructive=True)
            raise
        return self._install_document(document)

    def load_text(self, text: str) -> CVDocument:
        try:
            document = ingest_text(text)
        except IngestionError as exc:
            self.notify("No CV Uploaded", exc.detail, destructive=True)
            raise
        return self._install_document(document)

    def analyze(self, job_url: str) -> AnalysisResult:
        document = self._document
        if document is None:
            self.notify("No CV Uploaded", "Please upload your CV first.", destructive=True)
            raise SessionStateError("no_document")
        if not isinstance(job_url, str) or not job_url.strip():
            self.notify(
                "Missing Job URL",
                "Please provide the job advertisement URL.",
                destructive=True,
            )
            raise SessionStateError("missing_job_url", status_code=400)
        with _exclusive(self._analysis_lock, "analysis"):
            result = self.analysis_client.analyze_with_fallback(document.plain_text, job_url.strip())
            with self._state_lock:
                if self._document is not document:
                    raise SessionStateError("document_changed_during_analysis")
                self._analysis = result
                self._suggestions = [
                    suggestion.model_copy(update={"applied": False})
                    for suggestion in result.recommendations
                ]
                self._view_state = INITIAL_VIEW_STATE
        if result.demo:
            self.notify(
                "Live analysis failed",
                "Showing demo recommendations instead.",
                destructive=True,
            )
        else:
            self.notify(
                "Analysis complete",
                f"{len(result.recommendations)} recommendations generated.",
            )
        return result

    def toggle_suggestion(self, index: int) -> Suggestion:
        if self._export_lock.locked():
            raise SessionBusyError("export_in_progress")
        with self._state_lock:
            if index < 0 or index >= len(self._suggestions):
                raise SuggestionNotFoundError(index)
            current = self._suggestions[index]
            updated = current.model_copy(update={"applied": not current.applied})
            self._suggestions[index] = updated
        self.notify(
            "Change Applied" if updated.applied else "Change Reverted",
            f'"{updated.original}" has been {"updated" if updated.applied else "reverted"}.',
        )
        return updated.model_copy()

    def dispatch(self, event: str | ViewEvent) -> RenderedView:
        with self._state_lock:
            self._view_state = transition(self._view_state, event)
        return self.current_view()

    def current_view(self) -> RenderedView:
        with self._state_lock:
            document = self._require_document()
            suggestions = list(self._suggestions)
            state = self._view_state
        return render(document, suggestions, state)

    def orphaned_suggestions(self) -> List[int]:
        with self._state_lock:
            document = self._require_document()
            suggestions = list(self._suggestions)
        result = apply_substitutions(document.plain_text, document.html, suggestions)
        return result.orphaned(suggestions)

    def export(self, fmt: str, rendered_view: Optional[Image.Image] = None) -> ExportArtifact:
        with _exclusive(self._export_lock, "export"):
            with self._state_lock:
                document = self._require_document()
                suggestions = [suggestion.model_copy() for suggestion in self._suggestions]
                highlight = self._view_state.highlights_enabled
            try:
                artifact = export_document(
                    fmt,
                    document,
                    suggestions,
                    rendered_view,
                    highlight=highlight,
                    dpi=self.pdf_dpi,
                )
            except ExportError as exc:
                LOGGER.error("export_failed", format=str(fmt), error=exc.detail)
                self.notify("Download failed", exc.detail, destructive=True)
                raise
        self.notify("Download ready", f"{artifact.filename} has been generated.")
        return artifact

    def _require_document(self) -> CVDocument:
        if self._document is None:
            raise SessionStateError("no_document")
        return self._document
