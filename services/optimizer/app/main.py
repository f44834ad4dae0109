from __future__ import annotations

import base64
import binascii
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from pydantic import BaseModel

from libs.core import logging as core_logging
from libs.core.analysis_client import AnalysisClient
from libs.core.config import AnalysisConfig, OptimizerConfig
from libs.core.errors import IngestionError, OptimizerError
from libs.core.models import RenderedView
from libs.core.session import STEP_PROGRESS, EditingSession
from libs.core.view_state import ViewEvent

core_logging.configure_logging("optimizer")
LOGGER = core_logging.get_logger("optimizer")

_VIEW_TOGGLES = {
    "document": ViewEvent.toggle_document,
    "highlights": ViewEvent.toggle_highlights,
    "fullscreen": ViewEvent.toggle_fullscreen,
}


class DocumentRequest(BaseModel):
    filename: Optional[str] = None
    content_base64: Optional[str] = None
    text: Optional[str] = None


class DocumentResponse(BaseModel):
    display_name: str
    plain_text: str
    html: str
    has_container: bool


class AnalyzeRequest(BaseModel):
    job_url: str = ""


class SuggestionOut(BaseModel):
    index: int
    type: str
    original: str
    suggested: str
    reason: str
    applied: bool
    orphaned: bool = False


class SuggestionsResponse(BaseModel):
    suggestions: List[SuggestionOut]
    applied_count: int
    total: int
    job_summary: Optional[str] = None
    demo: bool = False


class StepResponse(BaseModel):
    step: str
    progress: int


def _http_error(error: OptimizerError) -> HTTPException:
    return HTTPException(status_code=error.status_code, detail=error.detail)


def _session(request: Request) -> EditingSession:
    return request.app.state.session


def _suggestions_response(session: EditingSession) -> SuggestionsResponse:
    suggestions = session.suggestions
    orphaned = set(session.orphaned_suggestions()) if session.document is not None else set()
    analysis = session.analysis
    return SuggestionsResponse(
        suggestions=[
            SuggestionOut(
                index=index,
                type=suggestion.kind.value,
                original=suggestion.original,
                suggested=suggestion.suggested,
                reason=suggestion.reason,
                applied=suggestion.applied,
                orphaned=index in orphaned,
            )
            for index, suggestion in enumerate(suggestions)
        ],
        applied_count=sum(1 for suggestion in suggestions if suggestion.applied),
        total=len(suggestions),
        job_summary=analysis.job_summary if analysis else None,
        demo=analysis.demo if analysis else False,
    )


def create_app(
    session: Optional[EditingSession] = None,
    config: Optional[OptimizerConfig] = None,
) -> FastAPI:
    config = config or OptimizerConfig.from_env()
    if session is None:
        session = EditingSession(
            AnalysisClient(AnalysisConfig.from_env()), pdf_dpi=config.pdf_render_dpi
        )

    app = FastAPI(title="CV Optimizer")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(config.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.session = session

    @app.get("/health")
    def health(request: Request, check_analysis: bool = False) -> Dict[str, str]:
        status = {"status": "ok"}
        if check_analysis:
            reachable = _session(request).analysis_client.test_connection()
            status["analysis_service"] = "reachable" if reachable else "unreachable"
        return status

    @app.get("/steps", response_model=StepResponse)
    def steps(request: Request) -> StepResponse:
        step = _session(request).step
        return StepResponse(step=step.value, progress=STEP_PROGRESS[step])

    @app.get("/notices")
    def notices(request: Request) -> List[Dict[str, Any]]:
        return [notice.model_dump(mode="json") for notice in _session(request).drain_notices()]

    @app.post("/document", response_model=DocumentResponse)
    def upload_document(payload: DocumentRequest, request: Request) -> DocumentResponse:
        session = _session(request)
        try:
            if payload.content_base64 is not None:
                try:
                    content = base64.b64decode(payload.content_base64, validate=True)
                except (binascii.Error, ValueError) as exc:
                    raise IngestionError("content_base64 is not valid base64", status_code=400) from exc
                document = session.load_file(payload.filename or "", content)
            else:
                document = session.load_text(payload.text or "")
        except OptimizerError as exc:
            raise _http_error(exc) from exc
        core_logging.log_event(
            LOGGER,
            "document_loaded",
            {
                "display_name": document.display_name,
                "chars": len(document.plain_text),
                "has_container": document.container is not None,
            },
        )
        return DocumentResponse(
            display_name=document.display_name,
            plain_text=document.plain_text,
            html=document.html,
            has_container=document.container is not None,
        )

    @app.post("/analyze", response_model=SuggestionsResponse)
    def analyze(payload: AnalyzeRequest, request: Request) -> SuggestionsResponse:
        session = _session(request)
        try:
            session.analyze(payload.job_url)
        except OptimizerError as exc:
            raise _http_error(exc) from exc
        return _suggestions_response(session)

    @app.get("/suggestions", response_model=SuggestionsResponse)
    def list_suggestions(request: Request) -> SuggestionsResponse:
        return _suggestions_response(_session(request))

    @app.post("/suggestions/{index}/toggle", response_model=SuggestionsResponse)
    def toggle_suggestion(index: int, request: Request) -> SuggestionsResponse:
        session = _session(request)
        try:
            session.toggle_suggestion(index)
        except OptimizerError as exc:
            raise _http_error(exc) from exc
        return _suggestions_response(session)

    @app.get("/view", response_model=RenderedView)
    def view(request: Request) -> RenderedView:
        try:
            return _session(request).current_view()
        except OptimizerError as exc:
            raise _http_error(exc) from exc

    @app.post("/view/{target}/toggle", response_model=RenderedView)
    def toggle_view(target: str, request: Request) -> RenderedView:
        event = _VIEW_TOGGLES.get(target)
        if event is None:
            raise HTTPException(status_code=404, detail=f"unknown_view_toggle:{target}")
        try:
            return _session(request).dispatch(event)
        except OptimizerError as exc:
            raise _http_error(exc) from exc

    @app.get("/export/{fmt}")
    def export(fmt: str, request: Request) -> Response:
        try:
            artifact = _session(request).export(fmt)
        except OptimizerError as exc:
            raise _http_error(exc) from exc
        return Response(
            content=artifact.content,
            media_type=artifact.media_type,
            headers={"Content-Disposition": f'attachment; filename="{artifact.filename}"'},
        )

    return app


app = create_app()
