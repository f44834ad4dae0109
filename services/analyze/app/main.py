from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict, Field

from libs.core import logging as core_logging
from libs.core.llm_provider import LLMProvider
from services.analyze.analyze_core import (
    AnalyzeError,
    analyze_cv_with_job,
    create_provider_from_env,
)

core_logging.configure_logging("analyze")
LOGGER = core_logging.get_logger("analyze")


class AnalyzeRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    cv_text: Optional[str] = Field(default=None, alias="cvText")
    job_url: Optional[str] = Field(default=None, alias="jobUrl")


def _http_error(error: AnalyzeError) -> HTTPException:
    return HTTPException(status_code=error.status_code, detail=error.detail)


def create_app(provider: Optional[LLMProvider] = None, *, use_env: bool = True) -> FastAPI:
    app = FastAPI(title="CV Analysis Service")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["POST", "OPTIONS"],
        allow_headers=["authorization", "x-client-info", "apikey", "content-type"],
    )
    if provider is None and use_env:
        provider = create_provider_from_env()
    app.state.provider = provider

    @app.post("/analyze")
    def analyze_endpoint(payload: AnalyzeRequest, request: Request) -> Dict[str, Any]:
        try:
            return analyze_cv_with_job(
                payload.cv_text or "",
                payload.job_url or "",
                request.app.state.provider,
            )
        except AnalyzeError as exc:
            raise _http_error(exc) from exc

    @app.get("/health")
    def health(request: Request) -> Dict[str, Any]:
        return {"status": "ok", "provider_configured": request.app.state.provider is not None}

    return app


app = create_app()
