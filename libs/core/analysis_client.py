from __future__ import annotations

import json
from http.client import HTTPException
from typing import Any, Dict, List
from urllib.error import HTTPError
from urllib.request import Request, urlopen

from jsonschema import Draft202012Validator
from pydantic import ValidationError

from . import logging as core_logging
from .config import AnalysisConfig
from .errors import AnalysisServiceError
from .models import AnalysisResult, Suggestion, SuggestionKind

LOGGER = core_logging.get_logger("analysis_client")

DEMO_JOB_SUMMARY = "Edge function unavailable - demo mode"
PING_PAYLOAD = {"cvText": "ping", "jobUrl": "https://example.com/job"}

ANALYSIS_RESPONSE_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "recommendations": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "type": {"enum": [kind.value for kind in SuggestionKind]},
                    "original": {"type": "string"},
                    "suggested": {"type": "string"},
                    "reason": {"type": "string"},
                    "applied": {"type": "boolean"},
                },
                "required": ["type", "original", "suggested"],
            },
        },
        "optimizedCV": {"type": "string"},
        "jobSummary": {"type": ["string", "null"]},
    },
    "required": ["recommendations", "optimizedCV"],
}

_DEMO_RECOMMENDATIONS: List[Dict[str, Any]] = [
    {
        "type": "keyword",
        "original": "worked on",
        "suggested": "developed and implemented",
        "reason": "Action verbs improve ATS scoring",
    },
    {
        "type": "achievement",
        "original": "improved performance",
        "suggested": "increased system performance by 40%",
        "reason": "Quantify impact for hiring managers",
    },
]


def fallback_analysis(cv_text: str) -> AnalysisResult:
    return AnalysisResult(
        recommendations=[Suggestion.model_validate(item) for item in _DEMO_RECOMMENDATIONS],
        optimized_cv=cv_text,
        job_summary=DEMO_JOB_SUMMARY,
        demo=True,
    )


def validate_analysis_payload(payload: Any) -> None:
    errors = sorted(
        Draft202012Validator(ANALYSIS_RESPONSE_SCHEMA).iter_errors(payload),
        key=lambda err: [str(part) for part in err.path],
    )
    if errors:
        messages = "; ".join(
            f"{'/'.join(map(str, err.path)) or '<root>'}: {err.message}" for err in errors[:5]
        )
        raise AnalysisServiceError(f"analysis response schema validation failed: {messages}")


def parse_analysis_payload(payload: Any) -> AnalysisResult:
    validate_analysis_payload(payload)
    try:
        recommendations = [
            # New suggestions always start unapplied, whatever the service says.
            Suggestion.model_validate({**item, "applied": False})
            for item in payload["recommendations"]
        ]
    except ValidationError as exc:
        raise AnalysisServiceError(f"invalid recommendation: {exc}") from exc
    return AnalysisResult(
        recommendations=recommendations,
        optimized_cv=payload["optimizedCV"],
        job_summary=payload.get("jobSummary"),
    )


class AnalysisClient:
    """Posts a CV and a job reference to the analyze endpoint."""

    def __init__(self, config: AnalysisConfig) -> None:
        self.config = config

    def _send(self, body: Dict[str, Any]) -> bytes:
        url = self.config.analyze_url
        if url is None:
            raise AnalysisServiceError("ANALYZE_ENDPOINT is not configured", status_code=503)
        request = Request(
            url,
            data=json.dumps(body).encode("utf-8"),
            headers={"Content-Type": "application/json"},
            method="POST",
        )
        try:
            with urlopen(request, timeout=self.config.timeout_s) as response:
                return response.read()
        except HTTPError as exc:
            detail = exc.read().decode("utf-8", errors="replace") if exc.fp else str(exc)
            raise AnalysisServiceError(f"analysis service error {exc.code}: {detail}") from exc
        except (OSError, HTTPException) as exc:
            # URLError, timeouts and dropped connections (RemoteDisconnected).
            raise AnalysisServiceError(f"analysis service connection error: {exc}") from exc

    def _post(self, body: Dict[str, Any]) -> Any:
        raw = self._send(body)
        try:
            return json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise AnalysisServiceError(f"analysis response is not JSON: {exc}") from exc

    def analyze(self, cv_text: str, job_url: str) -> AnalysisResult:
        payload = self._post({"cvText": cv_text, "jobUrl": job_url})
        result = parse_analysis_payload(payload)
        LOGGER.info(
            "analysis_completed",
            recommendations=len(result.recommendations),
            job_url=job_url,
        )
        return result

    def analyze_with_fallback(self, cv_text: str, job_url: str) -> AnalysisResult:
        try:
            return self.analyze(cv_text, job_url)
        except AnalysisServiceError as exc:
            LOGGER.warning("analysis_fallback", error=exc.detail, job_url=job_url)
            return fallback_analysis(cv_text)

    def test_connection(self) -> bool:
        try:
            self._send(PING_PAYLOAD)
        except AnalysisServiceError as exc:
            LOGGER.info("analysis_connection_failed", error=exc.detail)
            return False
        return True
