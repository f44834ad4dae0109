from __future__ import annotations

import json

import pytest
from fastapi.testclient import TestClient

from libs.core.llm_provider import LLMProvider, LLMProviderError, LLMResponse
from services.analyze.analyze_core import AnalyzeError, analyze_cv_with_job
from services.analyze.analyze_core.validation import (
    extract_json,
    normalize_analysis,
    parse_model_output,
)
from services.analyze.app.main import create_app

CV_TEXT = "John Doe\nSoftware Developer\n- Worked with team members\n- JavaScript"


class _FakeProvider(LLMProvider):
    def __init__(self, content: str = "", error: Exception | None = None) -> None:
        self.content = content
        self.error = error
        self.calls: list[tuple[str, str]] = []

    def complete(self, system: str, user: str) -> LLMResponse:
        self.calls.append((system, user))
        if self.error is not None:
            raise self.error
        return LLMResponse(content=self.content)


def _model_output() -> str:
    return "```json\n" + json.dumps(
        {
            "recommendations": [
                {
                    "type": "phrase",
                    "original": "Worked with team members",
                    "suggested": "Collaborated with cross-functional teams",
                    "reason": "Shows collaboration",
                    "applied": True,
                },
                {"type": "formatting", "original": "John", "suggested": "J.", "reason": ""},
                {"type": "keyword", "original": "", "suggested": "React", "reason": ""},
            ],
            "optimizedCV": "John Doe\nSenior Developer",
            "jobSummary": "  Frontend engineer  ",
        }
    ) + "\n```"


def test_extract_json_from_fenced_output() -> None:
    assert extract_json('```json\n{"a": 1}\n```') == '{"a": 1}'
    assert extract_json("no json here") == ""
    assert parse_model_output("[1, 2]") is None


def test_normalize_analysis_filters_recommendations() -> None:
    result = normalize_analysis(parse_model_output(_model_output()), CV_TEXT)
    assert result["recommendations"] == [
        {
            "type": "phrase",
            "original": "Worked with team members",
            "suggested": "Collaborated with cross-functional teams",
            "reason": "Shows collaboration",
            "applied": False,
        }
    ]
    assert result["optimizedCV"] == "John Doe\nSenior Developer"
    assert result["jobSummary"] == "Frontend engineer"


def test_normalize_analysis_without_payload_keeps_cv() -> None:
    assert normalize_analysis(None, CV_TEXT) == {"recommendations": [], "optimizedCV": CV_TEXT}


def test_analyze_cv_with_job_prompts_with_cv_and_url() -> None:
    provider = _FakeProvider(_model_output())
    analyze_cv_with_job(CV_TEXT, "https://jobs.example.com/42", provider)
    system, user = provider.calls[0]
    assert "CV optimization" in system
    assert CV_TEXT in user
    assert "https://jobs.example.com/42" in user


def test_analyze_cv_with_job_validates_inputs() -> None:
    with pytest.raises(AnalyzeError) as excinfo:
        analyze_cv_with_job("", "https://jobs.example.com/42", _FakeProvider())
    assert excinfo.value.status_code == 400
    with pytest.raises(AnalyzeError) as excinfo:
        analyze_cv_with_job(CV_TEXT, "https://jobs.example.com/42", None)
    assert excinfo.value.status_code == 500
    assert excinfo.value.detail == "Missing OPENAI_API_KEY"


def test_analyze_endpoint_returns_normalized_payload() -> None:
    client = TestClient(create_app(_FakeProvider(_model_output())))
    response = client.post(
        "/analyze", json={"cvText": CV_TEXT, "jobUrl": "https://jobs.example.com/42"}
    )
    assert response.status_code == 200
    data = response.json()
    assert len(data["recommendations"]) == 1
    assert data["recommendations"][0]["applied"] is False
    assert data["jobSummary"] == "Frontend engineer"


def test_analyze_endpoint_requires_fields() -> None:
    client = TestClient(create_app(_FakeProvider(_model_output())))
    response = client.post("/analyze", json={"cvText": CV_TEXT})
    assert response.status_code == 400
    assert response.json()["detail"] == "cvText and jobUrl required"


def test_analyze_endpoint_without_provider() -> None:
    client = TestClient(create_app(None, use_env=False))
    response = client.post("/analyze", json={"cvText": CV_TEXT, "jobUrl": "https://x.example.com"})
    assert response.status_code == 500
    assert response.json()["detail"] == "Missing OPENAI_API_KEY"
    assert client.get("/health").json() == {"status": "ok", "provider_configured": False}


def test_analyze_endpoint_reports_provider_failure() -> None:
    client = TestClient(create_app(_FakeProvider(error=LLMProviderError("OpenAI error: 429 quota"))))
    response = client.post("/analyze", json={"cvText": CV_TEXT, "jobUrl": "https://x.example.com"})
    assert response.status_code == 500
    assert "429" in response.json()["detail"]


def test_analyze_endpoint_answers_cors_preflight() -> None:
    client = TestClient(create_app(_FakeProvider()))
    response = client.options(
        "/analyze",
        headers={
            "Origin": "https://cv.example.com",
            "Access-Control-Request-Method": "POST",
            "Access-Control-Request-Headers": "content-type",
        },
    )
    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] == "*"


def test_missing_key_is_reported_before_input_validation() -> None:
    with pytest.raises(AnalyzeError) as excinfo:
        analyze_cv_with_job("", "", None)
    assert excinfo.value.status_code == 500
    assert excinfo.value.detail == "Missing OPENAI_API_KEY"


def test_unconfigured_environment_answers_500(monkeypatch) -> None:
    monkeypatch.delenv("LLM_PROVIDER", raising=False)
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    client = TestClient(create_app())
    response = client.post("/analyze", json={"cvText": CV_TEXT, "jobUrl": "https://x.example.com"})
    assert response.status_code == 500
    assert response.json()["detail"] == "Missing OPENAI_API_KEY"
    assert client.get("/health").json()["provider_configured"] is False


def test_mock_provider_must_be_selected_explicitly(monkeypatch) -> None:
    monkeypatch.setenv("LLM_PROVIDER", "mock")
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    client = TestClient(create_app())
    response = client.post("/analyze", json={"cvText": CV_TEXT, "jobUrl": "https://x.example.com"})
    assert response.status_code == 200
    assert response.json()["jobSummary"] == "Mock analysis"
