from __future__ import annotations

import base64
from io import BytesIO

from docx import Document
from fastapi.testclient import TestClient

from libs.core.analysis_client import AnalysisClient
from libs.core.config import AnalysisConfig, OptimizerConfig
from libs.core.models import AnalysisResult, Suggestion
from libs.core.session import EditingSession
from services.optimizer.app.main import create_app

CV_TEXT = "John Doe\nSoftware Developer\n\nSKILLS\n- JavaScript\n- Worked with team members"


class _StubClient(AnalysisClient):
    def __init__(self) -> None:
        super().__init__(AnalysisConfig())

    def analyze_with_fallback(self, cv_text: str, job_url: str) -> AnalysisResult:
        return AnalysisResult(
            recommendations=[
                Suggestion(type="keyword", original="JavaScript", suggested="TypeScript", reason="r"),
                Suggestion(type="phrase", original="Go", suggested="Golang", reason="r"),
            ],
            optimized_cv=cv_text,
            job_summary="Frontend role",
        )


def _client() -> TestClient:
    session = EditingSession(_StubClient(), pdf_dpi=72)
    return TestClient(create_app(session, OptimizerConfig(cors_origins=("http://localhost:3000",))))


def _analyzed_client() -> TestClient:
    client = _client()
    assert client.post("/document", json={"text": CV_TEXT}).status_code == 200
    assert client.post("/analyze", json={"job_url": "https://jobs.example.com/1"}).status_code == 200
    return client


def test_health_and_initial_step() -> None:
    client = _client()
    assert client.get("/health").json() == {"status": "ok"}
    assert client.get("/steps").json() == {"step": "upload", "progress": 25}


def test_upload_text_document() -> None:
    client = _client()
    response = client.post("/document", json={"text": CV_TEXT})
    assert response.status_code == 200
    data = response.json()
    assert data["plain_text"] == CV_TEXT
    assert data["has_container"] is False
    assert client.get("/steps").json() == {"step": "job-url", "progress": 50}
    notices = client.get("/notices").json()
    assert notices[0]["title"] == "CV Uploaded Successfully"
    assert client.get("/notices").json() == []


def test_upload_docx_document() -> None:
    document = Document()
    document.add_paragraph("Jane Roe")
    buffer = BytesIO()
    document.save(buffer)
    client = _client()
    response = client.post(
        "/document",
        json={
            "filename": "jane.docx",
            "content_base64": base64.b64encode(buffer.getvalue()).decode("ascii"),
        },
    )
    assert response.status_code == 200
    assert response.json()["has_container"] is True
    assert response.json()["display_name"] == "jane.docx"


def test_upload_rejects_legacy_word_and_bad_base64() -> None:
    client = _client()
    response = client.post(
        "/document",
        json={"filename": "cv.doc", "content_base64": base64.b64encode(b"x").decode("ascii")},
    )
    assert response.status_code == 415
    response = client.post("/document", json={"filename": "cv.txt", "content_base64": "%%%"})
    assert response.status_code == 400


def test_analyze_without_document_or_url() -> None:
    client = _client()
    assert client.post("/analyze", json={"job_url": "https://jobs.example.com/1"}).status_code == 409
    client.post("/document", json={"text": CV_TEXT})
    assert client.post("/analyze", json={"job_url": ""}).status_code == 400


def test_analysis_lists_suggestions() -> None:
    client = _analyzed_client()
    data = client.get("/suggestions").json()
    assert data["total"] == 2
    assert data["applied_count"] == 0
    assert data["job_summary"] == "Frontend role"
    assert data["demo"] is False
    assert [item["orphaned"] for item in data["suggestions"]] == [False, False]
    assert client.get("/steps").json() == {"step": "results", "progress": 100}


def test_toggle_suggestion_updates_view() -> None:
    client = _analyzed_client()
    response = client.post("/suggestions/0/toggle")
    assert response.status_code == 200
    assert response.json()["applied_count"] == 1

    view = client.post("/view/document/toggle").json()
    assert view["state"]["active_document"] == "optimized"
    assert "TypeScript" in view["text"]
    assert 'data-suggestion-index="0"' in view["html"]

    view = client.post("/view/highlights/toggle").json()
    assert view["state"]["highlights_enabled"] is False
    assert "<mark" not in view["html"]

    assert client.post("/suggestions/0/toggle").json()["applied_count"] == 0
    assert client.get("/view").json()["text"] == CV_TEXT


def test_orphaned_suggestion_is_flagged() -> None:
    client = _analyzed_client()
    data = client.post("/suggestions/1/toggle").json()
    assert data["suggestions"][1]["applied"] is True
    assert data["suggestions"][1]["orphaned"] is True


def test_toggle_errors() -> None:
    client = _analyzed_client()
    assert client.post("/suggestions/9/toggle").status_code == 404
    assert client.post("/view/sidebar/toggle").status_code == 404


def test_fullscreen_toggle() -> None:
    client = _analyzed_client()
    assert client.post("/view/fullscreen/toggle").json()["state"]["fullscreen"] is True


def test_export_text_download() -> None:
    client = _analyzed_client()
    client.post("/suggestions/0/toggle")
    response = client.get("/export/text")
    assert response.status_code == 200
    assert response.headers["content-disposition"] == 'attachment; filename="pasted-cv.txt"'
    assert response.text == CV_TEXT.replace("JavaScript", "TypeScript")


def test_export_docx_and_pdf_downloads() -> None:
    client = _analyzed_client()
    docx_response = client.get("/export/docx")
    assert docx_response.status_code == 200
    assert docx_response.content[:2] == b"PK"
    pdf_response = client.get("/export/pdf")
    assert pdf_response.status_code == 200
    assert pdf_response.headers["content-type"] == "application/pdf"
    assert pdf_response.content.startswith(b"%PDF")


def test_export_errors() -> None:
    client = _client()
    assert client.get("/export/text").status_code == 409
    client.post("/document", json={"text": CV_TEXT})
    assert client.get("/export/odt").status_code == 400


def test_health_can_check_the_analysis_service() -> None:
    client = _client()
    assert client.get("/health", params={"check_analysis": "true"}).json() == {
        "status": "ok",
        "analysis_service": "unreachable",
    }

    class _ReachableClient(_StubClient):
        def test_connection(self) -> bool:
            return True

    reachable = TestClient(create_app(EditingSession(_ReachableClient()), OptimizerConfig()))
    assert reachable.get("/health?check_analysis=true").json()["analysis_service"] == "reachable"
