from __future__ import annotations

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class SuggestionKind(str, Enum):
    keyword = "keyword"
    phrase = "phrase"
    structure = "structure"
    achievement = "achievement"


class Suggestion(BaseModel):
    """One proposed substitution.

    ``original`` is matched literally against the CV text and replaced by
    ``suggested`` while ``applied`` is set. Field names follow the JSON the
    analyze service returns.
    """

    model_config = ConfigDict(populate_by_name=True)

    kind: SuggestionKind = Field(alias="type")
    original: str
    suggested: str
    reason: str = ""
    applied: bool = False


class CVDocument(BaseModel):
    plain_text: str
    html: str = ""
    container: Optional[bytes] = None
    display_name: str = ""


class ActiveDocument(str, Enum):
    original = "original"
    optimized = "optimized"


class ViewState(BaseModel):
    model_config = ConfigDict(frozen=True)

    active_document: ActiveDocument = ActiveDocument.original
    highlights_enabled: bool = True
    fullscreen: bool = False


class AnalysisResult(BaseModel):
    recommendations: List[Suggestion] = Field(default_factory=list)
    optimized_cv: str = ""
    job_summary: Optional[str] = None
    demo: bool = False


class ExportFormat(str, Enum):
    text = "text"
    docx = "docx"
    pdf = "pdf"


class ExportArtifact(BaseModel):
    filename: str
    media_type: str
    content: bytes


class NoticeVariant(str, Enum):
    default = "default"
    destructive = "destructive"


class Notice(BaseModel):
    title: str
    description: str = ""
    variant: NoticeVariant = NoticeVariant.default


class RenderedView(BaseModel):
    text: str
    html: str
    state: ViewState
