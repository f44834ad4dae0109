from __future__ import annotations

import json

from .models import SuggestionKind

ANALYSIS_SYSTEM_PROMPT = (
    "You are an expert CV optimization specialist. "
    "Return valid JSON with recommendations and an optimizedCV."
)


def job_requirements_prompt(job_url: str) -> str:
    return (
        "Extract key requirements, skills, and qualifications from this job posting URL: "
        f"{job_url}. If the URL content can't be fetched, infer typical requirements for "
        "this role based on the URL and path."
    )


def analysis_user_prompt(cv_text: str, job_url: str) -> str:
    kinds = "|".join(kind.value for kind in SuggestionKind)
    example = {
        "recommendations": [
            {"type": kinds, "original": "", "suggested": "", "reason": "", "applied": False}
        ],
        "optimizedCV": "...",
        "jobSummary": "...",
    }
    return (
        f"CV:\n{cv_text}\n\n"
        f"{job_requirements_prompt(job_url)}\n\n"
        "Each recommendation's original must be an exact, case-sensitive substring of the CV.\n"
        f"Return JSON: {json.dumps(example, ensure_ascii=False)}"
    )
