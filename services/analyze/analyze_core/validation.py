from __future__ import annotations

import json
from typing import Any, Dict, List

from libs.core.models import SuggestionKind

_KINDS = {kind.value for kind in SuggestionKind}


def extract_json(text: str) -> str:
    if not text:
        return ""
    stripped = text.strip()
    if stripped.startswith("```"):
        stripped = stripped.strip("`")
    start = stripped.find("{")
    end = stripped.rfind("}")
    if start == -1 or end == -1 or end <= start:
        return ""
    return stripped[start : end + 1]


def parse_model_output(text: str) -> Dict[str, Any] | None:
    json_text = extract_json(text)
    if not json_text:
        return None
    try:
        payload = json.loads(json_text)
    except json.JSONDecodeError:
        return None
    return payload if isinstance(payload, dict) else None


def normalize_recommendations(raw: Any) -> List[Dict[str, Any]]:
    if not isinstance(raw, list):
        return []
    normalized: List[Dict[str, Any]] = []
    for item in raw:
        if not isinstance(item, dict):
            continue
        kind = str(item.get("type", "")).strip().lower()
        original = item.get("original")
        suggested = item.get("suggested")
        if kind not in _KINDS:
            continue
        if not isinstance(original, str) or not original.strip():
            continue
        if not isinstance(suggested, str):
            continue
        reason = item.get("reason")
        normalized.append(
            {
                "type": kind,
                "original": original,
                "suggested": suggested,
                "reason": reason if isinstance(reason, str) else "",
                "applied": False,
            }
        )
    return normalized


def normalize_analysis(payload: Dict[str, Any] | None, cv_text: str) -> Dict[str, Any]:
    if payload is None:
        return {"recommendations": [], "optimizedCV": cv_text}
    optimized = payload.get("optimizedCV")
    result: Dict[str, Any] = {
        "recommendations": normalize_recommendations(payload.get("recommendations")),
        "optimizedCV": optimized if isinstance(optimized, str) and optimized.strip() else cv_text,
    }
    summary = payload.get("jobSummary")
    if isinstance(summary, str) and summary.strip():
        result["jobSummary"] = summary.strip()
    return result
