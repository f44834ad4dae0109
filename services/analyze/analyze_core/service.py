from __future__ import annotations

from typing import Any, Dict, Optional

from libs.core import llm_provider, logging as core_logging, prompts
from libs.core.config import ProviderConfig

from .errors import AnalyzeError
from .validation import normalize_analysis, parse_model_output

LOGGER = core_logging.get_logger("analyze")


def create_provider(config: ProviderConfig) -> Optional[llm_provider.LLMProvider]:
    try:
        return llm_provider.resolve_provider(config)
    except ValueError as exc:
        LOGGER.warning("llm_provider_unavailable", provider=config.provider, error=str(exc))
        return None


def create_provider_from_env() -> Optional[llm_provider.LLMProvider]:
    return create_provider(ProviderConfig.from_env())


def analyze_cv_with_job(
    cv_text: str, job_url: str, provider: Optional[llm_provider.LLMProvider]
) -> Dict[str, Any]:
    if provider is None:
        raise AnalyzeError("Missing OPENAI_API_KEY", status_code=500)
    if not isinstance(cv_text, str) or not cv_text.strip():
        raise AnalyzeError("cvText and jobUrl required")
    if not isinstance(job_url, str) or not job_url.strip():
        raise AnalyzeError("cvText and jobUrl required")

    try:
        response = provider.complete(
            prompts.ANALYSIS_SYSTEM_PROMPT,
            prompts.analysis_user_prompt(cv_text, job_url),
        )
    except llm_provider.LLMProviderError as exc:
        LOGGER.error("analysis_provider_failed", error=str(exc))
        raise AnalyzeError(str(exc), status_code=500) from exc

    payload = parse_model_output(response.content)
    if payload is None:
        LOGGER.warning("analysis_output_unparsable", chars=len(response.content))
    result = normalize_analysis(payload, cv_text)
    LOGGER.info(
        "analysis_generated",
        recommendations=len(result["recommendations"]),
        job_url=job_url,
    )
    return result
