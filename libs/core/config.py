from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

_DEFAULT_ANALYZE_TIMEOUT_S = 30.0
_DEFAULT_OPENAI_MODEL = "gpt-4.1-nano-2025-04-14"
_DEFAULT_OPENAI_TEMPERATURE = 0.3
_DEFAULT_OPENAI_TIMEOUT_S = 30.0
_DEFAULT_PDF_RENDER_DPI = 96


def parse_optional_float(value: str | None) -> float | None:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except ValueError:
        return None


def parse_optional_int(value: str | None) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except ValueError:
        return None


@dataclass(frozen=True)
class AnalysisConfig:
    endpoint: Optional[str] = None
    timeout_s: float = _DEFAULT_ANALYZE_TIMEOUT_S

    @property
    def analyze_url(self) -> Optional[str]:
        if not self.endpoint or not self.endpoint.strip():
            return None
        return f"{self.endpoint.strip().rstrip('/')}/analyze"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "AnalysisConfig":
        env = os.environ if environ is None else environ
        timeout_s = parse_optional_float(env.get("ANALYZE_TIMEOUT_S"))
        return cls(
            endpoint=(env.get("ANALYZE_ENDPOINT") or "").strip() or None,
            timeout_s=timeout_s if timeout_s and timeout_s > 0 else _DEFAULT_ANALYZE_TIMEOUT_S,
        )


@dataclass(frozen=True)
class ProviderConfig:
    provider: str = "openai"
    api_key: str = ""
    model: str = _DEFAULT_OPENAI_MODEL
    base_url: str = "https://api.openai.com"
    temperature: Optional[float] = _DEFAULT_OPENAI_TEMPERATURE
    max_output_tokens: Optional[int] = None
    timeout_s: float = _DEFAULT_OPENAI_TIMEOUT_S
    max_retries: int = 0

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "ProviderConfig":
        env = os.environ if environ is None else environ
        temperature = parse_optional_float(env.get("OPENAI_TEMPERATURE"))
        timeout_s = parse_optional_float(env.get("OPENAI_TIMEOUT_S"))
        max_retries = parse_optional_int(env.get("OPENAI_MAX_RETRIES"))
        return cls(
            provider=(env.get("LLM_PROVIDER") or "openai").strip().lower(),
            api_key=env.get("OPENAI_API_KEY", ""),
            model=env.get("OPENAI_MODEL") or _DEFAULT_OPENAI_MODEL,
            base_url=env.get("OPENAI_BASE_URL") or "https://api.openai.com",
            temperature=_DEFAULT_OPENAI_TEMPERATURE if temperature is None else temperature,
            max_output_tokens=parse_optional_int(env.get("OPENAI_MAX_OUTPUT_TOKENS")),
            timeout_s=timeout_s if timeout_s and timeout_s > 0 else _DEFAULT_OPENAI_TIMEOUT_S,
            max_retries=max(0, max_retries or 0),
        )


@dataclass(frozen=True)
class OptimizerConfig:
    cors_origins: tuple[str, ...] = ("http://localhost:8080", "http://localhost:3000")
    pdf_render_dpi: int = _DEFAULT_PDF_RENDER_DPI

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "OptimizerConfig":
        env = os.environ if environ is None else environ
        raw_origins = env.get("CORS_ORIGINS")
        origins = (
            tuple(origin.strip() for origin in raw_origins.split(",") if origin.strip())
            if raw_origins is not None
            else cls.cors_origins
        )
        dpi = parse_optional_int(env.get("PDF_RENDER_DPI"))
        return cls(
            cors_origins=origins,
            pdf_render_dpi=dpi if dpi and dpi > 0 else _DEFAULT_PDF_RENDER_DPI,
        )
