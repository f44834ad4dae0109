from __future__ import annotations

import json
import time
from dataclasses import dataclass
from typing import Any, Dict
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from .config import ProviderConfig

CHAT_COMPLETIONS_PATH = "/v1/chat/completions"
_RETRYABLE_STATUS = frozenset({429, 500, 502, 503, 504})
_MAX_BACKOFF_S = 8


@dataclass
class LLMResponse:
    content: str


class LLMProviderError(Exception):
    pass


class LLMProvider:
    def complete(self, system: str, user: str) -> LLMResponse:  # pragma: no cover - interface
        raise NotImplementedError


class MockLLMProvider(LLMProvider):
    """Offline provider returning one canned recommendation."""

    def complete(self, system: str, user: str) -> LLMResponse:
        canned = {
            "recommendations": [
                {
                    "type": "keyword",
                    "original": "worked on",
                    "suggested": "developed and implemented",
                    "reason": "Action verbs improve ATS scoring",
                    "applied": False,
                }
            ],
            "optimizedCV": "",
            "jobSummary": "Mock analysis",
        }
        return LLMResponse(content=json.dumps(canned))


class _Retry(Exception):
    """Internal signal: send the (possibly amended) payload again."""

    def __init__(self, consumes_attempt: bool) -> None:
        super().__init__()
        self.consumes_attempt = consumes_attempt


class OpenAIProvider(LLMProvider):
    """Chat completions client over plain urllib.

    Transient failures (429/5xx, connection errors) are retried up to
    ``config.max_retries`` times. A model that rejects ``temperature`` gets one
    extra attempt without it, which does not count against the retry budget.
    """

    def __init__(self, config: ProviderConfig) -> None:
        if not config.api_key:
            raise ValueError("OPENAI_API_KEY is required when LLM_PROVIDER=openai")
        if not config.model:
            raise ValueError("OPENAI_MODEL is required when LLM_PROVIDER=openai")
        self.config = config
        self.endpoint = config.base_url.rstrip("/") + CHAT_COMPLETIONS_PATH

    @property
    def model(self) -> str:
        return self.config.model

    def _payload(self, system: str, user: str) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": self.config.model,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
        }
        if self.config.temperature is not None:
            payload["temperature"] = self.config.temperature
        if self.config.max_output_tokens is not None:
            payload["max_tokens"] = self.config.max_output_tokens
        return payload

    def _send(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        request = Request(
            self.endpoint,
            data=json.dumps(payload).encode("utf-8"),
            headers={
                "Authorization": f"Bearer {self.config.api_key}",
                "Content-Type": "application/json",
            },
            method="POST",
        )
        with urlopen(request, timeout=self.config.timeout_s) as response:
            return json.loads(response.read().decode("utf-8"))

    def _attempt(self, payload: Dict[str, Any], can_retry: bool, dropped_temperature: bool) -> str:
        try:
            data = self._send(payload)
        except HTTPError as exc:
            detail = exc.read().decode("utf-8", errors="replace") if exc.fp else str(exc)
            if not dropped_temperature and "temperature" in payload and _rejects_temperature(detail):
                payload.pop("temperature")
                raise _Retry(consumes_attempt=False) from exc
            if exc.code in _RETRYABLE_STATUS and can_retry:
                raise _Retry(consumes_attempt=True) from exc
            raise LLMProviderError(f"OpenAI error: {exc.code} {detail}") from exc
        except (URLError, TimeoutError) as exc:
            if can_retry:
                raise _Retry(consumes_attempt=True) from exc
            raise LLMProviderError(f"OpenAI API connection error: {exc}") from exc
        except json.JSONDecodeError as exc:
            raise LLMProviderError(f"OpenAI API returned invalid JSON: {exc}") from exc
        text = _message_content(data)
        if not text:
            raise LLMProviderError("OpenAI API returned empty output")
        return text

    def complete(self, system: str, user: str) -> LLMResponse:
        payload = self._payload(system, user)
        retries_left = self.config.max_retries
        dropped_temperature = False
        backoff_step = 0
        while True:
            try:
                return LLMResponse(
                    content=self._attempt(payload, retries_left > 0, dropped_temperature)
                )
            except _Retry as retry:
                if not retry.consumes_attempt:
                    dropped_temperature = True
                    continue
                retries_left -= 1
                time.sleep(min(2**backoff_step, _MAX_BACKOFF_S))
                backoff_step += 1


def resolve_provider(config: ProviderConfig) -> LLMProvider:
    name = (config.provider or "openai").lower()
    if name == "mock":
        return MockLLMProvider()
    if name == "openai":
        return OpenAIProvider(config)
    raise ValueError(f"unsupported LLM_PROVIDER: {config.provider}")


def _message_content(response: Dict[str, Any]) -> str:
    choices = response.get("choices") or []
    if not choices:
        return ""
    content = (choices[0].get("message") or {}).get("content")
    return content.strip() if isinstance(content, str) else ""


def _rejects_temperature(detail: str) -> bool:
    lowered = (detail or "").lower()
    return "unsupported" in lowered and "temperature" in lowered
