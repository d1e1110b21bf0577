"""Gemini LLM provider using Google's Generative Language API."""
from __future__ import annotations

from typing import Any, Optional

import requests

from meetlogger.services.errors import GenerationError
from meetlogger.services.llm.base import BaseLLMProvider

DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com"


def upstream_error_message(payload: Any) -> Optional[str]:
    """Message of an ``{"error": {...}}`` object embedded in a response, if any."""
    if not isinstance(payload, dict) or not payload.get("error"):
        return None
    error = payload["error"]
    if isinstance(error, dict):
        return str(error.get("message") or error.get("status") or error)
    return str(error)


class GeminiProvider(BaseLLMProvider):
    """LLM provider for Google Gemini models."""

    def __init__(
        self,
        api_key: str,
        model: str,
        api_variant: str = "v1",
        base_url: str = DEFAULT_BASE_URL,
        *,
        timeout: float = 60.0,
        session: Any = None,
    ) -> None:
        super().__init__(logger_name="meetlogger.llm.gemini", timeout=timeout)
        self._api_key = api_key
        # Handle model name format (may omit the "models/" prefix)
        self._model = model if model.startswith("models/") else f"models/{model}"
        self._api_variant = api_variant
        self._base_url = base_url.rstrip("/")
        self._http = session or requests

    @property
    def model_label(self) -> str:
        return f"{self._api_variant}/{self._model}"

    def _call_api(
        self,
        prompt: str,
        temperature: float,
        max_output_tokens: int,
        timeout: float,
    ) -> dict[str, Any]:
        url = f"{self._base_url}/{self._api_variant}/{self._model}:generateContent"
        try:
            response = self._http.post(
                url,
                params={"key": self._api_key},
                headers={"Content-Type": "application/json"},
                json={
                    "contents": [{"parts": [{"text": prompt}]}],
                    "generationConfig": {
                        "temperature": temperature,
                        "maxOutputTokens": max_output_tokens,
                    },
                },
                timeout=timeout,
            )
        except requests.Timeout as exc:
            raise GenerationError(f"request timed out after {timeout}s") from exc
        except requests.RequestException as exc:
            raise GenerationError(f"failed to reach Gemini API ({exc.__class__.__name__})") from exc

        try:
            data = response.json()
        except ValueError:
            data = None

        message = upstream_error_message(data)
        if response.status_code != 200 or message:
            self._logger.error(
                "Gemini error: %s - %s", response.status_code, (message or response.text or "")[:500]
            )
            raise GenerationError(message or f"HTTP {response.status_code}", response.status_code)
        if not isinstance(data, dict):
            raise GenerationError("response was not a JSON object", response.status_code)
        return data

    @staticmethod
    def _extract_text(payload: dict[str, Any]) -> str:
        """Concatenate every text part of the first candidate."""
        candidates = payload.get("candidates") or []
        if not candidates or not isinstance(candidates[0], dict):
            return ""
        content = candidates[0].get("content") or {}
        parts = content.get("parts") if isinstance(content, dict) else None
        if not isinstance(parts, list):
            return ""
        return "".join(
            str(part.get("text") or "") for part in parts if isinstance(part, dict)
        ).strip()
