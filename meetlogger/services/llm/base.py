from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from typing import Any

from meetlogger.services.errors import EmptyGeneration


class LLMProvider(ABC):
    @abstractmethod
    def generate(
        self,
        prompt: str,
        *,
        temperature: float = 0.3,
        max_output_tokens: int = 1024,
    ) -> str:
        """Send a prompt and return the generated plain text."""
        raise NotImplementedError

    @property
    @abstractmethod
    def model_label(self) -> str:
        """Identifier recorded on summaries, e.g. ``v1/models/gemini-2.0-flash``."""
        raise NotImplementedError


class BaseLLMProvider(LLMProvider):
    """Shared request timing, logging and text extraction.

    Subclasses implement :meth:`_call_api` for their HTTP API and
    :meth:`_extract_text` for its response payload.
    """

    def __init__(self, logger_name: str = "meetlogger.llm", timeout: float = 60.0) -> None:
        self._logger = logging.getLogger(logger_name)
        self._timeout = timeout

    @abstractmethod
    def _call_api(
        self,
        prompt: str,
        temperature: float,
        max_output_tokens: int,
        timeout: float,
    ) -> dict[str, Any]:
        """Make an API call and return the decoded response payload.

        Raises:
            GenerationError: transport failure, non-2xx status, or an error
                object embedded in the payload
        """
        raise NotImplementedError

    @staticmethod
    @abstractmethod
    def _extract_text(payload: dict[str, Any]) -> str:
        raise NotImplementedError

    def generate(
        self,
        prompt: str,
        *,
        temperature: float = 0.3,
        max_output_tokens: int = 1024,
    ) -> str:
        started = time.monotonic()
        payload = self._call_api(prompt, temperature, max_output_tokens, self._timeout)
        text = self._extract_text(payload)
        duration_ms = int((time.monotonic() - started) * 1000)
        self._logger.info(
            "Generation finished: model=%s prompt_chars=%d output_chars=%d duration_ms=%d",
            self.model_label,
            len(prompt),
            len(text),
            duration_ms,
        )
        if not text:
            raise EmptyGeneration()
        return text
