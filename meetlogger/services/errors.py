"""Failure taxonomy shared by the summarization pipeline.

Every failure carries a stable ``code`` that is returned to message callers
as ``{"ok": False, "error": code, "message": ...}``.
"""
from __future__ import annotations

from typing import Optional


class PipelineError(RuntimeError):
    code = "PipelineError"

    def to_response(self) -> dict:
        return {"ok": False, "error": self.code, "message": str(self)}


class MissingCredential(PipelineError):
    code = "MissingCredential"

    def __init__(self, message: str = "Gemini API key is not configured") -> None:
        super().__init__(message)


class NoCredential(MissingCredential):
    """Raised by model discovery when it is called without a key."""

    code = "NoCredential"


class EmptySession(PipelineError):
    code = "EmptySession"

    def __init__(self, meeting_key: str) -> None:
        super().__init__(f"No utterances logged for meeting {meeting_key}")
        self.meeting_key = meeting_key


class DiscoveryUnavailable(PipelineError):
    code = "DiscoveryUnavailable"


class EmptyGeneration(PipelineError):
    code = "EmptyGeneration"

    def __init__(self, message: str = "Generation returned no text") -> None:
        super().__init__(message)


class GenerationError(PipelineError):
    code = "GenerationError"

    def __init__(self, upstream_message: str, status_code: Optional[int] = None) -> None:
        super().__init__(f"Gemini error: {upstream_message}")
        self.upstream_message = upstream_message
        self.status_code = status_code

    def to_response(self) -> dict:
        payload = super().to_response()
        payload["upstreamMessage"] = self.upstream_message
        return payload


class ArtifactPersistenceFailed(PipelineError):
    code = "ArtifactPersistenceFailed"


class TransportError(PipelineError):
    code = "TransportError"
