"""Message boundary of the background context.

The page context never calls services directly; it sends typed messages
(``{"type": "LOG", ...}``) and gets a typed response back. Every message is
answered with a terminal ``{"ok": ...}`` payload, pipeline failures included.
"""
from __future__ import annotations

import logging
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from meetlogger.services.errors import PipelineError
from meetlogger.services.history import HistoryManager
from meetlogger.services.session_log_store import SessionLogStore, Utterance
from meetlogger.services.summarization import SummarizationService


class _Message(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class LogMessage(_Message):
    type: Literal["LOG"]
    meeting_key: str = Field("unknown", alias="meetingKey")
    text: str = Field(..., min_length=1)
    speaker: Optional[str] = None
    timestamp: Optional[str] = None


class MeetingEndedMessage(_Message):
    type: Literal["MEETING_ENDED", "END", "END_MEETING"]
    meeting_key: str = Field("unknown", alias="meetingKey")
    reason: str = "unknown"


class SummarizeNowMessage(_Message):
    type: Literal["SUMMARIZE_NOW", "SUMMARIZE"]
    meeting_key: str = Field("unknown", alias="meetingKey")


class GetLastSummaryMessage(_Message):
    type: Literal["GET_LAST_SUMMARY"]


class GetHistoryMessage(_Message):
    type: Literal["GET_HISTORY"]


class SetCredentialMessage(_Message):
    type: Literal["SET_CREDENTIAL", "SET_API_KEY"]
    key: str = ""


class ClearAllMessage(_Message):
    type: Literal["CLEAR_ALL", "CLEAR"]


class ListModelsMessage(_Message):
    type: Literal["LIST_MODELS"]


Message = Annotated[
    Union[
        LogMessage,
        MeetingEndedMessage,
        SummarizeNowMessage,
        GetLastSummaryMessage,
        GetHistoryMessage,
        SetCredentialMessage,
        ClearAllMessage,
        ListModelsMessage,
    ],
    Field(discriminator="type"),
]

_message_adapter = TypeAdapter(Message)


class InvalidMessage(ValueError):
    pass


def parse_message(raw: dict) -> BaseModel:
    try:
        return _message_adapter.validate_python(raw)
    except ValidationError as exc:
        raise InvalidMessage(str(exc)) from exc


class BackgroundService:
    def __init__(
        self,
        session_logs: SessionLogStore,
        summarization: SummarizationService,
        history: HistoryManager,
    ) -> None:
        self._session_logs = session_logs
        self._summarization = summarization
        self._history = history
        self._logger = logging.getLogger("meetlogger.background")

    def start(self) -> None:
        """Rehydrate durable state; must run before the first message."""
        self._session_logs.rehydrate()

    def close(self) -> None:
        self._session_logs.close()

    def handle(self, raw: dict) -> dict:
        """Dispatch one raw message. Raises InvalidMessage for malformed input."""
        message = parse_message(raw)
        if isinstance(message, LogMessage):
            return self._on_log(message)
        if isinstance(message, MeetingEndedMessage):
            return self.finalize(message.meeting_key, message.reason)
        if isinstance(message, SummarizeNowMessage):
            return self.finalize(message.meeting_key, "manual")
        if isinstance(message, GetLastSummaryMessage):
            last = self._history.last()
            return {"ok": True, "lastSummary": last.to_dict() if last else None}
        if isinstance(message, GetHistoryMessage):
            return {"ok": True, "history": [r.to_dict() for r in self._history.records()]}
        if isinstance(message, SetCredentialMessage):
            self._summarization.set_credential(message.key)
            return {"ok": True}
        if isinstance(message, ClearAllMessage):
            self.clear_all()
            return {"ok": True}
        if isinstance(message, ListModelsMessage):
            return self.list_models()
        raise InvalidMessage(f"Unsupported message type: {raw.get('type')!r}")

    def _on_log(self, message: LogMessage) -> dict:
        text = message.text.strip()
        if not text:
            return {"ok": True, "appended": False}
        fields = {"text": text, "speaker": (message.speaker or "").strip() or None}
        if message.timestamp:
            fields["timestamp"] = message.timestamp
        appended = self._session_logs.append(message.meeting_key, Utterance(**fields))
        return {"ok": True, "appended": appended}

    def finalize(self, meeting_key: str, reason: str) -> dict:
        self._logger.info("Finalize requested: key=%s reason=%s", meeting_key, reason)
        outcome = self._summarization.summarize_meeting(meeting_key, reason)
        return outcome.to_response()

    def list_models(self) -> dict:
        try:
            return self._summarization.list_models()
        except PipelineError as exc:
            self._logger.warning("ListModels failed: %s", exc)
            return exc.to_response()

    def clear_all(self) -> None:
        self._session_logs.clear()
        self._history.clear()
        self._summarization.reset_states()
        self._logger.info("All sessions and history cleared")
