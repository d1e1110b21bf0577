"""Summary history and artifact bookkeeping.

A record is kept even when its artifacts could not be written: the generated
summary is the expensive part, the files can be recreated from it.
"""
from __future__ import annotations

import dataclasses
import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from meetlogger.services.artifacts import ArtifactRef, ArtifactWriter, safe_component
from meetlogger.services.errors import ArtifactPersistenceFailed
from meetlogger.services.kv_store import KeyValueStore

HISTORY_KEY = "summaryHistory"
LAST_SUMMARY_KEY = "lastSummary"

SUMMARY_FILE = "summary.txt"
TRANSCRIPT_FILE = "transcript.txt"


def _empty_refs() -> dict:
    return {"transcript_ref": None, "summary_ref": None}


@dataclass(frozen=True)
class SummaryRecord:
    meeting_key: str
    model_used: str
    summary_text: str
    utterance_count: int
    reason: str = "unknown"
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    created_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    artifact_refs: dict = field(default_factory=_empty_refs)
    warning: Optional[str] = None

    def to_dict(self) -> dict:
        refs = self.artifact_refs or {}
        return {
            "id": self.id,
            "meetingKey": self.meeting_key,
            "createdAt": self.created_at,
            "modelUsed": self.model_used,
            "summaryText": self.summary_text,
            "utteranceCount": self.utterance_count,
            "reason": self.reason,
            "artifactRefs": {
                "transcriptRef": _ref_dict(refs.get("transcript_ref")),
                "summaryRef": _ref_dict(refs.get("summary_ref")),
            },
            "warning": self.warning,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SummaryRecord":
        refs = data.get("artifactRefs") or {}
        return cls(
            id=str(data.get("id") or uuid.uuid4().hex),
            meeting_key=str(data.get("meetingKey") or "unknown"),
            created_at=str(data.get("createdAt") or ""),
            model_used=str(data.get("modelUsed") or ""),
            summary_text=str(data.get("summaryText") or ""),
            utterance_count=_as_count(data.get("utteranceCount")),
            reason=str(data.get("reason") or "unknown"),
            artifact_refs={
                "transcript_ref": ArtifactRef.from_dict(refs.get("transcriptRef")),
                "summary_ref": ArtifactRef.from_dict(refs.get("summaryRef")),
            },
            warning=data.get("warning"),
        )


def _as_count(value) -> int:
    try:
        return max(0, int(value or 0))
    except (TypeError, ValueError):
        return 0


def _ref_dict(ref: Optional[ArtifactRef]) -> Optional[dict]:
    return ref.to_dict() if ref is not None else None


def artifact_folder_name(meeting_key: str, created_at: str) -> str:
    """``<meeting key>_<YYYYmmdd-HHMMSS>`` so repeated runs never collide."""
    try:
        stamp = datetime.fromisoformat(created_at).strftime("%Y%m%d-%H%M%S")
    except ValueError:
        stamp = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
    return f"{safe_component(meeting_key)}_{stamp}"


def format_summary_artifact(record: SummaryRecord) -> str:
    lines = [
        f"Meeting: {record.meeting_key}",
        f"Created: {record.created_at}",
        f"Model: {record.model_used}",
        "",
        record.summary_text.strip(),
    ]
    return "\n".join(lines) + "\n"


class HistoryManager:
    def __init__(
        self,
        kv_store: KeyValueStore,
        writer: Optional[ArtifactWriter],
        *,
        max_history: int = 30,
    ) -> None:
        self._kv = kv_store
        self._writer = writer
        self._max_history = max_history
        self._lock = threading.RLock()
        self._logger = logging.getLogger("meetlogger.history")

    def commit(self, record: SummaryRecord, transcript_text: str) -> SummaryRecord:
        """Write both artifacts, then append the completed record to history.

        Returns the stored record; its ``artifact_refs`` hold whatever the
        writer returned, with ``None`` for an artifact that failed.
        """
        folder = artifact_folder_name(record.meeting_key, record.created_at)
        refs = _empty_refs()
        failures: list[str] = []
        if self._writer is None:
            failures.append("no artifact target configured")
        else:
            for ref_key, name, text in (
                ("summary_ref", SUMMARY_FILE, format_summary_artifact(record)),
                ("transcript_ref", TRANSCRIPT_FILE, transcript_text),
            ):
                try:
                    refs[ref_key] = self._writer.write(name, text, folder)
                except ArtifactPersistenceFailed as exc:
                    self._logger.warning(
                        "Artifact persistence failed: meeting=%s file=%s error=%s",
                        record.meeting_key,
                        name,
                        exc,
                    )
                    failures.append(f"{name}: {exc}")
                except Exception as exc:
                    self._logger.exception("Artifact writer error: %s", exc)
                    failures.append(f"{name}: {exc}")

        warning = None
        if failures:
            warning = "ArtifactPersistenceFailed: " + "; ".join(failures)
        completed = dataclasses.replace(record, artifact_refs=refs, warning=warning)
        self._append(completed)
        return completed

    def _append(self, record: SummaryRecord) -> None:
        with self._lock:
            stored = self._kv.get([HISTORY_KEY]).get(HISTORY_KEY)
            history = stored if isinstance(stored, list) else []
            history.append(record.to_dict())
            if len(history) > self._max_history:
                history = history[-self._max_history:]
            self._kv.set({HISTORY_KEY: history, LAST_SUMMARY_KEY: record.to_dict()})
        self._logger.info(
            "Summary saved: id=%s meeting=%s history=%d", record.id, record.meeting_key, len(history)
        )

    def last(self) -> Optional[SummaryRecord]:
        data = self._kv.get([LAST_SUMMARY_KEY]).get(LAST_SUMMARY_KEY)
        if not isinstance(data, dict):
            return None
        return SummaryRecord.from_dict(data)

    def records(self) -> list[SummaryRecord]:
        """History, newest first."""
        stored = self._kv.get([HISTORY_KEY]).get(HISTORY_KEY)
        if not isinstance(stored, list):
            return []
        records = [SummaryRecord.from_dict(item) for item in stored if isinstance(item, dict)]
        return list(reversed(records))

    def clear(self) -> None:
        with self._lock:
            self._kv.remove([HISTORY_KEY, LAST_SUMMARY_KEY])
        self._logger.info("Summary history cleared")
