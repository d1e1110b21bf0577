"""Per-meeting utterance logs with debounced write-through to the durable store.

The store is the only writer of ``logsByMeeting``. Appends mutate memory
immediately; the durable copy follows at most ``flush_delay`` seconds later,
coalescing bursts of caption updates into one write.
"""
from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional

from meetlogger.services.kv_store import KeyValueStore

LOGS_KEY = "logsByMeeting"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class Utterance:
    text: str
    speaker: Optional[str] = None
    timestamp: str = field(default_factory=utc_now_iso)

    def __post_init__(self) -> None:
        if not self.text or not self.text.strip():
            raise ValueError("Utterance text must be non-empty")

    def to_dict(self) -> dict:
        return {"timestamp": self.timestamp, "speaker": self.speaker, "text": self.text}

    @classmethod
    def from_dict(cls, data) -> Optional["Utterance"]:
        # Early versions persisted bare strings.
        if isinstance(data, str):
            return cls(text=data) if data.strip() else None
        if not isinstance(data, dict):
            return None
        text = str(data.get("text") or "").strip()
        if not text:
            return None
        speaker = data.get("speaker") or None
        timestamp = data.get("timestamp") or utc_now_iso()
        return cls(text=text, speaker=speaker, timestamp=timestamp)


class SessionState(str, Enum):
    ACTIVE = "ACTIVE"
    FINALIZING = "FINALIZING"
    CLOSED = "CLOSED"


@dataclass
class Session:
    meeting_key: str
    utterances: list[Utterance] = field(default_factory=list)
    state: SessionState = SessionState.ACTIVE


@dataclass(frozen=True)
class FinalizeTicket:
    meeting_key: str
    utterances: tuple[Utterance, ...]
    ticket_id: str = field(default_factory=lambda: uuid.uuid4().hex)


class DebouncedWriter:
    """Scheduled flush task with cancel-and-reschedule semantics.

    Each :meth:`schedule` call pushes the pending flush ``delay`` seconds
    into the future. A failed write is logged and scheduled again.
    """

    def __init__(
        self,
        write: Callable[[], None],
        delay: float,
        *,
        name: str = "debounced-writer",
    ) -> None:
        self._write = write
        self._delay = delay
        self._name = name
        self._lock = threading.Lock()
        self._write_lock = threading.Lock()
        self._timer: Optional[threading.Timer] = None
        self._logger = logging.getLogger("meetlogger.sessions.writer")

    @property
    def pending(self) -> bool:
        with self._lock:
            return self._timer is not None

    def schedule(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            timer = threading.Timer(self._delay, self._on_timer)
            timer.daemon = True
            timer.name = self._name
            self._timer = timer
            timer.start()

    def cancel(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

    def _on_timer(self) -> None:
        with self._lock:
            self._timer = None
        self._run()

    def flush(self) -> bool:
        """Write now, dropping any scheduled flush. Returns True on success."""
        self.cancel()
        return self._run()

    def run_exclusive(self, fn: Callable[[], None]) -> None:
        """Drop any scheduled flush and run ``fn`` once no write is in progress."""
        self.cancel()
        with self._write_lock:
            fn()

    def _run(self) -> bool:
        with self._write_lock:
            try:
                self._write()
                return True
            except Exception as exc:
                self._logger.warning("Durable write failed, will retry: %s", exc)
        self.schedule()
        return False


class SessionLogStore:
    def __init__(
        self,
        kv_store: KeyValueStore,
        *,
        max_logs: int = 300,
        flush_delay: float = 1.0,
    ) -> None:
        self._kv = kv_store
        self._max_logs = max_logs
        self._lock = threading.RLock()
        self._sessions: dict[str, Session] = {}
        self._finalizing: dict[str, FinalizeTicket] = {}
        self._rehydrated = False
        self._logger = logging.getLogger("meetlogger.sessions")
        self._writer = DebouncedWriter(self._write_through, flush_delay, name="session-log-flush")

    @property
    def writer(self) -> DebouncedWriter:
        return self._writer

    def rehydrate(self) -> int:
        """Load all persisted sessions. Returns the number of sessions restored."""
        with self._lock:
            stored = self._kv.get([LOGS_KEY]).get(LOGS_KEY) or {}
            restored: dict[str, Session] = {}
            if isinstance(stored, dict):
                for key, entries in stored.items():
                    if not isinstance(entries, list):
                        continue
                    utterances = [u for u in map(Utterance.from_dict, entries) if u is not None]
                    if utterances:
                        restored[key] = Session(key, utterances[-self._max_logs:])
            else:
                self._logger.warning("Ignoring malformed %s in durable store", LOGS_KEY)
            # Appends made before rehydrate win over stale durable copies.
            restored.update(self._sessions)
            self._sessions = restored
            self._rehydrated = True
            self._logger.info("Session logs restored: %d meetings", len(restored))
            return len(restored)

    def _ensure_rehydrated(self) -> None:
        if not self._rehydrated:
            self.rehydrate()

    def append(self, meeting_key: str, utterance: Utterance) -> bool:
        """Append unless it repeats the previous text. Returns True if stored."""
        with self._lock:
            self._ensure_rehydrated()
            previous = self._last_utterance(meeting_key)
            if previous is not None and previous.text == utterance.text:
                return False
            session = self._sessions.get(meeting_key)
            if session is None:
                session = Session(meeting_key)
                self._sessions[meeting_key] = session
            session.utterances.append(utterance)
            if len(session.utterances) > self._max_logs:
                session.utterances = session.utterances[-self._max_logs:]
        self._logger.debug("LOG saved: key=%s chars=%d", meeting_key, len(utterance.text))
        self._writer.schedule()
        return True

    def _last_utterance(self, meeting_key: str) -> Optional[Utterance]:
        session = self._sessions.get(meeting_key)
        if session and session.utterances:
            return session.utterances[-1]
        ticket = self._finalizing.get(meeting_key)
        if ticket and ticket.utterances:
            return ticket.utterances[-1]
        return None

    def get_log(self, meeting_key: str) -> list[Utterance]:
        with self._lock:
            self._ensure_rehydrated()
            session = self._sessions.get(meeting_key)
            return list(session.utterances) if session else []

    def meeting_keys(self) -> list[str]:
        with self._lock:
            self._ensure_rehydrated()
            return sorted(self._sessions)

    def state(self, meeting_key: str) -> SessionState:
        with self._lock:
            if meeting_key in self._finalizing:
                return SessionState.FINALIZING
            if meeting_key in self._sessions:
                return SessionState.ACTIVE
            return SessionState.CLOSED

    def begin_finalize(self, meeting_key: str) -> Optional[FinalizeTicket]:
        """Snapshot and detach the log for summarization.

        Returns None when there is nothing to summarize or a finalize for
        this key is already running. Utterances appended afterwards start
        the next session.
        """
        with self._lock:
            self._ensure_rehydrated()
            if meeting_key in self._finalizing:
                self._logger.info("Finalize already in progress: key=%s", meeting_key)
                return None
            session = self._sessions.get(meeting_key)
            if session is None or not session.utterances:
                return None
            del self._sessions[meeting_key]
            session.state = SessionState.FINALIZING
            ticket = FinalizeTicket(meeting_key, tuple(session.utterances))
            self._finalizing[meeting_key] = ticket
            self._logger.info(
                "Finalize started: key=%s utterances=%d", meeting_key, len(ticket.utterances)
            )
            return ticket

    def complete_finalize(self, ticket: FinalizeTicket) -> None:
        with self._lock:
            if self._finalizing.get(ticket.meeting_key) is not ticket:
                return
            del self._finalizing[ticket.meeting_key]
            self._logger.info("Session closed: key=%s", ticket.meeting_key)
        # The durable copy must drop the snapshot before the summary is reported.
        self._writer.flush()

    def abort_finalize(self, ticket: FinalizeTicket) -> None:
        """Put the snapshot back in front of anything logged since."""
        with self._lock:
            if self._finalizing.get(ticket.meeting_key) is not ticket:
                return
            del self._finalizing[ticket.meeting_key]
            newer = self._sessions.get(ticket.meeting_key)
            merged = list(ticket.utterances) + (newer.utterances if newer else [])
            self._sessions[ticket.meeting_key] = Session(
                ticket.meeting_key, merged[-self._max_logs:]
            )
            self._logger.info("Finalize aborted, log kept: key=%s", ticket.meeting_key)
        self._writer.schedule()

    def finalize(self, meeting_key: str) -> list[Utterance]:
        """Return the full ordered log and remove the session in one step."""
        ticket = self.begin_finalize(meeting_key)
        if ticket is None:
            return []
        self.complete_finalize(ticket)
        return list(ticket.utterances)

    def clear(self) -> None:
        with self._lock:
            self._sessions.clear()
            self._finalizing.clear()
            self._rehydrated = True
        self._writer.run_exclusive(lambda: self._kv.remove([LOGS_KEY]))
        self._logger.info("Session logs cleared")

    def flush(self) -> bool:
        return self._writer.flush()

    def close(self) -> None:
        if self._writer.pending:
            self._writer.flush()
        self._writer.cancel()

    def _serialize(self) -> dict[str, list[dict]]:
        with self._lock:
            data: dict[str, list[dict]] = {}
            # In-flight snapshots stay durable until their summary is committed.
            for key, ticket in self._finalizing.items():
                data[key] = [u.to_dict() for u in ticket.utterances]
            for key, session in self._sessions.items():
                data.setdefault(key, []).extend(u.to_dict() for u in session.utterances)
            return data

    def _write_through(self) -> None:
        self._kv.set({LOGS_KEY: self._serialize()})
