"""Meeting identity and end-of-meeting detection for the page context.

The host UI has no reliable "meeting ended" event, so several signals are
combined. Whichever fires first ends the session; the guard is keyed by the
meeting key so duplicate signals from other sources are dropped.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable, Optional
from urllib.parse import urlparse

_MEETING_CODE_RE = re.compile(r"^/([a-z]{3}-[a-z]{4}-[a-z]{3})", re.IGNORECASE)
_NON_WORD_RE = re.compile(r"\W+")

# Labels of the leave / hang-up control across the UI languages we have seen.
LEAVE_KEYWORDS = (
    "leave call",
    "end call",
    "hang up",
    "leave meeting",
    "hangup",
    "通話を終了",
    "退出",
    "会議から退出",
    "quitter l'appel",
    "anruf beenden",
    "salir de la llamada",
)

CAPTION_KEYWORDS = ("字幕", "キャプション", "captions", "caption", "subtitles", "subtitle")


class LifecycleState(str, Enum):
    ACTIVE = "active"
    ENDING = "ending"
    ENDED = "ended"


class EndReason(str, Enum):
    LEAVE_CONTROL = "leave_control"
    ADDRESS_CHANGED = "address_changed"
    PAGE_UNLOAD = "page_unload"
    IN_CALL_INDICATOR_GONE = "in_call_indicator_gone"
    MANUAL = "manual"


@dataclass(frozen=True)
class MeetingEnded:
    meeting_key: str
    reason: EndReason


def derive_meeting_key(address: str) -> str:
    """Derive a stable key from a meeting URL (or bare path).

    ``https://meet.google.com/abc-defg-hij?authuser=0`` -> ``abc-defg-hij``.
    Addresses without a meeting code fall back to the sanitized path.
    """
    path = urlparse(address or "").path or ""
    match = _MEETING_CODE_RE.match(path)
    if match:
        return match.group(1)
    sanitized = _NON_WORD_RE.sub("_", path)
    if sanitized.strip("_"):
        return sanitized
    return "unknown"


def matches_keywords(label: Optional[str], keywords: Iterable[str]) -> bool:
    lowered = (label or "").strip().lower()
    if not lowered:
        return False
    return any(keyword.lower() in lowered for keyword in keywords)


def is_leave_control(label: Optional[str]) -> bool:
    return matches_keywords(label, LEAVE_KEYWORDS)


def find_captions_control(labels: Iterable[Optional[str]]) -> Optional[int]:
    """Index of the first control whose label looks like the captions toggle."""
    for index, label in enumerate(labels):
        if matches_keywords(label, CAPTION_KEYWORDS):
            return index
    return None


class MeetingLifecycleTracker:
    """Fire-once end detection, one guard per meeting session.

    ``emit`` is called exactly once per ended session with a
    :class:`MeetingEnded`. It is invoked after the guard moves to ENDING and
    the guard is ENDED once ``emit`` returns, so a signal raised from inside
    ``emit`` is ignored as well.
    """

    def __init__(self, emit: Callable[[MeetingEnded], None], address: str = "") -> None:
        self._emit = emit
        self._logger = logging.getLogger("meetlogger.lifecycle")
        self._meeting_key: Optional[str] = None
        self._state = LifecycleState.ENDED
        if address:
            self.start(address)

    @property
    def meeting_key(self) -> Optional[str]:
        return self._meeting_key

    @property
    def state(self) -> LifecycleState:
        return self._state

    @property
    def in_meeting(self) -> bool:
        return self._state == LifecycleState.ACTIVE

    def start(self, address: str) -> str:
        key = derive_meeting_key(address)
        if self._meeting_key == key and self._state == LifecycleState.ACTIVE:
            return key
        self._meeting_key = key
        self._state = LifecycleState.ACTIVE
        self._logger.info("Meeting session started: key=%s", key)
        return key

    def _end(self, reason: EndReason) -> bool:
        if self._state != LifecycleState.ACTIVE or self._meeting_key is None:
            self._logger.debug(
                "End signal ignored: reason=%s state=%s", reason.value, self._state.value
            )
            return False
        self._state = LifecycleState.ENDING
        key = self._meeting_key
        self._logger.info("Meeting ended: key=%s reason=%s", key, reason.value)
        try:
            self._emit(MeetingEnded(meeting_key=key, reason=reason))
        finally:
            self._state = LifecycleState.ENDED
        return True

    def on_leave_control(self, label: Optional[str]) -> bool:
        if not is_leave_control(label):
            return False
        return self._end(EndReason.LEAVE_CONTROL)

    def on_address_change(self, address: str) -> bool:
        """Handle navigation; a new meeting key ends the previous session.

        Returns True when an end signal was emitted.
        """
        key = derive_meeting_key(address)
        if key == self._meeting_key:
            return False
        ended = False
        if self._state == LifecycleState.ACTIVE:
            ended = self._end(EndReason.ADDRESS_CHANGED)
        self.start(address)
        return ended

    def on_unload(self) -> bool:
        return self._end(EndReason.PAGE_UNLOAD)

    def on_in_call_poll(self, indicator_present: bool) -> bool:
        if indicator_present:
            return False
        return self._end(EndReason.IN_CALL_INDICATOR_GONE)

    def end_manually(self) -> bool:
        return self._end(EndReason.MANUAL)
