"""Page-context side: caption capture plus lifecycle, talking only in messages.

The agent is driven by whatever hosts the meeting page (a browser automation
bridge, a test, ...). It calls :meth:`PageAgent.on_mutation` with the
caption region text after every mutation batch and forwards lifecycle
signals. Everything it learns goes out through ``send``.
"""
from __future__ import annotations

import logging
from typing import Any, Callable, Iterable, Optional

import requests

from meetlogger.services.caption_capture import CaptionCaptureEngine, CaptionIncrement
from meetlogger.services.meeting_lifecycle import (
    MeetingEnded,
    MeetingLifecycleTracker,
    find_captions_control,
)

MessageSender = Callable[[dict], Optional[dict]]


class HttpMessageSender:
    """Posts messages to the background service's ``/api/messages`` route."""

    def __init__(self, base_url: str, *, timeout: float = 120.0, session: Any = None) -> None:
        self._url = base_url.rstrip("/") + "/api/messages"
        self._timeout = timeout
        self._http = session or requests.Session()
        self._logger = logging.getLogger("meetlogger.page.sender")

    def __call__(self, message: dict) -> Optional[dict]:
        try:
            response = self._http.post(self._url, json=message, timeout=self._timeout)
            response.raise_for_status()
            return response.json()
        except (requests.RequestException, ValueError) as exc:
            # The page must keep capturing even when the background is down.
            self._logger.warning("Message %s not delivered: %s", message.get("type"), exc)
            return None


class PageAgent:
    def __init__(self, send: MessageSender, address: str) -> None:
        self._send = send
        self._engine = CaptionCaptureEngine()
        self._tracker = MeetingLifecycleTracker(self._on_meeting_ended, address)
        self._captions_requested = False
        self._last_end_response: Optional[dict] = None
        self._logger = logging.getLogger("meetlogger.page")

    @property
    def meeting_key(self) -> Optional[str]:
        return self._tracker.meeting_key

    @property
    def tracker(self) -> MeetingLifecycleTracker:
        return self._tracker

    @property
    def last_end_response(self) -> Optional[dict]:
        return self._last_end_response

    def on_mutation(self, caption_text: Optional[str]) -> Optional[CaptionIncrement]:
        if not self._tracker.in_meeting:
            return None
        increment = self._engine.observe(caption_text)
        if increment is None:
            return None
        message = {
            "type": "LOG",
            "meetingKey": self._tracker.meeting_key,
            "text": increment.text,
        }
        if increment.speaker:
            message["speaker"] = increment.speaker
        self._send(message)
        return increment

    def request_captions(self, control_labels: Iterable[Optional[str]]) -> Optional[int]:
        """Return the index of the captions control to press, at most once."""
        if self._captions_requested:
            return None
        index = find_captions_control(control_labels)
        if index is not None:
            self._captions_requested = True
            self._logger.info("Captions control found at index %d", index)
        return index

    def rejoin(self, address: str) -> str:
        """Start a fresh session, e.g. after rejoining the same meeting."""
        self._engine.reset()
        return self._tracker.start(address)

    def on_address_change(self, address: str) -> bool:
        previous = self._tracker.meeting_key
        ended = self._tracker.on_address_change(address)
        if self._tracker.meeting_key != previous:
            self._engine.reset()
        return ended

    def on_leave_control(self, label: Optional[str]) -> bool:
        return self._tracker.on_leave_control(label)

    def on_in_call_poll(self, indicator_present: bool) -> bool:
        return self._tracker.on_in_call_poll(indicator_present)

    def on_unload(self) -> bool:
        return self._tracker.on_unload()

    def _on_meeting_ended(self, event: MeetingEnded) -> None:
        self._last_end_response = self._send(
            {
                "type": "MEETING_ENDED",
                "meetingKey": event.meeting_key,
                "reason": event.reason.value,
            }
        )
        self._logger.info("Finalize result: %s", self._last_end_response)
