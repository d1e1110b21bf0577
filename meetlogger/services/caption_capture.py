"""Caption diffing: turn a growing caption region into utterance increments.

The host meeting UI renders captions as one cumulative block of text. Each
mutation batch hands us that block; we emit only what was added since the
previous batch. The functions here are pure so they can be exercised without
any rendering surface.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Iterable, Iterator, Optional

_WHITESPACE_RE = re.compile(r"\s+")
# "Speaker: text" with an ASCII or full-width colon.
_SPEAKER_PREFIX_RE = re.compile(r"^(.{1,40}?)[:：]\s*(.+)$", re.DOTALL)

MAX_SPEAKER_LENGTH = 40

_logger = logging.getLogger("meetlogger.capture")


@dataclass(frozen=True)
class CaptionIncrement:
    increment: str
    text: str
    speaker: Optional[str]
    snapshot: str


def collapse_whitespace(text: str) -> str:
    return _WHITESPACE_RE.sub(" ", text or "").strip()


def compute_increment(last_snapshot: str, current_snapshot: str) -> Optional[str]:
    """Return the newly added caption text, or None when nothing new appeared.

    Both snapshots must already be whitespace-collapsed. When the region was
    replaced rather than extended the whole current snapshot is returned.
    """
    if not current_snapshot or current_snapshot == last_snapshot:
        return None
    if last_snapshot and current_snapshot.startswith(last_snapshot):
        diff = current_snapshot[len(last_snapshot):].strip()
    else:
        diff = current_snapshot.strip()
    return diff or None


def parse_speaker(raw_block: str, increment: str) -> tuple[Optional[str], str]:
    """Best-effort split of a caption block into (speaker, spoken text).

    ``raw_block`` is the region text before whitespace collapsing, so line
    breaks are still visible. The spoken text only replaces ``increment``
    when the increment is the whole block; otherwise the increment is kept.
    """
    lines = [line.strip() for line in (raw_block or "").split("\n")]
    lines = [line for line in lines if line]
    whole_block = collapse_whitespace(raw_block) == increment

    if len(lines) >= 2:
        speaker = lines[0]
        if len(speaker) <= MAX_SPEAKER_LENGTH:
            spoken = collapse_whitespace(" ".join(lines[1:]))
            return speaker, (spoken if whole_block and spoken else increment)

    match = _SPEAKER_PREFIX_RE.match(collapse_whitespace(raw_block))
    if match:
        speaker = match.group(1).strip()
        spoken = match.group(2).strip()
        if speaker:
            return speaker, (spoken if whole_block and spoken else increment)

    return None, increment


class CaptionCaptureEngine:
    """Stateful wrapper around :func:`compute_increment` for one caption region."""

    def __init__(self) -> None:
        self._last_snapshot = ""

    @property
    def last_snapshot(self) -> str:
        return self._last_snapshot

    def reset(self) -> None:
        self._last_snapshot = ""

    def observe(self, raw_text: Optional[str]) -> Optional[CaptionIncrement]:
        """Process one mutation batch; returns the increment to log, if any."""
        current = collapse_whitespace(raw_text or "")
        diff = compute_increment(self._last_snapshot, current)
        if diff is None:
            return None
        self._last_snapshot = current
        try:
            speaker, text = parse_speaker(raw_text or "", diff)
        except Exception as exc:  # heuristic only; never block emission
            _logger.debug("Speaker parse failed: %s", exc)
            speaker, text = None, diff
        return CaptionIncrement(increment=diff, text=text, speaker=speaker, snapshot=current)

    def stream(self, snapshots: Iterable[Optional[str]]) -> Iterator[CaptionIncrement]:
        for raw_text in snapshots:
            increment = self.observe(raw_text)
            if increment is not None:
                yield increment
