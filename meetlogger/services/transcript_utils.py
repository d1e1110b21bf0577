"""Utilities for preparing caption logs for the prompt and for artifacts."""

import re
from typing import Iterable, Optional, Sequence

from meetlogger.services.session_log_store import Utterance

_WHITESPACE_RE = re.compile(r"\s+")
_PUNCTUATION_RE = re.compile(r"[\s.,!?、。！？…~〜]+")


def _is_filler(text: str, filler_words: set[str]) -> bool:
    tokens = [t for t in _PUNCTUATION_RE.split(text.lower()) if t]
    return bool(tokens) and all(token in filler_words for token in tokens)


def preprocess_utterances(
    utterances: Iterable[Utterance],
    *,
    filler_words: Sequence[str] = (),
    self_aliases: Sequence[str] = (),
    self_label: str = "Me",
) -> list[Utterance]:
    """Quality clean-up before summarization.

    - collapse whitespace in text and speaker
    - map self-reference speaker aliases ("You", "あなた", ...) to one label
    - drop utterances made only of filler tokens (acknowledgements, "um", ...)

    Order is preserved and nothing here is required for correctness.
    """
    fillers = {w.lower() for w in filler_words}
    aliases = {a.strip().lower() for a in self_aliases if a.strip()}
    cleaned: list[Utterance] = []
    for utterance in utterances:
        text = _WHITESPACE_RE.sub(" ", utterance.text).strip()
        if not text or (fillers and _is_filler(text, fillers)):
            continue
        speaker: Optional[str] = None
        if utterance.speaker:
            speaker = _WHITESPACE_RE.sub(" ", utterance.speaker).strip() or None
            if speaker and speaker.lower() in aliases:
                speaker = self_label
        cleaned.append(Utterance(text=text, speaker=speaker, timestamp=utterance.timestamp))
    return cleaned


def clip_recent(utterances: Sequence[Utterance], limit: int) -> list[Utterance]:
    """Keep only the most recent ``limit`` utterances."""
    if limit <= 0:
        return []
    return list(utterances[-limit:])


def consolidate_utterances(utterances: Iterable[Utterance]) -> list[Utterance]:
    """Merge consecutive utterances from the same known speaker.

    Captions arrive in small increments, so one spoken turn is usually many
    log entries. The first timestamp of a run is kept. Utterances without a
    speaker are never merged.
    """
    consolidated: list[Utterance] = []
    for utterance in utterances:
        if consolidated:
            current = consolidated[-1]
            if utterance.speaker and current.speaker == utterance.speaker:
                consolidated[-1] = Utterance(
                    text=f"{current.text} {utterance.text}",
                    speaker=current.speaker,
                    timestamp=current.timestamp,
                )
                continue
        consolidated.append(utterance)
    return consolidated


def format_line(utterance: Utterance) -> str:
    if utterance.speaker:
        return f"{utterance.speaker}: {utterance.text}"
    return utterance.text


def format_prompt_transcript(utterances: Iterable[Utterance]) -> str:
    return "\n".join(format_line(u) for u in utterances)


def format_transcript_artifact(meeting_key: str, utterances: Iterable[Utterance]) -> str:
    """Full transcript file body: header plus one timestamped line per turn."""
    lines = [f"Meeting: {meeting_key}", ""]
    for utterance in consolidate_utterances(utterances):
        lines.append(f"[{utterance.timestamp}] {format_line(utterance)}")
    return "\n".join(lines) + "\n"
