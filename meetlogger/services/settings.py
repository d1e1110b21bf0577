"""Tunable pipeline policy read from the ``pipeline`` section of config.json.

Log caps, stoplists and model preferences changed several times while the
extension evolved, so none of them are hardcoded in the services.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields
from typing import Any

_logger = logging.getLogger("meetlogger.settings")

DEFAULT_PREFERRED_MODELS = (
    "models/gemini-2.0-flash",
    "models/gemini-1.5-flash",
    "models/gemini-2.0-flash-lite",
)

DEFAULT_FILLER_WORDS = (
    "uh",
    "um",
    "hmm",
    "mm",
    "ok",
    "okay",
    "yeah",
    "right",
    "はい",
    "ええ",
    "えー",
    "えっと",
    "あの",
    "うん",
    "なるほど",
)

DEFAULT_SELF_ALIASES = ("あなた", "自分", "You", "you")


@dataclass
class PipelineSettings:
    max_logs: int = 300
    clip_utterances: int = 120
    max_history: int = 30
    flush_delay_seconds: float = 1.0
    preferred_models: tuple[str, ...] = DEFAULT_PREFERRED_MODELS
    fast_marker: str = "flash"
    api_variants: tuple[str, ...] = ("v1", "v1beta")
    base_url: str = "https://generativelanguage.googleapis.com"
    temperature: float = 0.3
    max_output_tokens: int = 1024
    request_timeout_seconds: float = 60.0
    discovery_retries: int = 2
    filler_words: tuple[str, ...] = DEFAULT_FILLER_WORDS
    self_aliases: tuple[str, ...] = DEFAULT_SELF_ALIASES
    self_label: str = "Me"
    artifact_target: str = "local"
    google_docs_token: str = field(default="", repr=False)

    @classmethod
    def from_config(cls, config: dict) -> "PipelineSettings":
        """Build settings from the full config dict, ignoring unknown keys.

        Values of the wrong type are dropped with a warning so a bad edit to
        config.json degrades to defaults instead of failing boot.
        """
        section = config.get("pipeline", {}) if isinstance(config, dict) else {}
        if not isinstance(section, dict):
            _logger.warning("pipeline config is not an object; using defaults")
            return cls()
        defaults = cls()
        values: dict[str, Any] = {}
        for f in fields(cls):
            if f.name not in section:
                continue
            raw = section[f.name]
            default = getattr(defaults, f.name)
            coerced = _coerce(raw, default)
            if coerced is None:
                _logger.warning(
                    "Ignoring pipeline.%s=%r (expected %s)",
                    f.name,
                    raw,
                    type(default).__name__,
                )
                continue
            values[f.name] = coerced
        return cls(**values)


def _coerce(raw: Any, default: Any) -> Any:
    if isinstance(default, bool):
        return raw if isinstance(raw, bool) else None
    if isinstance(default, int):
        if isinstance(raw, bool) or not isinstance(raw, int) or raw <= 0:
            return None
        return raw
    if isinstance(default, float):
        if isinstance(raw, bool) or not isinstance(raw, (int, float)) or raw < 0:
            return None
        return float(raw)
    if isinstance(default, str):
        return raw if isinstance(raw, str) else None
    if isinstance(default, tuple):
        if not isinstance(raw, list) or not all(isinstance(item, str) for item in raw):
            return None
        return tuple(raw)
    return None
