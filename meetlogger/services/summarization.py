import logging
import os
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from meetlogger.services.errors import (
    EmptySession,
    GenerationError,
    MissingCredential,
    PipelineError,
)
from meetlogger.services.history import HistoryManager, SummaryRecord
from meetlogger.services.kv_store import KeyValueStore
from meetlogger.services.llm import GeminiProvider, LLMProvider
from meetlogger.services.model_discovery import ModelDescriptor, ModelDiscovery, pick
from meetlogger.services.session_log_store import SessionLogStore
from meetlogger.services.settings import PipelineSettings
from meetlogger.services.transcript_utils import (
    clip_recent,
    format_prompt_transcript,
    format_transcript_artifact,
    preprocess_utterances,
)

CREDENTIAL_KEY = "geminiApiKey"

ProviderFactory = Callable[[str, ModelDescriptor], LLMProvider]


class OrchestrationState(str, Enum):
    IDLE = "IDLE"
    DISCOVERING = "DISCOVERING"
    GENERATING = "GENERATING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"


@dataclass(frozen=True)
class SummaryOutcome:
    record: Optional[SummaryRecord] = None
    error: Optional[PipelineError] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.record is not None

    def to_response(self) -> dict:
        if self.ok:
            return {"ok": True, "summaryRecord": self.record.to_dict()}
        return self.error.to_response()


class SummarizationService:
    """End-of-meeting summarization.

    Runs once per finalize request: credential, log snapshot, clean-up and
    clipping, model discovery, one generation call, then hands the record to
    the history manager. Any failure puts the log back so the meeting can be
    summarized again later.
    """

    def __init__(
        self,
        kv_store: KeyValueStore,
        session_logs: SessionLogStore,
        history: HistoryManager,
        settings: PipelineSettings,
        *,
        discovery: Optional[ModelDiscovery] = None,
        provider_factory: Optional[ProviderFactory] = None,
        prompts_dir: Optional[str] = None,
    ) -> None:
        self._kv = kv_store
        self._session_logs = session_logs
        self._history = history
        self._settings = settings
        self._discovery = discovery or ModelDiscovery(
            api_variants=settings.api_variants,
            base_url=settings.base_url,
            timeout=settings.request_timeout_seconds,
            retries=settings.discovery_retries,
        )
        self._provider_factory = provider_factory or self._default_provider
        self._prompts_dir = prompts_dir or os.path.join(os.path.dirname(__file__), "..", "prompts")
        self._states: dict[str, OrchestrationState] = {}
        self._states_lock = threading.Lock()
        self._logger = logging.getLogger("meetlogger.summarization")

    def _default_provider(self, api_key: str, model: ModelDescriptor) -> LLMProvider:
        return GeminiProvider(
            api_key=api_key,
            model=model.name,
            api_variant=model.api_variant,
            base_url=self._settings.base_url,
            timeout=self._settings.request_timeout_seconds,
        )

    # ── credential ────────────────────────────────────────────────────

    def get_credential(self) -> str:
        value = self._kv.get([CREDENTIAL_KEY]).get(CREDENTIAL_KEY)
        return value.strip() if isinstance(value, str) else ""

    def set_credential(self, api_key: str) -> None:
        api_key = (api_key or "").strip()
        if api_key:
            self._kv.set({CREDENTIAL_KEY: api_key})
        else:
            self._kv.remove([CREDENTIAL_KEY])
        self._logger.info("API key %s", "saved" if api_key else "removed")

    # ── state ─────────────────────────────────────────────────────────

    def state_of(self, meeting_key: str) -> OrchestrationState:
        with self._states_lock:
            return self._states.get(meeting_key, OrchestrationState.IDLE)

    def _set_state(self, meeting_key: str, state: OrchestrationState) -> None:
        with self._states_lock:
            self._states[meeting_key] = state
        self._logger.debug("Summarization state: key=%s state=%s", meeting_key, state.value)

    def _forget_state(self, meeting_key: str) -> None:
        with self._states_lock:
            self._states.pop(meeting_key, None)

    def reset_states(self) -> None:
        with self._states_lock:
            self._states.clear()

    # ── pipeline ──────────────────────────────────────────────────────

    def list_models(self) -> dict:
        models = self._discovery.discover(self.get_credential())
        return {
            "ok": True,
            "apiVersion": models[0].api_variant,
            "models": [m.name for m in models],
        }

    def load_prompt_template(self) -> str:
        prompt_path = os.path.join(self._prompts_dir, "summary_prompt.txt")
        try:
            with open(prompt_path, "r", encoding="utf-8") as f:
                return f.read()
        except OSError as exc:
            raise GenerationError(f"missing summary prompt file: {prompt_path}") from exc

    def build_prompt(self, transcript: str) -> str:
        return self.load_prompt_template().replace("{{transcript}}", transcript)

    def summarize_meeting(self, meeting_key: str, reason: str = "unknown") -> SummaryOutcome:
        """Summarize and close the session for ``meeting_key``.

        Never raises; failures come back as ``SummaryOutcome.error``.
        """
        credential = self.get_credential()
        if not credential:
            self._logger.warning("Summarization skipped, no API key: key=%s", meeting_key)
            return SummaryOutcome(error=MissingCredential())

        ticket = self._session_logs.begin_finalize(meeting_key)
        if ticket is None:
            self._logger.info("Summarization skipped, empty log: key=%s", meeting_key)
            return SummaryOutcome(error=EmptySession(meeting_key))

        try:
            record = self._run(meeting_key, reason, credential, list(ticket.utterances))
            transcript_text = format_transcript_artifact(meeting_key, ticket.utterances)
            record = self._history.commit(record, transcript_text)
        except PipelineError as exc:
            self._session_logs.abort_finalize(ticket)
            self._set_state(meeting_key, OrchestrationState.FAILED)
            self._logger.warning(
                "Summarization failed: key=%s error=%s message=%s", meeting_key, exc.code, exc
            )
            return SummaryOutcome(error=exc)
        except Exception as exc:
            self._session_logs.abort_finalize(ticket)
            self._set_state(meeting_key, OrchestrationState.FAILED)
            self._logger.exception("Summarization error: key=%s", meeting_key)
            return SummaryOutcome(error=GenerationError(f"unexpected error: {exc}"))

        self._session_logs.complete_finalize(ticket)
        self._set_state(meeting_key, OrchestrationState.SUCCEEDED)
        # The session is closed; only failed runs stay tracked.
        self._forget_state(meeting_key)
        self._logger.info(
            "Summarization succeeded: key=%s reason=%s model=%s warning=%s",
            meeting_key,
            reason,
            record.model_used,
            record.warning,
        )
        return SummaryOutcome(record=record)

    def _run(self, meeting_key: str, reason: str, credential: str, utterances: list) -> SummaryRecord:
        settings = self._settings
        cleaned = preprocess_utterances(
            utterances,
            filler_words=settings.filler_words,
            self_aliases=settings.self_aliases,
            self_label=settings.self_label,
        )
        # Everything may have been filler; fall back to the raw log.
        clipped = clip_recent(cleaned or utterances, settings.clip_utterances)

        self._set_state(meeting_key, OrchestrationState.DISCOVERING)
        models = self._discovery.discover(credential)
        model = pick(models, settings.preferred_models, settings.fast_marker)

        self._set_state(meeting_key, OrchestrationState.GENERATING)
        provider = self._provider_factory(credential, model)
        self._logger.info(
            "Summarization using model=%s reason=%s utterances=%d/%d",
            provider.model_label,
            reason,
            len(clipped),
            len(utterances),
        )
        prompt = self.build_prompt(format_prompt_transcript(clipped))
        summary_text = provider.generate(
            prompt,
            temperature=settings.temperature,
            max_output_tokens=settings.max_output_tokens,
        )
        return SummaryRecord(
            meeting_key=meeting_key,
            model_used=provider.model_label,
            summary_text=summary_text,
            utterance_count=len(utterances),
            reason=reason,
        )
