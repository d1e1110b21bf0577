from fastapi import APIRouter
from pydantic import BaseModel

from meetlogger.services.settings import PipelineSettings
from meetlogger.services.summarization import SummarizationService


class CredentialRequest(BaseModel):
    api_key: str = ""


def create_settings_router(
    summarization_service: SummarizationService, settings: PipelineSettings
) -> APIRouter:
    router = APIRouter()

    @router.get("/api/settings/credential")
    def get_credential_status() -> dict:
        # Never echo the key back; the screen only needs to know it is set.
        return {"configured": bool(summarization_service.get_credential())}

    @router.post("/api/settings/credential")
    def update_credential(payload: CredentialRequest) -> dict:
        summarization_service.set_credential(payload.api_key)
        return {"status": "ok", "configured": bool(payload.api_key.strip())}

    @router.get("/api/settings/pipeline")
    def get_pipeline_settings() -> dict:
        return {
            "max_logs": settings.max_logs,
            "clip_utterances": settings.clip_utterances,
            "max_history": settings.max_history,
            "flush_delay_seconds": settings.flush_delay_seconds,
            "preferred_models": list(settings.preferred_models),
            "fast_marker": settings.fast_marker,
            "api_variants": list(settings.api_variants),
            "temperature": settings.temperature,
            "max_output_tokens": settings.max_output_tokens,
            "artifact_target": settings.artifact_target,
        }

    return router
