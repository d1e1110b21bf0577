from typing import Optional

from fastapi import APIRouter
from pydantic import BaseModel, Field

from meetlogger.services.background import BackgroundService
from meetlogger.services.history import HistoryManager


class SummarizeRequest(BaseModel):
    reason: Optional[str] = Field(None, description="Recorded on the summary; defaults to 'manual'")


def create_summaries_router(background: BackgroundService, history: HistoryManager) -> APIRouter:
    router = APIRouter()

    @router.get("/api/summaries")
    def list_summaries() -> list[dict]:
        return [record.to_dict() for record in history.records()]

    @router.get("/api/summaries/last")
    def last_summary() -> dict:
        last = history.last()
        return {"lastSummary": last.to_dict() if last else None}

    @router.post("/api/meetings/{meeting_key}/summarize")
    def summarize_meeting(meeting_key: str, payload: Optional[SummarizeRequest] = None) -> dict:
        reason = (payload.reason if payload else None) or "manual"
        return background.finalize(meeting_key, reason)

    return router
