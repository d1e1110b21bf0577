import logging

from fastapi import APIRouter, Body, HTTPException

from meetlogger.services.background import BackgroundService, InvalidMessage


def create_messages_router(background: BackgroundService) -> APIRouter:
    router = APIRouter()
    logger = logging.getLogger("meetlogger.api.messages")

    @router.post("/api/messages")
    def post_message(payload: dict = Body(...)) -> dict:
        """Single entry point for page-context messages (LOG, MEETING_ENDED, ...)."""
        try:
            return background.handle(payload)
        except InvalidMessage as exc:
            logger.warning("Rejected message type=%r: %s", payload.get("type"), exc)
            raise HTTPException(status_code=400, detail=str(exc)) from exc

    return router
