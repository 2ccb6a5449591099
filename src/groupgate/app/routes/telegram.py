"""Telegram webhook: receives Bot API updates and queues them for handling.

The route only validates and enqueues; the dispatcher worker handles updates
one at a time, so Telegram gets a fast 200 and never retries.
"""

import hmac
import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import ValidationError

from groupgate.app.config import Settings, get_settings
from groupgate.domain.schemas import Update
from groupgate.services.update_router import UpdateDispatcher

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/telegram", tags=["telegram"])

SECRET_HEADER = "x-telegram-bot-api-secret-token"


def get_dispatcher(request: Request) -> UpdateDispatcher:
    """FastAPI dependency: the dispatcher created in the app lifespan."""
    dispatcher = getattr(request.app.state, "dispatcher", None)
    if dispatcher is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Bot is not running",
        )
    return dispatcher


@router.post("/webhook")
async def telegram_webhook(
    request: Request,
    settings: Settings = Depends(get_settings),
    dispatcher: UpdateDispatcher = Depends(get_dispatcher),
):
    """Accept one update from Telegram."""
    if settings.webhook_secret:
        provided = request.headers.get(SECRET_HEADER, "")
        if not hmac.compare_digest(provided, settings.webhook_secret):
            logger.warning("Invalid Telegram webhook secret")
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid webhook secret",
            )

    try:
        update = Update.model_validate(await request.json())
    except (ValueError, ValidationError) as e:
        # Telegram redelivers anything answered with a non-2xx status
        logger.warning("Malformed update dropped: %s", e)
        return {"ok": False, "error": "malformed_update"}

    dispatcher.enqueue(update)
    return {"ok": True}
