"""
LINE Webhook Router

LINE requires an answer within 2 seconds, so the webhook only verifies
and parses the delivery, then processes events as a background task
after the response has been sent.
"""

import json
import logging
from typing import Any, Dict

from fastapi import APIRouter, BackgroundTasks, Depends, status
from fastapi.responses import JSONResponse

from sirichai_bot.dependencies import ServiceContainer, get_services
from sirichai_bot.middleware.line_signature import verified_line_body
from sirichai_bot.models.conversation import Platform
from sirichai_bot.services.line_events import LineEventProcessor, first_sender_id, notify_system_issue

logger = logging.getLogger(__name__)

router = APIRouter(tags=["line"])


async def process_webhook(services: ServiceContainer, payload: Dict[str, Any]) -> None:
    """Background task: handle every event of one webhook delivery"""
    events = payload.get("events") or []
    if not events:
        return
    if services.line_client is None:
        logger.warning("Received LINE events but LINE_CHANNEL_ACCESS_TOKEN is not set")
        return

    try:
        with services.database.session() as db:
            conversations = services.conversation_manager(db, Platform.LINE.value)

            sender_id = first_sender_id(events)
            authorized = conversations.is_user_authorized(sender_id)
            logger.info(f"User {sender_id} authorized: {'yes' if authorized else 'no'}")

            processor = LineEventProcessor(
                chatbot=services.chatbot,
                conversations=conversations,
                line_client=services.line_client,
                authorized=authorized,
                bot_user_id=payload.get("destination", ""),
            )
            await processor.process_events(events)
    except Exception as e:
        logger.error(f"LINE webhook processing failed: {str(e)}", exc_info=True)
        await notify_system_issue(services.line_client, events, payload.get("destination", ""))


@router.post("/")
@router.post("/line-webhook")
async def line_webhook(
    background_tasks: BackgroundTasks,
    body: bytes = Depends(verified_line_body),
    services: ServiceContainer = Depends(get_services),
):
    """
    Receive a LINE webhook delivery

    Returns:
        200 immediately; 400 for malformed JSON (403 for bad signatures is
        raised by verified_line_body)
    """
    try:
        payload = json.loads(body or b"{}")
    except ValueError:
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"success": False, "error": "Invalid JSON"})
    if not isinstance(payload, dict):
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"success": False, "error": "Invalid JSON"})

    logger.info(f"LINE webhook received {len(payload.get('events') or [])} events")
    background_tasks.add_task(process_webhook, services, payload)
    return {}
