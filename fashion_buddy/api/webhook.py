"""
Twilio WhatsApp webhook.

POST /api/webhook — inbound messages and delivery status callbacks (form-encoded)
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Form, Response

from ..conversation.engine import ConversationEngine
from ..core.dependencies import get_conversation_engine

logger = logging.getLogger(__name__)

webhook_router = APIRouter(tags=["webhook"])

EMPTY_TWIML = '<?xml version="1.0" encoding="UTF-8"?><Response></Response>'


@webhook_router.post("/webhook")
async def whatsapp_webhook(
    From: str = Form(default=""),
    Body: str = Form(default=""),
    MediaUrl0: Optional[str] = Form(default=None),
    MessageStatus: Optional[str] = Form(default=None),
    SmsStatus: Optional[str] = Form(default=None),
    engine: ConversationEngine = Depends(get_conversation_engine),
):
    """Hand the event to the engine. Replies go out through the REST API, not TwiML."""
    # Inbound messages carry SmsStatus=received; only a real delivery status counts
    status_tag = MessageStatus or (SmsStatus if SmsStatus and SmsStatus != "received" else None)

    result = await engine.handle_inbound_event(
        from_address=From,
        text=Body,
        media_ref=MediaUrl0,
        status_tag=status_tag,
    )
    if result is not None:
        logger.info("Webhook handled for %s → %s", result.address, result.to_state)

    return Response(content=EMPTY_TWIML, media_type="application/xml")
