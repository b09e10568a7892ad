"""
Website / dashboard API.

POST /api/start-chat — register a number and send it the welcome menu
GET  /api/stats      — headline numbers for the dashboard
"""

import logging
import re
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..conversation.engine import ConversationEngine
from ..core.dependencies import get_conversation_engine

logger = logging.getLogger(__name__)

dashboard_router = APIRouter(tags=["dashboard"])

_E164 = re.compile(r"^\+?[1-9]\d{1,14}$")


class StartChatRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    phone_number: str = Field(alias="phoneNumber")
    name: Optional[str] = None

    @field_validator("phone_number")
    @classmethod
    def _valid_phone(cls, v: str) -> str:
        v = "".join(v.split())
        if not _E164.match(v):
            raise ValueError("Please enter a valid phone number with country code (e.g., +1234567890)")
        return v if v.startswith("+") else f"+{v}"


class StartChatResponse(BaseModel):
    success: bool
    message: str


class StatsResponse(BaseModel):
    activeUsers: int
    messagesToday: int
    recommendations: int


@dashboard_router.post("/start-chat", response_model=StartChatResponse)
async def start_chat(
    body: StartChatRequest,
    engine: ConversationEngine = Depends(get_conversation_engine),
):
    try:
        result = await engine.start_chat(body.phone_number, body.name)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    logger.info("Start chat for %s (new_user=%s)", result.address, result.new_user)
    return StartChatResponse(success=True, message="Chat started. Check WhatsApp for our welcome message.")


@dashboard_router.get("/stats", response_model=StatsResponse)
async def get_stats(engine: ConversationEngine = Depends(get_conversation_engine)):
    return StatsResponse(
        activeUsers=await engine.get_user_count(),
        messagesToday=await engine.get_recent_session_count(24),
        recommendations=await engine.get_product_recommendation_count(),
    )
