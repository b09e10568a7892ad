"""
Chat sessions. Exactly one per user; reset in place, never deleted.
"""

from datetime import datetime

from sqlalchemy import String, Integer, JSON, DateTime, ForeignKey
from sqlalchemy.ext.mutable import MutableDict
from sqlalchemy.orm import Mapped, mapped_column

from .base import RecordBase, utcnow


class ChatSession(RecordBase):
    __tablename__ = "chat_sessions"

    # unique=True enforces the 1:1 user ↔ session rule at the database level
    user_id: Mapped[str] = mapped_column(
        String, ForeignKey("users.id"), unique=True, nullable=False, index=True
    )
    current_state: Mapped[str] = mapped_column(String, nullable=False, index=True)

    # Tagged context bag for the current state, e.g.
    # {"kind": "awaiting_clothing_choice", "body_image_ref": "https://..."}
    context: Mapped[dict] = mapped_column(MutableDict.as_mutable(JSON), nullable=True)

    # Bumped every time the flow restarts from scratch
    generation: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    last_interaction: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, index=True
    )
