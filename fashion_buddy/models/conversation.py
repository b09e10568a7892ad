"""
Conversation transcript. Append-only; one row per inbound or outbound message.
"""

from enum import Enum

from sqlalchemy import String, Text, Integer, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from .base import RecordBase


class Direction(str, Enum):
    USER = "user"
    SYSTEM = "system"


class ConversationEntry(RecordBase):
    __tablename__ = "conversation_entries"
    __table_args__ = (
        UniqueConstraint("session_id", "sequence_number", name="uq_entry_session_seq"),
    )

    session_id: Mapped[str] = mapped_column(
        String, ForeignKey("chat_sessions.id"), nullable=False, index=True
    )
    user_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    generation: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    direction: Mapped[str] = mapped_column(String, nullable=False)  # user, system
    message: Mapped[str] = mapped_column(Text, nullable=False, default="")
    media_url: Mapped[str] = mapped_column(Text, nullable=True)
    sequence_number: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
