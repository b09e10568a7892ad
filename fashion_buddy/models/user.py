"""
Users, keyed by their WhatsApp number.
"""

from enum import Enum

from sqlalchemy import String, Integer, JSON
from sqlalchemy.orm import Mapped, mapped_column

from .base import RecordBase


class SubscriptionTier(str, Enum):
    FREE = "free"
    PREMIUM = "premium"


class User(RecordBase):
    __tablename__ = "users"

    phone_number: Mapped[str] = mapped_column(String, unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String, nullable=True)
    subscription_tier: Mapped[str] = mapped_column(
        String, nullable=False, default=SubscriptionTier.FREE.value
    )

    # Last color analysis result
    skin_tone: Mapped[str] = mapped_column(String, nullable=True)
    undertone: Mapped[str] = mapped_column(String, nullable=True)

    # Metered usage. Only the conversation engine increments these
    color_analysis_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    virtual_tryon_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    preferences: Mapped[dict] = mapped_column(JSON, nullable=True, default=dict)
    # Example: {"budget": "1500-3000", "style": ["casual"], "sizes": ["M"]}
