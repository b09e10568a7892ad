"""
All database models. Imported here so Base.metadata sees them for create_all().
"""

from .base import RecordBase
from .user import User, SubscriptionTier
from .session import ChatSession
from .conversation import ConversationEntry, Direction

__all__ = [
    "RecordBase",
    "User", "SubscriptionTier",
    "ChatSession",
    "ConversationEntry", "Direction",
]
