"""
Read-only aggregations for the dashboard. No writes, ever.
"""

from datetime import timedelta

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from ..conversation.states import ConversationState
from ..models.base import utcnow
from ..models.session import ChatSession
from ..models.user import User


async def get_user_count(db: AsyncSession) -> int:
    result = await db.execute(select(func.count(User.id)))
    return result.scalar() or 0


async def get_recent_session_count(db: AsyncSession, window_hours: float) -> int:
    """Sessions with any interaction in the last `window_hours` hours."""
    cutoff = utcnow() - timedelta(hours=window_hours)
    result = await db.execute(
        select(func.count(ChatSession.id)).where(ChatSession.last_interaction > cutoff)
    )
    return result.scalar() or 0


async def get_product_recommendation_count(db: AsyncSession) -> int:
    """Sessions currently looking at product recommendations."""
    result = await db.execute(
        select(func.count(ChatSession.id))
        .where(ChatSession.current_state == ConversationState.SHOWING_PRODUCTS.value)
    )
    return result.scalar() or 0
