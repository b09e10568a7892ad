"""
Transcript log — append-only record of every message in a session.

The engine only ever appends. Reading back is for the dashboard and for
audits; ordering is by per-session sequence number.
"""

import logging
from typing import Optional

from sqlalchemy import select, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.errors import TranscriptUnavailable
from ..models.conversation import ConversationEntry, Direction
from ..models.session import ChatSession

logger = logging.getLogger(__name__)


class TranscriptLog:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def append(
        self,
        session: ChatSession,
        direction: Direction,
        message: str,
        media_url: Optional[str] = None,
    ) -> ConversationEntry:
        try:
            result = await self.db.execute(
                select(func.max(ConversationEntry.sequence_number))
                .where(ConversationEntry.session_id == session.id)
            )
            seq = (result.scalar() or 0) + 1

            entry = ConversationEntry(
                session_id=session.id,
                user_id=session.user_id,
                generation=session.generation,
                direction=direction.value,
                message=message or "",
                media_url=media_url,
                sequence_number=seq,
            )
            self.db.add(entry)
            await self.db.flush()
        except SQLAlchemyError as e:
            logger.error("Transcript append failed for session %s: %s", session.id, e)
            raise TranscriptUnavailable(str(e)) from e

        return entry

    async def list_entries(
        self,
        session_id: str,
        generation: Optional[int] = None,
    ) -> list[ConversationEntry]:
        query = select(ConversationEntry).where(ConversationEntry.session_id == session_id)
        if generation is not None:
            query = query.where(ConversationEntry.generation == generation)
        result = await self.db.execute(query.order_by(ConversationEntry.sequence_number))
        return list(result.scalars().all())
