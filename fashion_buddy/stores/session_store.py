"""
Session store — one live chat session per user.

Contract:
  get(user_id)              → ChatSession or None
  create(user_id, ...)      → ChatSession, raises SessionAlreadyExists
  update(session_id, ...)   → ChatSession, raises SessionNotFound

`context` updates are a shallow merge into the stored bag. Passing
context=None clears it; replace_context=True swaps the whole bag.
"""

import logging
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.errors import SessionAlreadyExists, SessionNotFound
from ..models.base import utcnow
from ..models.session import ChatSession

logger = logging.getLogger(__name__)

_UNSET: Any = object()
_UPDATABLE = {"current_state", "generation", "last_interaction"}


class SessionStore:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, user_id: str) -> Optional[ChatSession]:
        result = await self.db.execute(
            select(ChatSession).where(ChatSession.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def get_by_id(self, session_id: str) -> Optional[ChatSession]:
        return await self.db.get(ChatSession, session_id)

    async def create(
        self,
        user_id: str,
        current_state: str,
        context: Optional[dict] = None,
    ) -> ChatSession:
        """Create the user's session. Fails if one already exists."""
        if await self.get(user_id) is not None:
            raise SessionAlreadyExists(user_id)

        session = ChatSession(
            user_id=user_id,
            current_state=current_state,
            context=dict(context) if context else None,
            generation=1,
            last_interaction=utcnow(),
        )
        self.db.add(session)
        try:
            await self.db.flush()
        except IntegrityError as e:
            # Lost a create race against another writer for the same user
            logger.warning("Session create race for user %s: %s", user_id, e)
            raise SessionAlreadyExists(user_id) from e

        logger.info("Created session %s for user %s (state=%s)", session.id, user_id, current_state)
        return session

    async def update(
        self,
        session_id: str,
        *,
        context: Optional[dict] = _UNSET,
        replace_context: bool = False,
        **fields,
    ) -> ChatSession:
        """Apply a partial update. Unknown field names are rejected."""
        unknown = set(fields) - _UPDATABLE
        if unknown:
            raise ValueError(f"Cannot update session fields: {sorted(unknown)}")

        session = await self.get_by_id(session_id)
        if session is None:
            raise SessionNotFound(session_id)

        for name, value in fields.items():
            setattr(session, name, value)

        if context is None:
            session.context = None
        elif context is not _UNSET:
            if replace_context or not session.context:
                session.context = dict(context)
            else:
                merged = dict(session.context)
                merged.update(context)
                session.context = merged

        if "last_interaction" not in fields:
            session.last_interaction = utcnow()

        await self.db.flush()
        logger.debug(
            "Updated session %s (state=%s, context_keys=%s)",
            session_id, session.current_state, sorted((session.context or {}).keys()),
        )
        return session
