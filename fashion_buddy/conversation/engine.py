"""
Conversation engine — turns inbound WhatsApp events into state transitions.

Flow for one event:
  1. Normalize the sender, drop delivery receipts and our own echoes
  2. Take the sender's lock (events of one user run strictly in order)
  3. Resolve user + session (auto-register / cold start when missing)
  4. Run the state handler → Transition
  5. Apply it: user fields, usage counters, session, transcript. Commit.
  6. Send the reply. Delivery failures are logged, never retried.

A session integrity problem or a transcript outage rolls the whole event back;
the user gets one apology and the event is dropped.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.config import Settings, get_settings
from ..core.database import get_session_factory
from ..core.errors import DeliveryError, SessionIntegrityError, TranscriptUnavailable
from ..core.locks import KeyedLock
from ..models.conversation import Direction
from ..models.session import ChatSession
from ..models.user import User
from ..services import realtime
from ..services.dispatcher import normalize_address
from ..stores import stats
from ..stores.session_store import SessionStore
from ..stores.transcript import TranscriptLog
from ..stores.user_store import UserStore
from . import messages, transitions
from .quota import QuotaTracker
from .states import INITIAL_STATE, ConversationState, dump_context, load_context
from .transitions import ContextChange, InboundEvent, Providers, Reply, Transition, TurnDeps

logger = logging.getLogger(__name__)

# Twilio delivery callbacks. They say nothing about the conversation.
STATUS_TAGS = {"read", "delivered", "sent", "queued", "sending", "failed", "undelivered"}


@dataclass
class TurnResult:
    address: str
    reply: Reply
    user_id: Optional[str] = None
    session_id: Optional[str] = None
    from_state: Optional[str] = None
    to_state: Optional[str] = None
    generation: int = 1
    new_user: bool = False
    new_session: bool = False


class ConversationEngine:
    def __init__(
        self,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        providers: Optional[Providers] = None,
        settings: Optional[Settings] = None,
        locks: Optional[KeyedLock] = None,
        quota: Optional[QuotaTracker] = None,
    ):
        self.session_factory = session_factory or get_session_factory()
        self.providers = providers or Providers.default()
        self.settings = settings or get_settings()
        self.locks = locks or KeyedLock()
        self.quota = quota or QuotaTracker(self.settings)

    # ── Inbound ──────────────────────────────────────────────────────

    async def handle_inbound_event(
        self,
        from_address: str,
        text: Optional[str] = "",
        media_ref: Optional[str] = None,
        status_tag: Optional[str] = None,
    ) -> Optional[TurnResult]:
        """Process one inbound event. Returns None when the event was absorbed."""
        event = InboundEvent(
            from_address=normalize_address(from_address),
            text=text or "",
            media_ref=media_ref or None,
            status_tag=(status_tag or "").strip().lower() or None,
        )

        if event.status_tag:
            if event.status_tag in STATUS_TAGS:
                logger.debug("Absorbed status '%s' from %s", event.status_tag, event.from_address)
                return None
            if not event.has_content:
                logger.warning("Ignoring unknown status '%s' from %s", event.status_tag, event.from_address)
                return None

        if not event.from_address:
            logger.warning("Ignoring event with no sender")
            return None

        own_number = normalize_address(self.settings.twilio_phone_number)
        if own_number and event.from_address == own_number:
            logger.debug("Ignoring message from our own number")
            return None

        async with self.locks.hold(event.from_address):
            async with self.session_factory() as db:
                try:
                    result = await self._run_turn(db, event)
                    await db.commit()
                except (SessionIntegrityError, TranscriptUnavailable) as e:
                    await db.rollback()
                    logger.error("Dropped event from %s: %s", event.from_address, e)
                    await self._send(event.from_address, Reply(messages.PROCESSING_FAILED))
                    return None
                except Exception:
                    await db.rollback()
                    logger.exception("Unexpected failure handling event from %s", event.from_address)
                    await self._send(event.from_address, Reply(messages.PROCESSING_FAILED))
                    raise

            await self._send(event.from_address, result.reply)

        await self._notify(result)
        return result

    async def _run_turn(self, db: AsyncSession, event: InboundEvent) -> TurnResult:
        users = UserStore(db)
        sessions = SessionStore(db)
        transcript = TranscriptLog(db)

        user = await users.get_by_phone(event.from_address)
        new_user = False
        if user is None:
            if not self.settings.auto_register_users:
                logger.info("Message from unregistered number %s", event.from_address)
                return TurnResult(address=event.from_address, reply=Reply(messages.REGISTER_FIRST))
            user = await users.create(event.from_address)
            new_user = True

        session = await sessions.get(user.id)
        if session is None:
            return await self._cold_start(sessions, transcript, user, event, new_user)

        state = ConversationState.parse(session.current_state)
        context = load_context(state, session.context)
        if session.context and context is None:
            logger.info(
                "Ignoring stale context (kind=%s) in state %s for session %s",
                session.context.get("kind"), session.current_state, session.id,
            )

        deps = TurnDeps(user=user, context=context, providers=self.providers, quota=self.quota)
        transition = await transitions.handle(state, event, deps)

        from_state = session.current_state
        session = await self._apply(users, sessions, user, session, transition)

        if event.has_content:
            await transcript.append(session, Direction.USER, event.text, event.media_ref)
        await transcript.append(session, Direction.SYSTEM, transition.reply.text, transition.reply.media_url)

        logger.info(
            "Session %s: %s → %s (gen=%d)",
            session.id, from_state, session.current_state, session.generation,
        )
        return TurnResult(
            address=event.from_address,
            reply=transition.reply,
            user_id=user.id,
            session_id=session.id,
            from_state=from_state,
            to_state=session.current_state,
            generation=session.generation,
            new_user=new_user,
        )

    async def _cold_start(
        self,
        sessions: SessionStore,
        transcript: TranscriptLog,
        user: User,
        event: InboundEvent,
        new_user: bool,
    ) -> TurnResult:
        """First contact: open a session at the menu. The message itself is not interpreted."""
        session = await sessions.create(user.id, INITIAL_STATE.value)
        reply = Reply(messages.WELCOME_MESSAGE)

        if event.has_content:
            await transcript.append(session, Direction.USER, event.text, event.media_ref)
        await transcript.append(session, Direction.SYSTEM, reply.text)

        return TurnResult(
            address=event.from_address,
            reply=reply,
            user_id=user.id,
            session_id=session.id,
            to_state=session.current_state,
            generation=session.generation,
            new_user=new_user,
            new_session=True,
        )

    async def _apply(
        self,
        users: UserStore,
        sessions: SessionStore,
        user: User,
        session: ChatSession,
        transition: Transition,
    ) -> ChatSession:
        if transition.user_updates:
            await users.update_profile(user, **transition.user_updates)
        for feature in transition.usage:
            await self.quota.record(users, user, feature)

        fields = {"current_state": transition.next_state.value}
        if transition.new_generation:
            fields["generation"] = session.generation + 1

        if transition.context_change == ContextChange.CLEAR:
            fields["context"] = None
        elif transition.context_change == ContextChange.REPLACE:
            fields["context"] = dump_context(transition.context)
            fields["replace_context"] = True

        return await sessions.update(session.id, **fields)

    # ── Start chat (website form) ────────────────────────────────────

    async def start_chat(self, address: str, name: Optional[str] = None) -> TurnResult:
        """Register the number if needed and put its session back at the menu."""
        address = normalize_address(address)
        if not address:
            raise ValueError("A phone number is required")

        async with self.locks.hold(address):
            async with self.session_factory() as db:
                try:
                    result = await self._start_chat(db, address, name)
                    await db.commit()
                except Exception:
                    await db.rollback()
                    raise

            await self._send(address, result.reply)

        await self._notify(result)
        return result

    async def _start_chat(self, db: AsyncSession, address: str, name: Optional[str]) -> TurnResult:
        users = UserStore(db)
        sessions = SessionStore(db)
        transcript = TranscriptLog(db)

        user = await users.get_by_phone(address)
        new_user = user is None
        if new_user:
            user = await users.create(address, name=name)
        elif name and not user.name:
            await users.update_profile(user, name=name)

        session = await sessions.get(user.id)
        from_state = session.current_state if session else None
        if session is None:
            session = await sessions.create(user.id, INITIAL_STATE.value)
        else:
            session = await sessions.update(
                session.id,
                current_state=INITIAL_STATE.value,
                generation=session.generation + 1,
                context=None,
            )

        reply = Reply(messages.WELCOME_MESSAGE)
        await transcript.append(session, Direction.SYSTEM, reply.text)
        logger.info("Chat started for %s (user=%s, gen=%d)", address, user.id, session.generation)

        return TurnResult(
            address=address,
            reply=reply,
            user_id=user.id,
            session_id=session.id,
            from_state=from_state,
            to_state=session.current_state,
            generation=session.generation,
            new_user=new_user,
            new_session=from_state is None,
        )

    # ── Outbound ─────────────────────────────────────────────────────

    async def _send(self, address: str, reply: Reply) -> None:
        try:
            await self.providers.dispatcher.send(address, reply.text, reply.media_url)
        except DeliveryError as e:
            logger.error("Reply to %s not delivered: %s", address, e)

    async def _notify(self, result: TurnResult) -> None:
        if result.user_id is None:
            return
        if result.new_user:
            await realtime.user_registered(result.user_id, result.address)
        if result.new_session:
            await realtime.session_started(result.user_id, result.session_id, result.generation)
        else:
            await realtime.session_transition(
                result.user_id, result.session_id, result.from_state or "", result.to_state or "",
            )

    # ── Dashboard stats ──────────────────────────────────────────────

    async def get_user_count(self) -> int:
        async with self.session_factory() as db:
            return await stats.get_user_count(db)

    async def get_recent_session_count(self, window_hours: float = 24) -> int:
        async with self.session_factory() as db:
            return await stats.get_recent_session_count(db, window_hours)

    async def get_product_recommendation_count(self) -> int:
        async with self.session_factory() as db:
            return await stats.get_product_recommendation_count(db)
