"""Persistence tests: session store contract, transcript log, user store, stats."""
from datetime import timedelta

import pytest

from fashion_buddy.core.errors import SessionAlreadyExists, SessionNotFound
from fashion_buddy.models.base import utcnow
from fashion_buddy.models.conversation import Direction
from fashion_buddy.stores import stats
from fashion_buddy.stores.session_store import SessionStore
from fashion_buddy.stores.transcript import TranscriptLog
from fashion_buddy.stores.user_store import UserStore


@pytest.fixture
async def user(db):
    user = await UserStore(db).create("+919812345678", name="Asha")
    await db.commit()
    return user


class TestSessionStore:
    async def test_create_and_get(self, db, user):
        store = SessionStore(db)
        created = await store.create(user.id, "WELCOME")

        fetched = await store.get(user.id)
        assert fetched.id == created.id
        assert fetched.current_state == "WELCOME"
        assert fetched.generation == 1
        assert fetched.context is None

    async def test_one_session_per_user(self, db, user):
        store = SessionStore(db)
        await store.create(user.id, "WELCOME")

        with pytest.raises(SessionAlreadyExists):
            await store.create(user.id, "WELCOME")

    async def test_get_missing(self, db, user):
        assert await SessionStore(db).get(user.id) is None

    async def test_context_merges(self, db, user):
        store = SessionStore(db)
        session = await store.create(user.id, "AWAITING_BUDGET", context={"kind": "awaiting_budget", "a": 1})

        updated = await store.update(session.id, context={"b": 2})
        assert updated.context == {"kind": "awaiting_budget", "a": 1, "b": 2}

        updated = await store.update(session.id, context={"a": 3})
        assert updated.context == {"kind": "awaiting_budget", "a": 3, "b": 2}

    async def test_context_replace_and_clear(self, db, user):
        store = SessionStore(db)
        session = await store.create(user.id, "AWAITING_BUDGET", context={"kind": "awaiting_budget", "a": 1})

        updated = await store.update(session.id, context={"kind": "showing_products"}, replace_context=True)
        assert updated.context == {"kind": "showing_products"}

        updated = await store.update(session.id, context=None)
        assert updated.context is None

    async def test_update_without_context_keeps_it(self, db, user):
        store = SessionStore(db)
        session = await store.create(user.id, "AWAITING_BUDGET", context={"kind": "awaiting_budget"})

        updated = await store.update(session.id, current_state="WELCOME")
        assert updated.current_state == "WELCOME"
        assert updated.context == {"kind": "awaiting_budget"}

    async def test_update_touches_last_interaction(self, db, user):
        store = SessionStore(db)
        session = await store.create(user.id, "WELCOME")
        old = utcnow() - timedelta(days=2)
        await store.update(session.id, last_interaction=old)

        touched = await store.update(session.id, current_state="AWAITING_PHOTO")
        assert touched.last_interaction > old

    async def test_update_missing_session(self, db):
        with pytest.raises(SessionNotFound):
            await SessionStore(db).update("no-such-id", current_state="WELCOME")

    async def test_update_rejects_unknown_fields(self, db, user):
        store = SessionStore(db)
        session = await store.create(user.id, "WELCOME")

        with pytest.raises(ValueError):
            await store.update(session.id, user_id="someone-else")


class TestTranscriptLog:
    async def test_sequence_numbers_are_per_session(self, db, user):
        session = await SessionStore(db).create(user.id, "WELCOME")
        log = TranscriptLog(db)

        await log.append(session, Direction.USER, "hi")
        await log.append(session, Direction.SYSTEM, "welcome")
        await log.append(session, Direction.USER, "", media_url="https://img")

        entries = await log.list_entries(session.id)
        assert [e.sequence_number for e in entries] == [1, 2, 3]
        assert [e.direction for e in entries] == ["user", "system", "user"]
        assert entries[2].media_url == "https://img"

    async def test_entries_carry_generation(self, db, user):
        store = SessionStore(db)
        session = await store.create(user.id, "ENDED")
        log = TranscriptLog(db)

        await log.append(session, Direction.SYSTEM, "bye")
        session = await store.update(session.id, current_state="WELCOME", generation=2)
        await log.append(session, Direction.SYSTEM, "welcome back")

        assert [e.message for e in await log.list_entries(session.id, generation=2)] == ["welcome back"]
        assert len(await log.list_entries(session.id, generation=1)) == 1


class TestUserStore:
    async def test_usage_counters_increment(self, db, user):
        users = UserStore(db)

        assert await users.increment_usage(user, "color_analysis") == 1
        assert await users.increment_usage(user, "color_analysis") == 2
        assert user.virtual_tryon_count == 0

    async def test_profile_update(self, db, user):
        users = UserStore(db)
        await users.update_profile(user, skin_tone="Deep", undertone="Cool")

        fetched = await users.get_by_phone("+919812345678")
        assert (fetched.skin_tone, fetched.undertone) == ("Deep", "Cool")

    async def test_profile_update_cannot_change_tier(self, db, user):
        with pytest.raises(ValueError):
            await UserStore(db).update_profile(user, subscription_tier="premium")


class TestStats:
    async def test_recent_sessions_window(self, db, user):
        store = SessionStore(db)
        session = await store.create(user.id, "SHOWING_PRODUCTS")
        await db.commit()

        assert await stats.get_recent_session_count(db, 24) == 1
        assert await stats.get_product_recommendation_count(db) == 1

        await store.update(session.id, last_interaction=utcnow() - timedelta(hours=30))
        await db.commit()

        assert await stats.get_recent_session_count(db, 24) == 0
        assert await stats.get_user_count(db) == 1
