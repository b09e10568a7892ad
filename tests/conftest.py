"""Shared fixtures: a throwaway SQLite database per test and in-memory providers.

Run with: pytest tests/ -v
"""
import os

# Keep every real integration switched off before any settings get cached
os.environ.setdefault("FF_USE_TWILIO", "false")
os.environ.setdefault("FF_USE_REDIS", "false")
os.environ.setdefault("FF_USE_S3", "false")

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from fashion_buddy.conversation.engine import ConversationEngine
from fashion_buddy.conversation.transitions import Providers
from fashion_buddy.core.config import Settings
from fashion_buddy.core.database import init_db
from fashion_buddy.core.locks import KeyedLock
from fashion_buddy.models.base import utcnow
from fashion_buddy.models.session import ChatSession
from fashion_buddy.models.user import User
from fashion_buddy.services.shopping import ShoppingProduct
from fashion_buddy.services.vision import SkinToneAnalysis

BOT_NUMBER = "+14155238886"
USER_NUMBER = "+919812345678"


# ── Fake providers ───────────────────────────────────────────────────


class FakeVision:
    def __init__(self):
        self.calls = []
        self.error = None
        self.result = SkinToneAnalysis(
            tone="Medium Brown",
            undertone="Neutral",
            recommended_colors=["Navy Blue", "Emerald Green"],
            colors_to_avoid=["Bright Orange"],
        )

    async def analyze(self, image_bytes):
        self.calls.append(image_bytes)
        if self.error:
            raise self.error
        return self.result


class FakeShopping:
    def __init__(self):
        self.calls = []
        self.error = None
        self.products = [
            ShoppingProduct(
                title="Navy Blue Linen Kurta", price=1899.0, brand="Fabindia",
                link="https://shop.example/kurta", source="Myntra",
            ),
            ShoppingProduct(
                title="Emerald Cotton Shirt", price=2499.0, brand="Manyavar",
                link="https://shop.example/shirt", source="Ajio",
            ),
        ]

    async def search(self, query, budget_range):
        self.calls.append((query, budget_range))
        if self.error:
            raise self.error
        return list(self.products)


class FakeTryOn:
    def __init__(self):
        self.calls = []
        self.error = None

    async def compose(self, body_image, garment_description):
        self.calls.append((body_image, garment_description))
        if self.error:
            raise self.error
        return b"\x89PNG composed"


class FakeMedia:
    def __init__(self):
        self.fetched = []
        self.published = []
        self.fetch_error = None

    async def fetch(self, media_ref):
        self.fetched.append(media_ref)
        if self.fetch_error:
            raise self.fetch_error
        return f"image:{media_ref}".encode()

    async def publish(self, image_bytes, user_id):
        url = f"https://media.test/{user_id}/tryon-{len(self.published) + 1}.png"
        self.published.append((image_bytes, user_id, url))
        return url


class FakeDispatcher:
    def __init__(self):
        self.sent = []
        self.error = None

    async def send(self, address, text, media_ref=None):
        if self.error:
            raise self.error
        self.sent.append((address, text, media_ref))

    @property
    def texts(self):
        return [text for _, text, _ in self.sent]


# ── Database ─────────────────────────────────────────────────────────


@pytest.fixture
async def db_engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(bind=db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


# ── Engine ───────────────────────────────────────────────────────────


@pytest.fixture
def settings():
    return Settings(
        TWILIO_PHONE_NUMBER=BOT_NUMBER,
        FREE_COLOR_ANALYSIS_LIMIT=1,
        FREE_VIRTUAL_TRYON_LIMIT=1,
        AUTO_REGISTER_USERS=True,
    )


@pytest.fixture
def providers():
    return Providers(
        vision=FakeVision(),
        shopping=FakeShopping(),
        tryon=FakeTryOn(),
        media=FakeMedia(),
        dispatcher=FakeDispatcher(),
    )


@pytest.fixture
def engine(session_factory, providers, settings):
    return ConversationEngine(
        session_factory=session_factory,
        providers=providers,
        settings=settings,
        locks=KeyedLock(),
    )


@pytest.fixture
def seed(session_factory):
    """Create a user (and optionally a session in a given state)."""

    async def _seed(
        phone=USER_NUMBER,
        state=None,
        context=None,
        tier="free",
        skin_tone=None,
        color_analysis_count=0,
        virtual_tryon_count=0,
        generation=1,
    ):
        async with session_factory() as db:
            user = User(
                phone_number=phone,
                subscription_tier=tier,
                skin_tone=skin_tone,
                color_analysis_count=color_analysis_count,
                virtual_tryon_count=virtual_tryon_count,
                preferences={},
            )
            db.add(user)
            await db.flush()
            if state is not None:
                db.add(ChatSession(
                    user_id=user.id,
                    current_state=state,
                    context=context,
                    generation=generation,
                    last_interaction=utcnow(),
                ))
            await db.commit()
            return user

    return _seed


@pytest.fixture
def snapshot(session_factory):
    """Reload (user, session, transcript entries) for a phone number."""
    from fashion_buddy.stores.session_store import SessionStore
    from fashion_buddy.stores.transcript import TranscriptLog
    from fashion_buddy.stores.user_store import UserStore

    async def _snapshot(phone=USER_NUMBER):
        async with session_factory() as db:
            user = await UserStore(db).get_by_phone(phone)
            if user is None:
                return None, None, []
            session = await SessionStore(db).get(user.id)
            entries = await TranscriptLog(db).list_entries(session.id) if session else []
            return user, session, entries

    return _snapshot
