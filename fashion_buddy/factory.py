"""
FastAPI application factory.
"""

import logging
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from .core.config import get_settings
from .core.database import init_db, close_db, get_session_factory
from .core.redis import close_redis
from .core.storage import MEDIA_ROUTE
from .api.router import router

logger = logging.getLogger(__name__)


def create_app(engine=None) -> FastAPI:
    """Build the app. Pass a ConversationEngine to override the default wiring (tests)."""
    settings = get_settings()

    app = FastAPI(
        title="Fashion Buddy",
        description="WhatsApp fashion assistant",
        version="1.0.0",
        docs_url="/docs" if settings.env == "development" else None,
        redoc_url="/redoc" if settings.env == "development" else None,
    )

    # ── CORS ─────────────────────────────────────────────────────
    origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins or ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ── Local media (try-on results when S3 is off) ──────────────
    media_dir = Path(settings.local_storage_path)
    media_dir.mkdir(parents=True, exist_ok=True)
    app.mount(MEDIA_ROUTE, StaticFiles(directory=str(media_dir)), name="media")

    if engine is not None:
        app.state.conversation_engine = engine

    # ── Startup ──────────────────────────────────────────────────
    @app.on_event("startup")
    async def on_startup():
        logging.basicConfig(
            level=getattr(logging, settings.log_level.upper(), logging.INFO),
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        )
        logger.info("Starting Fashion Buddy (env=%s)", settings.env)

        # Create database tables
        await init_db()

        if getattr(app.state, "conversation_engine", None) is None:
            from .conversation.engine import ConversationEngine
            app.state.conversation_engine = ConversationEngine(session_factory=get_session_factory())

        # Log feature flag state
        from .core.flags import get_flags
        flags = get_flags()
        logger.info(
            "Flags: twilio=%s s3=%s redis=%s llm=%s",
            flags.use_twilio, flags.use_s3, flags.use_redis, flags.llm_provider,
        )
        logger.info(
            "Free tier: %d color analyses, %d try-ons; auto-register=%s",
            settings.free_color_analysis_limit, settings.free_virtual_tryon_limit,
            settings.auto_register_users,
        )

        logger.info("Fashion Buddy is ready")

    # ── Shutdown ─────────────────────────────────────────────────
    @app.on_event("shutdown")
    async def on_shutdown():
        from .services.llm import close_client
        await close_client()
        await close_db()
        await close_redis()
        logger.info("Fashion Buddy shut down")

    # ── Routes ───────────────────────────────────────────────────
    app.include_router(router)

    return app
