"""
Main API router. Mounts all sub-routers.
"""

from fastapi import APIRouter

router = APIRouter()


# ── Health ───────────────────────────────────────────────────────────

@router.get("/health")
async def health():
    return {"status": "ok", "service": "fashion-buddy"}


# ── API routes ───────────────────────────────────────────────────────
# Twilio can't send auth headers; webhook signature checks live in front of the app.

from .webhook import webhook_router
from .dashboard import dashboard_router

router.include_router(webhook_router, prefix="/api")
router.include_router(dashboard_router, prefix="/api")
