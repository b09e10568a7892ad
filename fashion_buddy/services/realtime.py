"""
Realtime notifications. Thin wrapper around core.redis.
Typed event helpers for the conversation engine.
"""

from ..core import redis as _redis


# ── Session events ───────────────────────────────────────────────────

async def session_started(user_id: str, session_id: str, generation: int):
    await _redis.notify_dashboard(
        "session.started",
        {"user_id": user_id, "session_id": session_id, "generation": generation},
    )


async def session_transition(user_id: str, session_id: str, from_state: str, to_state: str):
    data = {"session_id": session_id, "from": from_state, "to": to_state}
    await _redis.notify_user(user_id, "session.transition", data)
    await _redis.notify_dashboard("session.transition", {"user_id": user_id, **data})


# ── User events ──────────────────────────────────────────────────────

async def user_registered(user_id: str, phone_number: str):
    await _redis.notify_dashboard(
        "user.registered", {"user_id": user_id, "phone_number": phone_number}
    )
