"""
FastAPI dependencies. Injected into route handlers.
"""

from fastapi import HTTPException, Request, status

from ..conversation.engine import ConversationEngine


def get_conversation_engine(request: Request) -> ConversationEngine:
    """The process-wide engine created at startup (holds the per-user locks)."""
    engine = getattr(request.app.state, "conversation_engine", None)
    if engine is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Conversation engine not ready",
        )
    return engine
