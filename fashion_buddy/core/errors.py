"""
Error taxonomy.

ProviderError      — an external capability failed. Recovered by the engine
                     with an apology; never fatal to the process.
SessionIntegrityError — session create/update race or a missing session.
                     Fails the single event that triggered it.
TranscriptUnavailable — transcript storage is down.

Invalid user input and exhausted quotas are not exceptions: the state machine
answers them with a reprompt or an upgrade prompt.
"""


class ProviderError(Exception):
    """Base class for capability provider failures."""

    provider: str = "provider"


class AnalysisError(ProviderError):
    provider = "vision"


class SearchError(ProviderError):
    provider = "shopping"


class CompositionError(ProviderError):
    provider = "tryon"


class DeliveryError(ProviderError):
    provider = "dispatcher"


class MediaError(ProviderError):
    provider = "media"


class SessionIntegrityError(Exception):
    """Base class for session store contract violations."""


class SessionAlreadyExists(SessionIntegrityError):
    def __init__(self, user_id: str):
        super().__init__(f"Session already exists for user {user_id}")
        self.user_id = user_id


class SessionNotFound(SessionIntegrityError):
    def __init__(self, session_id: str):
        super().__init__(f"Session {session_id} not found")
        self.session_id = session_id


class TranscriptUnavailable(Exception):
    """Raised when a transcript entry cannot be stored."""
