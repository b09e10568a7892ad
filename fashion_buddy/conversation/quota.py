"""
Usage quotas for metered features.

Free users get a fixed allowance per feature; premium is unlimited. The check
happens before a provider call and the counter only moves after the call
succeeded, so a failed analysis never costs the user anything.
"""

import logging
from typing import Optional

from ..core.config import Settings, get_settings
from ..models.user import SubscriptionTier, User
from ..stores.user_store import UserStore

logger = logging.getLogger(__name__)

COLOR_ANALYSIS = "color_analysis"
VIRTUAL_TRYON = "virtual_tryon"

_COUNTERS = {
    COLOR_ANALYSIS: "color_analysis_count",
    VIRTUAL_TRYON: "virtual_tryon_count",
}


class QuotaTracker:
    def __init__(self, settings: Optional[Settings] = None):
        settings = settings or get_settings()
        self.free_limits = {
            COLOR_ANALYSIS: settings.free_color_analysis_limit,
            VIRTUAL_TRYON: settings.free_virtual_tryon_limit,
        }

    def allowance(self, tier: str, feature: str) -> Optional[int]:
        """Uses allowed for a tier. None means unlimited."""
        if tier == SubscriptionTier.PREMIUM.value:
            return None
        return self.free_limits[feature]

    def used(self, user: User, feature: str) -> int:
        return getattr(user, _COUNTERS[feature]) or 0

    def remaining(self, user: User, feature: str) -> Optional[int]:
        limit = self.allowance(user.subscription_tier, feature)
        if limit is None:
            return None
        return max(0, limit - self.used(user, feature))

    def check(self, user: User, feature: str) -> bool:
        """True if the user may make one more metered call."""
        remaining = self.remaining(user, feature)
        allowed = remaining is None or remaining > 0
        if not allowed:
            logger.info(
                "Quota exhausted: user %s feature=%s used=%d",
                user.id, feature, self.used(user, feature),
            )
        return allowed

    async def record(self, users: UserStore, user: User, feature: str) -> int:
        """Count one successful use. Returns the new counter value."""
        return await users.increment_usage(user, feature)
