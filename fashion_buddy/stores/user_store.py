"""
User lookups and the few mutations the conversation engine is allowed to make.
"""

import logging
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.user import User, SubscriptionTier

logger = logging.getLogger(__name__)

# Usage counters that may be incremented, keyed by metered feature
USAGE_COLUMNS = {
    "color_analysis": User.color_analysis_count,
    "virtual_tryon": User.virtual_tryon_count,
}

PROFILE_FIELDS = {"name", "skin_tone", "undertone", "preferences"}


class UserStore:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, user_id: str) -> Optional[User]:
        return await self.db.get(User, user_id)

    async def get_by_phone(self, phone_number: str) -> Optional[User]:
        result = await self.db.execute(
            select(User).where(User.phone_number == phone_number)
        )
        return result.scalar_one_or_none()

    async def create(
        self,
        phone_number: str,
        name: Optional[str] = None,
        tier: SubscriptionTier = SubscriptionTier.FREE,
    ) -> User:
        user = User(
            phone_number=phone_number,
            name=name,
            subscription_tier=tier.value,
            color_analysis_count=0,
            virtual_tryon_count=0,
            preferences={},
        )
        self.db.add(user)
        await self.db.flush()
        logger.info("Registered user %s (%s, tier=%s)", user.id, phone_number, tier.value)
        return user

    async def update_profile(self, user: User, **fields) -> User:
        """Set profile fields. Tier and usage counters are not settable here."""
        unknown = set(fields) - PROFILE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update user fields: {sorted(unknown)}")
        for name, value in fields.items():
            setattr(user, name, value)
        await self.db.flush()
        return user

    async def increment_usage(self, user: User, feature: str) -> int:
        """Atomically bump a usage counter. Returns the new value."""
        column = USAGE_COLUMNS[feature]
        await self.db.execute(
            update(User)
            .where(User.id == user.id)
            .values({column.key: column + 1})
            .execution_options(synchronize_session=False)
        )
        await self.db.refresh(user, attribute_names=[column.key])
        value = getattr(user, column.key)
        logger.info("Usage %s for user %s is now %d", feature, user.id, value)
        return value
