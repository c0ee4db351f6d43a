# opsdesk/services/chat/user_directory.py
"""Read-only view of the user table owned by the user-management subsystem."""
from typing import Dict, List, Optional
from uuid import UUID
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..base_service import BaseService
from ...core.cache import CacheManager, cache_manager
from ...core.config import settings
from ...core.exceptions import ForbiddenError
from ...models.user import User, UserRole

logger = logging.getLogger(__name__)


def user_summary(user: User) -> Dict:
    return {
        "id": str(user.id),
        "name": user.name,
        "email": user.email,
        "role": user.role.value,
    }


class UserDirectory(BaseService[User]):
    def __init__(self, db: AsyncSession, cache: Optional[CacheManager] = None):
        super().__init__(User, db)
        self.cache = cache or cache_manager

    async def get_user(self, user_id: UUID) -> Optional[User]:
        return await self.get(user_id)

    async def list_direct_targets(self, user_id: UUID, role: UserRole) -> List[Dict]:
        """Users the caller may open a DIRECT room with.

        SUPER_ADMIN may message any active user, MANAGER only active
        employees, EMPLOYEE nobody.
        """
        if role not in (UserRole.MANAGER, UserRole.SUPER_ADMIN):
            raise ForbiddenError("Only managers can start direct conversations")

        cache_key = self.cache.make_key("chat", "targets", role.value, user_id)
        cached = await self.cache.get(cache_key)
        if cached is not None:
            return cached

        stmt = select(User).where(User.is_active.is_(True), User.id != user_id)
        if role == UserRole.MANAGER:
            stmt = stmt.where(User.role == UserRole.EMPLOYEE)
        stmt = stmt.order_by(User.name.asc())

        result = await self.db.execute(stmt)
        targets = [user_summary(u) for u in result.scalars().all()]

        await self.cache.set(cache_key, targets, expire=settings.cache_ttl_seconds)
        return targets
