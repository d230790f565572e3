from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from monkeychat.models import User


class UserRepo:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_user(self, user_id: uuid.UUID) -> User | None:
        res = await self.db.execute(select(User).where(User.id == user_id))
        return res.scalar_one_or_none()

    async def set_online(self, user_id: uuid.UUID, *, online: bool) -> bool:
        stmt = update(User).where(User.id == user_id).values(is_online=online)
        res = await self.db.execute(stmt)
        return res.rowcount > 0

    async def touch_last_seen(self, user_id: uuid.UUID) -> bool:
        stmt = update(User).where(User.id == user_id).values(last_seen=datetime.now(timezone.utc))
        res = await self.db.execute(stmt)
        return res.rowcount > 0

    def _discoverable(self, exclude_id: uuid.UUID):
        return select(User).where(
            User.id != exclude_id,
            User.is_online.is_(True),
            User.is_banned.is_(False),
        )

    async def list_discoverable(self, *, exclude_id: uuid.UUID, limit: int) -> list[User]:
        stmt = self._discoverable(exclude_id).order_by(User.last_seen.desc()).limit(limit)
        res = await self.db.execute(stmt)
        return list(res.scalars().all())

    async def count_discoverable(self, *, exclude_id: uuid.UUID) -> int:
        stmt = select(func.count()).select_from(self._discoverable(exclude_id).subquery())
        res = await self.db.execute(stmt)
        return int(res.scalar_one())

    async def discoverable_at(self, *, exclude_id: uuid.UUID, offset: int) -> User | None:
        stmt = self._discoverable(exclude_id).order_by(User.id).offset(offset).limit(1)
        res = await self.db.execute(stmt)
        return res.scalar_one_or_none()
