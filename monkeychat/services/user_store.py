from __future__ import annotations

import uuid
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from monkeychat.models import User
from monkeychat.repos.user_repo import UserRepo


class UserStore(Protocol):
    """The slice of user persistence the live core depends on."""

    async def find_by_id(self, user_id: str) -> User | None: ...

    async def set_online(self, user_id: str, online: bool) -> None: ...

    async def touch_last_seen(self, user_id: str) -> None: ...


class SqlUserStore:
    """
    UserStore over the users table.

    Each call opens its own session so updates spawned from the realtime core
    never share a transaction with a request handler. Raises ValueError for ids
    that are not UUIDs.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def find_by_id(self, user_id: str) -> User | None:
        async with self.session_factory() as db:
            return await UserRepo(db).get_user(uuid.UUID(user_id))

    async def set_online(self, user_id: str, online: bool) -> None:
        uid = uuid.UUID(user_id)
        async with self.session_factory() as db:
            async with db.begin():
                await UserRepo(db).set_online(uid, online=online)

    async def touch_last_seen(self, user_id: str) -> None:
        uid = uuid.UUID(user_id)
        async with self.session_factory() as db:
            async with db.begin():
                await UserRepo(db).touch_last_seen(uid)
