from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Dict, Set

from monkeychat.services.user_store import UserStore


@dataclass(frozen=True)
class Participant:
    """Cached copy of the identity asserted by a join event."""
    user_id: str
    display_name: str


class PresenceRegistry:
    """
    connection_id -> Participant for every joined connection.

    User store updates are spawned as background tasks and never awaited by
    join/leave; their failures are logged and do not undo the in-memory change.
    """

    def __init__(self, user_store: UserStore):
        self.user_store = user_store
        self._participants: Dict[str, Participant] = {}
        self._pending: Set[asyncio.Task[None]] = set()
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    def join(self, connection_id: str, user_id: str, display_name: str) -> Participant:
        participant = Participant(user_id=user_id, display_name=display_name)
        previous = self._participants.get(connection_id)
        if previous is not None and previous != participant:
            self.logger.info("Connection %s rebinding from user %s to %s", connection_id, previous.user_id, user_id)
        self._participants[connection_id] = participant
        self._spawn(self._mark_online(user_id), f"mark_online({user_id})")
        return participant

    def leave(self, connection_id: str) -> Participant | None:
        return self._participants.pop(connection_id, None)

    def mark_offline(self, participant: Participant) -> None:
        self._spawn(self._mark_offline(participant.user_id), f"mark_offline({participant.user_id})")

    def get(self, connection_id: str) -> Participant | None:
        return self._participants.get(connection_id)

    def has_user(self, user_id: str) -> bool:
        return any(p.user_id == user_id for p in self._participants.values())

    def count(self) -> int:
        return len(self._participants)

    def __contains__(self, connection_id: str) -> bool:
        return connection_id in self._participants

    async def drain(self) -> None:
        """Wait for outstanding user store updates."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def _mark_online(self, user_id: str) -> None:
        await self.user_store.set_online(user_id, True)
        await self.user_store.touch_last_seen(user_id)

    async def _mark_offline(self, user_id: str) -> None:
        await self.user_store.set_online(user_id, False)
        await self.user_store.touch_last_seen(user_id)

    def _spawn(self, op: Awaitable[None], label: str) -> None:
        task = asyncio.create_task(self._guarded(op, label))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _guarded(self, op: Awaitable[None], label: str) -> None:
        try:
            await op
        except Exception:
            self.logger.warning("User store update %s failed", label, exc_info=True)
