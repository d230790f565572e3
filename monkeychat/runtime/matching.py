from __future__ import annotations

import logging
import time
from typing import Dict, List

from monkeychat.runtime.errors import RoomConsistencyError
from monkeychat.runtime.rooms import Room, RoomTable


class MatchingQueue:
    """FIFO waiting set; the two longest-waiting connections are paired first."""

    def __init__(self, rooms: RoomTable):
        self.rooms = rooms
        # insertion-ordered: connection_id -> monotonic enqueue time
        self._waiting: Dict[str, float] = {}
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    def __contains__(self, connection_id: str) -> bool:
        return connection_id in self._waiting

    def __len__(self) -> int:
        return len(self._waiting)

    def waiting(self) -> List[str]:
        return list(self._waiting)

    def enqueue(self, connection_id: str) -> Room | None:
        if connection_id not in self._waiting:
            self._waiting[connection_id] = time.monotonic()
        return self.attempt_pair()

    def remove(self, connection_id: str) -> bool:
        return self._waiting.pop(connection_id, None) is not None

    def attempt_pair(self) -> Room | None:
        """
        Pair the two longest-waiting connections.

        A connection that turns out to be in a room already is dropped from the
        queue and pairing continues with the next in line. If neither entry can
        be blamed both go back to the front and nothing is paired.
        """
        while len(self._waiting) >= 2:
            first, second = list(self._waiting)[:2]
            enqueued = {first: self._waiting.pop(first), second: self._waiting.pop(second)}
            try:
                return self.rooms.create(first, second)
            except RoomConsistencyError:
                self.logger.exception("Pairing %s with %s failed", first, second)
                free = [c for c in (first, second) if self.rooms.room_of(c) is None]
                self._requeue_front(free, enqueued)
                if len(free) == 2:
                    return None
        return None

    def _requeue_front(self, connection_ids: List[str], enqueued: Dict[str, float]) -> None:
        rest = self._waiting
        self._waiting = {c: enqueued[c] for c in connection_ids}
        self._waiting.update(rest)
