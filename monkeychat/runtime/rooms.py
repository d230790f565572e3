from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List

from monkeychat.runtime.errors import RoomConsistencyError
from monkeychat.runtime.hub import EventSink
from monkeychat.runtime.presence import PresenceRegistry
from monkeychat.schemas.ws import (
    SIGNAL_OUT_BY_KIND,
    MatchedOut,
    MessageKind,
    MessageReceivedOut,
    PartnerDisconnectedOut,
    SignalKind,
)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Room:
    room_id: str
    members: List[str]
    started_at: datetime = field(default_factory=_utc_now)
    active: bool = True

    def partner_of(self, connection_id: str) -> str | None:
        for member in self.members:
            if member != connection_id:
                return member
        return None


class RoomTable:
    """
    Active 1:1 rooms, keyed by room id, plus a connection -> room index.

    A room is torn down as soon as either member leaves; the remaining member
    is told with partner-disconnected and goes back to being unpaired.
    """

    def __init__(self, sink: EventSink, presence: PresenceRegistry):
        self.sink = sink
        self.presence = presence
        self._rooms: Dict[str, Room] = {}
        self._room_by_conn: Dict[str, str] = {}
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    def __len__(self) -> int:
        return len(self._rooms)

    def get(self, room_id: str) -> Room | None:
        return self._rooms.get(room_id)

    def room_of(self, connection_id: str) -> Room | None:
        room_id = self._room_by_conn.get(connection_id)
        return self._rooms.get(room_id) if room_id is not None else None

    def create(self, conn_a: str, conn_b: str) -> Room:
        if conn_a == conn_b:
            raise RoomConsistencyError(f"cannot pair connection {conn_a} with itself")
        for conn in (conn_a, conn_b):
            if conn in self._room_by_conn:
                raise RoomConsistencyError(
                    f"connection {conn} already in room {self._room_by_conn[conn]}"
                )

        room = Room(room_id=f"room_{conn_a}_{conn_b}", members=[conn_a, conn_b])
        self._rooms[room.room_id] = room
        self._room_by_conn[conn_a] = room.room_id
        self._room_by_conn[conn_b] = room.room_id
        self.logger.info("Paired %s and %s in %s", conn_a, conn_b, room.room_id)

        for conn, partner in ((conn_a, conn_b), (conn_b, conn_a)):
            partner_info = self.presence.get(partner)
            self.sink.send(conn, MatchedOut(
                room_id=room.room_id,
                partner_connection_id=partner,
                partner_name=partner_info.display_name if partner_info else None,
            ))
        return room

    def relay_message(self, room_id: str, sender: str, text: str, kind: MessageKind = "text") -> bool:
        """Deliver a chat message to every member of the room, sender included."""
        room = self._member_room(room_id, sender)
        if room is None:
            return False
        participant = self.presence.get(sender)
        if participant is None:
            return False

        msg = MessageReceivedOut(
            id=uuid.uuid4().hex,
            user_id=participant.user_id,
            username=participant.display_name,
            text=text,
            kind=kind,
            timestamp=_utc_now(),
        )
        for member in room.members:
            self.sink.send(member, msg)
        return True

    def relay_signal(self, room_id: str, sender: str, payload: Any, kind: SignalKind) -> bool:
        """Forward a signaling payload verbatim to the sender's partner only."""
        room = self._member_room(room_id, sender)
        if room is None:
            return False
        partner = room.partner_of(sender)
        if partner is None:
            return False
        out_cls = SIGNAL_OUT_BY_KIND[kind]
        self.sink.send(partner, out_cls(payload=payload, from_connection_id=sender))
        return True

    def leave(self, room_id: str, connection_id: str) -> bool:
        room = self._member_room(room_id, connection_id)
        if room is None:
            return False

        room.members.remove(connection_id)
        self._room_by_conn.pop(connection_id, None)
        for remaining in room.members:
            self.sink.send(remaining, PartnerDisconnectedOut())
            self._room_by_conn.pop(remaining, None)

        # 1:1 sessions end with the first departure
        room.active = False
        room.members.clear()
        self._rooms.pop(room_id, None)
        self.logger.info("Room %s closed after %s left", room_id, connection_id)
        return True

    def leave_all(self, connection_id: str) -> int:
        room_ids = [rid for conn, rid in self._room_by_conn.items() if conn == connection_id]
        return sum(1 for rid in room_ids if self.leave(rid, connection_id))

    def _member_room(self, room_id: str, connection_id: str) -> Room | None:
        room = self._rooms.get(room_id)
        if room is None or not room.active or connection_id not in room.members:
            self.logger.debug("Ignoring op on room %s by non-member %s", room_id, connection_id)
            return None
        return room
