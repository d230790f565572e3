"""
Event dispatcher for the realtime chat core.

Every inbound event and every disconnect runs under one asyncio.Lock, and the
registry, queue and room table never await. Each handler therefore sees and
leaves the shared state consistent: no pairing can interleave with a removal
and no relay can interleave with a teardown.
"""
from __future__ import annotations

import asyncio
import enum
import logging
from typing import Any, Set

from pydantic import ValidationError

from monkeychat.runtime.errors import MatchmakingError, ProtocolError
from monkeychat.runtime.hub import EventSink
from monkeychat.runtime.matching import MatchingQueue
from monkeychat.runtime.presence import PresenceRegistry
from monkeychat.runtime.rooms import RoomTable
from monkeychat.schemas.ws import (
    SIGNAL_KIND_BY_EVENT,
    JoinAckOut,
    JoinIn,
    MatchCancelIn,
    MatchCancelledOut,
    MatchRequestIn,
    MatchSearchingOut,
    MessageSendIn,
    PresenceCountOut,
    RoomLeaveIn,
    SignalAnswerIn,
    SignalCandidateIn,
    SignalOfferIn,
    client_event_adapter,
)
from monkeychat.services.user_store import UserStore

logger = logging.getLogger(__name__)


class ConnectionState(str, enum.Enum):
    CONNECTED = "connected"
    IDENTIFIED = "identified"
    QUEUED = "queued"
    IN_ROOM = "in_room"
    CLOSED = "closed"


class EventDispatcher:
    def __init__(self, sink: EventSink, user_store: UserStore):
        self.sink = sink
        self.presence = PresenceRegistry(user_store)
        self.rooms = RoomTable(sink, self.presence)
        self.queue = MatchingQueue(self.rooms)
        self._connections: Set[str] = set()
        self._lock = asyncio.Lock()

    def state_of(self, connection_id: str) -> ConnectionState:
        if connection_id not in self._connections:
            return ConnectionState.CLOSED
        if self.rooms.room_of(connection_id) is not None:
            return ConnectionState.IN_ROOM
        if connection_id in self.queue:
            return ConnectionState.QUEUED
        if connection_id in self.presence:
            return ConnectionState.IDENTIFIED
        return ConnectionState.CONNECTED

    async def connect(self, connection_id: str) -> None:
        async with self._lock:
            self._connections.add(connection_id)
        logger.info("Connection %s opened", connection_id)

    async def disconnect(self, connection_id: str) -> None:
        async with self._lock:
            if connection_id not in self._connections:
                return
            self._connections.discard(connection_id)

            participant = self.presence.leave(connection_id)
            self.queue.remove(connection_id)
            self.rooms.leave_all(connection_id)
            self._broadcast_count()

            if participant is not None and not self.presence.has_user(participant.user_id):
                self.presence.mark_offline(participant)
        logger.info("Connection %s closed", connection_id)

    async def handle(self, connection_id: str, data: dict[str, Any]) -> None:
        """Validate one inbound event and apply it. Errors stay with this event."""
        async with self._lock:
            if connection_id not in self._connections:
                logger.debug("Event from unknown connection %s dropped", connection_id)
                return
            try:
                self._dispatch(connection_id, data)
            except MatchmakingError as e:
                logger.warning("Dropped event %r: %s", data.get("type"), e)
            except Exception:
                logger.exception("Unhandled error for event %r from %s", data.get("type"), connection_id)

    # ---- handlers (lock held) ----

    def _dispatch(self, connection_id: str, data: dict[str, Any]) -> None:
        try:
            event = client_event_adapter.validate_python(data)
        except ValidationError as e:
            if data.get("type") == "join":
                self.sink.send(connection_id, JoinAckOut(success=False, error="invalid join payload"))
            raise ProtocolError(connection_id, f"invalid payload: {e.error_count()} error(s)") from e

        if isinstance(event, JoinIn):
            self._on_join(connection_id, event)
            return

        if connection_id not in self.presence:
            raise ProtocolError(connection_id, f"{event.type} before join")

        if isinstance(event, MatchRequestIn):
            self._on_match_request(connection_id)
        elif isinstance(event, MatchCancelIn):
            if self.queue.remove(connection_id):
                self.sink.send(connection_id, MatchCancelledOut())
        elif isinstance(event, MessageSendIn):
            self.rooms.relay_message(event.room_id, connection_id, event.text, event.kind)
        elif isinstance(event, (SignalOfferIn, SignalAnswerIn, SignalCandidateIn)):
            kind = SIGNAL_KIND_BY_EVENT[event.type]
            self.rooms.relay_signal(event.room_id, connection_id, event.payload, kind)
        elif isinstance(event, RoomLeaveIn):
            self.rooms.leave(event.room_id, connection_id)

    def _on_join(self, connection_id: str, event: JoinIn) -> None:
        previous = self.presence.get(connection_id)
        self.presence.join(connection_id, event.user_id, event.display_name)
        if previous is not None and previous.user_id != event.user_id and not self.presence.has_user(previous.user_id):
            self.presence.mark_offline(previous)
        self.sink.send(connection_id, JoinAckOut(success=True))
        self._broadcast_count()

    def _on_match_request(self, connection_id: str) -> None:
        state = self.state_of(connection_id)
        if state in (ConnectionState.QUEUED, ConnectionState.IN_ROOM):
            logger.debug("match-request from %s ignored while %s", connection_id, state.value)
            return
        self.sink.send(connection_id, MatchSearchingOut())
        self.queue.enqueue(connection_id)

    def _broadcast_count(self) -> None:
        self.sink.broadcast(PresenceCountOut(count=self.presence.count()))
