from __future__ import annotations

from typing import Dict, List

import pytest
from pydantic import BaseModel

from monkeychat.runtime.dispatcher import EventDispatcher
from monkeychat.runtime.presence import PresenceRegistry
from monkeychat.runtime.rooms import RoomTable


class RecordingSink:
    """EventSink that keeps every delivered event per attached connection."""

    def __init__(self) -> None:
        self.inbox: Dict[str, List[BaseModel]] = {}

    def attach(self, connection_id: str) -> None:
        self.inbox.setdefault(connection_id, [])

    def detach(self, connection_id: str) -> None:
        self.inbox.pop(connection_id, None)

    def send(self, connection_id: str, event: BaseModel) -> None:
        if connection_id in self.inbox:
            self.inbox[connection_id].append(event)

    def broadcast(self, event: BaseModel) -> None:
        for events in self.inbox.values():
            events.append(event)

    def types(self, connection_id: str) -> List[str]:
        return [e.type for e in self.inbox[connection_id]]

    def of_type(self, connection_id: str, type_: str) -> List[BaseModel]:
        return [e for e in self.inbox[connection_id] if e.type == type_]

    def clear(self) -> None:
        for events in self.inbox.values():
            events.clear()


class InMemoryUserStore:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.online: Dict[str, bool] = {}
        self.known: Dict[str, object] = {}
        self.calls: List[tuple] = []

    async def find_by_id(self, user_id: str):
        self.calls.append(("find_by_id", user_id))
        return self.known.get(user_id)

    async def set_online(self, user_id: str, online: bool) -> None:
        self.calls.append(("set_online", user_id, online))
        if self.fail:
            raise ConnectionError("user store unreachable")
        self.online[user_id] = online

    async def touch_last_seen(self, user_id: str) -> None:
        self.calls.append(("touch_last_seen", user_id))
        if self.fail:
            raise ConnectionError("user store unreachable")


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def user_store() -> InMemoryUserStore:
    return InMemoryUserStore()


@pytest.fixture
async def presence(user_store):
    registry = PresenceRegistry(user_store)
    yield registry
    await registry.drain()


@pytest.fixture
def rooms(sink, presence) -> RoomTable:
    return RoomTable(sink, presence)


@pytest.fixture
async def dispatcher(sink, user_store):
    d = EventDispatcher(sink, user_store)
    yield d
    await d.presence.drain()


@pytest.fixture
def connect(dispatcher, sink):
    """Open a connection the way the websocket endpoint does, optionally joining."""
    async def _connect(connection_id: str, user_id: str | None = None, name: str | None = None) -> str:
        sink.attach(connection_id)
        await dispatcher.connect(connection_id)
        if user_id is not None:
            await dispatcher.handle(connection_id, {
                "type": "join",
                "userId": user_id,
                "displayName": name or user_id,
            })
        return connection_id
    return _connect


@pytest.fixture
def hangup(dispatcher, sink):
    """Close a connection the way the websocket endpoint does."""
    async def _hangup(connection_id: str) -> None:
        sink.detach(connection_id)
        await dispatcher.disconnect(connection_id)
    return _hangup
