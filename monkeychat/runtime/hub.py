from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Protocol

from fastapi import WebSocket
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel


class EventSink(Protocol):
    """Outbound side of the core: where emitted events go."""

    def send(self, connection_id: str, event: BaseModel) -> None: ...

    def broadcast(self, event: BaseModel) -> None: ...


@dataclass
class Outbox:
    websocket: WebSocket
    queue: asyncio.Queue[Any] = field(default_factory=asyncio.Queue)
    writer: asyncio.Task[None] | None = None


class ConnectionHub:
    """
    WebSocket-backed EventSink.

    send/broadcast never await: each event is encoded and put on the target
    connection's outbox, and a per-connection writer task drains the outbox
    onto the socket. Events for a connection keep their emission order.
    """

    def __init__(self) -> None:
        self._outboxes: Dict[str, Outbox] = {}
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    def __contains__(self, connection_id: str) -> bool:
        return connection_id in self._outboxes

    def __len__(self) -> int:
        return len(self._outboxes)

    def register(self, connection_id: str, websocket: WebSocket) -> None:
        box = Outbox(websocket=websocket)
        box.writer = asyncio.create_task(self._write_loop(connection_id, box))
        self._outboxes[connection_id] = box

    async def unregister(self, connection_id: str) -> None:
        box = self._outboxes.pop(connection_id, None)
        if box is None or box.writer is None:
            return
        box.writer.cancel()
        try:
            await box.writer
        except asyncio.CancelledError:
            pass

    def send(self, connection_id: str, event: BaseModel) -> None:
        box = self._outboxes.get(connection_id)
        if box is None:
            self.logger.debug("Dropping %s for unknown connection %s", type(event).__name__, connection_id)
            return
        box.queue.put_nowait(jsonable_encoder(event))

    def broadcast(self, event: BaseModel) -> None:
        payload = jsonable_encoder(event)
        for box in self._outboxes.values():
            box.queue.put_nowait(payload)

    async def close_all(self, reason: str = "server shutting down") -> None:
        for connection_id, box in list(self._outboxes.items()):
            try:
                await box.websocket.close(code=1001, reason=reason)
            except Exception:
                self.logger.debug("Socket for %s already closed", connection_id, exc_info=True)
            await self.unregister(connection_id)

    async def _write_loop(self, connection_id: str, box: Outbox) -> None:
        while True:
            payload = await box.queue.get()
            try:
                await box.websocket.send_json(payload)
            except Exception:
                self.logger.warning("Send to %s failed; stopping writer", connection_id, exc_info=True)
                return
