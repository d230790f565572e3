from __future__ import annotations

import json
import logging
import uuid

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from monkeychat.api.deps import get_dispatcher, get_hub
from monkeychat.runtime.dispatcher import EventDispatcher
from monkeychat.runtime.hub import ConnectionHub


router = APIRouter(prefix="/chat", tags=["chat-ws"])
logger = logging.getLogger(__name__)


@router.websocket("/ws")
async def chat_ws(
    websocket: WebSocket,
    hub: ConnectionHub = Depends(get_hub),
    dispatcher: EventDispatcher = Depends(get_dispatcher),
):
    await websocket.accept()

    conn_id = str(uuid.uuid4())
    hub.register(conn_id, websocket)
    await dispatcher.connect(conn_id)

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", 1000), message.get("reason"))

            raw = message.get("text")
            if raw is None:
                logger.debug("Binary frame from %s skipped", conn_id)
                continue

            try:
                data = json.loads(raw)
            except json.JSONDecodeError:
                logger.debug("Non-JSON frame from %s skipped", conn_id)
                continue
            if not isinstance(data, dict):
                continue

            await dispatcher.handle(conn_id, data)

    except WebSocketDisconnect:
        pass
    finally:
        # stop writing first so the cascade below only reaches live peers
        await hub.unregister(conn_id)
        await dispatcher.disconnect(conn_id)
