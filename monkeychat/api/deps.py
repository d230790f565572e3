from __future__ import annotations

from fastapi import Depends, Request, WebSocket
from sqlalchemy.ext.asyncio import AsyncSession

from monkeychat.core import get_db
from monkeychat.runtime.dispatcher import EventDispatcher
from monkeychat.runtime.hub import ConnectionHub
from monkeychat.services.discovery_service import DiscoveryService
from monkeychat.services.user_store import UserStore


def get_hub(websocket: WebSocket) -> ConnectionHub:
    return websocket.app.state.hub


def get_dispatcher(websocket: WebSocket) -> EventDispatcher:
    return websocket.app.state.dispatcher


async def get_discovery_service(db: AsyncSession = Depends(get_db)) -> DiscoveryService:
    return DiscoveryService(db)


def get_user_store(request: Request) -> UserStore:
    return request.app.state.user_store
