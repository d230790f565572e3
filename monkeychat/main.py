from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from monkeychat.api.v1.router import router as v1_router
from monkeychat.core import settings
from monkeychat.core.db import AsyncSessionLocal, dispose_engine
from monkeychat.runtime.dispatcher import EventDispatcher
from monkeychat.runtime.hub import ConnectionHub
from monkeychat.services.user_store import SqlUserStore, UserStore


def create_app(user_store: UserStore | None = None) -> FastAPI:
    logging.basicConfig(level=settings.LOG_LEVEL)
    store = user_store or SqlUserStore(AsyncSessionLocal)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        hub = ConnectionHub()
        app.state.hub = hub
        app.state.dispatcher = EventDispatcher(hub, app.state.user_store)
        yield
        await hub.close_all()
        await app.state.dispatcher.presence.drain()
        await dispose_engine()

    app = FastAPI(title="MonkeyChat API", version="0.1.0", lifespan=lifespan)
    app.state.user_store = store
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )
    app.include_router(v1_router, prefix="/v1")

    @app.get("/v1/health")
    async def health():
        return {
            "success": True,
            "message": "MonkeyChat API is running",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
