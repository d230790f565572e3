from fastapi import APIRouter
from monkeychat.api.v1 import matching, ws_chat

router = APIRouter()
router.include_router(matching.router, prefix="/matching", tags=["matching"])
router.include_router(ws_chat.router, tags=["chat-ws"])
