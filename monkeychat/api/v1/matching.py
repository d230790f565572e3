from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, HTTPException, Query

from monkeychat.api.deps import get_discovery_service, get_user_store
from monkeychat.schemas.matching import MatchListOut, RandomMatchOut
from monkeychat.services.discovery_service import DiscoveryService
from monkeychat.services.user_store import UserStore

router = APIRouter()


async def _require_user(store: UserStore, user_id: uuid.UUID):
    user = await store.find_by_id(str(user_id))
    if user is None:
        raise HTTPException(status_code=404, detail="user not found")
    return user


@router.get("/find", response_model=MatchListOut)
async def find_matches(
    user_id: uuid.UUID = Query(...),
    store: UserStore = Depends(get_user_store),
    svc: DiscoveryService = Depends(get_discovery_service),
) -> MatchListOut:
    """Online users ranked by shared interests (ties in random order)."""
    user = await _require_user(store, user_id)
    return MatchListOut(matches=await svc.find_matches(user))


@router.get("/random", response_model=RandomMatchOut)
async def random_match(
    user_id: uuid.UUID = Query(...),
    store: UserStore = Depends(get_user_store),
    svc: DiscoveryService = Depends(get_discovery_service),
) -> RandomMatchOut:
    """One uniformly random online user, for the skip flow."""
    user = await _require_user(store, user_id)
    match = await svc.random_match(user)
    if match is None:
        return RandomMatchOut(success=False, message="No users available for matching")
    return RandomMatchOut(success=True, match=match)
