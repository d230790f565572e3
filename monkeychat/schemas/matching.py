from __future__ import annotations

from pydantic import BaseModel
from typing import List


class DiscoveryMatchOut(BaseModel):
    id: str
    username: str
    interests: List[str] = []
    location: str | None = None
    avatar: str | None = None
    common_interests: List[str] = []
    score: int | None = None


class MatchListOut(BaseModel):
    success: bool = True
    matches: List[DiscoveryMatchOut]


class RandomMatchOut(BaseModel):
    success: bool
    match: DiscoveryMatchOut | None = None
    message: str | None = None
