from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Iterable, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from monkeychat.core.config import settings
from monkeychat.models import User
from monkeychat.repos.user_repo import UserRepo
from monkeychat.schemas.matching import DiscoveryMatchOut


@dataclass(frozen=True)
class ScoredCandidate:
    user: User
    common_interests: list[str]

    @property
    def score(self) -> int:
        return len(self.common_interests)


def common_interests(mine: Iterable[str], theirs: Iterable[str]) -> list[str]:
    """Their interests that I share, in their order."""
    wanted = set(mine)
    return [tag for tag in theirs if tag in wanted]


def rank_matches(
    current_interests: Sequence[str],
    candidates: Iterable[User],
    rng: random.Random,
    limit: int = 10,
) -> list[ScoredCandidate]:
    """
    Order candidates by number of shared interests, best first.

    Equal scores are ordered by an independent random key per candidate, so
    ties shuffle between calls while distinct scores never do.
    """
    keyed = []
    for user in candidates:
        scored = ScoredCandidate(user=user, common_interests=common_interests(current_interests, user.interests or []))
        keyed.append((-scored.score, rng.random(), scored))
    keyed.sort(key=lambda item: (item[0], item[1]))
    return [scored for _, _, scored in keyed[:limit]]


def to_match_out(scored: ScoredCandidate, *, with_score: bool = True) -> DiscoveryMatchOut:
    user = scored.user
    return DiscoveryMatchOut(
        id=str(user.id),
        username=user.username,
        interests=list(user.interests or []),
        location=user.location,
        avatar=user.avatar,
        common_interests=scored.common_interests,
        score=scored.score if with_score else None,
    )


class DiscoveryService:
    """Interest-based discovery over the user table. Independent of live rooms."""

    def __init__(self, db: AsyncSession, rng: random.Random | None = None):
        self.db = db
        self.users = UserRepo(db)
        self.rng = rng or random.Random()

    async def find_matches(self, user: User) -> list[DiscoveryMatchOut]:
        candidates = await self.users.list_discoverable(
            exclude_id=user.id,
            limit=settings.DISCOVERY_CANDIDATE_POOL,
        )
        ranked = rank_matches(user.interests or [], candidates, self.rng, settings.DISCOVERY_MAX_RESULTS)
        return [to_match_out(s) for s in ranked]

    async def random_match(self, user: User) -> DiscoveryMatchOut | None:
        total = await self.users.count_discoverable(exclude_id=user.id)
        if total == 0:
            return None
        picked = await self.users.discoverable_at(exclude_id=user.id, offset=self.rng.randrange(total))
        if picked is None:
            # the eligible set shrank between count and fetch
            return None
        scored = ScoredCandidate(user=picked, common_interests=common_interests(user.interests or [], picked.interests or []))
        return to_match_out(scored, with_score=False)
