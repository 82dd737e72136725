"""
Service layer for owner points, levels and badges.

Badges form a one-way state machine: a badge is appended the first time
the cumulative points reach its threshold and is never removed. Awarding
is idempotent because `OwnerRepo.append_badge()` only matches owners that
do not hold the badge yet.
"""

import logging
from typing import List, Sequence, Tuple

from errors import ValidationError
from models import MAX_POINTS_INCREMENT, OwnerProfile
from repo_owners import OwnerRepo

logger = logging.getLogger(__name__)

POINTS_PER_LEVEL = 100

# Ordered by threshold; badges are appended in this order.
BADGES: Tuple[Tuple[int, str], ...] = (
    (100, "First Hundred"),
    (500, "Champion"),
    (1000, "Legend"),
)


def level_for(points: int) -> int:
    return points // POINTS_PER_LEVEL + 1


def badges_due(points: int, held: Sequence[str]) -> List[str]:
    """Badges earned at `points` that are not in `held` yet."""

    return [name for threshold, name in BADGES if points >= threshold and name not in held]


class OwnerService:
    def __init__(self, owners: OwnerRepo):
        self.owners = owners

    async def get_profile(self, owner: str) -> OwnerProfile:
        return _profile(await self.owners.get_or_create(owner))

    async def add_points(self, owner: str, points: int) -> OwnerProfile:
        """Add `points` to the owner's total and award any newly reached badge."""

        if isinstance(points, bool) or not isinstance(points, int) or points < 0:
            raise ValidationError.for_field("points", "points must be a non-negative integer")
        if points > MAX_POINTS_INCREMENT:
            raise ValidationError.for_field(
                "points", f"points must be at most {MAX_POINTS_INCREMENT} per request"
            )

        row = await self.owners.add_points(owner, points)
        stale = False
        for badge in badges_due(row["points"], row["badges"]):
            updated = await self.owners.append_badge(owner, badge)
            if updated is None:
                # another request awarded it first
                stale = True
                continue
            row = updated
            logger.info("Badge awarded: %s to user: %s", badge, owner)
        if stale:
            row = await self.owners.get_or_create(owner)
        return _profile(row)


def _profile(row) -> OwnerProfile:
    return OwnerProfile(
        user_id=row["user_id"],
        points=row["points"],
        level=level_for(row["points"]),
        badges=list(row["badges"]),
        created_at=row["created_at"],
    )
