"""
Service layer for daily progress: scoring and owner-scoped reads.

A submission is scored against the habit's daily target and then written
with `ProgressRepo.upsert_scored()`, one statement keyed by
(owner, habit, day). The write is conditioned on the habit still belonging
to the caller with the target the score was computed from, so a habit that
is deleted or retargeted between the read and the write never ends up with
a stale or orphaned record.
"""

import logging
import math
import re
from datetime import date
from typing import List, Tuple

from errors import NotFoundError, ValidationError
from models import ProgressRecord
from repo_habits import HabitRepo
from repo_progress import ProgressRepo
from service_habits import HABIT_NOT_FOUND, parse_habit_id
from settings import settings

logger = logging.getLogger(__name__)

FULL_POINTS = 10
MAX_UPSERT_ATTEMPTS = 3
DAY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def score(value: float, target: float) -> Tuple[bool, int]:
    """Return `(complete, points)` for `value` against a daily `target`.

    Full credit once the target is reached, otherwise partial credit
    proportional to the fraction reached, rounded down. A zero target is
    complete immediately.
    """

    if target <= 0:
        return True, FULL_POINTS
    complete = value >= target
    if complete:
        return True, FULL_POINTS
    return False, math.floor((value / target) * FULL_POINTS)


def parse_day(day: str) -> date:
    """Parse a strict `YYYY-MM-DD` calendar day."""

    if not isinstance(day, str) or not DAY_RE.match(day):
        raise ValidationError.for_field("day", "day must use the YYYY-MM-DD format")
    try:
        return date.fromisoformat(day)
    except ValueError:
        raise ValidationError.for_field("day", f"{day} is not a valid calendar date") from None


def validate_value(value: float) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        raise ValidationError.for_field("value", "value must be a number")
    if value < 0:
        raise ValidationError.for_field("value", "value must be zero or greater")
    return float(value)


class ProgressService:
    def __init__(self, habits: HabitRepo, progress: ProgressRepo):
        self.habits = habits
        self.progress = progress

    async def submit_progress(self, owner: str, habit_id: str, day: str, value: float) -> ProgressRecord:
        """Record `value` for one habit on one day, replacing any earlier value.

        Raises:
        - `ValidationError` for a negative/non-numeric value or a bad day
        - `NotFoundError` if the habit does not exist or is not the caller's
        """

        value = validate_value(value)
        when = parse_day(day)
        hid = parse_habit_id(habit_id)

        for _ in range(MAX_UPSERT_ATTEMPTS):
            habit = await self.habits.get_for_owner(owner, hid)
            if habit is None:
                raise NotFoundError(HABIT_NOT_FOUND)

            target = habit["daily_target"]
            complete, points = score(value, target)
            row = await self.progress.upsert_scored(
                owner, hid, when, value, complete, points, target
            )
            if row is not None:
                logger.info(
                    "Progress saved: habit %s day %s value %s points %d for user: %s",
                    row["habit_id"], row["day"], value, points, owner,
                )
                return ProgressRecord(**row)
            logger.debug("Habit %s changed during submission, retrying", habit_id)

        # The habit kept changing under us; report it like a vanished habit.
        raise NotFoundError(HABIT_NOT_FOUND)

    async def list_progress(self, owner: str, day: str) -> List[ProgressRecord]:
        rows = await self.progress.list_for_day(owner, parse_day(day))
        return [ProgressRecord(**r) for r in rows]

    async def list_progress_for_habit(
        self, owner: str, habit_id: str, limit: int = 30
    ) -> List[ProgressRecord]:
        """History of one habit, newest day first, capped at `max_history_limit`."""

        limit = max(1, min(limit, settings.max_history_limit))
        rows = await self.progress.list_for_habit(owner, parse_habit_id(habit_id), limit)
        return [ProgressRecord(**r) for r in rows]
