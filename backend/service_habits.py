"""
Service / facade layer for habits.

This module implements business rules and normalization before any DB
interaction. It is free of SQL; it calls `HabitRepo` and `ProgressRepo`.
All habit reads and writes go through `HabitService`, which is the single
place where the caller's owner id is attached to a query.

Key responsibilities:
- validate names and display metadata before the store is touched
- force the owner of a new habit to the authenticated caller
- turn "no row matched (id, owner)" into `NotFoundError`
- cascade-delete progress records after a habit is deleted
"""

import logging
import math
import re
from typing import Any, Dict, List, Optional
from uuid import UUID

from errors import NotFoundError, ValidationError
from models import Habit
from repo_habits import HabitRepo
from repo_progress import ProgressRepo

logger = logging.getLogger(__name__)

NAME_MAX_LENGTH = 100
LABEL_MAX_LENGTH = 32
REMINDER_TIME_RE = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")

DEFAULTS: Dict[str, Any] = {
    "icon": "⭐",
    "color": "#6366f1",
    "daily_target": 1.0,
    "unit": "times",
    "reminder": True,
    "reminder_time": "09:00",
}

HABIT_NOT_FOUND = "Habit not found or you do not have permission to access it"


def parse_habit_id(habit_id: str) -> UUID:
    """Malformed ids are reported exactly like ids that do not exist."""

    try:
        return UUID(str(habit_id))
    except ValueError:
        raise NotFoundError(HABIT_NOT_FOUND) from None


def validate_name(name: Optional[str]) -> str:
    if name is None or not isinstance(name, str) or not name.strip():
        raise ValidationError.for_field(
            "name", "Habit name is required and must be a non-empty string"
        )
    name = name.strip()
    if len(name) > NAME_MAX_LENGTH:
        raise ValidationError.for_field(
            "name", f"Habit name cannot exceed {NAME_MAX_LENGTH} characters"
        )
    return name


def validate_metadata(fields: Dict[str, Any]) -> Dict[str, Any]:
    """Check the optional display fields that are present in `fields`."""

    out: Dict[str, Any] = {}
    for key in ("icon", "color", "unit"):
        if key in fields:
            label = (fields[key] or "").strip()
            if not label or len(label) > LABEL_MAX_LENGTH:
                raise ValidationError.for_field(
                    key, f"{key} must be 1 to {LABEL_MAX_LENGTH} characters"
                )
            out[key] = label

    if "daily_target" in fields:
        target = fields["daily_target"]
        if target is None or not math.isfinite(target) or target <= 0:
            raise ValidationError.for_field("daily_target", "daily_target must be a positive number")
        out["daily_target"] = float(target)

    if "reminder" in fields:
        if fields["reminder"] is None:
            raise ValidationError.for_field("reminder", "reminder must be true or false")
        out["reminder"] = bool(fields["reminder"])

    if "reminder_time" in fields:
        value = fields["reminder_time"]
        if value is None or not REMINDER_TIME_RE.match(value):
            raise ValidationError.for_field("reminder_time", "reminder_time must use the HH:MM format")
        out["reminder_time"] = value
    return out


class HabitService:
    """Owner-scoped access to habits.

    Example usage:
        svc = HabitService(HabitRepo(db), ProgressRepo(db))
        habit = await svc.create_habit("uid-123", "Read", {"daily_target": 20})
    """

    def __init__(self, habits: HabitRepo, progress: ProgressRepo):
        self.habits = habits
        self.progress = progress

    async def create_habit(
        self, owner: str, name: Optional[str], metadata: Optional[Dict[str, Any]] = None
    ) -> Habit:
        """Validate and persist a new habit owned by `owner`.

        Raises `ValidationError` for a missing, blank or too long name and
        for invalid metadata. Any owner id found in `metadata` is ignored.
        """

        fields = dict(DEFAULTS)
        fields.update(validate_metadata(_present(metadata or {})))
        fields["name"] = validate_name(name)

        row = await self.habits.insert(owner, fields)
        logger.info("Habit created: %s for user: %s", row["id"], owner)
        return Habit(**row)

    async def list_habits(self, owner: str) -> List[Habit]:
        rows = await self.habits.list_for_owner(owner)
        logger.debug("Found %d habits for user: %s", len(rows), owner)
        return [Habit(**r) for r in rows]

    async def get_habit(self, owner: str, habit_id: str) -> Habit:
        row = await self.habits.get_for_owner(owner, parse_habit_id(habit_id))
        if row is None:
            raise NotFoundError(HABIT_NOT_FOUND)
        return Habit(**row)

    async def update_habit(self, owner: str, habit_id: str, patch: Dict[str, Any]) -> Habit:
        """Apply `patch` to a habit of `owner` in one conditional update.

        Steps:
        1. Validate every present field (`ValidationError`).
        2. Parse the id; a malformed id is a `NotFoundError`.
        3. `HabitRepo.update_for_owner()` matches on id AND owner; no match
           is a `NotFoundError` whether the habit is missing or foreign.
        """

        present = _present(patch)
        changes = validate_metadata(present)
        if "name" in present:
            changes["name"] = validate_name(present["name"])
        if not changes:
            raise ValidationError("Nothing to update")

        row = await self.habits.update_for_owner(owner, parse_habit_id(habit_id), changes)
        if row is None:
            raise NotFoundError(HABIT_NOT_FOUND)
        logger.info("Habit updated: %s by user: %s", row["id"], owner)
        return Habit(**row)

    async def delete_habit(self, owner: str, habit_id: str) -> Habit:
        """Delete a habit of `owner`, then its progress records.

        The cascade runs after the habit is gone and is best-effort: if it
        fails the error is logged and the deletion still stands.
        """

        hid = parse_habit_id(habit_id)
        row = await self.habits.delete_for_owner(owner, hid)
        if row is None:
            raise NotFoundError(HABIT_NOT_FOUND)
        logger.info("Habit deleted: %s by user: %s", row["id"], owner)

        try:
            removed = await self.progress.delete_for_habit(owner, hid)
            logger.info("Removed %d progress records of habit %s", removed, row["id"])
        except Exception:
            logger.exception("Progress cascade failed for habit %s; records left orphaned", row["id"])
        return Habit(**row)


def _present(fields: Dict[str, Any]) -> Dict[str, Any]:
    """Drop server-managed keys, including any owner id sent by the client."""

    return {
        k: v for k, v in fields.items()
        if k not in ("id", "user_id", "owner", "created_at", "updated_at")
    }
