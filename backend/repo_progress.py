"""
Repository: SQL operations for `progress`.

One row per (user_id, habit_id, day), enforced by a unique index. Writes
go through `upsert_scored`, a single `INSERT ... SELECT ... ON CONFLICT DO
UPDATE` statement, so concurrent submissions for the same key serialize in
Postgres and the last committed write wins.

Rows are returned as plain dicts with string ids and `day` as `YYYY-MM-DD`.
"""

from datetime import date
from typing import Any, Dict, List, Optional
from uuid import UUID

from db import Database


PROGRESS_COLUMNS = (
    "id, user_id, habit_id, day, value, complete, points, created_at, updated_at"
)

# Reads join the owning habit: rows whose habit is gone are never returned.
OWNED_PROGRESS = (
    "SELECT " + ", ".join("p." + c.strip() for c in PROGRESS_COLUMNS.split(",")) + " "
    "FROM progress p JOIN habits h ON h.id = p.habit_id AND h.user_id = p.user_id "
)


def _to_dict(row: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if row is None:
        return None
    out = dict(row)
    out["id"] = str(out["id"])
    out["habit_id"] = str(out["habit_id"])
    out["day"] = out["day"].isoformat()
    return out


class ProgressRepo:
    """DB access only. Scoring happens in `service_progress`."""

    def __init__(self, db: Database):
        self.db = db

    async def upsert_scored(
        self,
        owner: str,
        habit_id: UUID,
        day: date,
        value: float,
        complete: bool,
        points: int,
        target: float,
    ) -> Optional[Dict[str, Any]]:
        """Insert or overwrite the record for (owner, habit, day).

        The row is only written while the habit still belongs to `owner`
        with the `daily_target` the score was computed from. Returns `None`
        when that condition does not hold; nothing is written in that case.
        """

        async with self.db.connection() as conn:
            cur = await conn.execute(
                "INSERT INTO progress (user_id, habit_id, day, value, complete, points) "
                "SELECT h.user_id, h.id, %(day)s, %(value)s, %(complete)s, %(points)s "
                "FROM habits h "
                "WHERE h.id = %(habit_id)s AND h.user_id = %(user_id)s AND h.daily_target = %(target)s "
                "ON CONFLICT (user_id, habit_id, day) DO UPDATE SET "
                "value = EXCLUDED.value, complete = EXCLUDED.complete, "
                "points = EXCLUDED.points, updated_at = now() "
                f"RETURNING {PROGRESS_COLUMNS}",
                {
                    "user_id": owner,
                    "habit_id": habit_id,
                    "day": day,
                    "value": value,
                    "complete": complete,
                    "points": points,
                    "target": target,
                },
            )
            return _to_dict(await cur.fetchone())

    async def list_for_day(self, owner: str, day: date) -> List[Dict[str, Any]]:
        async with self.db.connection() as conn:
            cur = await conn.execute(
                OWNED_PROGRESS
                + "WHERE p.user_id=%s AND p.day=%s ORDER BY p.created_at",
                (owner, day),
            )
            return [_to_dict(r) for r in await cur.fetchall()]

    async def list_for_habit(self, owner: str, habit_id: UUID, limit: int) -> List[Dict[str, Any]]:
        """Most recent `limit` records of one habit, newest day first."""

        async with self.db.connection() as conn:
            cur = await conn.execute(
                OWNED_PROGRESS
                + "WHERE p.user_id=%s AND p.habit_id=%s ORDER BY p.day DESC LIMIT %s",
                (owner, habit_id, limit),
            )
            return [_to_dict(r) for r in await cur.fetchall()]

    async def list_between(self, owner: str, start: date, end: date) -> List[Dict[str, Any]]:
        """Records with `start <= day <= end`."""

        async with self.db.connection() as conn:
            cur = await conn.execute(
                OWNED_PROGRESS
                + "WHERE p.user_id=%s AND p.day BETWEEN %s AND %s ORDER BY p.day",
                (owner, start, end),
            )
            return [_to_dict(r) for r in await cur.fetchall()]

    async def delete_for_habit(self, owner: str, habit_id: UUID) -> int:
        """Delete every record of a habit. Returns the number of rows removed."""

        async with self.db.connection() as conn:
            cur = await conn.execute(
                "DELETE FROM progress WHERE user_id=%s AND habit_id=%s",
                (owner, habit_id),
            )
            return cur.rowcount
