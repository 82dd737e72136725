"""
Repository: SQL operations for `habits`.

This file contains only DB interaction code. It converts DB rows to plain
Python dicts (ids as strings). Keep business rules out of this module.

Important notes:
- Every statement that touches an existing habit carries both `id` and
  `user_id` in its WHERE clause. Update and delete are single
  `... RETURNING` statements, so the ownership check and the write are one
  atomic operation and a `None` result means "no such habit for this owner".
- Column names for updates come from `UPDATABLE_COLUMNS` only and are
  composed with `psycopg.sql.Identifier`.
"""

from typing import Any, Dict, List, Optional
from uuid import UUID

from psycopg import sql

from db import Database


HABIT_COLUMNS = (
    "id, user_id, name, icon, color, daily_target, unit, reminder, "
    "reminder_time, created_at, updated_at"
)

UPDATABLE_COLUMNS = (
    "name",
    "icon",
    "color",
    "daily_target",
    "unit",
    "reminder",
    "reminder_time",
)


def _to_dict(row: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if row is None:
        return None
    out = dict(row)
    out["id"] = str(out["id"])
    return out


class HabitRepo:
    """DB access only. No business logic here."""

    def __init__(self, db: Database):
        self.db = db

    async def insert(self, owner: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        async with self.db.connection() as conn:
            cur = await conn.execute(
                "INSERT INTO habits (user_id, name, icon, color, daily_target, unit, reminder, reminder_time) "
                "VALUES (%(user_id)s, %(name)s, %(icon)s, %(color)s, %(daily_target)s, %(unit)s, "
                "%(reminder)s, %(reminder_time)s) "
                f"RETURNING {HABIT_COLUMNS}",
                {**fields, "user_id": owner},
            )
            return _to_dict(await cur.fetchone())

    async def list_for_owner(self, owner: str) -> List[Dict[str, Any]]:
        """All habits of `owner`, newest first."""

        async with self.db.connection() as conn:
            cur = await conn.execute(
                f"SELECT {HABIT_COLUMNS} FROM habits WHERE user_id=%s ORDER BY created_at DESC",
                (owner,),
            )
            return [_to_dict(r) for r in await cur.fetchall()]

    async def get_for_owner(self, owner: str, habit_id: UUID) -> Optional[Dict[str, Any]]:
        async with self.db.connection() as conn:
            cur = await conn.execute(
                f"SELECT {HABIT_COLUMNS} FROM habits WHERE id=%s AND user_id=%s",
                (habit_id, owner),
            )
            return _to_dict(await cur.fetchone())

    async def update_for_owner(
        self, owner: str, habit_id: UUID, changes: Dict[str, Any]
    ) -> Optional[Dict[str, Any]]:
        """Apply `changes` only if the habit exists and belongs to `owner`."""

        assignments = [
            sql.SQL("{} = {}").format(sql.Identifier(col), sql.Placeholder(col))
            for col in changes
            if col in UPDATABLE_COLUMNS
        ]
        query = sql.SQL(
            "UPDATE habits SET {}, updated_at = now() "
            "WHERE id = %(habit_id)s AND user_id = %(user_id)s "
            "RETURNING {}"
        ).format(sql.SQL(", ").join(assignments), sql.SQL(HABIT_COLUMNS))
        params = {col: changes[col] for col in changes if col in UPDATABLE_COLUMNS}
        params.update({"habit_id": habit_id, "user_id": owner})

        async with self.db.connection() as conn:
            cur = await conn.execute(query, params)
            return _to_dict(await cur.fetchone())

    async def delete_for_owner(self, owner: str, habit_id: UUID) -> Optional[Dict[str, Any]]:
        """Delete the habit only if it belongs to `owner`; return the deleted row."""

        async with self.db.connection() as conn:
            cur = await conn.execute(
                f"DELETE FROM habits WHERE id=%s AND user_id=%s RETURNING {HABIT_COLUMNS}",
                (habit_id, owner),
            )
            return _to_dict(await cur.fetchone())
