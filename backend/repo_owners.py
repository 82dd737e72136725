"""
Repository: SQL operations for `owners` (points, level, badges).

Owner rows are created lazily the first time an authenticated subject is
seen. Point increments and badge appends are single statements. The level
is not stored; it is derived from the points by `service_owners`.
"""

from typing import Any, Dict, Optional

from db import Database


OWNER_COLUMNS = "user_id, points, badges, created_at"


class OwnerRepo:
    def __init__(self, db: Database):
        self.db = db

    async def get_or_create(self, owner: str) -> Dict[str, Any]:
        async with self.db.connection() as conn:
            cur = await conn.execute(
                "INSERT INTO owners (user_id) VALUES (%s) "
                "ON CONFLICT (user_id) DO UPDATE SET user_id = EXCLUDED.user_id "
                f"RETURNING {OWNER_COLUMNS}",
                (owner,),
            )
            return dict(await cur.fetchone())

    async def add_points(self, owner: str, points: int) -> Dict[str, Any]:
        """Atomically add `points` to the running total."""

        async with self.db.connection() as conn:
            cur = await conn.execute(
                "INSERT INTO owners (user_id, points) VALUES (%(user_id)s, %(points)s) "
                "ON CONFLICT (user_id) DO UPDATE SET "
                "points = owners.points + EXCLUDED.points, "
                "updated_at = now() "
                f"RETURNING {OWNER_COLUMNS}",
                {"user_id": owner, "points": points},
            )
            return dict(await cur.fetchone())

    async def append_badge(self, owner: str, badge: str) -> Optional[Dict[str, Any]]:
        """Append `badge` unless already present. `None` means nothing changed."""

        async with self.db.connection() as conn:
            cur = await conn.execute(
                "UPDATE owners SET badges = array_append(badges, %(badge)s), updated_at = now() "
                "WHERE user_id = %(user_id)s AND NOT (%(badge)s = ANY(badges)) "
                f"RETURNING {OWNER_COLUMNS}",
                {"user_id": owner, "badge": badge},
            )
            row = await cur.fetchone()
            return dict(row) if row is not None else None
