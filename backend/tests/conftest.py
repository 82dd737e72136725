from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
from uuid import UUID, uuid4

import pytest
from fastapi.testclient import TestClient

from errors import AuthenticationError
from main import Services, create_app
from service_habits import HabitService
from service_owners import OwnerService
from service_progress import ProgressService
from service_stats import StatsService

_EPOCH = datetime(2026, 1, 1, tzinfo=timezone.utc)


class Clock:
    """Strictly increasing timestamps so creation order is deterministic."""

    def __init__(self) -> None:
        self.ticks = 0

    def now(self) -> datetime:
        self.ticks += 1
        return _EPOCH + timedelta(seconds=self.ticks)


class MemoryHabitRepo:
    """Same contract as `HabitRepo`, backed by a dict."""

    def __init__(self, clock: Clock) -> None:
        self.clock = clock
        self.rows: Dict[str, Dict[str, Any]] = {}

    async def insert(self, owner: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        now = self.clock.now()
        row = {**fields, "id": str(uuid4()), "user_id": owner, "created_at": now, "updated_at": now}
        self.rows[row["id"]] = row
        return dict(row)

    async def list_for_owner(self, owner: str) -> List[Dict[str, Any]]:
        rows = [dict(r) for r in self.rows.values() if r["user_id"] == owner]
        return sorted(rows, key=lambda r: r["created_at"], reverse=True)

    async def get_for_owner(self, owner: str, habit_id: UUID) -> Optional[Dict[str, Any]]:
        row = self.rows.get(str(habit_id))
        if row is None or row["user_id"] != owner:
            return None
        return dict(row)

    async def update_for_owner(self, owner: str, habit_id: UUID, changes: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        row = self.rows.get(str(habit_id))
        if row is None or row["user_id"] != owner:
            return None
        row.update(changes)
        row["updated_at"] = self.clock.now()
        return dict(row)

    async def delete_for_owner(self, owner: str, habit_id: UUID) -> Optional[Dict[str, Any]]:
        row = self.rows.get(str(habit_id))
        if row is None or row["user_id"] != owner:
            return None
        return self.rows.pop(str(habit_id))


class MemoryProgressRepo:
    """Same contract as `ProgressRepo`; the upsert checks the habit like the SQL does."""

    def __init__(self, clock: Clock, habits: MemoryHabitRepo) -> None:
        self.clock = clock
        self.habits = habits
        self.rows: Dict[tuple, Dict[str, Any]] = {}

    def _out(self, row: Dict[str, Any]) -> Dict[str, Any]:
        out = dict(row)
        out["day"] = row["day"].isoformat()
        return out

    def _owned(self, owner: str) -> List[Dict[str, Any]]:
        """Rows of `owner` whose habit still exists, like the JOIN in the SQL reads."""
        return [
            r for r in self.rows.values()
            if r["user_id"] == owner and self.habits.rows.get(r["habit_id"], {}).get("user_id") == owner
        ]

    async def upsert_scored(self, owner, habit_id, day, value, complete, points, target):
        habit = self.habits.rows.get(str(habit_id))
        if habit is None or habit["user_id"] != owner or habit["daily_target"] != target:
            return None
        key = (owner, str(habit_id), day)
        now = self.clock.now()
        row = self.rows.get(key)
        if row is None:
            row = {
                "id": str(uuid4()),
                "user_id": owner,
                "habit_id": str(habit_id),
                "day": day,
                "created_at": now,
            }
            self.rows[key] = row
        row.update({"value": value, "complete": complete, "points": points, "updated_at": now})
        return self._out(row)

    async def list_for_day(self, owner: str, day: date) -> List[Dict[str, Any]]:
        rows = [r for r in self._owned(owner) if r["day"] == day]
        return [self._out(r) for r in sorted(rows, key=lambda r: r["created_at"])]

    async def list_for_habit(self, owner: str, habit_id: UUID, limit: int) -> List[Dict[str, Any]]:
        rows = [r for r in self._owned(owner) if r["habit_id"] == str(habit_id)]
        rows.sort(key=lambda r: r["day"], reverse=True)
        return [self._out(r) for r in rows[:limit]]

    async def list_between(self, owner: str, start: date, end: date) -> List[Dict[str, Any]]:
        rows = [r for r in self._owned(owner) if start <= r["day"] <= end]
        return [self._out(r) for r in sorted(rows, key=lambda r: r["day"])]

    async def delete_for_habit(self, owner: str, habit_id: UUID) -> int:
        keys = [k for k, r in self.rows.items() if r["user_id"] == owner and r["habit_id"] == str(habit_id)]
        for k in keys:
            del self.rows[k]
        return len(keys)


class MemoryOwnerRepo:
    def __init__(self, clock: Clock) -> None:
        self.clock = clock
        self.rows: Dict[str, Dict[str, Any]] = {}

    def _row(self, owner: str) -> Dict[str, Any]:
        if owner not in self.rows:
            self.rows[owner] = {"user_id": owner, "points": 0, "badges": [], "created_at": self.clock.now()}
        return self.rows[owner]

    async def get_or_create(self, owner: str) -> Dict[str, Any]:
        row = self._row(owner)
        return {**row, "badges": list(row["badges"])}

    async def add_points(self, owner: str, points: int) -> Dict[str, Any]:
        row = self._row(owner)
        row["points"] += points
        return {**row, "badges": list(row["badges"])}

    async def append_badge(self, owner: str, badge: str) -> Optional[Dict[str, Any]]:
        row = self._row(owner)
        if badge in row["badges"]:
            return None
        row["badges"].append(badge)
        return {**row, "badges": list(row["badges"])}


class StaticVerifier:
    """Accepts tokens of the form `token-<owner>`."""

    async def verify(self, token: str) -> str:
        if not token.startswith("token-"):
            raise AuthenticationError()
        return token[len("token-"):]


def auth(owner: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer token-{owner}"}


class Store:
    def __init__(self) -> None:
        self.clock = Clock()
        self.habits = MemoryHabitRepo(self.clock)
        self.progress = MemoryProgressRepo(self.clock, self.habits)
        self.owners = MemoryOwnerRepo(self.clock)

    def services(self) -> Services:
        return Services(
            habits=HabitService(self.habits, self.progress),
            progress=ProgressService(self.habits, self.progress),
            stats=StatsService(self.progress),
            owners=OwnerService(self.owners),
        )


@pytest.fixture
def store() -> Store:
    return Store()


@pytest.fixture
def services(store: Store) -> Services:
    return store.services()


@pytest.fixture
def client(services: Services) -> TestClient:
    return TestClient(create_app(services, verifier=StaticVerifier()))
