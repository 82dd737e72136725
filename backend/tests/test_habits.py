from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone

import pytest

from errors import NotFoundError, ValidationError
from service_habits import HabitService


def run(coro):
    return asyncio.run(coro)


@pytest.mark.parametrize("name", ["", "   ", None, "x" * 101])
def test_create_rejects_invalid_names(services, name) -> None:
    with pytest.raises(ValidationError) as excinfo:
        run(services.habits.create_habit("alice", name))
    assert excinfo.value.details[0]["field"] == "name"


@pytest.mark.parametrize("name", ["x", "x" * 100])
def test_create_accepts_boundary_lengths(services, name) -> None:
    habit = run(services.habits.create_habit("alice", name))
    assert habit.name == name


def test_create_trims_name_and_applies_defaults(services) -> None:
    habit = run(services.habits.create_habit("alice", "  Read  "))
    assert habit.name == "Read"
    assert habit.user_id == "alice"
    assert habit.daily_target == 1
    assert habit.unit == "times"
    assert habit.reminder is True
    assert habit.reminder_time == "09:00"


def test_create_ignores_owner_in_metadata(services) -> None:
    habit = run(services.habits.create_habit("alice", "Read", {"user_id": "mallory", "daily_target": 20}))
    assert habit.user_id == "alice"
    assert habit.daily_target == 20


@pytest.mark.parametrize(
    "metadata",
    [{"daily_target": 0}, {"daily_target": -2}, {"reminder_time": "25:00"}, {"icon": ""}, {"color": "c" * 40}],
)
def test_create_rejects_invalid_metadata(services, metadata) -> None:
    with pytest.raises(ValidationError):
        run(services.habits.create_habit("alice", "Read", metadata))


def test_list_is_owner_scoped_and_newest_first(services) -> None:
    first = run(services.habits.create_habit("alice", "Walk"))
    second = run(services.habits.create_habit("alice", "Read"))
    run(services.habits.create_habit("bob", "Swim"))

    assert [h.id for h in run(services.habits.list_habits("alice"))] == [second.id, first.id]
    assert [h.name for h in run(services.habits.list_habits("bob"))] == ["Swim"]
    assert run(services.habits.list_habits("carol")) == []


def test_other_owner_cannot_read_update_or_delete(services) -> None:
    habit = run(services.habits.create_habit("alice", "Walk"))

    with pytest.raises(NotFoundError):
        run(services.habits.get_habit("bob", habit.id))
    with pytest.raises(NotFoundError):
        run(services.habits.update_habit("bob", habit.id, {"name": "Stolen"}))
    with pytest.raises(NotFoundError):
        run(services.habits.delete_habit("bob", habit.id))

    assert run(services.habits.get_habit("alice", habit.id)).name == "Walk"


def test_missing_and_foreign_habits_look_the_same(services) -> None:
    habit = run(services.habits.create_habit("alice", "Walk"))
    with pytest.raises(NotFoundError) as foreign:
        run(services.habits.update_habit("bob", habit.id, {"name": "x"}))
    with pytest.raises(NotFoundError) as missing:
        run(services.habits.update_habit("bob", "00000000-0000-0000-0000-000000000000", {"name": "x"}))
    with pytest.raises(NotFoundError) as malformed:
        run(services.habits.update_habit("bob", "not-an-id", {"name": "x"}))
    assert foreign.value.message == missing.value.message == malformed.value.message


def test_update_applies_patch(services) -> None:
    habit = run(services.habits.create_habit("alice", "Walk"))
    updated = run(services.habits.update_habit("alice", habit.id, {"name": " Run ", "daily_target": 5}))
    assert updated.id == habit.id
    assert updated.name == "Run"
    assert updated.daily_target == 5
    assert updated.created_at == habit.created_at


def test_update_validates_before_touching_the_store(services) -> None:
    habit = run(services.habits.create_habit("alice", "Walk"))
    with pytest.raises(ValidationError):
        run(services.habits.update_habit("alice", habit.id, {"name": "   "}))
    with pytest.raises(ValidationError):
        run(services.habits.update_habit("alice", habit.id, {}))
    assert run(services.habits.get_habit("alice", habit.id)).name == "Walk"


def test_delete_removes_habit_and_its_progress(services) -> None:
    habit = run(services.habits.create_habit("alice", "Walk"))
    run(services.progress.submit_progress("alice", habit.id, "2026-03-01", 1))

    deleted = run(services.habits.delete_habit("alice", habit.id))

    assert deleted.id == habit.id
    assert run(services.habits.list_habits("alice")) == []
    assert run(services.progress.list_progress_for_habit("alice", habit.id)) == []
    with pytest.raises(NotFoundError):
        run(services.habits.delete_habit("alice", habit.id))


class BrokenProgressRepo:
    async def delete_for_habit(self, owner, habit_id):
        raise ConnectionError("store went away")


def test_delete_survives_cascade_failure(store, caplog) -> None:
    services = store.services()
    svc = HabitService(store.habits, BrokenProgressRepo())
    habit = run(svc.create_habit("alice", "Walk"))
    run(services.progress.submit_progress("alice", habit.id, "2026-03-09", 1))

    with caplog.at_level(logging.ERROR):
        deleted = run(svc.delete_habit("alice", habit.id))

    assert deleted.id == habit.id
    assert run(svc.list_habits("alice")) == []
    assert "cascade failed" in caplog.text

    # The orphaned record is still stored but no read returns it.
    assert len(store.progress.rows) == 1
    assert run(services.progress.list_progress_for_habit("alice", habit.id)) == []
    assert run(services.progress.list_progress("alice", "2026-03-09")) == []
    stats = run(services.stats.weekly_stats("alice", datetime(2026, 3, 10, 12, tzinfo=timezone.utc)))
    assert stats.goals_total == 0
    assert stats.total_points == 0
