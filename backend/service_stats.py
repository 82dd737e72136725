"""Weekly rollup of progress records."""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, Optional

from models import WeeklyStats
from repo_progress import ProgressRepo

WINDOW_DAYS = 7


def summarize_week(records: Iterable[Dict[str, Any]]) -> Dict[str, int]:
    total_points = 0
    completed = 0
    total = 0
    for r in records:
        total += 1
        total_points += r["points"]
        if r["complete"]:
            completed += 1
    return {
        "total_points": total_points,
        "goals_completed": completed,
        "goals_total": total,
        "completion_rate": round(100 * completed / total) if total else 0,
    }


class StatsService:
    def __init__(self, progress: ProgressRepo):
        self.progress = progress

    async def weekly_stats(self, owner: str, now: Optional[datetime] = None) -> WeeklyStats:
        """Stats over the calendar days `[now - 7 days, now]`, both ends included (UTC)."""

        now = now or datetime.now(timezone.utc)
        if now.tzinfo is not None:
            now = now.astimezone(timezone.utc)
        end = now.date()
        start = (now - timedelta(days=WINDOW_DAYS)).date()

        records = await self.progress.list_between(owner, start, end)
        return WeeklyStats(
            start_day=start.isoformat(),
            end_day=end.isoformat(),
            **summarize_week(records),
        )
