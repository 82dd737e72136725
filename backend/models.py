"""
Pydantic models used across the backend.

Input shapes (`*In`, `*Patch`) validate JSON types at the FastAPI route
boundary. Output shapes (`Habit`, `ProgressRecord`, ...) are what services
return and what routes serialize into the response envelope.

Guidelines:
- Input models never carry an owner id. The owner always comes from the
    verified bearer token.
- Business rules (name length, positive target, date format) live in the
    services so they hold for every caller, not only for HTTP.
- Ids are plain strings on the way out, whatever the store uses inside.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

# Largest single points increment accepted.
MAX_POINTS_INCREMENT = 1_000_000


class HabitIn(BaseModel):
    """Body of `POST /habits`."""

    name: Optional[str] = None
    icon: Optional[str] = None
    color: Optional[str] = None
    daily_target: Optional[float] = Field(default=None, strict=True)
    unit: Optional[str] = None
    reminder: Optional[bool] = None
    reminder_time: Optional[str] = None


class HabitPatch(HabitIn):
    """Body of `PUT /habits/{id}`. Only fields that are present are applied."""


class ProgressIn(BaseModel):
    """Body of `POST /progressions`."""

    habit_id: str = Field(min_length=1)
    day: str
    # strict: JSON booleans are not numbers here
    value: float = Field(strict=True)


class PointsIn(BaseModel):
    points: int = Field(ge=0, le=MAX_POINTS_INCREMENT, strict=True)


class Habit(BaseModel):
    id: str
    user_id: str
    name: str
    icon: str
    color: str
    daily_target: float
    unit: str
    reminder: bool
    reminder_time: str
    created_at: datetime
    updated_at: Optional[datetime] = None


class ProgressRecord(BaseModel):
    id: str
    user_id: str
    habit_id: str
    day: str
    value: float
    complete: bool
    points: int
    created_at: datetime
    updated_at: Optional[datetime] = None


class WeeklyStats(BaseModel):
    start_day: str
    end_day: str
    total_points: int
    goals_completed: int
    goals_total: int
    completion_rate: int


class OwnerProfile(BaseModel):
    user_id: str
    points: int
    level: int
    badges: List[str] = Field(default_factory=list)
    created_at: datetime
