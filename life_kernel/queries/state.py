"""
Composite Domain State

The single snapshot the policy engine reads. It is assembled for one
`now` and one timezone and never written back anywhere.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from life_kernel.domains.checkins import Checkin, MoodTrend
from life_kernel.domains.habits import Habit, HabitLogEntry
from life_kernel.domains.tasks import Task


class HabitSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    active_habits: dict[str, Habit] = Field(default_factory=dict)
    today_log: dict[str, HabitLogEntry] = Field(default_factory=dict)


class CheckinSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    recent: list[Checkin] = Field(default_factory=list)
    trend: MoodTrend = Field(default_factory=MoodTrend)
    latest: Optional[Checkin] = None


class TaskBuckets(BaseModel):
    model_config = ConfigDict(frozen=True)

    inbox: list[Task] = Field(default_factory=list)
    focus: list[Task] = Field(default_factory=list)
    deferred: list[Task] = Field(default_factory=list)
    completed: list[Task] = Field(default_factory=list)
    abandoned: list[Task] = Field(default_factory=list)


class EnvelopeUtilization(BaseModel):
    """Spent this local month over the soft ceiling. No ceiling means 0."""
    model_config = ConfigDict(frozen=True)

    envelope_id: str
    name: str
    spent: int = 0
    soft_ceiling: Optional[int] = None
    utilization: float = 0.0


class DomainState(BaseModel):
    model_config = ConfigDict(frozen=True)

    now: int
    timezone: str
    habits: HabitSnapshot = Field(default_factory=HabitSnapshot)
    checkins: CheckinSnapshot = Field(default_factory=CheckinSnapshot)
    tasks: TaskBuckets = Field(default_factory=TaskBuckets)
    envelopes: list[EnvelopeUtilization] = Field(default_factory=list)
    active_pattern_count: int = 0
    weekly_review_due: bool = False
    review_in_progress: bool = False
    quiet_today: bool = False
