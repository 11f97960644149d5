"""
Habits Domain

Active habits plus the latest log entry per habit.

CRITICAL: There is no "missed" status anywhere in this module. A habit with
no log entry today is neutral, not negative. Day rollover clears the log
implicitly: projections keep only entries on the local day of `now`.
"""

from typing import Iterable, Literal, Optional, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, ConfigDict, Field, field_validator

from life_kernel.clock import DEFAULT_TIMEZONE, same_local_day
from life_kernel.config import KernelSettings
from life_kernel.domains.base import CommandRouter, EventReducer, make_event
from life_kernel.models.envelope import Command, Event
from life_kernel.validation import (
    UnknownEntityError,
    ValidationError,
    require_capacity,
    require_text,
)

HabitAnchor = Literal["morning", "afternoon", "evening", "anytime"]
HabitDifficulty = Literal["low", "medium", "high"]
HabitKind = Literal["build", "break"]
HabitLogStatus = Literal["completed", "skipped", "snoozed"]


class CustomCadence(BaseModel):
    """Habit due on specific weekdays, 0 = Sunday ... 6 = Saturday."""
    model_config = ConfigDict(frozen=True)

    custom_days: list[int] = Field(..., min_length=1, max_length=7)

    @field_validator('custom_days')
    @classmethod
    def validate_days(cls, v: list[int]) -> list[int]:
        if any(day < 0 or day > 6 for day in v):
            raise ValueError("custom days must be between 0 and 6")
        if len(set(v)) != len(v):
            raise ValueError("custom days must not repeat")
        return sorted(v)


HabitCadence = Union[Literal["daily", "weekdays"], CustomCadence]


# =============================================================================
# STATE
# =============================================================================

class Habit(BaseModel):
    """An active habit definition."""
    model_config = ConfigDict(frozen=True)

    habit_id: str
    name: str
    cadence: HabitCadence
    anchor: Optional[HabitAnchor] = None
    difficulty: Optional[HabitDifficulty] = None
    kind: Optional[HabitKind] = None
    target_value: Optional[float] = None
    target_unit: Optional[str] = None
    timezone: Optional[str] = None


class HabitLogEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: HabitLogStatus
    occurred_at: int
    snoozed_until: Optional[int] = None


class HabitState(BaseModel):
    """
    active_habits: habit_id -> Habit, archived habits removed.
    today_log: habit_id -> latest interaction. The reducer keeps the latest
    entry per habit; replay_habit_events(events, now=...) narrows it to the
    local day of `now`.
    """
    model_config = ConfigDict(frozen=True)

    active_habits: dict[str, Habit] = Field(default_factory=dict)
    today_log: dict[str, HabitLogEntry] = Field(default_factory=dict)


# =============================================================================
# EVENTS
# =============================================================================

class HabitRef(BaseModel):
    habit_id: str


class HabitSnoozed(HabitRef):
    snoozed_until: int


reduce: EventReducer[HabitState] = EventReducer("habits", HabitState)


@reduce.on("habit.created", Habit)
def _habit_created(state: HabitState, event: Event, payload: Habit) -> HabitState:
    return state.model_copy(update={
        "active_habits": {**state.active_habits, payload.habit_id: payload},
    })


@reduce.on("habit.updated", Habit)
def _habit_updated(state: HabitState, event: Event, payload: Habit) -> HabitState:
    if payload.habit_id not in state.active_habits:
        return state
    return state.model_copy(update={
        "active_habits": {**state.active_habits, payload.habit_id: payload},
    })


@reduce.on("habit.archived", HabitRef)
def _habit_archived(state: HabitState, event: Event, payload: HabitRef) -> HabitState:
    return HabitState(
        active_habits={k: v for k, v in state.active_habits.items() if k != payload.habit_id},
        today_log={k: v for k, v in state.today_log.items() if k != payload.habit_id},
    )


def _with_log_entry(state: HabitState, habit_id: str, entry: HabitLogEntry) -> HabitState:
    if habit_id not in state.active_habits:
        return state
    return state.model_copy(update={
        "today_log": {**state.today_log, habit_id: entry},
    })


@reduce.on("habit.completed", HabitRef)
def _habit_completed(state: HabitState, event: Event, payload: HabitRef) -> HabitState:
    entry = HabitLogEntry(status="completed", occurred_at=event.occurred_at)
    return _with_log_entry(state, payload.habit_id, entry)


@reduce.on("habit.skipped", HabitRef)
def _habit_skipped(state: HabitState, event: Event, payload: HabitRef) -> HabitState:
    entry = HabitLogEntry(status="skipped", occurred_at=event.occurred_at)
    return _with_log_entry(state, payload.habit_id, entry)


@reduce.on("habit.snoozed", HabitSnoozed)
def _habit_snoozed(state: HabitState, event: Event, payload: HabitSnoozed) -> HabitState:
    entry = HabitLogEntry(
        status="snoozed",
        occurred_at=event.occurred_at,
        snoozed_until=payload.snoozed_until,
    )
    return _with_log_entry(state, payload.habit_id, entry)


@reduce.on("habit.log_cleared", HabitRef)
def _habit_log_cleared(state: HabitState, event: Event, payload: HabitRef) -> HabitState:
    if payload.habit_id not in state.today_log:
        return state
    return state.model_copy(update={
        "today_log": {k: v for k, v in state.today_log.items() if k != payload.habit_id},
    })


def initial_state() -> HabitState:
    return reduce.initial_state()


def today_log_for(
    state: HabitState,
    now: int,
    default_timezone: str = DEFAULT_TIMEZONE,
) -> dict[str, HabitLogEntry]:
    """Log entries on the local day of `now`, in each habit's own timezone."""
    today = {}
    for habit_id, entry in state.today_log.items():
        habit = state.active_habits.get(habit_id)
        if habit is None:
            continue
        if same_local_day(entry.occurred_at, now, habit.timezone or default_timezone):
            today[habit_id] = entry
    return today


def replay_habit_events(
    events: Iterable[Event],
    now: Optional[int] = None,
    default_timezone: str = DEFAULT_TIMEZONE,
) -> HabitState:
    state = reduce.replay(events)
    if now is None:
        return state
    return state.model_copy(update={
        "today_log": today_log_for(state, now, default_timezone),
    })


# =============================================================================
# COMMANDS
# =============================================================================

class HabitFields(BaseModel):
    name: str
    cadence: HabitCadence
    anchor: Optional[HabitAnchor] = None
    difficulty: Optional[HabitDifficulty] = None
    kind: Optional[HabitKind] = None
    target_value: Optional[float] = Field(default=None, gt=0)
    target_unit: Optional[str] = Field(default=None, max_length=20)
    timezone: Optional[str] = None

    @field_validator('timezone')
    @classmethod
    def validate_timezone(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"unknown timezone: {v}")
        return v


class CreateHabit(HabitFields):
    habit_id: Optional[str] = None


class UpdateHabit(HabitFields):
    habit_id: str


class SnoozeHabit(HabitRef):
    snoozed_until: int


commands: CommandRouter[HabitState] = CommandRouter(reduce)


def _require_habit(state: HabitState, habit_id: str) -> Habit:
    habit = state.active_habits.get(habit_id)
    if habit is None:
        raise UnknownEntityError("habit", habit_id)
    return habit


def _habit_from(habit_id: str, fields: HabitFields) -> Habit:
    if fields.target_unit and fields.target_value is None:
        raise ValidationError(
            "Target unit requires a target value",
            field="target_value",
            issue_type="missing",
        )
    return Habit(
        habit_id=habit_id,
        name=require_text(fields.name, "name"),
        cadence=fields.cadence,
        anchor=fields.anchor,
        difficulty=fields.difficulty,
        kind=fields.kind,
        target_value=fields.target_value,
        target_unit=fields.target_unit,
        timezone=fields.timezone,
    )


@commands.on("habit.create", CreateHabit)
def _create_habit(
    state: HabitState,
    command: Command,
    payload: CreateHabit,
    settings: KernelSettings,
) -> list[Event]:
    habit_id = payload.habit_id or command.idempotency_key
    habit = _habit_from(habit_id, payload)
    if habit_id in state.active_habits:
        raise ValidationError(
            f"Habit already exists: {habit_id}",
            field="habit_id",
            issue_type="duplicate",
        )
    require_capacity(len(state.active_habits), settings.max_active_habits, "Active habit list")
    return [make_event(command, "habit.created", habit)]


@commands.on("habit.update", UpdateHabit)
def _update_habit(
    state: HabitState,
    command: Command,
    payload: UpdateHabit,
    settings: KernelSettings,
) -> list[Event]:
    _require_habit(state, payload.habit_id)
    habit = _habit_from(payload.habit_id, payload)
    return [make_event(command, "habit.updated", habit)]


@commands.on("habit.archive", HabitRef)
def _archive_habit(
    state: HabitState,
    command: Command,
    payload: HabitRef,
    settings: KernelSettings,
) -> list[Event]:
    _require_habit(state, payload.habit_id)
    return [make_event(command, "habit.archived", payload)]


@commands.on("habit.log", HabitRef)
def _log_habit(
    state: HabitState,
    command: Command,
    payload: HabitRef,
    settings: KernelSettings,
) -> list[Event]:
    _require_habit(state, payload.habit_id)
    return [make_event(command, "habit.completed", payload)]


@commands.on("habit.skip", HabitRef)
def _skip_habit(
    state: HabitState,
    command: Command,
    payload: HabitRef,
    settings: KernelSettings,
) -> list[Event]:
    _require_habit(state, payload.habit_id)
    return [make_event(command, "habit.skipped", payload)]


@commands.on("habit.snooze", SnoozeHabit)
def _snooze_habit(
    state: HabitState,
    command: Command,
    payload: SnoozeHabit,
    settings: KernelSettings,
) -> list[Event]:
    _require_habit(state, payload.habit_id)
    if payload.snoozed_until <= command.requested_at:
        raise ValidationError(
            "Snooze must end in the future",
            field="snoozed_until",
            issue_type="invalid_value",
        )
    return [make_event(command, "habit.snoozed", HabitSnoozed(**payload.model_dump()))]


@commands.on("habit.clear_today_status", HabitRef)
def _clear_today_status(
    state: HabitState,
    command: Command,
    payload: HabitRef,
    settings: KernelSettings,
) -> list[Event]:
    habit = _require_habit(state, payload.habit_id)
    entry = state.today_log.get(payload.habit_id)
    tz = habit.timezone or settings.timezone
    if entry is None or not same_local_day(entry.occurred_at, command.requested_at, tz):
        return []
    return [make_event(command, "habit.log_cleared", payload)]
