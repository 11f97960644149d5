"""
Check-ins Domain

Daily and weekly mood/energy check-ins. The reducer only records them; the
rolling 14-day window and its averages are projections over an explicit
`now`, so replaying the same events tomorrow gives the same state.
"""

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictInt

from life_kernel.clock import DAY_MS, DEFAULT_TIMEZONE, local_date_key
from life_kernel.config import KernelSettings
from life_kernel.domains.base import CommandRouter, EventReducer, make_event
from life_kernel.models.envelope import Command, Event
from life_kernel.validation import UnknownEntityError, ValidationError

CheckinType = Literal["daily", "weekly"]
CheckinFlag = Literal[
    "anxious", "grateful", "overwhelmed", "calm", "tired", "motivated",
    "stressed", "peaceful", "isolated", "connected", "uncertain", "focused",
]

Score = StrictInt


class WeeklyAnswers(BaseModel):
    model_config = ConfigDict(frozen=True)

    felt_good: str = ""
    felt_hard: str = ""
    carry_forward: str = ""


# =============================================================================
# STATE
# =============================================================================

class Checkin(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    type: CheckinType = "daily"
    mood: int = Field(..., ge=1, le=5)
    energy: int = Field(..., ge=1, le=5)
    flags: list[CheckinFlag] = Field(default_factory=list)
    note: Optional[str] = None
    occurred_at: int
    weekly_answers: Optional[WeeklyAnswers] = None


class CheckinState(BaseModel):
    """All check-ins in submission order."""
    model_config = ConfigDict(frozen=True)

    checkins: list[Checkin] = Field(default_factory=list)

    def get(self, checkin_id: str) -> Optional[Checkin]:
        for checkin in self.checkins:
            if checkin.id == checkin_id:
                return checkin
        return None


class MoodTrend(BaseModel):
    model_config = ConfigDict(frozen=True)

    average_mood: float = 0.0
    average_energy: float = 0.0
    days_tracked: int = 0


# =============================================================================
# EVENTS
# =============================================================================

class CheckinSubmitted(BaseModel):
    id: str
    type: CheckinType = "daily"
    mood: int = Field(..., ge=1, le=5)
    energy: int = Field(..., ge=1, le=5)
    flags: list[CheckinFlag] = Field(default_factory=list)
    note: Optional[str] = None
    weekly_answers: Optional[WeeklyAnswers] = None


class CheckinUpdated(BaseModel):
    id: str
    mood: Optional[int] = Field(default=None, ge=1, le=5)
    energy: Optional[int] = Field(default=None, ge=1, le=5)
    flags: Optional[list[CheckinFlag]] = None
    note: Optional[str] = None


reduce: EventReducer[CheckinState] = EventReducer("checkins", CheckinState)


@reduce.on("checkin.submitted", CheckinSubmitted)
def _checkin_submitted(state: CheckinState, event: Event, payload: CheckinSubmitted) -> CheckinState:
    if state.get(payload.id) is not None:
        return state
    checkin = Checkin(occurred_at=event.occurred_at, **payload.model_dump())
    return state.model_copy(update={"checkins": [*state.checkins, checkin]})


@reduce.on("checkin.updated", CheckinUpdated)
def _checkin_updated(state: CheckinState, event: Event, payload: CheckinUpdated) -> CheckinState:
    changes = payload.model_dump(exclude={"id"}, exclude_none=True)
    return state.model_copy(update={
        "checkins": [
            c.model_copy(update=changes) if c.id == payload.id else c
            for c in state.checkins
        ],
    })


def initial_state() -> CheckinState:
    return reduce.initial_state()


def recent_checkins(state: CheckinState, now: int, window_days: int = 14) -> list[Checkin]:
    """Check-ins in [now - window_days, now], oldest first."""
    since = now - window_days * DAY_MS
    recent = [c for c in state.checkins if since <= c.occurred_at <= now]
    return sorted(recent, key=lambda c: c.occurred_at)


def mood_trend(recent: list[Checkin], timezone: str = DEFAULT_TIMEZONE) -> MoodTrend:
    if not recent:
        return MoodTrend()
    return MoodTrend(
        average_mood=sum(c.mood for c in recent) / len(recent),
        average_energy=sum(c.energy for c in recent) / len(recent),
        days_tracked=len({local_date_key(c.occurred_at, timezone) for c in recent}),
    )


def latest_checkin(state: CheckinState, now: int) -> Optional[Checkin]:
    past = [c for c in state.checkins if c.occurred_at <= now]
    if not past:
        return None
    return max(past, key=lambda c: c.occurred_at)


# =============================================================================
# COMMANDS
# =============================================================================

class SubmitCheckin(BaseModel):
    type: CheckinType = "daily"
    mood: Score = Field(..., ge=1, le=5)
    energy: Score = Field(..., ge=1, le=5)
    flags: list[CheckinFlag] = Field(default_factory=list)
    note: Optional[str] = None
    weekly_answers: Optional[WeeklyAnswers] = None


class UpdateCheckin(BaseModel):
    checkin_id: str
    mood: Optional[Score] = Field(default=None, ge=1, le=5)
    energy: Optional[Score] = Field(default=None, ge=1, le=5)
    flags: Optional[list[CheckinFlag]] = None
    note: Optional[str] = None


commands: CommandRouter[CheckinState] = CommandRouter(reduce)


@commands.on("checkin.submit", SubmitCheckin)
def _submit_checkin(
    state: CheckinState,
    command: Command,
    payload: SubmitCheckin,
    settings: KernelSettings,
) -> list[Event]:
    if payload.type == "weekly" and payload.weekly_answers is None:
        raise ValidationError(
            "Weekly check-in needs its answers",
            field="weekly_answers",
            issue_type="missing",
        )
    submitted = CheckinSubmitted(
        id=command.idempotency_key,
        type=payload.type,
        mood=payload.mood,
        energy=payload.energy,
        flags=list(dict.fromkeys(payload.flags)),
        note=(payload.note or "").strip() or None,
        weekly_answers=payload.weekly_answers,
    )
    return [make_event(command, "checkin.submitted", submitted)]


@commands.on("checkin.update", UpdateCheckin)
def _update_checkin(
    state: CheckinState,
    command: Command,
    payload: UpdateCheckin,
    settings: KernelSettings,
) -> list[Event]:
    if state.get(payload.checkin_id) is None:
        raise UnknownEntityError("checkin", payload.checkin_id)
    changes = payload.model_dump(exclude={"checkin_id"}, exclude_none=True)
    if not changes:
        raise ValidationError("Nothing to update", issue_type="empty")
    return [make_event(command, "checkin.updated", CheckinUpdated(id=payload.checkin_id, **changes))]
