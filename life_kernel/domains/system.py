"""
System Domain

Per-day flags that cut across every other domain. Today that is only the
quiet day: when set, the policy engine surfaces nothing and dismisses
whatever is already showing.

A flag covers the local day it was set on, in the timezone it was set in.
Readers in another zone see the same span of time as quiet; they don't
re-key it to their own midnight.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from life_kernel.clock import DEFAULT_TIMEZONE, local_day_start, same_local_day
from life_kernel.config import KernelSettings
from life_kernel.domains.base import CommandRouter, EventReducer, make_event
from life_kernel.models.envelope import Command, Event


class QuietDay(BaseModel):
    model_config = ConfigDict(frozen=True)

    day_start: int
    is_quiet: bool
    reason: Optional[str] = None
    timezone: Optional[str] = None
    set_at: int


class SystemState(BaseModel):
    """quiet_days: local day start (epoch ms) -> latest flag for that day."""
    model_config = ConfigDict(frozen=True)

    quiet_days: dict[int, QuietDay] = Field(default_factory=dict)


class QuietDaySet(BaseModel):
    day_start: int
    is_quiet: bool
    reason: Optional[str] = None
    # older events carry no zone; readers fall back to their own
    timezone: Optional[str] = None


reduce: EventReducer[SystemState] = EventReducer("system", SystemState)


@reduce.on("system.quiet_day_set", QuietDaySet)
def _quiet_day_set(state: SystemState, event: Event, payload: QuietDaySet) -> SystemState:
    flag = QuietDay(set_at=event.occurred_at, **payload.model_dump())
    return state.model_copy(update={
        "quiet_days": {**state.quiet_days, payload.day_start: flag},
    })


def initial_state() -> SystemState:
    return reduce.initial_state()


def flag_for(state: SystemState, now: int, timezone: str = DEFAULT_TIMEZONE) -> Optional[QuietDay]:
    """
    The most recently set flag whose local day contains `now`.

    Each flag is matched in its own timezone; `timezone` is only used for
    flags recorded without one.
    """
    covering = [
        flag for flag in state.quiet_days.values()
        if same_local_day(flag.day_start, now, flag.timezone or timezone)
    ]
    if not covering:
        return None
    return max(covering, key=lambda flag: flag.set_at)


def is_quiet_day(state: SystemState, now: int, timezone: str = DEFAULT_TIMEZONE) -> bool:
    flag = flag_for(state, now, timezone)
    return flag is not None and flag.is_quiet


class SetQuietToday(BaseModel):
    is_quiet: bool = True
    reason: Optional[str] = Field(default=None, max_length=200)


commands: CommandRouter[SystemState] = CommandRouter(reduce)


@commands.on("system.set_quiet_today", SetQuietToday)
def _set_quiet_today(
    state: SystemState,
    command: Command,
    payload: SetQuietToday,
    settings: KernelSettings,
) -> list[Event]:
    if is_quiet_day(state, command.requested_at, settings.timezone) == payload.is_quiet:
        return []
    flag = QuietDaySet(
        day_start=local_day_start(command.requested_at, settings.timezone),
        is_quiet=payload.is_quiet,
        reason=(payload.reason or "").strip() or None,
        timezone=settings.timezone,
    )
    return [make_event(command, "system.quiet_day_set", flag)]
