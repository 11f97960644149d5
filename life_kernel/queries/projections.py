"""
Per-domain read projections.

Thin views over a single reducer for read-only queries. Each takes the
event log and, where "today" or expiry matters, an explicit `now`.
"""

from typing import Iterable, Optional

from life_kernel.clock import DEFAULT_TIMEZONE
from life_kernel.domains import finance, habits, hard_mode, patterns, review, system
from life_kernel.domains.finance import Transaction
from life_kernel.domains.habits import Habit
from life_kernel.domains.hard_mode import HardModeSession
from life_kernel.domains.patterns import Pattern
from life_kernel.domains.review import Review
from life_kernel.models.envelope import Event


def active_habits(events: Iterable[Event]) -> list[Habit]:
    return list(habits.reduce.replay(events).active_habits.values())


def today_log(
    events: Iterable[Event],
    now: int,
    timezone: str = DEFAULT_TIMEZONE,
) -> dict[str, habits.HabitLogEntry]:
    return habits.replay_habit_events(events, now=now, default_timezone=timezone).today_log


def inbox(events: Iterable[Event]) -> list[Transaction]:
    """Imported transactions awaiting confirmation, newest first."""
    return finance.reduce.replay(events).inbox_transactions


def recent_transactions(events: Iterable[Event], limit: Optional[int] = 50) -> list[Transaction]:
    transactions = finance.reduce.replay(events).recent_transactions
    return transactions if limit is None else transactions[:limit]


def active_patterns(events: Iterable[Event], now: int) -> list[Pattern]:
    return patterns.active_patterns(patterns.reduce.replay(events), now)


def current_review(events: Iterable[Event]) -> Optional[Review]:
    return review.reduce.replay(events).current_review


def quiet_today(events: Iterable[Event], now: int, timezone: str = DEFAULT_TIMEZONE) -> bool:
    return system.is_quiet_day(system.reduce.replay(events), now, timezone)


def hard_mode_session(events: Iterable[Event], now: int) -> Optional[HardModeSession]:
    """The hard mode session running at `now`, with its current plan."""
    return hard_mode.running_session(hard_mode.reduce.replay(events), now)
