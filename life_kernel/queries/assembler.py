"""
Domain State Assembler

Folds the event log through every domain reducer and combines the results
into one DomainState for a given `now`.

DESIGN DECISION: Only events with occurred_at <= now are folded. Asking
"what did the world look like at t" must not see events stamped after t.
"""

from typing import Iterable, Optional

from life_kernel.clock import local_month_start
from life_kernel.config import KernelSettings, get_settings
from life_kernel.domains import checkins, finance, habits, patterns, review, system, tasks
from life_kernel.domains.base import ordered
from life_kernel.domains.finance import FinanceState
from life_kernel.models.envelope import Event
from life_kernel.queries.state import (
    CheckinSnapshot,
    DomainState,
    EnvelopeUtilization,
    HabitSnapshot,
    TaskBuckets,
)


def events_until(events: Iterable[Event], now: int) -> list[Event]:
    return [event for event in ordered(events) if event.occurred_at <= now]


def envelope_utilization(
    state: FinanceState,
    now: int,
    timezone: str,
) -> list[EnvelopeUtilization]:
    """
    Confirmed, non-voided spend per envelope since local month start.

    Pending imports don't count until confirmed. An envelope with no soft
    ceiling (or a zero one) reports utilization 0.
    """
    month_start = local_month_start(now, timezone)
    spent: dict[str, int] = {}
    for txn in state.recent_transactions:
        if txn.voided or txn.pending_import or txn.envelope_id is None:
            continue
        if not month_start <= txn.occurred_at <= now:
            continue
        spent[txn.envelope_id] = spent.get(txn.envelope_id, 0) + txn.amount

    result = []
    for envelope in state.envelopes.values():
        total = spent.get(envelope.envelope_id, 0)
        ceiling = envelope.soft_ceiling
        result.append(EnvelopeUtilization(
            envelope_id=envelope.envelope_id,
            name=envelope.name,
            spent=total,
            soft_ceiling=ceiling,
            utilization=total / ceiling if ceiling else 0.0,
        ))
    return result


def build_domain_state(
    events: Iterable[Event],
    now: int,
    timezone: Optional[str] = None,
    settings: Optional[KernelSettings] = None,
) -> DomainState:
    """
    Assemble the composite snapshot the policy engine evaluates.

    Args:
        events: The full event log, in any order
        now: Snapshot time (epoch ms)
        timezone: IANA zone for day/week/month boundaries; defaults to settings
        settings: Kernel settings; defaults to get_settings()
    """
    settings = settings or get_settings()
    tz = timezone or settings.timezone
    log = events_until(events, now)

    habit_state = habits.replay_habit_events(log, now=now, default_timezone=tz)

    checkin_state = checkins.reduce.replay(log)
    recent = checkins.recent_checkins(checkin_state, now, settings.checkin_window_days)

    task_state = tasks.reduce.replay(log)
    finance_state = finance.reduce.replay(log)
    pattern_state = patterns.reduce.replay(log)
    review_state = review.reduce.replay(log)
    system_state = system.reduce.replay(log)

    return DomainState(
        now=now,
        timezone=tz,
        habits=HabitSnapshot(
            active_habits=habit_state.active_habits,
            today_log=habit_state.today_log,
        ),
        checkins=CheckinSnapshot(
            recent=recent,
            trend=checkins.mood_trend(recent, tz),
            latest=checkins.latest_checkin(checkin_state, now),
        ),
        tasks=TaskBuckets(
            inbox=task_state.inbox,
            focus=task_state.focus,
            deferred=task_state.deferred,
            completed=task_state.completed,
            abandoned=task_state.abandoned,
        ),
        envelopes=envelope_utilization(finance_state, now, tz),
        active_pattern_count=len(patterns.active_patterns(pattern_state, now)),
        weekly_review_due=review.is_review_due(review_state, now, settings.review_interval_days),
        review_in_progress=review_state.current_review is not None,
        quiet_today=system.is_quiet_day(system_state, now, tz),
    )
