"""Read path: the composite DomainState and per-domain projections."""

from life_kernel.queries.assembler import build_domain_state, envelope_utilization, events_until
from life_kernel.queries.projections import (
    active_habits,
    active_patterns,
    current_review,
    hard_mode_session,
    inbox,
    quiet_today,
    recent_transactions,
    today_log,
)
from life_kernel.queries.state import (
    CheckinSnapshot,
    DomainState,
    EnvelopeUtilization,
    HabitSnapshot,
    TaskBuckets,
)

__all__ = [
    "CheckinSnapshot",
    "DomainState",
    "EnvelopeUtilization",
    "HabitSnapshot",
    "TaskBuckets",
    "active_habits",
    "active_patterns",
    "build_domain_state",
    "current_review",
    "envelope_utilization",
    "events_until",
    "hard_mode_session",
    "inbox",
    "quiet_today",
    "recent_transactions",
    "today_log",
]
