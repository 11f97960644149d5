"""
Per-domain reducers and command handlers.

Every domain module exposes the same surface:
- reduce: EventReducer, the pure `(state, event) -> state` fold
- commands: CommandRouter, `handle(prior_events, command) -> events`
- initial_state()
"""

from life_kernel.domains import checkins, finance, habits, hard_mode, patterns, review, system, tasks
from life_kernel.domains.base import CommandRouter, EventReducer, make_event, ordered

DOMAINS = (habits, finance, patterns, tasks, checkins, review, system, hard_mode)

__all__ = [
    "DOMAINS",
    "CommandRouter",
    "EventReducer",
    "checkins",
    "finance",
    "habits",
    "hard_mode",
    "make_event",
    "ordered",
    "patterns",
    "review",
    "system",
    "tasks",
]
