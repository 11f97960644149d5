"""
Policy Rules

Each rule is a predicate + formatter pair over a DomainState, scoped to
exactly one policy. Rules share nothing and have no side effects, so the
order they are evaluated in never changes the result.

Hours and weekdays are read in the snapshot's own timezone.
"""

from typing import Callable, Optional

from pydantic import BaseModel, ConfigDict

from life_kernel.clock import HOUR_MS, local_hour, local_weekday
from life_kernel.models.suggestion import PolicyName, SuggestionAction, SuggestionCandidate
from life_kernel.queries.state import DomainState, EnvelopeUtilization

MORNING_WINDOW = (5, 11)  # inclusive local hours
CHECKIN_INTERVAL_MS = 24 * HOUR_MS
SUNDAY = 6
REVIEW_EVENING_HOUR = 17
ENVELOPE_WARNING_THRESHOLD = 0.85
ENVELOPE_HEADLINE_NAME_WIDTH = 60
LOW_ENERGY_BELOW = 3


class PolicyRule(BaseModel):
    """One policy: when it fires and what it says."""
    model_config = ConfigDict(frozen=True)

    policy: PolicyName
    predicate: Callable[[DomainState], bool]
    formatter: Callable[[DomainState], SuggestionCandidate]

    def evaluate(self, state: DomainState) -> Optional[SuggestionCandidate]:
        if not self.predicate(state):
            return None
        return self.formatter(state)


def _open_screen(label: str, screen: str) -> SuggestionAction:
    return SuggestionAction(type="open_screen", label=label, payload={"screen": screen})


# =============================================================================
# MorningHabitPrompt
# =============================================================================

def morning_habit_due(state: DomainState) -> bool:
    start, end = MORNING_WINDOW
    if not start <= local_hour(state.now, state.timezone) <= end:
        return False
    return bool(state.habits.active_habits) and not state.habits.today_log


def morning_habit_prompt(state: DomainState) -> SuggestionCandidate:
    return SuggestionCandidate(
        policy=PolicyName.MORNING_HABIT_PROMPT,
        headline="A gentle morning start is available",
        subtext="Pick one habit to begin your day.",
        priority=5,
        action=_open_screen("Open habits", "habits"),
    )


# =============================================================================
# CheckinPrompt
# =============================================================================

def checkin_due(state: DomainState) -> bool:
    latest = state.checkins.latest
    return latest is None or state.now - latest.occurred_at >= CHECKIN_INTERVAL_MS


def checkin_prompt(state: DomainState) -> SuggestionCandidate:
    return SuggestionCandidate(
        policy=PolicyName.CHECKIN_PROMPT,
        headline="Quick check-in available",
        subtext="Log mood and energy in under a minute.",
        priority=5,
        action=_open_screen("Check in", "checkin"),
    )


# =============================================================================
# WeeklyReviewReady
# =============================================================================

def weekly_review_ready(state: DomainState) -> bool:
    sunday_evening = (
        local_weekday(state.now, state.timezone) == SUNDAY
        and local_hour(state.now, state.timezone) >= REVIEW_EVENING_HOUR
    )
    return sunday_evening or state.weekly_review_due


def weekly_review_prompt(state: DomainState) -> SuggestionCandidate:
    return SuggestionCandidate(
        policy=PolicyName.WEEKLY_REVIEW_READY,
        headline="Weekly review is ready",
        subtext="A short reflection can help you reset for next week.",
        priority=4,
        action=_open_screen("Start review", "weekly-review"),
    )


# =============================================================================
# EnvelopeApproaching
# =============================================================================

def nearest_to_ceiling(state: DomainState) -> Optional[EnvelopeUtilization]:
    """The envelope closest to (but not over) its ceiling, above the threshold."""
    nearing = [
        e for e in state.envelopes
        if ENVELOPE_WARNING_THRESHOLD <= e.utilization < 1
    ]
    if not nearing:
        return None
    # ties resolve to the first envelope created
    return max(nearing, key=lambda e: e.utilization)


def envelope_approaching(state: DomainState) -> bool:
    return nearest_to_ceiling(state) is not None


def _shorten(text: str, width: int) -> str:
    if len(text) <= width:
        return text
    return text[: width - 1].rstrip() + "…"


def envelope_approaching_prompt(state: DomainState) -> SuggestionCandidate:
    envelope = nearest_to_ceiling(state)
    # names from older events are not length-checked
    name = _shorten(envelope.name, ENVELOPE_HEADLINE_NAME_WIDTH)
    return SuggestionCandidate(
        policy=PolicyName.ENVELOPE_APPROACHING,
        headline=f"{name} is nearing its ceiling",
        subtext="Awareness only: adjust if helpful.",
        priority=3,
        action=_open_screen("View finances", "finance"),
    )


# =============================================================================
# PatternSurface
# =============================================================================

def patterns_available(state: DomainState) -> bool:
    return state.active_pattern_count > 0


def pattern_surface_prompt(state: DomainState) -> SuggestionCandidate:
    return SuggestionCandidate(
        policy=PolicyName.PATTERN_SURFACE,
        headline="A new pattern might be useful",
        subtext="Review it and keep only what helps.",
        priority=3,
        action=_open_screen("View patterns", "patterns"),
    )


# =============================================================================
# FocusEmpty
# =============================================================================

def focus_empty(state: DomainState) -> bool:
    return not state.tasks.focus and bool(state.tasks.inbox)


def focus_empty_prompt(state: DomainState) -> SuggestionCandidate:
    return SuggestionCandidate(
        policy=PolicyName.FOCUS_EMPTY,
        headline="Focus is empty while inbox has tasks",
        subtext="Move one task into Focus when ready.",
        priority=4,
        action=_open_screen("Open tasks", "tasks"),
    )


# =============================================================================
# RestPermission
# =============================================================================

def rest_permitted(state: DomainState) -> bool:
    if state.tasks.focus or state.habits.today_log:
        return False
    latest = state.checkins.latest
    return latest is None or latest.energy < LOW_ENERGY_BELOW


def rest_permission_prompt(state: DomainState) -> SuggestionCandidate:
    # No action: this one is just permission.
    return SuggestionCandidate(
        policy=PolicyName.REST_PERMISSION,
        headline="Rest is a valid strategy",
        subtext="You can pause without losing progress.",
        priority=2,
    )


DEFAULT_RULES: tuple[PolicyRule, ...] = (
    PolicyRule(
        policy=PolicyName.MORNING_HABIT_PROMPT,
        predicate=morning_habit_due,
        formatter=morning_habit_prompt,
    ),
    PolicyRule(
        policy=PolicyName.CHECKIN_PROMPT,
        predicate=checkin_due,
        formatter=checkin_prompt,
    ),
    PolicyRule(
        policy=PolicyName.WEEKLY_REVIEW_READY,
        predicate=weekly_review_ready,
        formatter=weekly_review_prompt,
    ),
    PolicyRule(
        policy=PolicyName.ENVELOPE_APPROACHING,
        predicate=envelope_approaching,
        formatter=envelope_approaching_prompt,
    ),
    PolicyRule(
        policy=PolicyName.PATTERN_SURFACE,
        predicate=patterns_available,
        formatter=pattern_surface_prompt,
    ),
    PolicyRule(
        policy=PolicyName.FOCUS_EMPTY,
        predicate=focus_empty,
        formatter=focus_empty_prompt,
    ),
    PolicyRule(
        policy=PolicyName.REST_PERMISSION,
        predicate=rest_permitted,
        formatter=rest_permission_prompt,
    ),
)
