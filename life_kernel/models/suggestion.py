"""
Suggestion Models

A suggestion is a small, dismissible nudge produced by one policy.

CRITICAL: At most one active (non-dismissed) suggestion exists per policy.
The reconciler is the only writer that creates suggestions, and it keys
everything by policy.
"""

from enum import Enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class PolicyName(str, Enum):
    """The fixed set of policies in the suggestion engine."""
    MORNING_HABIT_PROMPT = "MorningHabitPrompt"
    CHECKIN_PROMPT = "CheckinPrompt"
    WEEKLY_REVIEW_READY = "WeeklyReviewReady"
    ENVELOPE_APPROACHING = "EnvelopeApproaching"
    PATTERN_SURFACE = "PatternSurface"
    FOCUS_EMPTY = "FocusEmpty"
    REST_PERMISSION = "RestPermission"


class SuggestionAction(BaseModel):
    """Something the client may invoke from a suggestion (e.g. open a screen)."""
    model_config = ConfigDict(frozen=True)

    type: Literal["open_screen", "run_command"]
    label: str = Field(..., min_length=1, max_length=60)
    payload: dict[str, Any] = Field(default_factory=dict)


class SuggestionCandidate(BaseModel):
    """
    What a policy rule proposes this cycle.

    Priority orders suggestions for display only. It plays no part in
    reconciliation.
    """
    model_config = ConfigDict(frozen=True)

    policy: PolicyName
    headline: str = Field(..., min_length=1, max_length=120)
    subtext: str = Field(default="", max_length=240)
    priority: int = Field(..., ge=1, le=5)
    action: Optional[SuggestionAction] = None

    def differs_from(self, suggestion: "Suggestion") -> bool:
        """True if any displayed field differs from a stored suggestion."""
        return (
            self.headline != suggestion.headline
            or self.subtext != suggestion.subtext
            or self.priority != suggestion.priority
            or self.action != suggestion.action
        )


class Suggestion(BaseModel):
    """A stored suggestion, active until dismissed_at is set."""

    id: str
    policy: PolicyName
    headline: str
    subtext: str = ""
    priority: int = Field(..., ge=1, le=5)
    action: Optional[SuggestionAction] = None
    created_at: int = Field(..., ge=0)
    dismissed_at: Optional[int] = None

    @property
    def is_active(self) -> bool:
        return self.dismissed_at is None


class SuggestionUpdate(BaseModel):
    """In-place patch for an active suggestion whose content changed."""
    model_config = ConfigDict(frozen=True)

    suggestion_id: str
    policy: PolicyName
    headline: str
    subtext: str
    priority: int
    action: Optional[SuggestionAction] = None


def order_for_display(suggestions: list[Suggestion]) -> list[Suggestion]:
    """Highest priority first, oldest first within a priority."""
    return sorted(suggestions, key=lambda s: (-s.priority, s.created_at))
