"""
Weekly Review Domain

One linear state machine per review instance:

    lookback -> reflect -> intentions -> closed

Skipping is the alternate terminal transition: from any open phase (or
with no review started at all) the current slot is cleared and nothing
enters history. At most one review is open at a time.
"""

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from life_kernel.clock import DAY_MS, local_week_bounds
from life_kernel.config import KernelSettings
from life_kernel.domains.base import CommandRouter, EventReducer, make_event
from life_kernel.models.envelope import Command, Event
from life_kernel.validation import ValidationError, require_text

ReviewPhase = Literal["lookback", "reflect", "intentions", "closed"]

# phases each command may start from
REFLECTION_PHASES = frozenset({"lookback", "reflect"})
INTENTION_PHASES = frozenset({"reflect", "intentions"})
CLOSE_PHASES = frozenset({"intentions"})


# =============================================================================
# STATE
# =============================================================================

class Review(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    week_start: int
    week_end: int
    phase: ReviewPhase = "lookback"
    felt_good: Optional[str] = None
    felt_hard: Optional[str] = None
    carry_forward: Optional[str] = None
    intentions: list[str] = Field(default_factory=list)
    created_at: int
    closed_at: Optional[int] = None


class ReviewState(BaseModel):
    model_config = ConfigDict(frozen=True)

    current_review: Optional[Review] = None
    review_history: list[Review] = Field(default_factory=list)
    last_skipped_at: Optional[int] = None

    @property
    def last_finished_at(self) -> Optional[int]:
        """Most recent close or skip, whichever is later."""
        times = [r.closed_at for r in self.review_history if r.closed_at is not None]
        if self.last_skipped_at is not None:
            times.append(self.last_skipped_at)
        return max(times) if times else None


# =============================================================================
# EVENTS
# =============================================================================

class ReviewStarted(BaseModel):
    id: str
    week_start: int
    week_end: int


class ReflectionSubmitted(BaseModel):
    id: str
    felt_good: str = ""
    felt_hard: str = ""
    carry_forward: str = ""


class IntentionsSet(BaseModel):
    id: str
    intentions: list[str] = Field(default_factory=list)


class ReviewRef(BaseModel):
    id: str


class ReviewSkipped(BaseModel):
    id: Optional[str] = None
    week_start: int
    week_end: int


reduce: EventReducer[ReviewState] = EventReducer("review", ReviewState)


def _current(state: ReviewState, review_id: str) -> Optional[Review]:
    review = state.current_review
    if review is None or review.id != review_id:
        return None
    return review


@reduce.on("review.started", ReviewStarted)
def _review_started(state: ReviewState, event: Event, payload: ReviewStarted) -> ReviewState:
    review = Review(
        id=payload.id,
        week_start=payload.week_start,
        week_end=payload.week_end,
        created_at=event.occurred_at,
    )
    return state.model_copy(update={"current_review": review})


@reduce.on("review.reflection_submitted", ReflectionSubmitted)
def _reflection_submitted(state: ReviewState, event: Event, payload: ReflectionSubmitted) -> ReviewState:
    review = _current(state, payload.id)
    if review is None:
        return state
    updated = review.model_copy(update={
        "phase": "reflect",
        "felt_good": payload.felt_good,
        "felt_hard": payload.felt_hard,
        "carry_forward": payload.carry_forward,
    })
    return state.model_copy(update={"current_review": updated})


@reduce.on("review.intentions_set", IntentionsSet)
def _intentions_set(state: ReviewState, event: Event, payload: IntentionsSet) -> ReviewState:
    review = _current(state, payload.id)
    if review is None:
        return state
    updated = review.model_copy(update={"phase": "intentions", "intentions": list(payload.intentions)})
    return state.model_copy(update={"current_review": updated})


@reduce.on("review.closed", ReviewRef)
def _review_closed(state: ReviewState, event: Event, payload: ReviewRef) -> ReviewState:
    review = _current(state, payload.id)
    if review is None:
        return state
    closed = review.model_copy(update={"phase": "closed", "closed_at": event.occurred_at})
    return state.model_copy(update={
        "current_review": None,
        "review_history": [*state.review_history, closed],
    })


@reduce.on("review.skipped", ReviewSkipped)
def _review_skipped(state: ReviewState, event: Event, payload: ReviewSkipped) -> ReviewState:
    return state.model_copy(update={
        "current_review": None,
        "last_skipped_at": event.occurred_at,
    })


def initial_state() -> ReviewState:
    return reduce.initial_state()


def is_review_due(state: ReviewState, now: int, interval_days: int = 7) -> bool:
    """Due when nothing is open and no review was closed or skipped recently."""
    if state.current_review is not None:
        return False
    last = state.last_finished_at
    if last is None:
        return True
    return now - last >= interval_days * DAY_MS


# =============================================================================
# COMMANDS
# =============================================================================

class Empty(BaseModel):
    pass


class SubmitReflection(BaseModel):
    felt_good: str = ""
    felt_hard: str = ""
    carry_forward: str = ""


class SetIntentions(BaseModel):
    intentions: list[str] = Field(..., min_length=1, max_length=5)


commands: CommandRouter[ReviewState] = CommandRouter(reduce)


def _require_phase(state: ReviewState, allowed: frozenset[str], action: str) -> Review:
    review = state.current_review
    if review is None:
        raise ValidationError(
            f"No review in progress to {action}",
            issue_type="invalid_phase",
        )
    if review.phase not in allowed:
        raise ValidationError(
            f"Cannot {action} during the {review.phase} phase",
            field="phase",
            issue_type="invalid_phase",
        )
    return review


@commands.on("review.start", Empty)
def _start_review(
    state: ReviewState,
    command: Command,
    payload: Empty,
    settings: KernelSettings,
) -> list[Event]:
    if state.current_review is not None:
        raise ValidationError(
            f"A review is already in progress: {state.current_review.id}",
            issue_type="invalid_phase",
        )
    week_start, week_end = local_week_bounds(command.requested_at, settings.timezone)
    started = ReviewStarted(id=command.idempotency_key, week_start=week_start, week_end=week_end)
    return [make_event(command, "review.started", started)]


@commands.on("review.submit_reflection", SubmitReflection)
def _submit_reflection(
    state: ReviewState,
    command: Command,
    payload: SubmitReflection,
    settings: KernelSettings,
) -> list[Event]:
    review = _require_phase(state, REFLECTION_PHASES, "submit a reflection")
    reflection = ReflectionSubmitted(
        id=review.id,
        felt_good=payload.felt_good.strip(),
        felt_hard=payload.felt_hard.strip(),
        carry_forward=payload.carry_forward.strip(),
    )
    return [make_event(command, "review.reflection_submitted", reflection)]


@commands.on("review.set_intentions", SetIntentions)
def _set_intentions(
    state: ReviewState,
    command: Command,
    payload: SetIntentions,
    settings: KernelSettings,
) -> list[Event]:
    review = _require_phase(state, INTENTION_PHASES, "set intentions")
    intentions = [
        require_text(text, f"intentions.{index}")
        for index, text in enumerate(payload.intentions)
    ]
    return [make_event(command, "review.intentions_set", IntentionsSet(id=review.id, intentions=intentions))]


@commands.on("review.close", Empty)
def _close_review(
    state: ReviewState,
    command: Command,
    payload: Empty,
    settings: KernelSettings,
) -> list[Event]:
    review = _require_phase(state, CLOSE_PHASES, "close the review")
    return [make_event(command, "review.closed", ReviewRef(id=review.id))]


@commands.on("review.skip", Empty)
def _skip_review(
    state: ReviewState,
    command: Command,
    payload: Empty,
    settings: KernelSettings,
) -> list[Event]:
    review = state.current_review
    if review is not None:
        skipped = ReviewSkipped(id=review.id, week_start=review.week_start, week_end=review.week_end)
    else:
        week_start, week_end = local_week_bounds(command.requested_at, settings.timezone)
        skipped = ReviewSkipped(week_start=week_start, week_end=week_end)
    return [make_event(command, "review.skipped", skipped)]
