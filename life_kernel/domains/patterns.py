"""
Patterns Domain

Correlations detected over the user's own data ("you sleep better on days
you walk"). A pattern lives for a fixed 30 days from detection unless the
user pins it; pinned patterns never expire.

DESIGN DECISION: The TTL is applied two ways:
- apply_pattern_ttl(state, now) is a pure read-path pass, no events
- expired_pattern_events(state, now) turns the same decision into
  pattern.expired events with deterministic keys, so a scheduled sweep can
  persist it and a second sweep at the same `now` appends nothing
"""

from typing import Iterable, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from life_kernel.clock import DAY_MS
from life_kernel.config import KernelSettings
from life_kernel.domains.base import CommandRouter, EventReducer, make_event
from life_kernel.models.envelope import Command, Event
from life_kernel.validation import UnknownEntityError, ValidationError, require_text

PATTERN_TTL_MS = 30 * DAY_MS

PatternType = Literal["mood_habit", "energy_checkin_timing", "spending_mood"]


# =============================================================================
# STATE
# =============================================================================

class Pattern(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    type: PatternType
    correlation: float
    confidence: float
    headline: str
    subtext: str = ""
    detected_at: int
    surfaced_at: Optional[int] = None
    pinned_at: Optional[int] = None
    dismissed_at: Optional[int] = None
    expires_at: int

    def is_expired(self, now: int) -> bool:
        return self.pinned_at is None and self.expires_at <= now

    def is_active(self, now: int) -> bool:
        return self.dismissed_at is None and not self.is_expired(now)


class PatternState(BaseModel):
    model_config = ConfigDict(frozen=True)

    patterns: dict[str, Pattern] = Field(default_factory=dict)


# =============================================================================
# EVENTS
# =============================================================================

class PatternDetected(BaseModel):
    pattern_id: str
    type: PatternType
    correlation: float = Field(..., ge=-1.0, le=1.0)
    confidence: float = Field(..., ge=0.0, le=1.0)
    headline: str
    subtext: str = ""


class PatternRef(BaseModel):
    pattern_id: str


reduce: EventReducer[PatternState] = EventReducer("patterns", PatternState)


def _patched(state: PatternState, pattern_id: str, **changes) -> PatternState:
    existing = state.patterns.get(pattern_id)
    if existing is None:
        return state
    return state.model_copy(update={
        "patterns": {**state.patterns, pattern_id: existing.model_copy(update=changes)},
    })


@reduce.on("pattern.detected", PatternDetected)
def _pattern_detected(state: PatternState, event: Event, payload: PatternDetected) -> PatternState:
    pattern = Pattern(
        id=payload.pattern_id,
        type=payload.type,
        correlation=payload.correlation,
        confidence=payload.confidence,
        headline=payload.headline,
        subtext=payload.subtext,
        detected_at=event.occurred_at,
        expires_at=event.occurred_at + PATTERN_TTL_MS,
    )
    return state.model_copy(update={
        "patterns": {**state.patterns, pattern.id: pattern},
    })


@reduce.on("pattern.surfaced", PatternRef)
def _pattern_surfaced(state: PatternState, event: Event, payload: PatternRef) -> PatternState:
    return _patched(state, payload.pattern_id, surfaced_at=event.occurred_at)


@reduce.on("pattern.pinned", PatternRef)
def _pattern_pinned(state: PatternState, event: Event, payload: PatternRef) -> PatternState:
    # expires_at is left alone; pinning exempts from TTL, it doesn't extend it
    return _patched(state, payload.pattern_id, pinned_at=event.occurred_at)


@reduce.on("pattern.dismissed", PatternRef)
def _pattern_dismissed(state: PatternState, event: Event, payload: PatternRef) -> PatternState:
    return _patched(state, payload.pattern_id, dismissed_at=event.occurred_at)


@reduce.on("pattern.expired", PatternRef)
def _pattern_expired(state: PatternState, event: Event, payload: PatternRef) -> PatternState:
    existing = state.patterns.get(payload.pattern_id)
    if existing is None or existing.dismissed_at is not None:
        return state
    return _patched(state, payload.pattern_id, dismissed_at=event.occurred_at)


def initial_state() -> PatternState:
    return reduce.initial_state()


# =============================================================================
# TTL
# =============================================================================

def _newly_expired(state: PatternState, now: int) -> list[Pattern]:
    return [
        pattern for pattern in state.patterns.values()
        if pattern.dismissed_at is None and pattern.is_expired(now)
    ]


def apply_pattern_ttl(state: PatternState, now: int) -> PatternState:
    """Dismiss, at `now`, every unpinned and undismissed pattern past expires_at."""
    expired = _newly_expired(state, now)
    if not expired:
        return state
    patterns = dict(state.patterns)
    for pattern in expired:
        patterns[pattern.id] = pattern.model_copy(update={"dismissed_at": now})
    return state.model_copy(update={"patterns": patterns})


def expired_pattern_key(pattern_id: str) -> str:
    return f"pattern.expired:{pattern_id}"


def expired_pattern_events(state: PatternState, now: int) -> list[Event]:
    """pattern.expired events for the patterns apply_pattern_ttl would dismiss."""
    return [
        Event(
            type="pattern.expired",
            occurred_at=now,
            idempotency_key=expired_pattern_key(pattern.id),
            payload=PatternRef(pattern_id=pattern.id).model_dump(),
            meta={"source": "ttl_sweep"},
        )
        for pattern in sorted(_newly_expired(state, now), key=lambda p: (p.expires_at, p.id))
    ]


def sweep_expired_patterns(events: Iterable[Event], now: int) -> list[Event]:
    return expired_pattern_events(reduce.replay(events), now)


def active_patterns(state: PatternState, now: int) -> list[Pattern]:
    """Patterns still live at `now`, most recently detected first."""
    live = [p for p in apply_pattern_ttl(state, now).patterns.values() if p.dismissed_at is None]
    return sorted(live, key=lambda p: p.detected_at, reverse=True)


# =============================================================================
# COMMANDS
# =============================================================================

class DetectPattern(BaseModel):
    pattern_id: Optional[str] = None
    type: PatternType
    correlation: float = Field(..., ge=-1.0, le=1.0)
    confidence: float = Field(..., ge=0.0, le=1.0)
    headline: str
    subtext: str = ""


commands: CommandRouter[PatternState] = CommandRouter(reduce)


def _require_pattern(state: PatternState, pattern_id: str) -> Pattern:
    pattern = state.patterns.get(pattern_id)
    if pattern is None:
        raise UnknownEntityError("pattern", pattern_id)
    return pattern


def _reject_inactive(pattern: Pattern, now: int) -> None:
    if not pattern.is_active(now):
        raise ValidationError(
            f"Pattern is dismissed or expired: {pattern.id}",
            field="pattern_id",
            issue_type="invalid_transition",
        )


@commands.on("pattern.detect", DetectPattern)
def _detect_pattern(
    state: PatternState,
    command: Command,
    payload: DetectPattern,
    settings: KernelSettings,
) -> list[Event]:
    pattern_id = payload.pattern_id or command.idempotency_key
    headline = require_text(payload.headline, "headline")
    if pattern_id in state.patterns:
        raise ValidationError(
            f"Pattern already exists: {pattern_id}",
            field="pattern_id",
            issue_type="duplicate",
        )
    detected = PatternDetected(
        pattern_id=pattern_id,
        type=payload.type,
        correlation=payload.correlation,
        confidence=payload.confidence,
        headline=headline,
        subtext=payload.subtext.strip(),
    )
    return [make_event(command, "pattern.detected", detected)]


@commands.on("pattern.surface", PatternRef)
def _surface_pattern(
    state: PatternState,
    command: Command,
    payload: PatternRef,
    settings: KernelSettings,
) -> list[Event]:
    _reject_inactive(_require_pattern(state, payload.pattern_id), command.requested_at)
    return [make_event(command, "pattern.surfaced", payload)]


@commands.on("pattern.pin", PatternRef)
def _pin_pattern(
    state: PatternState,
    command: Command,
    payload: PatternRef,
    settings: KernelSettings,
) -> list[Event]:
    pattern = _require_pattern(state, payload.pattern_id)
    _reject_inactive(pattern, command.requested_at)
    if pattern.pinned_at is not None:
        return []
    return [make_event(command, "pattern.pinned", payload)]


@commands.on("pattern.dismiss", PatternRef)
def _dismiss_pattern(
    state: PatternState,
    command: Command,
    payload: PatternRef,
    settings: KernelSettings,
) -> list[Event]:
    pattern = _require_pattern(state, payload.pattern_id)
    if pattern.dismissed_at is not None:
        return []
    return [make_event(command, "pattern.dismissed", payload)]
