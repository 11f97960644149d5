"""
Hard Mode Domain

A time-boxed session in which the day is planned for the user. The plan
itself is produced outside the kernel; the kernel owns the session window,
the constraints every plan must satisfy, and how the plan changes when the
user pushes back on an item.

Flags on a planned item:
- not_now: push it back two hours
- not_aligned: drop just that item
- too_much: drop it and the lowest-confidence item still planned

A low-energy check-in (mood or energy at 2 or below) shrinks a new plan to
one habit, one task and one check-in, earliest first. Finance items never
survive the failsafe.

DESIGN DECISION: Constraints are checked when the plan is submitted. The
reducer re-checks them and ignores a plan that fails, so a bad event in the
log can't install a plan the session forbids.
"""

from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from life_kernel.clock import DAY_MS, HOUR_MS
from life_kernel.config import KernelSettings
from life_kernel.domains.base import CommandRouter, EventReducer, make_event
from life_kernel.domains.habits import HabitAnchor
from life_kernel.models.envelope import Command, Event
from life_kernel.validation import UnknownEntityError, ValidationError

HardModeModule = Literal["habits", "tasks", "checkin", "finance"]
HardModeFlag = Literal["not_now", "not_aligned", "too_much"]
PlannedItemStatus = Literal["planned", "done", "dropped"]

NOT_NOW_DELAY_MS = 2 * HOUR_MS
LOW_ENERGY_AT_OR_BELOW = 2
FAILSAFE_MODULES = ("habits", "tasks", "checkin")


# =============================================================================
# SESSION MODEL
# =============================================================================

class HardModeScope(BaseModel):
    """Modules the plan may touch."""
    model_config = ConfigDict(frozen=True)

    habits: bool = False
    tasks: bool = False
    checkin: bool = False
    finance: bool = False

    def allows(self, module: HardModeModule) -> bool:
        return getattr(self, module)


class AllowedHabitAnchors(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    type: Literal["allowed_habit_anchors"] = "allowed_habit_anchors"
    anchors: list[HabitAnchor] = Field(default_factory=list)


class MaxPlannedItems(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    type: Literal["max_planned_items"] = "max_planned_items"
    value: int = Field(..., ge=0)


class DisallowModule(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    type: Literal["disallow_module"] = "disallow_module"
    module: HardModeModule


HardModeConstraint = Annotated[
    Union[AllowedHabitAnchors, MaxPlannedItems, DisallowModule],
    Field(discriminator="type"),
]


class PlannedItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    module: HardModeModule
    kind: str
    title: str = Field(..., min_length=1, max_length=200)
    scheduled_at: int = Field(..., ge=0)
    confidence: float = Field(..., ge=0.0, le=1.0)
    rationale: str = ""
    habit_anchor: Optional[HabitAnchor] = None
    status: PlannedItemStatus = "planned"
    flagged_at: Optional[int] = None


class HardModePlan(BaseModel):
    model_config = ConfigDict(frozen=True)

    day_start: int
    generated_at: int
    items: list[PlannedItem] = Field(default_factory=list)

    def item(self, item_id: str) -> Optional[PlannedItem]:
        return next((item for item in self.items if item.id == item_id), None)


class HardModeSession(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    scope: HardModeScope
    constraints: list[HardModeConstraint] = Field(default_factory=list)
    window_start: int
    window_end: int
    is_active: bool = True
    plan: Optional[HardModePlan] = None
    created_at: int
    deactivated_at: Optional[int] = None

    def is_running(self, now: int) -> bool:
        """Active and inside its window."""
        return self.is_active and self.window_start <= now < self.window_end


class HardModeState(BaseModel):
    model_config = ConfigDict(frozen=True)

    current_session: Optional[HardModeSession] = None


# =============================================================================
# PLAN RULES
# =============================================================================

def find_constraint_violation(
    plan: HardModePlan,
    scope: HardModeScope,
    constraints: list[HardModeConstraint],
) -> Optional[str]:
    """The first reason `plan` breaks the session's rules, or None."""
    for item in plan.items:
        if not scope.allows(item.module):
            return f"Constraint violation: module {item.module} is outside the session scope"
        for constraint in constraints:
            if isinstance(constraint, DisallowModule) and item.module == constraint.module:
                return f"Constraint violation: module {item.module} is disallowed"
            if isinstance(constraint, AllowedHabitAnchors) and item.module == "habits":
                if item.habit_anchor is None or item.habit_anchor not in constraint.anchors:
                    return "Constraint violation: habit anchor is not allowed"

    # the tightest cap wins when several are given
    caps = [c.value for c in constraints if isinstance(c, MaxPlannedItems)]
    if caps and len(plan.items) > min(caps):
        return "Constraint violation: plan exceeds max_planned_items"
    return None


def validate_hard_mode_plan(
    plan: HardModePlan,
    scope: HardModeScope,
    constraints: list[HardModeConstraint],
) -> None:
    """
    Raises:
        ValidationError: duplicate item ids or a broken constraint
    """
    seen: set[str] = set()
    for item in plan.items:
        if item.id in seen:
            raise ValidationError(
                f"Duplicate planned item: {item.id}",
                field="plan.items",
                issue_type="duplicate",
            )
        seen.add(item.id)

    violation = find_constraint_violation(plan, scope, constraints)
    if violation is not None:
        raise ValidationError(violation, field="plan.items", issue_type="constraint_violation")


def apply_low_energy_failsafe(
    plan: HardModePlan,
    mood: Optional[int] = None,
    energy: Optional[int] = None,
) -> HardModePlan:
    if mood is None or energy is None:
        return plan
    if mood > LOW_ENERGY_AT_OR_BELOW and energy > LOW_ENERGY_AT_OR_BELOW:
        return plan

    kept: list[PlannedItem] = []
    modules: set[str] = set()
    for item in sorted(plan.items, key=lambda i: i.scheduled_at):
        if item.module not in FAILSAFE_MODULES or item.module in modules:
            continue
        modules.add(item.module)
        kept.append(item.model_copy(update={"status": "planned"}))
    return plan.model_copy(update={"items": kept})


def apply_flag_to_plan(
    plan: HardModePlan,
    item_id: str,
    flag: HardModeFlag,
    occurred_at: int,
) -> HardModePlan:
    target = plan.item(item_id)
    if target is None:
        return plan

    if flag == "not_now":
        replacements = {item_id: target.model_copy(update={
            "scheduled_at": target.scheduled_at + NOT_NOW_DELAY_MS,
            "status": "planned",
            "flagged_at": occurred_at,
        })}
    else:
        dropped = {item_id}
        if flag == "too_much":
            remaining = [i for i in plan.items if i.id != item_id and i.status == "planned"]
            if remaining:
                dropped.add(min(remaining, key=lambda i: i.confidence).id)
        replacements = {
            item.id: item.model_copy(update={"status": "dropped", "flagged_at": occurred_at})
            for item in plan.items
            if item.id in dropped
        }

    return plan.model_copy(update={
        "items": [replacements.get(item.id, item) for item in plan.items],
    })


# =============================================================================
# EVENTS
# =============================================================================

class HardModeActivated(BaseModel):
    session_id: str
    scope: HardModeScope
    constraints: list[HardModeConstraint] = Field(default_factory=list)
    window_start: int
    window_end: int


class HardModeExtended(BaseModel):
    session_id: str
    new_window_end: int


class LowEnergy(BaseModel):
    mood: int = Field(..., ge=1, le=5)
    energy: int = Field(..., ge=1, le=5)


class HardModePlanGenerated(BaseModel):
    session_id: str
    plan: HardModePlan
    low_energy: Optional[LowEnergy] = None


class HardModeItemFlagged(BaseModel):
    session_id: str
    item_id: str
    flag: HardModeFlag


class HardModeRef(BaseModel):
    session_id: str


reduce: EventReducer[HardModeState] = EventReducer("hard_mode", HardModeState)


def _session(state: HardModeState, session_id: str) -> Optional[HardModeSession]:
    session = state.current_session
    if session is None or session.id != session_id:
        return None
    return session


def _with_session(state: HardModeState, session: HardModeSession, **changes) -> HardModeState:
    return state.model_copy(update={"current_session": session.model_copy(update=changes)})


@reduce.on("hard_mode.activated", HardModeActivated)
def _activated(state: HardModeState, event: Event, payload: HardModeActivated) -> HardModeState:
    session = HardModeSession(
        id=payload.session_id,
        scope=payload.scope,
        constraints=payload.constraints,
        window_start=payload.window_start,
        window_end=payload.window_end,
        created_at=event.occurred_at,
    )
    return state.model_copy(update={"current_session": session})


@reduce.on("hard_mode.extended", HardModeExtended)
def _extended(state: HardModeState, event: Event, payload: HardModeExtended) -> HardModeState:
    session = _session(state, payload.session_id)
    if session is None:
        return state
    return _with_session(state, session, window_end=payload.new_window_end)


@reduce.on("hard_mode.plan_generated", HardModePlanGenerated)
def _plan_generated(state: HardModeState, event: Event, payload: HardModePlanGenerated) -> HardModeState:
    session = _session(state, payload.session_id)
    if session is None:
        return state
    if find_constraint_violation(payload.plan, session.scope, session.constraints) is not None:
        return state
    low_energy = payload.low_energy
    plan = apply_low_energy_failsafe(
        payload.plan,
        low_energy.mood if low_energy else None,
        low_energy.energy if low_energy else None,
    )
    return _with_session(state, session, plan=plan)


@reduce.on("hard_mode.item_flagged", HardModeItemFlagged)
def _item_flagged(state: HardModeState, event: Event, payload: HardModeItemFlagged) -> HardModeState:
    session = _session(state, payload.session_id)
    if session is None or session.plan is None:
        return state
    plan = apply_flag_to_plan(session.plan, payload.item_id, payload.flag, event.occurred_at)
    return _with_session(state, session, plan=plan)


@reduce.on("hard_mode.crisis_overridden", HardModeRef)
def _crisis_overridden(state: HardModeState, event: Event, payload: HardModeRef) -> HardModeState:
    session = _session(state, payload.session_id)
    if session is None or session.plan is None:
        return state
    items = [
        item.model_copy(update={"status": "dropped", "flagged_at": event.occurred_at})
        for item in session.plan.items
    ]
    return _with_session(state, session, plan=session.plan.model_copy(update={"items": items}))


@reduce.on("hard_mode.deactivated", HardModeRef)
def _deactivated(state: HardModeState, event: Event, payload: HardModeRef) -> HardModeState:
    session = _session(state, payload.session_id)
    if session is None:
        return state
    return _with_session(state, session, is_active=False, deactivated_at=event.occurred_at)


def initial_state() -> HardModeState:
    return reduce.initial_state()


def running_session(state: HardModeState, now: int) -> Optional[HardModeSession]:
    session = state.current_session
    if session is None or not session.is_running(now):
        return None
    return session


# =============================================================================
# COMMANDS
# =============================================================================

class ActivateHardMode(BaseModel):
    session_id: Optional[str] = None
    scope: HardModeScope
    constraints: list[HardModeConstraint] = Field(default_factory=list)
    duration_days: int = Field(..., ge=1)


class ExtendHardMode(BaseModel):
    session_id: str
    extend_days: int = Field(..., ge=1)
    confirm_extend: bool = False


commands: CommandRouter[HardModeState] = CommandRouter(reduce)


def _require_days(days: int, field: str, settings: KernelSettings) -> None:
    if days > settings.hard_mode_max_days:
        raise ValidationError(
            f"{field.replace('_', ' ').capitalize()} must be at most {settings.hard_mode_max_days}",
            field=field,
            issue_type="out_of_range",
        )


def _require_session(state: HardModeState, session_id: str) -> HardModeSession:
    session = _session(state, session_id)
    if session is None:
        raise UnknownEntityError("hard_mode_session", session_id)
    return session


def _require_running(state: HardModeState, session_id: str, now: int) -> HardModeSession:
    session = _require_session(state, session_id)
    if not session.is_running(now):
        raise ValidationError(
            f"Hard mode session is not active: {session_id}",
            field="session_id",
            issue_type="invalid_transition",
        )
    return session


@commands.on("hard_mode.activate", ActivateHardMode)
def _activate(
    state: HardModeState,
    command: Command,
    payload: ActivateHardMode,
    settings: KernelSettings,
) -> list[Event]:
    _require_days(payload.duration_days, "duration_days", settings)
    if running_session(state, command.requested_at) is not None:
        raise ValidationError(
            "A hard mode session is already active",
            issue_type="already_active",
        )
    activated = HardModeActivated(
        session_id=payload.session_id or command.idempotency_key,
        scope=payload.scope,
        constraints=payload.constraints,
        window_start=command.requested_at,
        window_end=command.requested_at + payload.duration_days * DAY_MS,
    )
    return [make_event(command, "hard_mode.activated", activated)]


@commands.on("hard_mode.extend", ExtendHardMode)
def _extend(
    state: HardModeState,
    command: Command,
    payload: ExtendHardMode,
    settings: KernelSettings,
) -> list[Event]:
    if not payload.confirm_extend:
        raise ValidationError(
            "Explicit extend confirmation is required",
            field="confirm_extend",
            issue_type="confirmation_required",
        )
    _require_days(payload.extend_days, "extend_days", settings)
    session = _require_running(state, payload.session_id, command.requested_at)
    extended = HardModeExtended(
        session_id=session.id,
        new_window_end=session.window_end + payload.extend_days * DAY_MS,
    )
    return [make_event(command, "hard_mode.extended", extended)]


@commands.on("hard_mode.submit_plan", HardModePlanGenerated)
def _submit_plan(
    state: HardModeState,
    command: Command,
    payload: HardModePlanGenerated,
    settings: KernelSettings,
) -> list[Event]:
    session = _require_running(state, payload.session_id, command.requested_at)
    validate_hard_mode_plan(payload.plan, session.scope, session.constraints)
    return [make_event(command, "hard_mode.plan_generated", payload)]


@commands.on("hard_mode.flag_item", HardModeItemFlagged)
def _flag_item(
    state: HardModeState,
    command: Command,
    payload: HardModeItemFlagged,
    settings: KernelSettings,
) -> list[Event]:
    session = _require_running(state, payload.session_id, command.requested_at)
    if session.plan is None:
        raise ValidationError(
            "No plan to flag yet",
            field="session_id",
            issue_type="invalid_transition",
        )
    if session.plan.item(payload.item_id) is None:
        raise UnknownEntityError("planned_item", payload.item_id)
    return [make_event(command, "hard_mode.item_flagged", payload)]


@commands.on("hard_mode.crisis_override", HardModeRef)
def _crisis_override(
    state: HardModeState,
    command: Command,
    payload: HardModeRef,
    settings: KernelSettings,
) -> list[Event]:
    session = _require_session(state, payload.session_id)
    if session.plan is None:
        return []
    return [make_event(command, "hard_mode.crisis_overridden", payload)]


@commands.on("hard_mode.deactivate", HardModeRef)
def _deactivate(
    state: HardModeState,
    command: Command,
    payload: HardModeRef,
    settings: KernelSettings,
) -> list[Event]:
    session = _require_session(state, payload.session_id)
    if not session.is_active:
        return []
    return [make_event(command, "hard_mode.deactivated", payload)]
