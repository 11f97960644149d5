"""Tests for hard mode sessions, plan constraints and item flags."""

import pytest
from datetime import datetime, timezone

from life_kernel.clock import DAY_MS, HOUR_MS, MINUTE_MS, to_epoch_ms
from life_kernel.commands import handle_command
from life_kernel.config import KernelSettings
from life_kernel.domains import hard_mode
from life_kernel.domains.hard_mode import (
    HardModePlan,
    HardModeScope,
    PlannedItem,
    apply_flag_to_plan,
    apply_low_energy_failsafe,
    validate_hard_mode_plan,
)
from life_kernel.models.envelope import Command, Event
from life_kernel.queries import hard_mode_session
from life_kernel.validation import UnknownEntityError, ValidationError

# Monday 2026-02-23 09:00 UTC
T0 = to_epoch_ms(datetime(2026, 2, 23, 9, 0, tzinfo=timezone.utc))
SETTINGS = KernelSettings(timezone="UTC")

SCOPE = {"habits": True, "tasks": True, "checkin": True, "finance": False}
MORNING_ONLY = {"id": "c-anchor", "type": "allowed_habit_anchors", "anchors": ["morning", "anytime"]}


def submit(log, command_type, key, payload=None, at=T0):
    command = Command(type=command_type, idempotency_key=key, requested_at=at, payload=payload or {})
    events = handle_command(log, command, SETTINGS)
    log.extend(events)
    return events


def activate(log, constraints=None, days=1, at=T0):
    return submit(log, "hard_mode.activate", "hm-activate", {
        "session_id": "s1",
        "scope": SCOPE,
        "constraints": [MORNING_ONLY] if constraints is None else constraints,
        "duration_days": days,
    }, at=at)


def item(item_id, module, minutes, confidence, anchor=None):
    fields = {
        "id": item_id,
        "module": module,
        "kind": f"{module}.item",
        "title": item_id,
        "scheduled_at": T0 + minutes * MINUTE_MS,
        "confidence": confidence,
        "rationale": "",
    }
    if anchor:
        fields["habit_anchor"] = anchor
    return fields


def day_plan():
    return {
        "day_start": T0,
        "generated_at": T0 + 1,
        "items": [
            item("habit-1", "habits", 30, 0.85, anchor="morning"),
            item("task-1", "tasks", 120, 0.7),
            item("checkin-1", "checkin", 300, 0.8),
            item("task-2", "tasks", 420, 0.4),
        ],
    }


def with_plan(log, plan=None, low_energy=None, at=T0 + 1):
    payload = {"session_id": "s1", "plan": plan or day_plan()}
    if low_energy:
        payload["low_energy"] = low_energy
    return submit(log, "hard_mode.submit_plan", "hm-plan", payload, at=at)


def current_plan(log):
    return hard_mode.reduce.replay(log).current_session.plan


def status_of(log, item_id):
    return current_plan(log).item(item_id).status


class TestActivation:
    """Tests for hard_mode.activate and hard_mode.extend."""

    def test_activate(self):
        """Test activation opens a session over the requested days."""
        log = []
        activate(log, days=3)
        session = hard_mode.reduce.replay(log).current_session
        assert session.id == "s1"
        assert session.is_active is True
        assert session.window_start == T0
        assert session.window_end == T0 + 3 * DAY_MS
        assert session.plan is None
        assert session.constraints[0].anchors == ["morning", "anytime"]

    def test_session_id_defaults_to_key(self):
        """Test the session id falls back to the idempotency key."""
        log = []
        submit(log, "hard_mode.activate", "hm-1", {"scope": SCOPE, "duration_days": 1})
        assert hard_mode.reduce.replay(log).current_session.id == "hm-1"

    @pytest.mark.parametrize("days", [0, 15])
    def test_duration_bounds(self, days):
        """Test the window is one to fourteen days."""
        with pytest.raises(ValidationError):
            activate([], days=days)

    def test_second_activation_rejected(self):
        """Test only one session runs at a time."""
        log = []
        activate(log)
        with pytest.raises(ValidationError) as exc:
            submit(log, "hard_mode.activate", "hm-2", {"scope": SCOPE, "duration_days": 1}, at=T0 + HOUR_MS)
        assert exc.value.issue_type == "already_active"

    def test_activation_after_window_ends(self):
        """Test a new session can start once the old window has passed."""
        log = []
        activate(log)
        submit(log, "hard_mode.activate", "hm-2", {"scope": SCOPE, "duration_days": 1}, at=T0 + DAY_MS)
        assert hard_mode.reduce.replay(log).current_session.id == "hm-2"

    def test_extend(self):
        """Test extending pushes the window end out."""
        log = []
        activate(log, days=2)
        submit(log, "hard_mode.extend", "hm-ext", {"session_id": "s1", "extend_days": 3, "confirm_extend": True})
        assert hard_mode.reduce.replay(log).current_session.window_end == T0 + 5 * DAY_MS

    def test_extend_needs_confirmation(self):
        """Test an unconfirmed extension is rejected."""
        log = []
        activate(log)
        with pytest.raises(ValidationError) as exc:
            submit(log, "hard_mode.extend", "hm-ext", {"session_id": "s1", "extend_days": 1})
        assert exc.value.issue_type == "confirmation_required"

    def test_extend_unknown_session(self):
        """Test extending a session that doesn't exist."""
        with pytest.raises(UnknownEntityError):
            submit([], "hard_mode.extend", "hm-ext", {"session_id": "nope", "extend_days": 1, "confirm_extend": True})

    def test_deactivate(self):
        """Test deactivation, and that repeating it emits nothing."""
        log = []
        activate(log)
        submit(log, "hard_mode.deactivate", "hm-off", {"session_id": "s1"}, at=T0 + HOUR_MS)
        session = hard_mode.reduce.replay(log).current_session
        assert session.is_active is False
        assert session.deactivated_at == T0 + HOUR_MS
        assert submit(log, "hard_mode.deactivate", "hm-off-2", {"session_id": "s1"}, at=T0 + 2 * HOUR_MS) == []

    def test_running_session_projection(self):
        """Test the read projection only returns a session inside its window."""
        log = []
        activate(log)
        assert hard_mode_session(log, T0 + HOUR_MS).id == "s1"
        assert hard_mode_session(log, T0 + DAY_MS) is None


class TestPlan:
    """Tests for hard_mode.submit_plan and the low-energy failsafe."""

    def test_plan_stored(self):
        """Test a valid plan is attached to the session."""
        log = []
        activate(log)
        with_plan(log)
        assert [i.id for i in current_plan(log).items] == ["habit-1", "task-1", "checkin-1", "task-2"]

    def test_habit_anchor_violation(self):
        """Test a habit outside the allowed anchors is rejected."""
        log = []
        activate(log)
        plan = day_plan()
        plan["items"] = [item("habit-1", "habits", 30, 0.85, anchor="evening")]
        with pytest.raises(ValidationError) as exc:
            with_plan(log, plan)
        assert exc.value.issue_type == "constraint_violation"
        assert "habit anchor" in str(exc.value)

    def test_disallowed_module(self):
        """Test disallow_module rejects items from that module."""
        log = []
        activate(log, constraints=[{"id": "c1", "type": "disallow_module", "module": "tasks"}])
        with pytest.raises(ValidationError) as exc:
            with_plan(log)
        assert "tasks is disallowed" in str(exc.value)

    def test_module_outside_scope(self):
        """Test items for a module the session doesn't cover are rejected."""
        log = []
        activate(log, constraints=[])
        plan = day_plan()
        plan["items"].append(item("spend-1", "finance", 600, 0.5))
        with pytest.raises(ValidationError) as exc:
            with_plan(log, plan)
        assert exc.value.issue_type == "constraint_violation"

    def test_tightest_item_cap_wins(self):
        """Test the smallest max_planned_items applies."""
        log = []
        activate(log, constraints=[
            {"id": "c1", "type": "max_planned_items", "value": 10},
            {"id": "c2", "type": "max_planned_items", "value": 3},
        ])
        with pytest.raises(ValidationError) as exc:
            with_plan(log)
        assert "max_planned_items" in str(exc.value)

    def test_duplicate_item_ids(self):
        """Test item ids must be unique within a plan."""
        log = []
        activate(log, constraints=[])
        plan = day_plan()
        plan["items"].append(item("task-1", "tasks", 500, 0.5))
        with pytest.raises(ValidationError) as exc:
            with_plan(log, plan)
        assert exc.value.issue_type == "duplicate"

    def test_plan_needs_running_session(self):
        """Test a plan for a deactivated session is rejected."""
        log = []
        activate(log)
        submit(log, "hard_mode.deactivate", "hm-off", {"session_id": "s1"})
        with pytest.raises(ValidationError) as exc:
            with_plan(log)
        assert exc.value.issue_type == "invalid_transition"

    def test_low_energy_keeps_one_per_module(self):
        """Test low energy keeps one habit, one task and one check-in."""
        log = []
        activate(log)
        with_plan(log, low_energy={"mood": 2, "energy": 4})
        assert [i.id for i in current_plan(log).items] == ["habit-1", "task-1", "checkin-1"]

    def test_normal_energy_keeps_plan(self):
        """Test the failsafe leaves the plan alone above the threshold."""
        log = []
        activate(log)
        with_plan(log, low_energy={"mood": 3, "energy": 3})
        assert len(current_plan(log).items) == 4

    def test_invalid_plan_in_log_ignored(self):
        """Test the reducer skips a stored plan that breaks the constraints."""
        log = []
        activate(log)
        plan = day_plan()
        plan["items"] = [item("habit-1", "habits", 30, 0.85, anchor="evening")]
        log.append(Event(type="hard_mode.plan_generated", occurred_at=T0 + 1, idempotency_key="bad",
                         payload={"session_id": "s1", "plan": plan}))
        assert current_plan(log) is None


class TestFlags:
    """Tests for hard_mode.flag_item and hard_mode.crisis_override."""

    def _planned(self):
        log = []
        activate(log)
        with_plan(log)
        return log

    def test_not_now_postpones(self):
        """Test not_now moves the item two hours later."""
        log = self._planned()
        before = current_plan(log).item("task-1").scheduled_at
        submit(log, "hard_mode.flag_item", "f1", {"session_id": "s1", "item_id": "task-1", "flag": "not_now"}, at=T0 + 2)
        after = current_plan(log).item("task-1")
        assert after.scheduled_at == before + 2 * HOUR_MS
        assert after.status == "planned"
        assert after.flagged_at == T0 + 2

    def test_not_aligned_drops_only_target(self):
        """Test not_aligned drops just the flagged item."""
        log = self._planned()
        submit(log, "hard_mode.flag_item", "f1", {"session_id": "s1", "item_id": "task-1", "flag": "not_aligned"}, at=T0 + 2)
        assert status_of(log, "task-1") == "dropped"
        assert status_of(log, "checkin-1") == "planned"

    def test_too_much_drops_lowest_confidence(self):
        """Test too_much also drops the least confident planned item."""
        log = self._planned()
        submit(log, "hard_mode.flag_item", "f1", {"session_id": "s1", "item_id": "task-1", "flag": "too_much"}, at=T0 + 2)
        assert status_of(log, "task-1") == "dropped"
        assert status_of(log, "task-2") == "dropped"
        assert status_of(log, "habit-1") == "planned"

    def test_flag_unknown_item(self):
        """Test flagging an item that isn't in the plan."""
        log = self._planned()
        with pytest.raises(UnknownEntityError):
            submit(log, "hard_mode.flag_item", "f1", {"session_id": "s1", "item_id": "ghost", "flag": "not_now"})

    def test_flag_without_plan(self):
        """Test flagging before any plan exists."""
        log = []
        activate(log)
        with pytest.raises(ValidationError) as exc:
            submit(log, "hard_mode.flag_item", "f1", {"session_id": "s1", "item_id": "task-1", "flag": "not_now"})
        assert exc.value.issue_type == "invalid_transition"

    def test_crisis_override_drops_everything(self):
        """Test a crisis override drops every planned item."""
        log = self._planned()
        submit(log, "hard_mode.crisis_override", "crisis", {"session_id": "s1"}, at=T0 + 3)
        assert {i.status for i in current_plan(log).items} == {"dropped"}

    def test_crisis_override_without_plan_is_noop(self):
        """Test there is nothing to clear before a plan exists."""
        log = []
        activate(log)
        assert submit(log, "hard_mode.crisis_override", "crisis", {"session_id": "s1"}) == []


class TestPlanFunctions:
    """Tests for the pure plan helpers."""

    def _plan(self):
        return HardModePlan.model_validate(day_plan())

    def test_flag_unknown_item_is_noop(self):
        """Test apply_flag_to_plan ignores ids not in the plan."""
        plan = self._plan()
        assert apply_flag_to_plan(plan, "ghost", "too_much", T0) == plan

    def test_failsafe_needs_both_readings(self):
        """Test the failsafe does nothing without mood and energy."""
        plan = self._plan()
        assert apply_low_energy_failsafe(plan, mood=1) == plan

    def test_failsafe_resets_status(self):
        """Test kept items come back as planned."""
        plan = self._plan()
        done = plan.model_copy(update={"items": [i.model_copy(update={"status": "done"}) for i in plan.items]})
        kept = apply_low_energy_failsafe(done, mood=1, energy=1)
        assert {i.status for i in kept.items} == {"planned"}

    def test_validate_accepts_empty_plan(self):
        """Test an empty plan satisfies any constraints."""
        plan = HardModePlan(day_start=T0, generated_at=T0)
        validate_hard_mode_plan(plan, HardModeScope(), [])

    def test_planned_item_confidence_bounds(self):
        """Test confidence is a probability."""
        with pytest.raises(ValueError):
            PlannedItem.model_validate(item("x", "tasks", 0, 1.5))


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
