"""Tests for DomainState assembly and read projections."""

import pytest
from datetime import datetime, timezone

from life_kernel.clock import DAY_MS, HOUR_MS, to_epoch_ms
from life_kernel.commands import process_command
from life_kernel.config import KernelSettings
from life_kernel.domains.patterns import PATTERN_TTL_MS
from life_kernel.models.envelope import Command
from life_kernel.queries import (
    active_habits,
    active_patterns,
    build_domain_state,
    current_review,
    events_until,
    inbox,
    quiet_today,
    recent_transactions,
    today_log,
)

# Monday 2026-02-23 09:00 UTC
T0 = to_epoch_ms(datetime(2026, 2, 23, 9, 0, tzinfo=timezone.utc))
JAN_31 = to_epoch_ms(datetime(2026, 1, 31, 12, 0, tzinfo=timezone.utc))
SETTINGS = KernelSettings(timezone="UTC")


def run(log, command_type, key, payload=None, at=T0):
    cmd = Command(type=command_type, idempotency_key=key, requested_at=at, payload=payload or {})
    log.extend(process_command(log, cmd, SETTINGS).events)
    return log


def finance_log():
    log = []
    run(log, "finance.create_envelope", "e1", {"envelope_id": "food", "name": "Food", "soft_ceiling": 10000})
    run(log, "finance.create_envelope", "e2", {"envelope_id": "fun", "name": "Fun"})
    run(log, "finance.log_transaction", "t1", {"transaction_id": "t1", "amount": 6000, "envelope_id": "food"})
    run(log, "finance.log_transaction", "t2", {"transaction_id": "t2", "amount": 1000, "envelope_id": "food", "occurred_at": JAN_31})
    run(log, "finance.log_transaction", "t3", {"transaction_id": "t3", "amount": 500, "envelope_id": "fun"})
    run(log, "finance.import_transaction", "t4", {"transaction_id": "t4", "amount": 2500, "occurred_at": T0})
    return log


class TestEnvelopeUtilization:
    """Tests for monthly envelope spend."""

    def test_confirmed_spend_this_month(self):
        """Test only this month's confirmed spend counts."""
        state = build_domain_state(finance_log(), T0 + HOUR_MS, settings=SETTINGS)
        food = next(e for e in state.envelopes if e.envelope_id == "food")
        assert food.spent == 6000
        assert food.utilization == pytest.approx(0.6)

    def test_no_ceiling_means_zero(self):
        """Test an envelope without a ceiling reports utilization 0."""
        state = build_domain_state(finance_log(), T0 + HOUR_MS, settings=SETTINGS)
        fun = next(e for e in state.envelopes if e.envelope_id == "fun")
        assert fun.spent == 500
        assert fun.utilization == 0.0

    def test_pending_then_confirmed(self):
        """Test an import counts only after it is confirmed."""
        log = finance_log()
        run(log, "finance.confirm_transaction", "c4", {"transaction_id": "t4", "envelope_id": "food"}, at=T0 + 1)
        state = build_domain_state(log, T0 + HOUR_MS, settings=SETTINGS)
        food = next(e for e in state.envelopes if e.envelope_id == "food")
        assert food.spent == 8500

    def test_voided_excluded(self):
        """Test voided transactions don't count."""
        log = finance_log()
        run(log, "finance.void_transaction", "v1", {"transaction_id": "t1"}, at=T0 + 1)
        state = build_domain_state(log, T0 + HOUR_MS, settings=SETTINGS)
        food = next(e for e in state.envelopes if e.envelope_id == "food")
        assert food.spent == 0


class TestBuildDomainState:
    """Tests for the composite snapshot."""

    def test_empty_log(self):
        """Test the snapshot of an empty log."""
        state = build_domain_state([], T0, settings=SETTINGS)
        assert state.now == T0
        assert state.timezone == "UTC"
        assert state.habits.active_habits == {}
        assert state.checkins.latest is None
        assert state.weekly_review_due is True
        assert state.review_in_progress is False
        assert state.quiet_today is False

    def test_timezone_override(self):
        """Test an explicit timezone wins over settings."""
        state = build_domain_state([], T0, timezone="Europe/Berlin", settings=SETTINGS)
        assert state.timezone == "Europe/Berlin"

    def test_events_after_now_are_ignored(self):
        """Test the snapshot doesn't see events stamped after now."""
        log = []
        run(log, "task.capture", "t1", {"title": "Early"}, at=T0)
        run(log, "task.capture", "t2", {"title": "Late"}, at=T0 + DAY_MS)

        state = build_domain_state(log, T0 + HOUR_MS, settings=SETTINGS)
        assert [t.id for t in state.tasks.inbox] == ["t1"]
        assert [e.idempotency_key for e in events_until(log, T0)] == ["t1"]

    def test_snapshot_fields(self):
        """Test habits, tasks, check-ins, patterns and flags are folded."""
        log = []
        run(log, "habit.create", "walk", {"name": "Walk", "cadence": "daily"})
        run(log, "habit.log", "l1", {"habit_id": "walk"}, at=T0 + 1)
        run(log, "task.capture", "t1", {"title": "Focus me"}, at=T0 + 2)
        run(log, "task.focus", "f1", {"task_id": "t1"}, at=T0 + 3)
        run(log, "checkin.submit", "c1", {"mood": 4, "energy": 2}, at=T0 + 4)
        run(log, "pattern.detect", "p1", {"type": "mood_habit", "correlation": 0.5, "confidence": 0.7, "headline": "x"}, at=T0 + 5)
        run(log, "review.start", "r1", at=T0 + 6)
        run(log, "system.set_quiet_today", "q1", at=T0 + 7)

        state = build_domain_state(log, T0 + HOUR_MS, settings=SETTINGS)
        assert state.habits.today_log["walk"].status == "completed"
        assert [t.id for t in state.tasks.focus] == ["t1"]
        assert state.checkins.latest.energy == 2
        assert state.checkins.trend.days_tracked == 1
        assert state.active_pattern_count == 1
        assert state.review_in_progress is True
        assert state.weekly_review_due is False
        assert state.quiet_today is True

    def test_quiet_flag_read_in_another_timezone(self):
        """Test a flag set under UTC settings is seen by a New York snapshot of the same day."""
        log = run([], "system.set_quiet_today", "q1")

        # 14:00 in New York, still 2026-02-23 in UTC
        assert build_domain_state(log, T0 + 10 * HOUR_MS, timezone="America/New_York", settings=SETTINGS).quiet_today is True
        # 20:00 on the 23rd in New York, but the UTC day it was set on is over
        assert build_domain_state(log, T0 + 16 * HOUR_MS, timezone="America/New_York", settings=SETTINGS).quiet_today is False

    def test_expired_patterns_not_counted(self):
        """Test the pattern count applies the TTL at now."""
        log = []
        run(log, "pattern.detect", "p1", {"type": "mood_habit", "correlation": 0.5, "confidence": 0.7, "headline": "x"})
        assert build_domain_state(log, T0 + PATTERN_TTL_MS, settings=SETTINGS).active_pattern_count == 0


class TestProjections:
    """Tests for the per-domain read helpers."""

    def test_habit_projections(self):
        """Test active_habits and today_log."""
        log = []
        run(log, "habit.create", "walk", {"name": "Walk", "cadence": "daily"})
        run(log, "habit.skip", "s1", {"habit_id": "walk"}, at=T0 + 1)
        assert [h.habit_id for h in active_habits(log)] == ["walk"]
        assert today_log(log, T0 + HOUR_MS, "UTC")["walk"].status == "skipped"
        assert today_log(log, T0 + DAY_MS, "UTC") == {}

    def test_finance_projections(self):
        """Test inbox and recent_transactions."""
        log = finance_log()
        assert [t.transaction_id for t in inbox(log)] == ["t4"]
        assert len(recent_transactions(log)) == 4
        assert len(recent_transactions(log, limit=2)) == 2

    def test_pattern_review_and_quiet_projections(self):
        """Test active_patterns, current_review and quiet_today."""
        log = []
        run(log, "pattern.detect", "p1", {"type": "spending_mood", "correlation": -0.4, "confidence": 0.6, "headline": "x"})
        run(log, "review.start", "r1", at=T0 + 1)
        assert [p.id for p in active_patterns(log, T0 + 1)] == ["p1"]
        assert current_review(log).id == "r1"
        assert quiet_today(log, T0, "UTC") is False


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
