"""Tests for command dispatch, deduplication and replay determinism."""

import random

import pytest
from datetime import datetime, timezone

from life_kernel.clock import HOUR_MS, to_epoch_ms
from life_kernel.commands import handle_command, process_command, supported_commands
from life_kernel.config import KernelSettings
from life_kernel.domains import DOMAINS, checkins, finance, habits, tasks
from life_kernel.domains.base import ordered
from life_kernel.models.envelope import Command, Event
from life_kernel.validation import ValidationError

T0 = to_epoch_ms(datetime(2026, 2, 23, 9, 0, tzinfo=timezone.utc))
SETTINGS = KernelSettings(timezone="UTC")


def command(command_type, key, payload=None, at=T0, meta=None):
    return Command(type=command_type, idempotency_key=key, requested_at=at, payload=payload or {}, meta=meta or {})


def run(log, *commands):
    for cmd in commands:
        result = process_command(log, cmd, SETTINGS)
        log.extend(result.events)
    return log


class TestDispatch:
    """Tests for routing commands to domains."""

    def test_unknown_command(self):
        """Test an unknown type is rejected with unknown_command."""
        with pytest.raises(ValidationError) as exc:
            handle_command([], command("habit.explode", "k1"), SETTINGS)
        assert exc.value.issue_type == "unknown_command"
        assert exc.value.field == "type"

    def test_supported_commands(self):
        """Test every domain's commands are routable."""
        supported = supported_commands()
        assert supported == sorted(supported)
        for expected in (
            "habit.create", "habit.clear_today_status", "finance.confirm_transaction",
            "pattern.pin", "task.set_dependency", "checkin.submit", "review.skip",
            "system.set_quiet_today", "hard_mode.activate", "hard_mode.submit_plan",
        ):
            assert expected in supported

    def test_command_types_are_unique(self):
        """Test no command type is owned by two domains."""
        owned = [t for domain in DOMAINS for t in domain.commands.command_types]
        assert len(owned) == len(set(owned))

    def test_events_carry_command_meta(self):
        """Test events copy command meta and record the command type."""
        cmd = command("habit.create", "k1", {"name": "Walk", "cadence": "daily"}, meta={"device": "phone"})
        event = handle_command([], cmd, SETTINGS)[0]
        assert event.meta == {"device": "phone", "command": "habit.create"}
        assert event.idempotency_key == "k1"
        assert event.occurred_at == T0

    def test_rejection_emits_nothing(self):
        """Test a failed command doesn't reach the log."""
        log = []
        with pytest.raises(ValidationError):
            run(log, command("finance.log_transaction", "k1", {"amount": 0}))
        assert log == []


class TestDeduplication:
    """Tests for idempotency keys."""

    def test_retry_is_deduplicated(self):
        """Test a second command with a used key emits nothing."""
        log = run([], command("habit.create", "k1", {"name": "Walk", "cadence": "daily"}))
        result = process_command(log, command("habit.create", "k1", {"name": "Walk", "cadence": "daily"}), SETTINGS)
        assert result.deduplicated is True
        assert result.events == []
        assert result.accepted is False

    def test_dedup_skips_validation(self):
        """Test a retried key returns deduplicated even if it would now be invalid."""
        log = run([], command("habit.create", "k1", {"name": "Walk", "cadence": "daily"}))
        result = process_command(log, command("task.capture", "k1", {"title": ""}), SETTINGS)
        assert result.deduplicated is True

    def test_new_key_is_processed(self):
        """Test a fresh key produces events."""
        result = process_command([], command("task.capture", "k1", {"title": "Post letter"}), SETTINGS)
        assert result.deduplicated is False
        assert result.event_count == 1


class TestReplayDeterminism:
    """Tests that folding is order independent up to occurred_at."""

    def _log(self):
        return run(
            [],
            command("habit.create", "h1", {"name": "Walk", "cadence": "daily"}, at=T0),
            command("habit.log", "hl1", {"habit_id": "h1"}, at=T0 + 1),
            command("finance.create_envelope", "e1", {"envelope_id": "food", "name": "Food", "soft_ceiling": 1000}, at=T0 + 2),
            command("finance.import_transaction", "i1", {"transaction_id": "t1", "amount": 300, "occurred_at": T0}, at=T0 + 3),
            command("finance.confirm_transaction", "c1", {"transaction_id": "t1", "envelope_id": "food"}, at=T0 + 4),
            command("task.capture", "tk1", {"title": "Taxes"}, at=T0 + 5),
            command("task.focus", "f1", {"task_id": "tk1"}, at=T0 + 6),
            command("checkin.submit", "ci1", {"mood": 4, "energy": 3}, at=T0 + 7),
            command("habit.skip", "hs1", {"habit_id": "h1"}, at=T0 + HOUR_MS),
        )

    def test_shuffled_log_replays_identically(self):
        """Test replaying a shuffled copy gives the same state."""
        log = self._log()
        shuffled = list(log)
        random.Random(7).shuffle(shuffled)

        for domain in (habits, finance, tasks, checkins):
            assert domain.reduce.replay(shuffled) == domain.reduce.replay(log)

    def test_replay_twice(self):
        """Test replaying the same events twice gives equal states."""
        log = self._log()
        assert habits.replay_habit_events(log, now=T0 + 2 * HOUR_MS) == habits.replay_habit_events(log, now=T0 + 2 * HOUR_MS)

    def _tied_log(self):
        created = Event(type="habit.created", occurred_at=T0, idempotency_key="h1",
                        payload={"habit_id": "h1", "name": "Walk", "cadence": "daily"})
        completed = Event(type="habit.completed", occurred_at=T0 + 1, idempotency_key="hl1",
                          payload={"habit_id": "h1"})
        skipped = Event(type="habit.skipped", occurred_at=T0 + 1, idempotency_key="hs1",
                        payload={"habit_id": "h1"})
        return [created, completed, skipped]

    def test_same_millisecond_keeps_insertion_order(self):
        """Test ties on occurred_at fold in insertion order."""
        log = self._tied_log()
        assert [e.idempotency_key for e in ordered(log)] == ["h1", "hl1", "hs1"]
        assert habits.reduce.replay(log).today_log["h1"].status == "skipped"

    def test_same_millisecond_later_insert_wins(self):
        """Test swapping the tied events swaps the folded status."""
        created, completed, skipped = self._tied_log()
        log = [created, skipped, completed]
        assert [e.idempotency_key for e in ordered(log)] == ["h1", "hs1", "hl1"]
        assert habits.reduce.replay(log).today_log["h1"].status == "completed"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
