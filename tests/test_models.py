"""
Tests for Life Kernel

Test strategy:
1. Unit tests for pure components (models, reducers, command handlers, rules)
2. Integration tests for the host adapter with in-memory stores
3. No real storage or network in tests
"""

import pytest
from datetime import datetime, timezone
from uuid import uuid4

from life_kernel.clock import (
    DAY_MS,
    local_date_key,
    local_day_start,
    local_hour,
    local_month_start,
    local_week_bounds,
    local_weekday,
    same_local_day,
    to_epoch_ms,
)
from life_kernel.models.envelope import (
    Command,
    CommandResult,
    Event,
    find_by_idempotency_key,
)
from life_kernel.models.suggestion import (
    PolicyName,
    Suggestion,
    SuggestionAction,
    SuggestionCandidate,
    order_for_display,
)
from life_kernel.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

# Monday 2026-02-23 09:00 UTC
T0 = to_epoch_ms(datetime(2026, 2, 23, 9, 0, tzinfo=timezone.utc))


class TestEnvelopeModels:
    """Tests for the Command and Event envelopes."""

    def test_command_creation(self):
        """Test Command model creation with defaults."""
        command = Command(type="habit.create", idempotency_key="k1", requested_at=T0)
        assert command.payload == {}
        assert command.meta == {}

    def test_command_is_frozen(self):
        """Test that a command cannot be mutated."""
        command = Command(type="habit.create", idempotency_key="k1", requested_at=T0)
        with pytest.raises(ValueError):
            command.idempotency_key = "k2"

    def test_command_rejects_empty_key(self):
        """Test that an empty idempotency key is rejected."""
        with pytest.raises(ValueError):
            Command(type="habit.create", idempotency_key="", requested_at=T0)

    def test_command_rejects_negative_time(self):
        """Test requested_at must be a non-negative epoch ms."""
        with pytest.raises(ValueError):
            Command(type="habit.create", idempotency_key="k1", requested_at=-1)

    def test_event_is_frozen(self):
        """Test that an event cannot be mutated."""
        event = Event(type="habit.created", occurred_at=T0, idempotency_key="k1")
        with pytest.raises(ValueError):
            event.occurred_at = T0 + 1

    def test_command_result_properties(self):
        """Test accepted and event_count."""
        event = Event(type="habit.created", occurred_at=T0, idempotency_key="k1")
        result = CommandResult(command_type="habit.create", idempotency_key="k1", events=[event])
        assert result.accepted is True
        assert result.event_count == 1

        duplicate = CommandResult(command_type="habit.create", idempotency_key="k1", deduplicated=True)
        assert duplicate.accepted is False
        assert duplicate.event_count == 0

    def test_find_by_idempotency_key(self):
        """Test lookup returns the first event with the key."""
        first = Event(type="a", occurred_at=T0, idempotency_key="k1")
        second = Event(type="b", occurred_at=T0, idempotency_key="k1")
        assert find_by_idempotency_key([first, second], "k1") is first
        assert find_by_idempotency_key([first, second], "missing") is None


class TestSuggestionModels:
    """Tests for suggestion-related models."""

    def test_candidate_priority_bounds(self):
        """Test priority must be between 1 and 5."""
        with pytest.raises(ValueError):
            SuggestionCandidate(policy=PolicyName.FOCUS_EMPTY, headline="x", priority=6)

    def test_candidate_differs_from(self):
        """Test differs_from compares every displayed field."""
        action = SuggestionAction(type="open_screen", label="Open tasks", payload={"screen": "tasks"})
        candidate = SuggestionCandidate(
            policy=PolicyName.FOCUS_EMPTY,
            headline="Focus is empty",
            priority=4,
            action=action,
        )
        stored = Suggestion(
            id="s1",
            policy=PolicyName.FOCUS_EMPTY,
            headline="Focus is empty",
            priority=4,
            action=action,
            created_at=T0,
        )
        assert candidate.differs_from(stored) is False
        assert candidate.differs_from(stored.model_copy(update={"priority": 3})) is True
        assert candidate.differs_from(stored.model_copy(update={"action": None})) is True

    def test_suggestion_is_active(self):
        """Test a suggestion is active until dismissed."""
        suggestion = Suggestion(id="s1", policy=PolicyName.CHECKIN_PROMPT, headline="x", priority=5, created_at=T0)
        assert suggestion.is_active is True
        assert suggestion.model_copy(update={"dismissed_at": T0}).is_active is False

    def test_order_for_display(self):
        """Test ordering by priority desc, then creation time."""
        low = Suggestion(id="a", policy=PolicyName.REST_PERMISSION, headline="x", priority=2, created_at=T0)
        high_new = Suggestion(id="b", policy=PolicyName.CHECKIN_PROMPT, headline="x", priority=5, created_at=T0 + 10)
        high_old = Suggestion(id="c", policy=PolicyName.MORNING_HABIT_PROMPT, headline="x", priority=5, created_at=T0)
        ordered = order_for_display([low, high_new, high_old])
        assert [s.id for s in ordered] == ["c", "b", "a"]

    def test_policy_names(self):
        """Test the fixed policy identifiers."""
        assert PolicyName("MorningHabitPrompt") == PolicyName.MORNING_HABIT_PROMPT
        assert len(PolicyName) == 7


class TestAuditModels:
    """Tests for audit-related models."""

    def test_audit_event_creation(self):
        """Test AuditEvent model creation."""
        event = AuditEvent(
            event_type=AuditEventType.COMMAND_ACCEPTED,
            description="Command accepted",
        )
        assert event.event_type == AuditEventType.COMMAND_ACCEPTED
        assert event.severity == AuditSeverity.INFO

    def test_audit_event_to_log_dict(self):
        """Test conversion to log dictionary."""
        event = AuditEvent(
            event_type=AuditEventType.EVENTS_APPENDED,
            description="Appended",
            details={"event_count": 2},
        )
        log_dict = event.to_log_dict()
        assert "audit_id" in log_dict
        assert log_dict["event_type"] == "events_appended"
        assert log_dict["details"]["event_count"] == 2

    def test_audit_event_builder_command_rejected(self):
        """Test AuditEventBuilder.command_rejected."""
        correlation_id = uuid4()

        event = AuditEventBuilder.command_rejected(
            command_type="task.focus",
            idempotency_key="k9",
            error_code="capacity_exceeded",
            error_message="Focus is full (max 3)",
            correlation_id=correlation_id,
        )

        assert event.event_type == AuditEventType.COMMAND_REJECTED
        assert event.severity == AuditSeverity.WARNING
        assert event.error_code == "capacity_exceeded"
        assert event.correlation_id == correlation_id

    def test_command_rejected_with_long_type(self):
        """Test a very long command type still builds a valid record."""
        command_type = "x" * 1000
        event = AuditEventBuilder.command_rejected(
            command_type=command_type,
            idempotency_key="k1",
            error_code="unknown_command",
            error_message="Unknown command",
            correlation_id=uuid4(),
        )

        assert len(event.description) <= 500
        assert event.command_type == command_type

    def test_audit_event_builder_suggestions_reconciled(self):
        """Test AuditEventBuilder.suggestions_reconciled."""
        event = AuditEventBuilder.suggestions_reconciled(
            created=["CheckinPrompt"],
            updated=[],
            dismissed=2,
            correlation_id=uuid4(),
        )

        assert event.event_type == AuditEventType.SUGGESTIONS_RECONCILED
        assert event.details["created_policies"] == ["CheckinPrompt"]
        assert event.details["dismissed_count"] == 2


class TestClock:
    """Tests for local-time helpers."""

    def test_local_day_start_utc(self):
        """Test local midnight in UTC."""
        midnight = to_epoch_ms(datetime(2026, 2, 23, tzinfo=timezone.utc))
        assert local_day_start(T0, "UTC") == midnight

    def test_local_day_depends_on_timezone(self):
        """Test the same instant can fall on different local days."""
        late_utc = T0 + 16 * 60 * 60 * 1000  # 2026-02-24 01:00 UTC
        assert same_local_day(T0, late_utc, "UTC") is False
        assert same_local_day(T0, late_utc, "America/New_York") is True

    def test_local_week_bounds_start_monday(self):
        """Test the week runs Monday 00:00 to the last ms of Sunday."""
        start, end = local_week_bounds(T0 + 3 * DAY_MS, "UTC")
        assert start == local_day_start(T0, "UTC")
        assert end == start + 7 * DAY_MS - 1

    def test_local_fields(self):
        """Test hour, weekday and date key."""
        assert local_hour(T0, "UTC") == 9
        assert local_hour(T0, "America/New_York") == 4
        assert local_weekday(T0, "UTC") == 0
        assert local_date_key(T0, "UTC") == "2026-02-23"

    def test_local_month_start(self):
        """Test the first instant of the local month."""
        first = to_epoch_ms(datetime(2026, 2, 1, tzinfo=timezone.utc))
        assert local_month_start(T0, "UTC") == first


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
