"""
Audit Models for Life Kernel

Every significant host-side action is recorded for audit purposes:
accepted, deduplicated and rejected commands, appends, policy runs and
TTL sweeps.

DESIGN DECISION: Audit records are produced only by the host adapter.
Reducers, rules and the reconciler stay free of side effects.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

# longest command type quoted in a description; the full type is in command_type
DESCRIBED_TYPE_MAX_LENGTH = 100


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _described(command_type: str) -> str:
    if len(command_type) <= DESCRIBED_TYPE_MAX_LENGTH:
        return command_type
    return command_type[:DESCRIBED_TYPE_MAX_LENGTH] + "..."


class AuditEventType(str, Enum):
    """Types of host actions we audit."""
    # Commands
    COMMAND_ACCEPTED = "command_accepted"
    COMMAND_DEDUPLICATED = "command_deduplicated"
    COMMAND_REJECTED = "command_rejected"

    # Persistence
    EVENTS_APPENDED = "events_appended"
    APPEND_FAILED = "append_failed"

    # Policy engine
    SUGGESTIONS_RECONCILED = "suggestions_reconciled"
    QUIET_DAY_SUPPRESSED = "quiet_day_suppressed"
    SUGGESTION_DISMISSED = "suggestion_dismissed"

    # Maintenance
    PATTERNS_EXPIRED = "patterns_expired"

    # System events
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit record.

    Not to be confused with domain events: audit records describe what the
    host did with a command, they are never replayed.
    """

    # Identity
    audit_id: UUID = Field(
        default_factory=uuid4,
        description="Unique audit record identifier"
    )
    timestamp: datetime = Field(
        default_factory=_utcnow,
        description="When the record was written (UTC)"
    )

    # Classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of audited action"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Record severity"
    )

    # Context
    command_type: Optional[str] = Field(
        default=None,
        description="Command type, when the record concerns a command"
    )
    idempotency_key: Optional[str] = Field(
        default=None,
        description="Idempotency key of the command or sweep"
    )
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate records from one host invocation"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional record-specific data"
    )

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "audit_id": str(self.audit_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "command_type": self.command_type,
            "idempotency_key": self.idempotency_key,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
        }


class AuditEventBuilder:
    """
    Helper class to build audit records with common patterns.

    Usage:
        record = AuditEventBuilder.command_accepted(command, event_types, correlation_id)
        record = AuditEventBuilder.patterns_expired(pattern_ids, now, correlation_id)
    """

    @staticmethod
    def command_accepted(
        command_type: str,
        idempotency_key: str,
        event_types: list[str],
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.COMMAND_ACCEPTED,
            command_type=command_type,
            idempotency_key=idempotency_key,
            correlation_id=correlation_id,
            description=f"Command accepted: {_described(command_type)} produced {len(event_types)} event(s)",
            details={
                "event_types": event_types,
            },
        )

    @staticmethod
    def command_deduplicated(
        command_type: str,
        idempotency_key: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.COMMAND_DEDUPLICATED,
            command_type=command_type,
            idempotency_key=idempotency_key,
            correlation_id=correlation_id,
            description=f"Duplicate command ignored: {_described(command_type)}",
        )

    @staticmethod
    def command_rejected(
        command_type: str,
        idempotency_key: str,
        error_code: str,
        error_message: str,
        correlation_id: UUID,
        field: Optional[str] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.COMMAND_REJECTED,
            severity=AuditSeverity.WARNING,
            command_type=command_type,
            idempotency_key=idempotency_key,
            correlation_id=correlation_id,
            description=f"Command rejected: {_described(command_type)}",
            details={
                "field": field,
            },
            error_code=error_code,
            error_message=error_message,
        )

    @staticmethod
    def events_appended(
        idempotency_key: str,
        event_count: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EVENTS_APPENDED,
            severity=AuditSeverity.DEBUG,
            idempotency_key=idempotency_key,
            correlation_id=correlation_id,
            description=f"Appended {event_count} event(s)",
            details={
                "event_count": event_count,
            },
        )

    @staticmethod
    def append_failed(
        idempotency_key: str,
        error_message: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.APPEND_FAILED,
            severity=AuditSeverity.ERROR,
            idempotency_key=idempotency_key,
            correlation_id=correlation_id,
            description="Appending events to the store failed",
            error_message=error_message,
        )

    @staticmethod
    def suggestions_reconciled(
        created: list[str],
        updated: list[str],
        dismissed: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SUGGESTIONS_RECONCILED,
            correlation_id=correlation_id,
            description=(
                f"Suggestions reconciled: {len(created)} created, "
                f"{len(updated)} updated, {dismissed} dismissed"
            ),
            details={
                "created_policies": created,
                "updated_policies": updated,
                "dismissed_count": dismissed,
            },
        )

    @staticmethod
    def quiet_day_suppressed(
        dismissed: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.QUIET_DAY_SUPPRESSED,
            correlation_id=correlation_id,
            description=f"Quiet day: dismissed {dismissed} suggestion(s), no rules evaluated",
            details={
                "dismissed_count": dismissed,
            },
        )

    @staticmethod
    def suggestion_dismissed(
        suggestion_id: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SUGGESTION_DISMISSED,
            correlation_id=correlation_id,
            description="Suggestion dismissed by user",
            details={
                "suggestion_id": suggestion_id,
            },
        )

    @staticmethod
    def patterns_expired(
        pattern_ids: list[str],
        now: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PATTERNS_EXPIRED,
            correlation_id=correlation_id,
            description=f"TTL sweep dismissed {len(pattern_ids)} pattern(s)",
            details={
                "pattern_ids": pattern_ids,
                "now": now,
            },
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
