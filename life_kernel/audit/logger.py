"""
Audit Logger

DESIGN DECISION: Every host-side action on a command is logged:
accepted, deduplicated, rejected, appended. Policy runs and TTL sweeps
are logged too. This provides:
1. Traceability from a client retry back to the original command
2. Debugging capability when a suggestion appears (or doesn't)
3. A record of which events each command produced

The audit logger:
- Is async so the host adapter can await it inline
- Writes structured JSON through structlog
- Supports correlation IDs to tie together one host invocation
"""

import logging
from typing import Optional
from uuid import UUID, uuid4

import structlog

from life_kernel.config import get_settings
from life_kernel.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity

LOGGER_NAME = "life_kernel.audit"


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """Central audit logging service for the kernel host adapter."""

    def __init__(self, log_level: Optional[str] = None):
        """
        Initialize audit logger.

        Args:
            log_level: Minimum level to emit. Defaults to settings.log_level.
        """
        logging.getLogger(LOGGER_NAME).setLevel(log_level or get_settings().log_level)
        self._logger = structlog.get_logger(LOGGER_NAME)

    async def log(self, event: AuditEvent) -> None:
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        elif event.severity == AuditSeverity.DEBUG:
            self._logger.debug("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

    async def log_command_accepted(
        self,
        command_type: str,
        idempotency_key: str,
        event_types: list[str],
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.command_accepted(
            command_type=command_type,
            idempotency_key=idempotency_key,
            event_types=event_types,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_command_deduplicated(
        self,
        command_type: str,
        idempotency_key: str,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.command_deduplicated(
            command_type=command_type,
            idempotency_key=idempotency_key,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_command_rejected(
        self,
        command_type: str,
        idempotency_key: str,
        error_code: str,
        error_message: str,
        correlation_id: UUID,
        field: Optional[str] = None,
    ) -> None:
        """Log a validation or unknown-entity rejection."""
        event = AuditEventBuilder.command_rejected(
            command_type=command_type,
            idempotency_key=idempotency_key,
            error_code=error_code,
            error_message=error_message,
            correlation_id=correlation_id,
            field=field,
        )
        await self.log(event)

    async def log_events_appended(
        self,
        idempotency_key: str,
        event_count: int,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.events_appended(
            idempotency_key=idempotency_key,
            event_count=event_count,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_append_failed(
        self,
        idempotency_key: str,
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.append_failed(
            idempotency_key=idempotency_key,
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_suggestions_reconciled(
        self,
        created: list[str],
        updated: list[str],
        dismissed: int,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.suggestions_reconciled(
            created=created,
            updated=updated,
            dismissed=dismissed,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_quiet_day_suppressed(
        self,
        dismissed: int,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.quiet_day_suppressed(
            dismissed=dismissed,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_suggestion_dismissed(
        self,
        suggestion_id: str,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.suggestion_dismissed(
            suggestion_id=suggestion_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_patterns_expired(
        self,
        pattern_ids: list[str],
        now: int,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.patterns_expired(
            pattern_ids=pattern_ids,
            now=now,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        event = AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        )
        await self.log(event)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related records.

    Use this at the start of a host invocation (one command, one policy
    run). Pass it through all subsequent operations.
    """
    return uuid4()
