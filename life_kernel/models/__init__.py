"""
Data Models Package

Envelope, suggestion and audit models shared across the kernel.
Per-domain payload and state models live next to their reducers in
life_kernel.domains.
"""

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
    SuggestionUpdate,
    order_for_display,
)
from life_kernel.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Envelopes
    "Command",
    "CommandResult",
    "Event",
    "find_by_idempotency_key",
    # Suggestions
    "PolicyName",
    "Suggestion",
    "SuggestionAction",
    "SuggestionCandidate",
    "SuggestionUpdate",
    "order_for_display",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
