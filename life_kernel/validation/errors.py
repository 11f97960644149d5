"""Kernel error taxonomy."""

from typing import Optional


class KernelError(Exception):
    """Base exception for kernel rejections."""
    pass


class ValidationError(KernelError):
    """
    A command payload or invariant check failed.

    Raised before any event is produced, so a rejected command never
    leaves a partial event list behind.
    """

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        issue_type: str = "invalid_value",
    ):
        self.message = message
        self.field = field
        self.issue_type = issue_type
        super().__init__(message)


class UnknownEntityError(KernelError):
    """A command referenced an id that does not exist in the replayed state."""

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.issue_type = "unknown_entity"
        super().__init__(f"{entity_type.capitalize()} not found: {entity_id}")
