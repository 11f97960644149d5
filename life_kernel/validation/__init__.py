"""Command validation package."""

from life_kernel.validation.errors import (
    KernelError,
    UnknownEntityError,
    ValidationError,
)
from life_kernel.validation.validator import (
    assert_no_dependency_cycle,
    parse_payload,
    require_capacity,
    require_positive_amount,
    require_text,
)

__all__ = [
    "KernelError",
    "UnknownEntityError",
    "ValidationError",
    "assert_no_dependency_cycle",
    "parse_payload",
    "require_capacity",
    "require_positive_amount",
    "require_text",
]
