"""
Command Validation

DESIGN DECISION: Validation happens in two distinct stages, mirroring
how a command is handled:

STAGE 1 - PAYLOAD VALIDATION:
- The raw payload dict is parsed into the command's closed pydantic model
- Type, range and enum errors are converted into a kernel ValidationError

STAGE 2 - INVARIANT VALIDATION:
- Business checks against the replayed state
- Empty names, non-positive amounts, capacity limits, dependency cycles

IMPORTANT: Validation NEVER silently fixes a payload. It rejects the whole
command, and no events are emitted.
"""

from typing import Callable, Optional, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from life_kernel.validation.errors import ValidationError

PayloadT = TypeVar("PayloadT", bound=BaseModel)


def parse_payload(model: type[PayloadT], payload: dict) -> PayloadT:
    """
    Stage 1: parse a raw command payload into its closed model.

    Only the first pydantic error is reported; the caller gets one clear
    reason rather than a list.
    """
    try:
        return model.model_validate(payload)
    except PydanticValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ())) or None
        raise ValidationError(
            f"Invalid payload: {first.get('msg', 'invalid value')}",
            field=field,
            issue_type="invalid_payload",
        ) from e


def require_text(value: Optional[str], field: str) -> str:
    """Return the stripped value, rejecting empty or whitespace-only strings."""
    text = (value or "").strip()
    if not text:
        raise ValidationError(
            f"{field.replace('_', ' ').capitalize()} cannot be empty",
            field=field,
            issue_type="empty",
        )
    return text


def require_positive_amount(amount: int, field: str = "amount") -> int:
    """Monetary amounts are positive integers in minor units (e.g. cents)."""
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValidationError(
            f"{field} must be an integer in minor units",
            field=field,
            issue_type="invalid_amount",
        )
    if amount <= 0:
        raise ValidationError(
            f"{field} must be greater than zero",
            field=field,
            issue_type="non_positive_amount",
        )
    return amount


def require_capacity(current: int, limit: int, what: str) -> None:
    """Reject adding one more item when `current` already reached `limit`."""
    if current >= limit:
        raise ValidationError(
            f"{what} is full (max {limit})",
            issue_type="capacity_exceeded",
        )


def assert_no_dependency_cycle(
    task_id: str,
    blocked_by_task_id: Optional[str],
    blocked_by_of: Callable[[str], Optional[str]],
    max_depth: int,
) -> None:
    """
    Stage 2: reject a blocked-by edge that would close a cycle.

    Walks the existing blocked-by chain starting at `blocked_by_task_id`.
    The walk is capped at `max_depth` hops so it always terminates, even
    over a corrupted graph. A chain that is still going after the cap is
    rejected, since a cycle past that point could not be seen.
    """
    if not blocked_by_task_id:
        return
    if blocked_by_task_id == task_id:
        raise ValidationError(
            "Task cannot be blocked by itself",
            field="blocked_by_task_id",
            issue_type="dependency_cycle",
        )

    visited = {task_id}
    cursor: Optional[str] = blocked_by_task_id
    for _ in range(max_depth):
        if cursor is None:
            return
        if cursor in visited:
            raise ValidationError(
                "Dependency cycle detected",
                field="blocked_by_task_id",
                issue_type="dependency_cycle",
            )
        visited.add(cursor)
        cursor = blocked_by_of(cursor)

    if cursor is not None:
        # still walking after the cap
        raise ValidationError(
            f"Dependency chain is deeper than {max_depth} tasks",
            field="blocked_by_task_id",
            issue_type="dependency_depth_exceeded",
        )
