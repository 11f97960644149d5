"""
Command Dispatch

Routes a Command to the domain that owns its type and wraps the outcome in
a CommandResult.

IMPORTANT: The dedup check always comes first. If any prior event carries
the command's idempotency key, nothing is validated and nothing is emitted;
the caller gets deduplicated=True. A retried command is never an error.
"""

from typing import Iterable, Optional

from life_kernel.config import KernelSettings
from life_kernel.domains import DOMAINS, CommandRouter
from life_kernel.models.envelope import Command, CommandResult, Event, find_by_idempotency_key
from life_kernel.validation import ValidationError


def _build_routes() -> dict[str, CommandRouter]:
    routes: dict[str, CommandRouter] = {}
    for domain in DOMAINS:
        for command_type in domain.commands.command_types:
            routes[command_type] = domain.commands
    return routes


COMMAND_ROUTES: dict[str, CommandRouter] = _build_routes()


def supported_commands() -> list[str]:
    return sorted(COMMAND_ROUTES)


def handle_command(
    prior_events: Iterable[Event],
    command: Command,
    settings: Optional[KernelSettings] = None,
) -> list[Event]:
    """
    Validate `command` against the replayed state and translate it to events.

    Raises:
        ValidationError: Unknown command type, bad payload or broken invariant
        UnknownEntityError: The command references an id that doesn't exist
    """
    router = COMMAND_ROUTES.get(command.type)
    if router is None:
        raise ValidationError(
            f"Unknown command type: {command.type}",
            field="type",
            issue_type="unknown_command",
        )
    return router.handle(prior_events, command, settings)


def process_command(
    prior_events: Iterable[Event],
    command: Command,
    settings: Optional[KernelSettings] = None,
) -> CommandResult:
    """Dedup check, then handle_command."""
    prior = list(prior_events)
    if find_by_idempotency_key(prior, command.idempotency_key) is not None:
        return CommandResult(
            command_type=command.type,
            idempotency_key=command.idempotency_key,
            deduplicated=True,
        )

    events = handle_command(prior, command, settings)
    return CommandResult(
        command_type=command.type,
        idempotency_key=command.idempotency_key,
        events=events,
    )
