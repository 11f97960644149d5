"""
Command and Event Envelopes

These are the only two shapes that cross the kernel boundary inbound
(commands) and outbound (events). Payloads stay plain dicts here because
the event log is schema-less; each domain parses them into its own closed
payload models.

DESIGN DECISION: Both envelopes are frozen. An event is immutable once it
exists, and a command is a snapshot of what the caller asked for.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class Command(BaseModel):
    """
    A client request to perform one action.

    The caller supplies the idempotency key. It must be globally unique per
    logical action and is reused verbatim on retries.
    """
    model_config = ConfigDict(frozen=True)

    type: str = Field(
        ...,
        min_length=1,
        description="Command type, e.g. 'habit.create'"
    )
    idempotency_key: str = Field(
        ...,
        min_length=1,
        description="Caller-supplied key giving the command at-most-once effect"
    )
    requested_at: int = Field(
        ...,
        ge=0,
        description="When the caller issued the command (epoch ms)"
    )
    payload: dict[str, Any] = Field(default_factory=dict)
    meta: dict[str, Any] = Field(default_factory=dict)


class Event(BaseModel):
    """
    An immutable record of something that happened.

    Events are appended to the log and replayed through reducers to
    derive state. Ordering is by occurred_at, ties broken by insertion order.
    """
    model_config = ConfigDict(frozen=True)

    type: str = Field(
        ...,
        min_length=1,
        description="Event type, e.g. 'habit.created'"
    )
    occurred_at: int = Field(
        ...,
        ge=0,
        description="When the event happened (epoch ms)"
    )
    idempotency_key: str = Field(
        ...,
        min_length=1,
        description="Key of the command (or sweep) that produced this event"
    )
    payload: dict[str, Any] = Field(default_factory=dict)
    meta: dict[str, Any] = Field(default_factory=dict)


class CommandResult(BaseModel):
    """
    Outcome of submitting a command.

    A duplicate command is not an error: it is reported here with
    deduplicated=True and no events.
    """

    command_type: str
    idempotency_key: str
    deduplicated: bool = False
    events: list[Event] = Field(default_factory=list)

    @property
    def accepted(self) -> bool:
        return not self.deduplicated

    @property
    def event_count(self) -> int:
        return len(self.events)


def find_by_idempotency_key(
    events: list[Event],
    idempotency_key: str,
) -> Optional[Event]:
    """First event in `events` carrying `idempotency_key`, if any."""
    for event in events:
        if event.idempotency_key == idempotency_key:
            return event
    return None
