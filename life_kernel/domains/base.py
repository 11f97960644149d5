"""
Reducer and Command Routing Primitives

Each domain registers its event handlers on an EventReducer and its command
handlers on a CommandRouter. Both are plain dispatch tables keyed by type.

DESIGN DECISION: Unknown event types fall through to a default no-op, and
so do known events whose payload no longer parses. Replaying a log written
by a newer kernel must never fail.
"""

from typing import Any, Callable, Generic, Iterable, Optional, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from life_kernel.config import KernelSettings, get_settings
from life_kernel.models.envelope import Command, Event
from life_kernel.validation import parse_payload

StateT = TypeVar("StateT", bound=BaseModel)

EventHandler = Callable[[StateT, Event, Any], StateT]
CommandHandler = Callable[[StateT, Command, Any, KernelSettings], list[Event]]


def ordered(events: Iterable[Event]) -> list[Event]:
    """Events by occurred_at; sorted() is stable so ties keep insertion order."""
    return sorted(events, key=lambda event: event.occurred_at)


def make_event(
    command: Command,
    event_type: str,
    payload: BaseModel,
) -> Event:
    """Build an event stamped with the command's time and idempotency key."""
    return Event(
        type=event_type,
        occurred_at=command.requested_at,
        idempotency_key=command.idempotency_key,
        payload=payload.model_dump(mode="json", exclude_none=True),
        meta={**command.meta, "command": command.type},
    )


class EventReducer(Generic[StateT]):
    """
    Pure `(state, event) -> state` function assembled from per-type handlers.

    Usage:
        reduce = EventReducer("habits", HabitState)

        @reduce.on("habit.created", HabitCreated)
        def _created(state, event, payload): ...

        state = reduce.replay(events)
    """

    def __init__(self, domain: str, initial_state: Callable[[], StateT]):
        self.domain = domain
        self._initial_state = initial_state
        self._handlers: dict[str, tuple[type[BaseModel], EventHandler]] = {}

    def on(self, event_type: str, payload_model: type[BaseModel]):
        def decorator(handler: EventHandler) -> EventHandler:
            self._handlers[event_type] = (payload_model, handler)
            return handler
        return decorator

    @property
    def event_types(self) -> frozenset[str]:
        return frozenset(self._handlers)

    def initial_state(self) -> StateT:
        return self._initial_state()

    def __call__(self, state: StateT, event: Event) -> StateT:
        entry = self._handlers.get(event.type)
        if entry is None:
            return state

        payload_model, handler = entry
        try:
            payload = payload_model.model_validate(event.payload)
        except PydanticValidationError:
            return state
        return handler(state, event, payload)

    def fold(self, state: StateT, events: Iterable[Event]) -> StateT:
        for event in ordered(events):
            state = self(state, event)
        return state

    def replay(self, events: Iterable[Event]) -> StateT:
        """Rebuild state from scratch: fold over all events from the initial state."""
        return self.fold(self.initial_state(), events)


class CommandRouter(Generic[StateT]):
    """
    `handle_command(prior_events, command) -> events` for one domain.

    The router replays prior events into the domain state, parses the
    payload into the command's closed model and calls the handler.
    """

    def __init__(self, reducer: EventReducer[StateT]):
        self._reducer = reducer
        self._handlers: dict[str, tuple[type[BaseModel], CommandHandler]] = {}

    def on(self, command_type: str, payload_model: type[BaseModel]):
        def decorator(handler: CommandHandler) -> CommandHandler:
            self._handlers[command_type] = (payload_model, handler)
            return handler
        return decorator

    @property
    def domain(self) -> str:
        return self._reducer.domain

    @property
    def command_types(self) -> frozenset[str]:
        return frozenset(self._handlers)

    def handles(self, command_type: str) -> bool:
        return command_type in self._handlers

    def handle(
        self,
        prior_events: Iterable[Event],
        command: Command,
        settings: Optional[KernelSettings] = None,
    ) -> list[Event]:
        entry = self._handlers.get(command.type)
        if entry is None:
            return []

        payload_model, handler = entry
        payload = parse_payload(payload_model, command.payload)
        state = self._reducer.replay(prior_events)
        return handler(state, command, payload, settings or get_settings())
