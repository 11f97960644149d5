"""
In-Memory Storage

Reference implementations of the store interfaces, used by tests and for
running the kernel without a backend. State lives on the instance; create
one store per logical user.
"""

from typing import Optional
from uuid import uuid4

from life_kernel.domains.base import ordered
from life_kernel.models.envelope import Event
from life_kernel.models.suggestion import Suggestion, SuggestionCandidate, SuggestionUpdate
from life_kernel.services.storage.interface import (
    DuplicateError,
    EventStoreInterface,
    NotFoundError,
    SuggestionStoreInterface,
)


class InMemoryEventStore(EventStoreInterface):
    """Append-only list plus a key -> first-event index."""

    def __init__(self, events: Optional[list[Event]] = None):
        self._events: list[Event] = []
        self._index: dict[str, Event] = {}
        if events:
            for event in events:
                self._events.append(event)
                self._index.setdefault(event.idempotency_key, event)

    async def append(self, events: list[Event]) -> int:
        for event in events:
            if event.idempotency_key in self._index:
                raise DuplicateError(f"Idempotency key already used: {event.idempotency_key}")

        for event in events:
            self._events.append(event)
            self._index.setdefault(event.idempotency_key, event)
        return len(events)

    async def find_by_idempotency_key(self, idempotency_key: str) -> Optional[Event]:
        return self._index.get(idempotency_key)

    async def list_since(self, occurred_after: int) -> list[Event]:
        return [e for e in ordered(self._events) if e.occurred_at > occurred_after]

    async def list_all(self) -> list[Event]:
        return ordered(self._events)

    def __len__(self) -> int:
        return len(self._events)


class InMemorySuggestionStore(SuggestionStoreInterface):

    def __init__(self):
        self._suggestions: dict[str, Suggestion] = {}

    async def list_active(self) -> list[Suggestion]:
        active = [s for s in self._suggestions.values() if s.is_active]
        return sorted(active, key=lambda s: s.created_at)

    async def insert(self, candidate: SuggestionCandidate, created_at: int) -> Suggestion:
        suggestion = Suggestion(
            id=str(uuid4()),
            created_at=created_at,
            **candidate.model_dump(),
        )
        self._suggestions[suggestion.id] = suggestion
        return suggestion

    async def patch(self, update: SuggestionUpdate) -> Suggestion:
        existing = self._get(update.suggestion_id)
        patched = existing.model_copy(update={
            "headline": update.headline,
            "subtext": update.subtext,
            "priority": update.priority,
            "action": update.action,
        })
        self._suggestions[patched.id] = patched
        return patched

    async def dismiss(self, suggestion_id: str, dismissed_at: int) -> bool:
        existing = self._get(suggestion_id)
        if not existing.is_active:
            return False
        self._suggestions[suggestion_id] = existing.model_copy(update={"dismissed_at": dismissed_at})
        return True

    async def get(self, suggestion_id: str) -> Optional[Suggestion]:
        return self._suggestions.get(suggestion_id)

    def _get(self, suggestion_id: str) -> Suggestion:
        suggestion = self._suggestions.get(suggestion_id)
        if suggestion is None:
            raise NotFoundError(f"Suggestion not found: {suggestion_id}")
        return suggestion
