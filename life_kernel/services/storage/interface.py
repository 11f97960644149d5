"""
Abstract Storage Interfaces

DESIGN DECISION: The kernel never owns persistence. The host adapter is
handed an event store and a suggestion store that implement these
interfaces. This allows us to:
1. Use in-memory storage for tests and local runs
2. Back the same kernel with a document store or SQL later
3. Keep replay and policy logic free of I/O

The event store is append-only. Nothing here updates or deletes an event.
"""

from abc import ABC, abstractmethod
from typing import Optional

from life_kernel.models.envelope import Event
from life_kernel.models.suggestion import Suggestion, SuggestionCandidate, SuggestionUpdate


class EventStoreInterface(ABC):
    """
    Append-only event log with an idempotency-key index.

    The index must give at-most-once insertion: appending a batch whose
    key was already used by an earlier append raises DuplicateError and
    stores nothing.
    """

    @abstractmethod
    async def append(self, events: list[Event]) -> int:
        """
        Append the events of one accepted command (or one TTL sweep entry).

        Args:
            events: Events to append, in order

        Returns:
            Number of events stored

        Raises:
            DuplicateError: A key in the batch was used by an earlier append
            StorageError: If the append fails
        """
        pass

    @abstractmethod
    async def find_by_idempotency_key(self, idempotency_key: str) -> Optional[Event]:
        """
        Look up the first event stored under a key.

        Returns:
            The event if found, None otherwise
        """
        pass

    @abstractmethod
    async def list_since(self, occurred_after: int) -> list[Event]:
        """
        Events with occurred_at strictly greater than `occurred_after`.

        Returns:
            Events ordered by occurred_at, ties in insertion order
        """
        pass

    @abstractmethod
    async def list_all(self) -> list[Event]:
        """Every stored event, ordered like list_since."""
        pass


class SuggestionStoreInterface(ABC):
    """
    Storage for suggestions produced by the policy engine.

    Suggestions are dismissed, never deleted.
    """

    @abstractmethod
    async def list_active(self) -> list[Suggestion]:
        """Un-dismissed suggestions, in creation order."""
        pass

    @abstractmethod
    async def insert(self, candidate: SuggestionCandidate, created_at: int) -> Suggestion:
        """
        Store a new active suggestion.

        Returns:
            The stored suggestion with its assigned id
        """
        pass

    @abstractmethod
    async def patch(self, update: SuggestionUpdate) -> Suggestion:
        """
        Replace the displayed fields of an active suggestion in place.

        id and created_at are preserved.

        Raises:
            NotFoundError: If no such suggestion exists
        """
        pass

    @abstractmethod
    async def dismiss(self, suggestion_id: str, dismissed_at: int) -> bool:
        """
        Mark a suggestion dismissed.

        Returns:
            True if it was active, False if it was already dismissed

        Raises:
            NotFoundError: If no such suggestion exists
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class StorageConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
