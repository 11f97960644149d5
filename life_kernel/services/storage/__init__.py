"""Storage services for the kernel host adapter."""

from life_kernel.services.storage.interface import (
    DuplicateError,
    EventStoreInterface,
    NotFoundError,
    StorageConnectionError,
    StorageError,
    SuggestionStoreInterface,
)
from life_kernel.services.storage.memory import InMemoryEventStore, InMemorySuggestionStore

__all__ = [
    "DuplicateError",
    "EventStoreInterface",
    "InMemoryEventStore",
    "InMemorySuggestionStore",
    "NotFoundError",
    "StorageConnectionError",
    "StorageError",
    "SuggestionStoreInterface",
]
