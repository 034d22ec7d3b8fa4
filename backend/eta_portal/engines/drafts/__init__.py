"""Local draft caching: storage slots, the draft store and form completion."""

from .completion import CompletionResult, evaluate_completion
from .draft_store import ApplicantRecord, CachedDraft, DraftStore
from .storage import (
    KeyValueStorage,
    MemorySessionStorage,
    SqliteLocalStorage,
    StorageError,
    StorageQuotaExceededError,
)

__all__ = [
    "ApplicantRecord",
    "CachedDraft",
    "CompletionResult",
    "DraftStore",
    "KeyValueStorage",
    "MemorySessionStorage",
    "SqliteLocalStorage",
    "StorageError",
    "StorageQuotaExceededError",
    "evaluate_completion",
]
