from __future__ import annotations

from ._store import MemoryStore
from .types import AdminResult, Observation, SearchResult, SyncResult

__all__ = [
    "AdminResult",
    "MemoryStore",
    "Observation",
    "SearchResult",
    "SyncResult",
]
