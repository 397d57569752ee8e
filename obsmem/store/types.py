from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, TypedDict


@dataclass
class Observation:
    id: int
    type: str
    narrative: str
    facts: list[str] = field(default_factory=list)
    confidence: float = 1.0
    files_read: list[str] = field(default_factory=list)
    files_modified: list[str] = field(default_factory=list)
    concepts: list[str] = field(default_factory=list)
    bead_id: str | None = None
    created_at: str = ""
    expires_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class SearchResult:
    id: int
    type: str
    narrative: str
    confidence: float
    created_at: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class AdminResult(TypedDict):
    operation: str
    success: bool
    details: dict[str, Any]


class SyncResult(TypedDict):
    success: bool
    operation: str
    details: dict[str, Any]
