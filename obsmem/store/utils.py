from __future__ import annotations

import datetime as dt
import sqlite3
from collections.abc import Iterable
from typing import Any

from .. import db
from ..errors import ValidationError
from .types import Observation


def now_iso() -> str:
    return dt.datetime.now(dt.UTC).isoformat(timespec="microseconds")


def parse_iso8601(value: str) -> dt.datetime | None:
    raw = value.strip()
    if not raw:
        return None
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    try:
        parsed = dt.datetime.fromisoformat(raw)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=dt.UTC)
    return parsed.astimezone(dt.UTC)


def parse_id(value: Any) -> int:
    if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
        raise ValidationError(f"invalid observation id: {value!r}")
    try:
        parsed = int(value)
    except (TypeError, ValueError, OverflowError) as exc:
        raise ValidationError(f"invalid observation id: {value!r}") from exc
    # SQLite INTEGER is a signed 64-bit value.
    if not -(2**63) <= parsed < 2**63:
        raise ValidationError(f"observation id out of range: {value!r}")
    return parsed


def parse_count(value: Any, *, name: str) -> int:
    """Coerce a window or limit into SQLite's non-negative integer range."""

    if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
        raise ValidationError(f"invalid {name}: {value!r}")
    try:
        parsed = int(value)
    except (TypeError, ValueError, OverflowError) as exc:
        raise ValidationError(f"invalid {name}: {value!r}") from exc
    return min(max(0, parsed), 2**63 - 1)


def parse_ids(value: str | int | Iterable[Any] | None) -> list[int]:
    """Parse a comma-separated string or an iterable into unique ids, keeping order."""

    if value is None:
        raise ValidationError("ids are required")
    if isinstance(value, bool):
        raise ValidationError(f"invalid observation id: {value!r}")
    if isinstance(value, int):
        parts: list[Any] = [value]
    elif isinstance(value, str):
        parts = [part.strip() for part in value.split(",")]
    else:
        parts = list(value)
    ids: list[int] = []
    for part in parts:
        parsed = parse_id(part)
        if parsed not in ids:
            ids.append(parsed)
    if not ids:
        raise ValidationError("at least one observation id is required")
    return ids


def coerce_str_list(value: Iterable[Any] | str | None) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    return [str(item) for item in value if item is not None]


def row_to_observation(row: sqlite3.Row) -> Observation:
    keys = row.keys()
    return Observation(
        id=int(row["id"]),
        type=row["type"],
        narrative=row["narrative"] or "",
        facts=db.decode_list(row["facts"]),
        confidence=float(row["confidence"]) if row["confidence"] is not None else 1.0,
        files_read=db.decode_list(row["files_read"]),
        files_modified=db.decode_list(row["files_modified"]),
        concepts=db.decode_list(row["concepts"]) if "concepts" in keys else [],
        bead_id=row["bead_id"] if "bead_id" in keys else None,
        created_at=row["created_at"] or "",
        expires_at=row["expires_at"] if "expires_at" in keys else None,
    )
