from __future__ import annotations

from typing import Final

from .errors import ValidationError

ALLOWED_OBSERVATION_TYPES: Final[tuple[str, ...]] = (
    "learning",
    "decision",
    "blocker",
    "progress",
    "handoff",
)


def normalize_observation_type(value: str) -> str:
    return (value or "").strip().lower()


def validate_observation_type(value: str) -> str:
    normalized = normalize_observation_type(value)
    if normalized in ALLOWED_OBSERVATION_TYPES:
        return normalized
    raise ValidationError(
        f"Invalid observation type '{normalized}'. "
        f"Allowed types: {', '.join(ALLOWED_OBSERVATION_TYPES)}"
    )
