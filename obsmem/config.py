from __future__ import annotations

import json
import os
import re
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

DEFAULT_CONFIG_PATH = Path("~/.config/obsmem/config.json").expanduser()

CONFIG_ENV_OVERRIDES = {
    "memory_dir": "OBSMEM_MEMORY_DIR",
    "memory_db_name": "OBSMEM_DB_NAME",
    "beads_db": "OBSMEM_BEADS_DB",
    "checkpoint_dir": "OBSMEM_CHECKPOINT_DIR",
    "search_limit": "OBSMEM_SEARCH_LIMIT",
    "timeline_before": "OBSMEM_TIMELINE_BEFORE",
    "timeline_after": "OBSMEM_TIMELINE_AFTER",
    "archive_older_than_days": "OBSMEM_ARCHIVE_DAYS",
    "busy_timeout_ms": "OBSMEM_BUSY_TIMEOUT_MS",
    "beads_completed_statuses": "OBSMEM_BEADS_COMPLETED_STATUSES",
    "log_level": "OBSMEM_LOG_LEVEL",
    "log_file": "OBSMEM_LOG_FILE",
}

_INT_KEYS = {
    "search_limit",
    "timeline_before",
    "timeline_after",
    "archive_older_than_days",
    "busy_timeout_ms",
}
_LIST_KEYS = {"beads_completed_statuses"}
_OPTIONAL_KEYS = {"checkpoint_dir", "log_file"}


def get_config_path(path: Path | None = None) -> Path:
    candidate = path or Path(os.getenv("OBSMEM_CONFIG", DEFAULT_CONFIG_PATH))
    return candidate.expanduser()


def strip_json_comments(text: str) -> str:
    """Drop // and /* */ comments and trailing commas outside of string literals."""

    out: list[str] = []
    i = 0
    in_string = False
    length = len(text)
    while i < length:
        char = text[i]
        if in_string:
            out.append(char)
            if char == "\\" and i + 1 < length:
                out.append(text[i + 1])
                i += 2
                continue
            if char == '"':
                in_string = False
            i += 1
            continue
        if char == '"':
            in_string = True
            out.append(char)
            i += 1
            continue
        if text.startswith("//", i):
            end = text.find("\n", i)
            i = length if end == -1 else end
            continue
        if text.startswith("/*", i):
            end = text.find("*/", i + 2)
            if end == -1:
                raise ValueError("unterminated block comment")
            i = end + 2
            continue
        out.append(char)
        i += 1
    return _strip_trailing_commas("".join(out))


def _strip_trailing_commas(text: str) -> str:
    out: list[str] = []
    in_string = False
    escape_next = False
    for index, char in enumerate(text):
        if in_string:
            out.append(char)
            if escape_next:
                escape_next = False
            elif char == "\\":
                escape_next = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == "," and re.match(r"\s*[}\]]", text[index + 1 :]):
            continue
        out.append(char)
    return "".join(out)


def read_config_file(path: Path | None = None) -> dict[str, Any]:
    config_path = get_config_path(path)
    if not config_path.exists():
        return {}
    raw = config_path.read_text()
    if not raw.strip():
        return {}
    try:
        data = json.loads(strip_json_comments(raw))
    except (json.JSONDecodeError, ValueError) as exc:
        raise ValueError("invalid config json") from exc
    if not isinstance(data, dict):
        raise ValueError("config must be an object")
    return data


def get_env_overrides() -> dict[str, str]:
    overrides: dict[str, str] = {}
    for key, env_var in CONFIG_ENV_OVERRIDES.items():
        value = os.getenv(env_var)
        if value is not None:
            overrides[key] = value
    return overrides


@dataclass
class ObsmemConfig:
    # Relative paths are resolved against the project root given to resolve_paths().
    memory_dir: str = ".opencode/memory"
    memory_db_name: str = "memory.db"
    beads_db: str = ".beads/beads.db"
    checkpoint_dir: str | None = None
    search_limit: int = 10
    timeline_before: int = 3
    timeline_after: int = 3
    archive_older_than_days: int = 90
    busy_timeout_ms: int = 5000
    beads_completed_statuses: list[str] = field(default_factory=lambda: ["done", "closed"])
    log_level: str = "WARNING"
    log_file: str | None = None


@dataclass(frozen=True)
class ResolvedPaths:
    memory_dir: Path
    memory_db: Path
    beads_db: Path
    checkpoint_dir: Path


def resolve_paths(cfg: ObsmemConfig, project_root: Path | str) -> ResolvedPaths:
    root = Path(project_root).expanduser()

    def _resolve(value: str) -> Path:
        path = Path(value).expanduser()
        return path if path.is_absolute() else root / path

    memory_dir = _resolve(cfg.memory_dir)
    return ResolvedPaths(
        memory_dir=memory_dir,
        memory_db=memory_dir / cfg.memory_db_name,
        beads_db=_resolve(cfg.beads_db),
        checkpoint_dir=_resolve(cfg.checkpoint_dir) if cfg.checkpoint_dir else memory_dir,
    )


def _parse_int(value: object, default: int, *, key: str) -> int:
    if value is None:
        return default
    try:
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        warnings.warn(f"Invalid int for {key}: {value!r}", RuntimeWarning, stacklevel=2)
        return default


def _coerce_str_list(value: object, *, key: str) -> list[str] | None:
    if value is None:
        return None
    if isinstance(value, list):
        return [item.strip() for item in value if isinstance(item, str) and item.strip()]
    if isinstance(value, str):
        return [p.strip() for p in value.split(",") if p.strip()]
    warnings.warn(f"Invalid list for {key}: {value!r}", RuntimeWarning, stacklevel=2)
    return None


def load_config(path: Path | None = None) -> ObsmemConfig:
    cfg = ObsmemConfig()
    try:
        data = read_config_file(path)
    except ValueError as exc:
        warnings.warn(f"Ignoring config file: {exc}", RuntimeWarning, stacklevel=2)
        data = {}
    cfg = _apply_dict(cfg, data)
    cfg = _apply_dict(cfg, get_env_overrides())
    return cfg


def _apply_dict(cfg: ObsmemConfig, data: dict[str, Any]) -> ObsmemConfig:
    for key, value in data.items():
        if not hasattr(cfg, key):
            continue
        if key in _INT_KEYS:
            setattr(cfg, key, _parse_int(value, getattr(cfg, key), key=key))
            continue
        if key in _LIST_KEYS:
            parsed = _coerce_str_list(value, key=key)
            if parsed is not None:
                setattr(cfg, key, parsed)
            continue
        if value is not None and not isinstance(value, str):
            warnings.warn(f"Invalid string for {key}: {value!r}", RuntimeWarning, stacklevel=2)
            continue
        if key in _OPTIONAL_KEYS:
            setattr(cfg, key, value or None)
            continue
        if value:
            setattr(cfg, key, value)
    return cfg
