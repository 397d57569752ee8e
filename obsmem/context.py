from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

from .config import ObsmemConfig, ResolvedPaths, load_config, resolve_paths
from .store import MemoryStore


@dataclass(frozen=True)
class MemoryContext:
    """Configuration plus the absolute store paths for one project root."""

    config: ObsmemConfig
    paths: ResolvedPaths

    @classmethod
    def for_project(
        cls, project_root: Path | str, config: ObsmemConfig | None = None
    ) -> MemoryContext:
        cfg = config or load_config()
        return cls(config=cfg, paths=resolve_paths(cfg, project_root))

    @contextmanager
    def open_store(self) -> Iterator[MemoryStore]:
        store = MemoryStore(
            self.paths.memory_db,
            busy_timeout_ms=self.config.busy_timeout_ms,
            checkpoint_dir=self.paths.checkpoint_dir,
        )
        try:
            yield store
        finally:
            store.close()
