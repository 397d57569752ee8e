from __future__ import annotations

from pathlib import Path

import pytest

from obsmem.config import CONFIG_ENV_OVERRIDES


@pytest.fixture(autouse=True)
def _isolate_config(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("OBSMEM_CONFIG", str(tmp_path / "obsmem-config.json"))
    monkeypatch.delenv("OBSMEM_PROJECT_ROOT", raising=False)
    for env_var in CONFIG_ENV_OVERRIDES.values():
        monkeypatch.delenv(env_var, raising=False)
