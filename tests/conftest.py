from __future__ import annotations

from pathlib import Path
from typing import Any, Dict

import pytest
import yaml

from repowiki.config import CONFIG_FILENAME, ConfigStore


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    """A workspace with two small source files and no configuration."""
    (tmp_path / "src").mkdir()
    (tmp_path / "src" / "app.py").write_text("def main():\n    return 1\n", encoding="utf-8")
    (tmp_path / "src" / "util.py").write_text("VALUE = 2\n", encoding="utf-8")
    return tmp_path


@pytest.fixture
def make_store(workspace: Path):
    """Write ``.repowiki.yml`` from a dict and return a loaded store."""

    def _make(data: Dict[str, Any] | None = None) -> ConfigStore:
        if data is not None:
            (workspace / CONFIG_FILENAME).write_text(
                yaml.safe_dump(data, sort_keys=False), encoding="utf-8"
            )
        return ConfigStore.load(workspace)

    return _make
