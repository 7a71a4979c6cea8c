from __future__ import annotations

import os
from pathlib import Path

import pytest

import sandbox_envd.config as envd_config


@pytest.fixture(autouse=True)
def clear_envd_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    for key in list(os.environ.keys()):
        if key.startswith("ENVD_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.setattr(envd_config, "DEFAULT_ENVD_CONFIG_JSON", tmp_path / "missing-config.json")


@pytest.fixture
def api_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ENVD_API_KEY", "test-key")

