"""Pytest configuration helpers for the test suite."""

from __future__ import annotations

import os
from collections.abc import Callable
from pathlib import Path

import pytest
from fakes import FakeHost

from iisphpctl.config import AppConfig, load_config


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Skip expensive tests during mutation runs."""
    if not os.environ.get("MUTANT_UNDER_TEST"):
        return
    skip_marker = pytest.mark.skip(reason="Skipped during mutation run to avoid timeouts.")
    for item in items:
        if "mutation_timeout" in item.keywords:
            item.add_marker(skip_marker)


@pytest.fixture
def host() -> FakeHost:
    """Return a fresh simulated host with nothing installed."""
    return FakeHost()


@pytest.fixture
def make_config(tmp_path: Path) -> Callable[..., AppConfig]:
    """Return a factory building configs whose paths live under ``tmp_path``."""

    def _factory(**sections: object) -> AppConfig:
        overrides: dict[str, object] = {
            "config_file": str(tmp_path / "missing.yml"),
            "logs_dir": str(tmp_path / "logs"),
            "runtime_dir": str(tmp_path / "run"),
            "temp_dir": str(tmp_path / "tmp"),
            "lock_timeout": 1.0,
            "site": {"content_path": str(tmp_path / "www")},
            "php": {"install_path": str(tmp_path / "php")},
            "pool": {"settle_seconds": 0},
        }
        for key, value in sections.items():
            existing = overrides.get(key)
            if isinstance(existing, dict) and isinstance(value, dict):
                existing.update(value)
            else:
                overrides[key] = value
        (tmp_path / "tmp").mkdir(exist_ok=True)
        return load_config(config_file=tmp_path / "missing.yml", env={}, overrides=overrides)

    return _factory
