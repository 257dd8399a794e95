"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import sys
from collections.abc import Callable, Generator
from pathlib import Path
from typing import Any

import pytest

# Make the src layout importable without an editable install
_repo_root = Path(__file__).parent.parent
_src = _repo_root / "src"

if str(_src) not in sys.path:
    sys.path.insert(0, str(_src))

from hivemind_bridge.config import BridgeConfig, reset_config  # noqa: E402


@pytest.fixture
def fake_worker_path() -> Path:
    """Return the path to the scriptable fake worker."""
    return Path(__file__).parent / "fake_worker.py"


@pytest.fixture
def worker_log(tmp_path: Path) -> Path:
    """Return a file the fake worker appends every received line to."""
    return tmp_path / "worker_input.log"


@pytest.fixture
def make_config(
    fake_worker_path: Path, worker_log: Path
) -> Callable[..., BridgeConfig]:
    """Build a fast config that launches the fake worker in a given mode."""

    def _make(mode: str, **overrides: Any) -> BridgeConfig:
        settings: dict[str, Any] = {
            "executable": sys.executable,
            "worker_args": ["-u", str(fake_worker_path), mode, str(worker_log)],
            "response_delay": 0.1,
            "max_wait": 5.0,
            "poll_interval": 0.05,
            "terminate_timeout": 2.0,
        }
        settings.update(overrides)
        return BridgeConfig(**settings)

    return _make


@pytest.fixture(autouse=True)
def clean_config() -> Generator[None, None, None]:
    """Reset the config singleton before and after each test."""
    reset_config()
    yield
    reset_config()
