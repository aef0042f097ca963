"""
Shared test fixtures and configuration.
"""

from pathlib import Path

import pytest

from converge.adapters.mock import MockBackend
from converge.adapters.registry import BackendRegistry


@pytest.fixture
def tmp_state_dir(tmp_path: Path) -> Path:
    """Return a temporary directory for the lock and audit ledger."""
    state_dir = tmp_path / "state"
    state_dir.mkdir()
    return state_dir


@pytest.fixture
def mock_backend() -> MockBackend:
    """An empty in-memory machine."""
    return MockBackend()


@pytest.fixture
def mock_registry(mock_backend: MockBackend) -> BackendRegistry:
    """Registry routing every unit to ``mock_backend``."""
    return BackendRegistry(mock_mode=True, mock_backend=mock_backend)


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Keep tests away from the real catalog, state dir and log settings."""
    monkeypatch.delenv("CONVERGE_CATALOG", raising=False)
    monkeypatch.delenv("CONVERGE_LOG_LEVEL", raising=False)
    monkeypatch.delenv("CONVERGE_LOG_FILE", raising=False)
    monkeypatch.delenv("CONVERGE_LOG_FILE_LEVEL", raising=False)
    monkeypatch.setenv("CONVERGE_STATE_DIR", str(tmp_path / "converge-state"))
