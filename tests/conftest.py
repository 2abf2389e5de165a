"""
Workbench Test Configuration
----------------------------
Shared fixtures and configuration for all tests.

Every test gets its own canonical workspace under tmp_path, with a
sibling `outside` directory for boundary tests.
"""

import os
import sys
from pathlib import Path
import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from core.cancellation import CancellationToken
from infra.config import ToolSettings
from infra.logging import reset_logging
from tools.registry import create_default_registry


# =============================================================================
# Test Isolation
# =============================================================================

@pytest.fixture(autouse=True)
def isolate_logging():
    """Drop handlers installed by configure_logging() after each test."""
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Keep WORKBENCH_* variables from the host out of the tests."""
    for key in list(os.environ):
        if key.startswith("WORKBENCH_"):
            monkeypatch.delenv(key)


# =============================================================================
# Workspaces
# =============================================================================

@pytest.fixture(scope="session")
def project_root():
    """Return the project root path."""
    return PROJECT_ROOT


@pytest.fixture
def workspace(tmp_path):
    """Canonical workspace root (tmp_path may itself sit behind a symlink)."""
    root = Path(os.path.realpath(tmp_path)) / "workspace"
    root.mkdir()
    return root


@pytest.fixture
def outside(tmp_path):
    """A directory next to the workspace, never inside it."""
    path = Path(os.path.realpath(tmp_path)) / "outside"
    path.mkdir()
    (path / "secret.txt").write_text("top secret\n")
    return path


@pytest.fixture
def make_registry(workspace):
    """Factory: default registry over the workspace with setting overrides."""
    def _make(**overrides):
        return create_default_registry(workspace, ToolSettings(**overrides))
    return _make


@pytest.fixture
def registry(make_registry):
    return make_registry()


class CancelAfter(CancellationToken):
    """Token that cancels itself on the (checks + 1)-th cancellation check."""

    def __init__(self, checks: int):
        super().__init__()
        self._remaining = checks

    def raise_if_cancelled(self) -> None:
        self._remaining -= 1
        if self._remaining < 0:
            self.cancel("test")
        super().raise_if_cancelled()


@pytest.fixture
def cancel_after():
    return CancelAfter
