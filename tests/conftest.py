"""
Test configuration: ensures repo root is in sys.path + determinism guards.

This allows tests to import todo.* and tests.fixtures without installing.
Enforces determinism by pointing TODO_HOME at a temp dir, clearing
credentials from the environment and blocking writes to the real ~/.todo.

IMPORTANT: Guards are installed at conftest load time (not in fixtures) to catch
import-time writes into the live home directory.
"""

import os
import sys
from pathlib import Path

import pytest

# Add repo root to sys.path so tests can import todo.*, tests.fixtures
REPO_ROOT = Path(__file__).parent.parent
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))


# =============================================================================
# DETERMINISM GUARD: Block the live app home
# =============================================================================

LIVE_HOME = str(Path.home() / ".todo") + os.sep


def _raise_determinism_violation(path_str: str, operation: str):
    """Raise RuntimeError for forbidden path access."""
    raise RuntimeError(
        f"DETERMINISM VIOLATION: live todo home written via {operation}: {path_str}\n"
        "Tests must use the tmp TODO_HOME set by the isolated_home fixture."
    )


_original_os_replace = os.replace


def _guarded_os_replace(src, dst, *args, **kwargs):
    """Guard os.replace against writes into the live home."""
    if str(dst).startswith(LIVE_HOME):
        _raise_determinism_violation(str(dst), "os.replace")
    return _original_os_replace(src, dst, *args, **kwargs)


# Install the guard IMMEDIATELY at conftest load time
os.replace = _guarded_os_replace


@pytest.fixture(autouse=True)
def isolated_home(tmp_path, monkeypatch):
    """Automatically isolate every test from the real home and credentials."""
    home = tmp_path / "todo_home"
    monkeypatch.setenv("TODO_HOME", str(home))
    monkeypatch.delenv("TODO_CACHE_PATH", raising=False)
    monkeypatch.delenv("TODO_CONFIG_PATH", raising=False)
    monkeypatch.delenv("ASANA_PAT", raising=False)
    return home


@pytest.fixture
def store(tmp_path):
    from todo.cache import SnapshotStore

    return SnapshotStore(path=tmp_path / "cache.json")
