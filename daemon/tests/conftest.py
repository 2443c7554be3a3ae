"""
Shared test fixtures for gateway updater tests.

Provides fixtures for:
- Argv keys for the git commands issued against a test repository
- Settings instances isolated from the environment
- Temporary repository directories with a package.json
"""
import json
import sys
from pathlib import Path

import pytest

# Ensure src/ is on sys.path for direct pytest runs
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = PROJECT_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from gateway_updater.config import Settings
from gateway_updater.services.update_lock import UpdateLockRegistry


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def settings():
    """Settings with no retry delay and no .env lookup."""
    return Settings(_env_file=None, fetch_retry_delay_seconds=0.0)


@pytest.fixture
def lock_registry():
    """Fresh lock registry so tests never share locks."""
    return UpdateLockRegistry()


@pytest.fixture
def repo_dir(tmp_path):
    """Temporary checkout with a pnpm package.json."""
    repo = tmp_path / "gateway"
    repo.mkdir()
    (repo / ".git").mkdir()
    (repo / "package.json").write_text(
        json.dumps({"name": "gateway", "version": "1.0.0", "packageManager": "pnpm@8.0.0"}),
        encoding="utf-8",
    )
    return repo


@pytest.fixture
def git_script(repo_dir):
    """Argv keys for the git commands the updater issues against repo_dir."""
    root = str(repo_dir)

    def git(*args: str) -> str:
        return " ".join(["git", "-C", root, *args])

    return git
