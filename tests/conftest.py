"""Pytest configuration and shared fixtures."""
from __future__ import annotations

import os
import sys
from pathlib import Path
import pytest

# Ensure src/ is on the import path (for local imports without installing as package)
SRC_PATH = Path(__file__).resolve().parent.parent / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from chat_backend.config import Settings  # noqa: E402
from chat_backend.store import MessageStore  # noqa: E402


@pytest.fixture(scope="session")
def project_root() -> Path:
    """Return the root directory of the project."""
    return Path(__file__).resolve().parent.parent


@pytest.fixture(scope="function")
def tmp_data_dir(tmp_path: Path) -> Path:
    """Provide a temporary directory for the SQLite log during tests."""
    d = tmp_path / "data"
    d.mkdir(parents=True, exist_ok=True)
    return d


@pytest.fixture(scope="function")
def clean_env(monkeypatch: pytest.MonkeyPatch):
    """Ensure tests run with a clean environment (no leftover vars)."""
    for var in ["CHAT_BACKEND_CONFIG", "GEMINI_API_KEY", "AI_MODEL", "PORT", "API_BASE_URL", "CHAT_DB_PATH"]:
        monkeypatch.delenv(var, raising=False)
    for var in list(os.environ):
        if var.startswith("CHAT_BACKEND__"):
            monkeypatch.delenv(var, raising=False)
    yield


@pytest.fixture(scope="function")
def store(tmp_data_dir: Path):
    s = MessageStore(tmp_data_dir / "chat.db")
    yield s
    s.close()


@pytest.fixture(scope="function")
def settings(tmp_data_dir: Path) -> Settings:
    return Settings(db_path=str(tmp_data_dir / "chat.db"))
