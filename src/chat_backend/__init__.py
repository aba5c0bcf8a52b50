"""Persisted AI chat backend.

Records each user message in a SQLite log, asks a reply provider (Gemini,
or a local fallback when no key is configured) for an answer, records that
too, and serves the whole conversation over a small JSON API.

Typical usage
-------------
from chat_backend import create_app
app = create_app()

or, from the provided launcher:

python scripts/run_server.py --port 3001
"""

from __future__ import annotations

from .errors import PersistenceError, ProviderFailure, ValidationError
from .orchestrator import ConversationOrchestrator
from .server import create_app
from .store import MessageStore

__all__ = [
    "create_app",
    "ConversationOrchestrator",
    "MessageStore",
    "PersistenceError",
    "ProviderFailure",
    "ValidationError",
    "__version__",
    "get_version",
]

__version__ = "0.1.0"


def get_version() -> str:
    """Return the package version."""
    return __version__
