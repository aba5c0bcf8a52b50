"""SQLite-backed append-only conversation log (thread-safe)."""
from __future__ import annotations

import logging
import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from .errors import PersistenceError, ValidationError
from .models import Role, Turn

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS messages (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    role TEXT NOT NULL,
    content TEXT NOT NULL,
    timestamp TEXT NOT NULL
)
"""

_COLUMNS = "id, role, content, timestamp"


# -----------------------------
# Helpers
# -----------------------------
def _utc_iso(dt: Optional[datetime] = None) -> str:
    # Fixed-width so lexical order in SQL matches chronological order.
    return (dt or datetime.now(timezone.utc)).isoformat(timespec="microseconds")


def _row_to_turn(row: sqlite3.Row) -> Turn:
    return Turn(
        id=int(row["id"]),
        role=Role(row["role"]),
        content=row["content"],
        timestamp=row["timestamp"],
    )


# -----------------------------
# MessageStore
# -----------------------------
class MessageStore:
    """Append-only chat log ordered by (timestamp, id).

    Every append runs under one lock and one transaction, so concurrent
    callers never see duplicate ids or a timestamp older than the previous
    turn. Reads go through the same connection and lock.

    API:
        - append(role, content) -> int
        - read_all() -> List[Turn]
        - read_last(n) -> List[Turn]
        - count() -> int
        - clear() -> None
    """

    def __init__(self, db_path: str | Path = "data/chat.db") -> None:
        self.db_path = str(db_path)
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        try:
            self._conn = sqlite3.connect(self.db_path, check_same_thread=False, timeout=30.0)
            self._conn.row_factory = sqlite3.Row
            if self.db_path != ":memory:":
                self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.execute(_SCHEMA)
            self._conn.commit()
        except sqlite3.Error as e:
            logger.exception("Failed to open message store at %s", self.db_path)
            raise PersistenceError(f"Cannot open message store at {self.db_path}: {e}") from e

        self._lock = threading.Lock()
        self._last_ts: Optional[str] = None

    # --------- core API ----------
    def append(self, role: Role | str, content: str) -> int:
        """Persist one turn and return its id."""
        role = Role(role)  # unknown roles are a programming error (ValueError)
        if not isinstance(content, str) or not content.strip():
            raise ValidationError("Message content must not be empty.")

        with self._lock:
            try:
                ts = self._next_timestamp()
                with self._conn:
                    cur = self._conn.execute(
                        "INSERT INTO messages (role, content, timestamp) VALUES (?, ?, ?)",
                        (role.value, content, ts),
                    )
                self._last_ts = ts
                return int(cur.lastrowid)
            except sqlite3.Error as e:
                logger.exception("Failed to append %s message", role.value)
                raise PersistenceError(f"Failed to save message: {e}") from e

    def read_all(self) -> List[Turn]:
        """Return the whole log in canonical order."""
        return self._query(f"SELECT {_COLUMNS} FROM messages ORDER BY timestamp ASC, id ASC")

    def read_last(self, n: int) -> List[Turn]:
        """Return the last ``n`` turns, oldest first."""
        if n <= 0:
            return []
        rows = self._query(
            f"SELECT {_COLUMNS} FROM messages ORDER BY timestamp DESC, id DESC LIMIT ?", (int(n),)
        )
        rows.reverse()
        return rows

    def count(self) -> int:
        with self._lock:
            try:
                return int(self._conn.execute("SELECT COUNT(*) FROM messages").fetchone()[0])
            except sqlite3.Error as e:
                logger.exception("Failed to count messages")
                raise PersistenceError(f"Failed to count messages: {e}") from e

    def clear(self) -> None:
        """Delete every turn. Ids are not reused afterwards."""
        with self._lock:
            try:
                with self._conn:
                    self._conn.execute("DELETE FROM messages")
            except sqlite3.Error as e:
                logger.exception("Failed to clear messages")
                raise PersistenceError(f"Failed to clear messages: {e}") from e
        logger.info("Chat history cleared")

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    # --------- internals ----------
    def _next_timestamp(self) -> str:
        # Caller holds the lock. Never step backwards if the wall clock does.
        if self._last_ts is None:
            row = self._conn.execute("SELECT MAX(timestamp) FROM messages").fetchone()
            self._last_ts = row[0] if row else None
        now = _utc_iso()
        if self._last_ts is not None and now < self._last_ts:
            return self._last_ts
        return now

    def _query(self, sql: str, params: tuple = ()) -> List[Turn]:
        with self._lock:
            try:
                rows = self._conn.execute(sql, params).fetchall()
            except sqlite3.Error as e:
                logger.exception("Failed to read messages")
                raise PersistenceError(f"Failed to read messages: {e}") from e
        return [_row_to_turn(r) for r in rows]
