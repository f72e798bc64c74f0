"""SQLite persistence for the reference remote server."""

import logging
import sqlite3
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

REMOTE_SCHEMA = """
-- Commits pushed by any device, keyed by owner and client-generated id
CREATE TABLE IF NOT EXISTS commits (
    user_id TEXT NOT NULL,
    id TEXT NOT NULL,
    message TEXT NOT NULL,
    timestamp TEXT NOT NULL,
    code TEXT NOT NULL,
    language TEXT NOT NULL,
    author TEXT NOT NULL,
    received_at TEXT NOT NULL,
    PRIMARY KEY (user_id, id)
);

CREATE INDEX IF NOT EXISTS idx_commits_user_ts ON commits(user_id, timestamp);

-- Run history, ids assigned by the server
CREATE TABLE IF NOT EXISTS history (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    timestamp TEXT NOT NULL,
    language TEXT NOT NULL,
    code TEXT NOT NULL,
    title TEXT,
    comment TEXT
);

CREATE INDEX IF NOT EXISTS idx_history_user_ts ON history(user_id, timestamp);
"""

COMMIT_COLUMNS = "id, message, timestamp, code, language, author"
HISTORY_COLUMNS = "id, timestamp, language, code, title, comment"


class RemoteDatabase:
    """Commit and history tables for all users of a server."""

    def __init__(self, db_path: str | Path):
        """Initialize the database.

        Args:
            db_path: Path to SQLite database file, or ":memory:".
        """
        self.db_path = db_path if db_path == ":memory:" else Path(db_path).expanduser()
        self._conn: sqlite3.Connection | None = None

    def connect(self) -> None:
        """Initialize database connection and schema."""
        if self._conn is not None:
            return

        if isinstance(self.db_path, Path):
            self.db_path.parent.mkdir(parents=True, exist_ok=True)

        # Requests may be served on a different thread than the one that connected
        self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.executescript(REMOTE_SCHEMA)
        self._conn.commit()

        logger.info(f"RemoteDatabase connected to {self.db_path}")

    def close(self) -> None:
        """Close database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None

    def _ensure_connected(self) -> sqlite3.Connection:
        """Ensure database connection exists."""
        if self._conn is None:
            self.connect()
        return self._conn

    def get_commit(self, user_id: str, commit_id: str) -> dict[str, Any] | None:
        conn = self._ensure_connected()

        row = conn.execute(
            f"SELECT {COMMIT_COLUMNS} FROM commits WHERE user_id = ? AND id = ?",
            (user_id, commit_id),
        ).fetchone()
        return dict(row) if row else None

    def put_commit(
        self,
        user_id: str,
        commit: dict[str, Any],
        server_timestamp: bool = True,
    ) -> dict[str, Any]:
        """Store a commit unless the user already has one with that id.

        Args:
            user_id: Owner of the commit.
            commit: Commit fields as produced by ``Commit.to_dict``.
            server_timestamp: Replace the client timestamp with server time.

        Returns:
            The stored commit, which is the existing one for a repeated id.
        """
        conn = self._ensure_connected()

        now = datetime.now(timezone.utc).isoformat()
        timestamp = now if server_timestamp else commit["timestamp"]

        cursor = conn.execute(
            """
            INSERT OR IGNORE INTO commits (
                user_id, id, message, timestamp, code, language, author, received_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                user_id,
                commit["id"],
                commit["message"],
                timestamp,
                commit["code"],
                commit["language"],
                commit.get("author") or "Guest",
                now,
            ),
        )
        conn.commit()

        if cursor.rowcount:
            logger.debug(f"Stored commit {commit['id']} for {user_id}")
        else:
            logger.debug(f"Commit {commit['id']} for {user_id} already stored")

        return self.get_commit(user_id, commit["id"])

    def list_commits(self, user_id: str) -> list[dict[str, Any]]:
        """All commits of a user, most recent first."""
        conn = self._ensure_connected()

        cursor = conn.execute(
            f"""
            SELECT {COMMIT_COLUMNS} FROM commits
            WHERE user_id = ?
            ORDER BY timestamp DESC
            """,
            (user_id,),
        )
        return [dict(row) for row in cursor]

    def add_history(self, user_id: str, record: dict[str, Any]) -> dict[str, Any]:
        """Store a history record under a new server id and server time."""
        conn = self._ensure_connected()

        stored = {
            "id": uuid.uuid4().hex,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "language": record["language"],
            "code": record["code"],
            "title": record.get("title"),
            "comment": record.get("comment"),
        }

        conn.execute(
            """
            INSERT INTO history (id, user_id, timestamp, language, code, title, comment)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                stored["id"],
                user_id,
                stored["timestamp"],
                stored["language"],
                stored["code"],
                stored["title"],
                stored["comment"],
            ),
        )
        conn.commit()

        return stored

    def list_history(self, user_id: str) -> list[dict[str, Any]]:
        """All history records of a user, most recent first."""
        conn = self._ensure_connected()

        cursor = conn.execute(
            f"""
            SELECT {HISTORY_COLUMNS} FROM history
            WHERE user_id = ?
            ORDER BY timestamp DESC
            """,
            (user_id,),
        )
        return [dict(row) for row in cursor]

    def delete_history(self, user_id: str, record_id: str) -> bool:
        """Delete a record owned by ``user_id``. Returns False if none matched."""
        conn = self._ensure_connected()

        cursor = conn.execute(
            "DELETE FROM history WHERE id = ? AND user_id = ?", (record_id, user_id)
        )
        conn.commit()
        return cursor.rowcount > 0

    def get_stats(self) -> dict[str, Any]:
        """Get database statistics.

        Returns:
            Dictionary with row counts.
        """
        conn = self._ensure_connected()

        stats = {}

        cursor = conn.execute("SELECT COUNT(*) FROM commits")
        stats["commit_count"] = cursor.fetchone()[0]

        cursor = conn.execute("SELECT COUNT(*) FROM history")
        stats["history_count"] = cursor.fetchone()[0]

        cursor = conn.execute("SELECT COUNT(DISTINCT user_id) FROM commits")
        stats["commit_users"] = cursor.fetchone()[0]

        return stats
