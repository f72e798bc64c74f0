"""Durable on-device key-value tier.

Each value is a whole JSON snapshot addressed by ``(store_name, user_key)``.
There are no partial-field updates: a write replaces the snapshot in a single
transaction, so an interrupted write leaves either the old or the new value.
"""

import json
import logging
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Any

from ..errors import LocalStorageError

logger = logging.getLogger(__name__)

LOCAL_TIER_SCHEMA = """
CREATE TABLE IF NOT EXISTS snapshots (
    store_name TEXT NOT NULL,
    user_key TEXT NOT NULL,
    value TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    PRIMARY KEY (store_name, user_key)
);
"""


class LocalTier:
    """SQLite-backed whole-value store."""

    def __init__(self, db_path: str | Path):
        """Initialize the local tier.

        Args:
            db_path: Path to SQLite database file, or ":memory:".
        """
        self.db_path = Path(db_path).expanduser() if db_path != ":memory:" else None
        self._conn: sqlite3.Connection | None = None

    def connect(self) -> None:
        """Open the database and create the schema."""
        if self._conn is not None:
            return

        try:
            if self.db_path is None:
                self._conn = sqlite3.connect(":memory:")
            else:
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
                self._conn = sqlite3.connect(str(self.db_path))
            self._conn.executescript(LOCAL_TIER_SCHEMA)
            self._conn.commit()
        except (sqlite3.Error, OSError) as e:
            self._conn = None
            raise LocalStorageError(f"Cannot open local tier: {e}") from e

        logger.info(f"LocalTier connected to {self.db_path or ':memory:'}")

    def close(self) -> None:
        """Close database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None

    def _ensure_connected(self) -> sqlite3.Connection:
        if self._conn is None:
            self.connect()
        return self._conn

    def read(self, store_name: str, user_key: str) -> Any | None:
        """Read the snapshot for a key, or None if nothing was written yet."""
        conn = self._ensure_connected()

        try:
            row = conn.execute(
                "SELECT value FROM snapshots WHERE store_name = ? AND user_key = ?",
                (store_name, user_key),
            ).fetchone()
        except sqlite3.Error as e:
            raise LocalStorageError(f"Cannot read {store_name}/{user_key}: {e}") from e

        if row is None:
            return None

        try:
            return json.loads(row[0])
        except json.JSONDecodeError as e:
            raise LocalStorageError(
                f"Corrupt snapshot for {store_name}/{user_key}: {e}"
            ) from e

    def write(self, store_name: str, user_key: str, value: Any) -> None:
        """Replace the snapshot for a key."""
        conn = self._ensure_connected()

        try:
            payload = json.dumps(value)
            with conn:
                conn.execute(
                    """
                    INSERT OR REPLACE INTO snapshots (store_name, user_key, value, updated_at)
                    VALUES (?, ?, ?, ?)
                    """,
                    (store_name, user_key, payload, datetime.now().isoformat()),
                )
        except (sqlite3.Error, TypeError, ValueError) as e:
            raise LocalStorageError(f"Cannot write {store_name}/{user_key}: {e}") from e

        logger.debug(f"Wrote snapshot {store_name}/{user_key} ({len(payload)} bytes)")

    def delete(self, store_name: str, user_key: str) -> None:
        """Remove the snapshot for a key."""
        conn = self._ensure_connected()

        try:
            with conn:
                conn.execute(
                    "DELETE FROM snapshots WHERE store_name = ? AND user_key = ?",
                    (store_name, user_key),
                )
        except sqlite3.Error as e:
            raise LocalStorageError(f"Cannot delete {store_name}/{user_key}: {e}") from e
