"""
token_store.py — Persisted session storage for the REST access/refresh tokens.
A small SQLite key-value table standing in for the client's local storage.
"""

import sqlite3
from pathlib import Path
from typing import Optional

from monitoring import get_logger

logger = get_logger("token_store")

ACCESS_TOKEN_KEY = "accessToken"
REFRESH_TOKEN_KEY = "refreshToken"


class TokenStore:
    """Reads and writes the session tokens in a SQLite file."""

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        self._init_db()

    def get_connection(self) -> sqlite3.Connection:
        """Get a database connection, creating the DB file if needed."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        return conn

    def _init_db(self):
        conn = self.get_connection()
        conn.execute("""
            CREATE TABLE IF NOT EXISTS local_storage (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            )
        """)
        conn.commit()
        conn.close()

    def get(self, key: str) -> Optional[str]:
        conn = self.get_connection()
        row = conn.execute("SELECT value FROM local_storage WHERE key = ?", (key,)).fetchone()
        conn.close()
        return row["value"] if row else None

    def set(self, key: str, value: str):
        conn = self.get_connection()
        conn.execute(
            "INSERT INTO local_storage (key, value) VALUES (?, ?) "
            "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
            (key, value)
        )
        conn.commit()
        conn.close()

    def remove(self, key: str):
        conn = self.get_connection()
        conn.execute("DELETE FROM local_storage WHERE key = ?", (key,))
        conn.commit()
        conn.close()

    # --- Session tokens ---

    @property
    def access_token(self) -> Optional[str]:
        return self.get(ACCESS_TOKEN_KEY)

    @property
    def refresh_token(self) -> Optional[str]:
        return self.get(REFRESH_TOKEN_KEY)

    def save_tokens(self, access_token: str, refresh_token: Optional[str] = None):
        """Persist a new access token, and the refresh token when one is issued."""
        self.set(ACCESS_TOKEN_KEY, access_token)
        if refresh_token:
            self.set(REFRESH_TOKEN_KEY, refresh_token)

    def clear(self):
        """Forget both tokens (forced logout)."""
        self.remove(ACCESS_TOKEN_KEY)
        self.remove(REFRESH_TOKEN_KEY)
        logger.info("Session tokens cleared")
