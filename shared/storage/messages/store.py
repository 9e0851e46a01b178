"""SQLite-backed message history.

Mirrors the chat schema the feed is read from: a ``users`` table with display
attributes and a ``messages`` table whose ids and timestamps are assigned at
insert. It serves as the snapshot provider for local runs and tests.
"""

from __future__ import annotations

import asyncio
import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from shared.chat.events import FeedEntry, create_feed_entry
from shared.config.feed import DEFAULT_TOPIC
from shared.logging.logger import get_logger

log = get_logger("shared.storage.messages")

DEFAULT_DB_PATH = Path("data/chatfeed.db")
MAX_TEXT_LENGTH = 191


def _utc_iso(value: Optional[datetime] = None) -> str:
    value = value or datetime.now(timezone.utc)
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


class MessageStore:
    def __init__(self, db_path: Path | str = DEFAULT_DB_PATH) -> None:
        self._db_path = Path(db_path)
        self._lock = threading.Lock()
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    # ------------------------------------------------------------------
    # SQLite setup
    # ------------------------------------------------------------------

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_schema(self) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS users (
                    id TEXT PRIMARY KEY,
                    name TEXT,
                    email TEXT NOT NULL,
                    image TEXT
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS messages (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    channel TEXT NOT NULL,
                    text TEXT NOT NULL,
                    user_id TEXT NOT NULL,
                    created_at TEXT NOT NULL
                )
                """
            )
            conn.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_messages_channel_created
                ON messages(channel, created_at, id)
                """
            )

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def add_user(
        self,
        user_id: str,
        *,
        email: str,
        name: Optional[str] = None,
        image: Optional[str] = None,
    ) -> None:
        if not user_id:
            raise ValueError("user_id is required")
        if not email:
            raise ValueError("email is required")
        with self._lock, self._connect() as conn:
            conn.execute(
                """
                INSERT INTO users (id, name, email, image) VALUES (?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    name = excluded.name,
                    email = excluded.email,
                    image = excluded.image
                """,
                (user_id, name, email, image),
            )

    def add_message(
        self,
        user_id: str,
        text: str,
        *,
        channel: str = DEFAULT_TOPIC,
        created_at: Optional[datetime] = None,
    ) -> FeedEntry:
        """Insert a message and return it as a feed entry with its store-assigned id."""
        if not text:
            raise ValueError("text is required")
        if len(text) > MAX_TEXT_LENGTH:
            raise ValueError(f"text exceeds {MAX_TEXT_LENGTH} characters")

        ts = _utc_iso(created_at)
        with self._lock, self._connect() as conn:
            user = conn.execute(
                "SELECT id, name, image FROM users WHERE id = ?",
                (user_id,),
            ).fetchone()
            if user is None:
                raise ValueError(f"Unknown user: {user_id}")
            cursor = conn.execute(
                "INSERT INTO messages (channel, text, user_id, created_at) VALUES (?, ?, ?, ?)",
                (channel, text, user_id, ts),
            )
            message_id = cursor.lastrowid

        return create_feed_entry(
            message_id=message_id,
            text=text,
            author_id=user_id,
            created_at=ts,
            name=user["name"],
            avatar_url=user["image"],
        )

    # ------------------------------------------------------------------
    # Query helpers
    # ------------------------------------------------------------------

    def _row_to_entry(self, row: sqlite3.Row) -> FeedEntry:
        return create_feed_entry(
            message_id=row["id"],
            text=row["text"],
            author_id=row["user_id"],
            created_at=row["created_at"],
            name=row["name"],
            avatar_url=row["image"],
        )

    def latest(self, channel: str = DEFAULT_TOPIC, limit: int = 50) -> List[FeedEntry]:
        """Newest-first entries for a channel, joined with author data."""
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT m.id, m.text, m.user_id, m.created_at, u.name, u.image
                FROM messages m
                LEFT JOIN users u ON u.id = m.user_id
                WHERE m.channel = ?
                ORDER BY m.created_at DESC, m.id DESC
                LIMIT ?
                """,
                (channel, limit),
            ).fetchall()
        return [self._row_to_entry(row) for row in rows]

    def count(self, channel: str = DEFAULT_TOPIC) -> int:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT COUNT(*) AS total FROM messages WHERE channel = ?",
                (channel,),
            ).fetchone()
        return int(row["total"])

    def get_user(self, user_id: str) -> Optional[Dict[str, Any]]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM users WHERE id = ?",
                (user_id,),
            ).fetchone()
        return dict(row) if row else None

    async def fetch_snapshot(self, topic: str, limit: int) -> List[FeedEntry]:
        entries = await asyncio.to_thread(self.latest, topic, limit)
        log.debug(f"[{topic}] Loaded {len(entries)} entries from {self._db_path}")
        return entries


__all__ = ["DEFAULT_DB_PATH", "MAX_TEXT_LENGTH", "MessageStore"]
