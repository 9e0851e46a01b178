"""Persistent message history (snapshot source)."""

from shared.storage.messages.store import DEFAULT_DB_PATH, MAX_TEXT_LENGTH, MessageStore

__all__ = ["DEFAULT_DB_PATH", "MAX_TEXT_LENGTH", "MessageStore"]
