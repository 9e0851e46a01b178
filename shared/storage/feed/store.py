"""In-memory feed for one chat topic.

Ordering policy is head-insert: live entries are placed at the front in the
order they are handed over, and the feed is never re-sorted. With a transport
that delivers in production order this keeps the view newest-first; an
out-of-order arrival is kept where it landed instead of being moved.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, Iterable, List, Set, Tuple

from shared.chat.errors import DuplicateEntry
from shared.chat.events import FeedEntry, MessageId
from shared.logging.logger import get_logger

log = get_logger("shared.storage.feed")

FeedView = Tuple[FeedEntry, ...]
FeedListener = Callable[[FeedView], None]


def _instant(value: datetime) -> datetime:
    # Naive values are UTC, matching parse_instant.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class FeedStore:
    def __init__(self, topic: str) -> None:
        if not topic:
            raise ValueError("topic is required")
        self._topic = str(topic)
        self._entries: List[FeedEntry] = []
        self._ids: Set[MessageId] = set()
        self._listeners: List[FeedListener] = []

    @property
    def topic(self) -> str:
        return self._topic

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def seed(self, entries: Iterable[FeedEntry]) -> None:
        """Replace the feed with a newest-first snapshot."""
        seeded: List[FeedEntry] = []
        ids: Set[MessageId] = set()
        skipped = 0
        for entry in entries:
            if entry.message_id in ids:
                skipped += 1
                continue
            ids.add(entry.message_id)
            seeded.append(entry)

        if skipped:
            log.warning(
                f"[{self._topic}] Snapshot contained {skipped} duplicate message id(s); kept first occurrence"
            )

        self._entries = seeded
        self._ids = ids
        log.debug(f"[{self._topic}] Seeded feed with {len(seeded)} entries")
        self._notify()

    def prepend(self, entry: FeedEntry) -> None:
        """
        Insert a live entry at the head of the feed.

        Raises DuplicateEntry (and leaves the feed untouched) when the message
        id is already present.
        """
        if entry.message_id in self._ids:
            raise DuplicateEntry(entry.message_id)

        if self._entries and _instant(entry.created_at) < _instant(self._entries[0].created_at):
            log.debug(
                f"[{self._topic}] Message {entry.message_id!r} arrived out of order; keeping head position"
            )

        self._entries.insert(0, entry)
        self._ids.add(entry.message_id)
        self._notify()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def view(self) -> FeedView:
        return tuple(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, message_id: object) -> bool:
        return message_id in self._ids

    # ------------------------------------------------------------------
    # Observers
    # ------------------------------------------------------------------

    def add_listener(self, listener: FeedListener) -> Callable[[], None]:
        """Register a callback run after every mutation. Returns a remover."""
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    def clear_listeners(self) -> None:
        self._listeners.clear()

    def _notify(self) -> None:
        snapshot = self.view()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception as e:
                log.error(f"[{self._topic}] Feed listener failed: {e}")


__all__ = ["FeedListener", "FeedStore", "FeedView"]
