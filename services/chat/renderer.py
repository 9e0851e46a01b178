"""Projects feed entries into presentation-ready row descriptors."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, Optional

from shared.chat.clock import ClockFormatter
from shared.chat.events import FeedEntry, MessageId, SessionIdentity

EMPTY_FEED_TEXT = "No messages."

SIDE_SELF = "self"
SIDE_OTHER = "other"


@dataclass(frozen=True)
class FeedRow:
    message_id: MessageId
    text: str
    side: str
    author_name: str
    avatar_url: Optional[str]
    avatar_fallback: str
    label: str

    @property
    def is_self(self) -> bool:
        return self.side == SIDE_SELF


def _first_name(name: Optional[str]) -> str:
    if not name:
        return ""
    parts = name.split()
    return parts[0] if parts else ""


class FeedRenderer:
    def __init__(self, formatter: Optional[ClockFormatter] = None) -> None:
        self.formatter = formatter or ClockFormatter()

    def render_entry(
        self,
        entry: FeedEntry,
        session: Optional[SessionIdentity],
        now: datetime,
    ) -> FeedRow:
        is_self = session is not None and entry.author.author_id == session.user_id
        name = _first_name(entry.author.name)
        return FeedRow(
            message_id=entry.message_id,
            text=entry.message.text,
            side=SIDE_SELF if is_self else SIDE_OTHER,
            author_name=name,
            avatar_url=entry.author.avatar_url,
            avatar_fallback=name[:1].upper(),
            label=self.formatter.label(entry.created_at, now),
        )

    def render(
        self,
        entries: Iterable[FeedEntry],
        session: Optional[SessionIdentity] = None,
        now: Optional[datetime] = None,
    ) -> List[FeedRow]:
        """Rows in feed order (newest first), all labelled against one "now"."""
        if now is None:
            now = datetime.now().astimezone()
        return [self.render_entry(entry, session, now) for entry in entries]


__all__ = [
    "EMPTY_FEED_TEXT",
    "FeedRenderer",
    "FeedRow",
    "SIDE_OTHER",
    "SIDE_SELF",
]
