"""Feed error taxonomy.

None of these are fatal to a mounted feed. They are raised at the boundary
where the problem is detected and recovered by the caller one layer up
(subscriber, view), which logs them so dropped events stay observable.
"""

from __future__ import annotations

from typing import Any, Optional


class FeedError(Exception):
    """Base class for recoverable feed errors."""


class MalformedPayload(FeedError):
    """
    Raised when an inbound event fails shape or timestamp validation.

    The offending payload is kept on the exception for diagnostics; callers
    drop the event and keep the channel flowing.
    """

    def __init__(self, reason: str, payload: Any = None):
        super().__init__(reason)
        self.reason = reason
        self.payload = payload


class DuplicateEntry(FeedError):
    """Raised by the feed store when a message id is already present."""

    def __init__(self, message_id: Any):
        super().__init__(f"Message {message_id!r} is already in the feed")
        self.message_id = message_id


class SubscriptionLost(FeedError):
    """Advisory: the push transport reported that a topic went away."""

    def __init__(self, topic: str, reason: Optional[str] = None):
        detail = f": {reason}" if reason else ""
        super().__init__(f"Subscription to {topic!r} lost{detail}")
        self.topic = topic
        self.reason = reason


__all__ = [
    "FeedError",
    "MalformedPayload",
    "DuplicateEntry",
    "SubscriptionLost",
]
