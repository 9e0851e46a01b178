"""In-memory chat feed storage."""

from shared.storage.feed.store import FeedListener, FeedStore, FeedView

__all__ = ["FeedListener", "FeedStore", "FeedView"]
