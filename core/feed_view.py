from __future__ import annotations

from datetime import datetime
from typing import Callable, List, Optional

from services.chat.history import SnapshotProvider
from services.chat.renderer import FeedRenderer, FeedRow
from services.chat.subscriber import ChannelSubscriber
from services.chat.transport import PushTransport
from shared.chat.clock import ClockFormatter
from shared.chat.events import SessionIdentity
from shared.logging.logger import get_logger
from shared.storage.feed import FeedStore, FeedView

log = get_logger("core.feed_view")

RowsListener = Callable[[List[FeedRow]], None]


class ChatFeedView:
    """
    One mounted chat feed: a store, the subscriber that feeds it, and the
    renderer that projects it.

    Lifecycle:
    - mount(): await the snapshot once, seed the store, then start listening
    - unmount(): stop listening and drop listeners (idempotent)
    - ``async with`` guarantees unmount even when the body raises

    The store is owned by this view alone; nothing else writes to it.
    """

    def __init__(
        self,
        *,
        topic: str,
        transport: PushTransport,
        history: SnapshotProvider,
        session: Optional[SessionIdentity] = None,
        formatter: Optional[ClockFormatter] = None,
        history_limit: int = 50,
    ) -> None:
        self.topic = topic
        self.session = session
        self.store = FeedStore(topic)
        self.subscriber = ChannelSubscriber(transport, topic)
        self.renderer = FeedRenderer(formatter)

        self._history = history
        self._history_limit = history_limit
        self._rows_listeners: List[RowsListener] = []
        self._remove_store_listener: Optional[Callable[[], None]] = None
        self._mounted = False

    # -------------------------------------------------

    @property
    def mounted(self) -> bool:
        return self._mounted

    @property
    def connected(self) -> bool:
        return self.subscriber.connected

    # -------------------------------------------------

    async def mount(self) -> None:
        if self._mounted:
            raise RuntimeError(f"Feed view for {self.topic!r} is already mounted")

        snapshot = await self._history.fetch_snapshot(self.topic, self._history_limit)
        self._remove_store_listener = self.store.add_listener(self._on_feed_changed)
        self.store.seed(snapshot)

        try:
            self.subscriber.start(self.store.prepend)
        except Exception:
            self._detach()
            raise

        self._mounted = True
        log.info(f"[{self.topic}] Feed view mounted with {len(self.store)} entries")

    def unmount(self) -> None:
        if not self._mounted:
            return
        self._mounted = False
        self.subscriber.stop()
        self._detach()
        log.info(f"[{self.topic}] Feed view unmounted")

    async def __aenter__(self) -> "ChatFeedView":
        await self.mount()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.unmount()

    # -------------------------------------------------

    def view(self) -> FeedView:
        return self.store.view()

    def rows(self, now: Optional[datetime] = None) -> List[FeedRow]:
        return self.renderer.render(self.store.view(), self.session, now)

    def add_rows_listener(self, listener: RowsListener) -> Callable[[], None]:
        self._rows_listeners.append(listener)

        def _remove() -> None:
            if listener in self._rows_listeners:
                self._rows_listeners.remove(listener)

        return _remove

    # -------------------------------------------------

    def _detach(self) -> None:
        if self._remove_store_listener is not None:
            self._remove_store_listener()
            self._remove_store_listener = None
        self._rows_listeners.clear()

    def _on_feed_changed(self, view: FeedView) -> None:
        if not self._rows_listeners:
            return
        rows = self.renderer.render(view, self.session)
        for listener in list(self._rows_listeners):
            try:
                listener(rows)
            except Exception as e:
                log.error(f"[{self.topic}] Rows listener failed: {e}")
