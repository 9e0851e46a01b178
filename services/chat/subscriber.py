from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Iterator, Optional

from services.chat.transport import PushTransport, Subscription
from shared.chat.errors import DuplicateEntry, MalformedPayload, SubscriptionLost
from shared.chat.events import FeedEntry, normalize_payload
from shared.logging.logger import get_logger
from shared.runtime.connectivity import ConnectivityTracker

log = get_logger("services.chat.subscriber")

EntryHandler = Callable[[FeedEntry], None]


class SubscriberState(Enum):
    IDLE = "idle"
    SUBSCRIBED = "subscribed"


@dataclass
class SubscriberStats:
    received: int = 0
    delivered: int = 0
    dropped: int = 0
    duplicates: int = 0
    handler_errors: int = 0

    def to_dict(self) -> dict:
        return dict(self.__dict__)


class ChannelSubscriber:
    """
    Owns one push channel subscription for a single topic.

    Responsibilities:
    - Subscribe on start(), release on stop(); one topic per instance
    - Normalize inbound payloads into FeedEntry values
    - Drop malformed payloads and duplicate deliveries without stalling
    - Mirror transport connectivity into an advisory tracker

    After stop() returns no event reaches the entry handler, including events
    a transport was already in the middle of delivering.
    """

    def __init__(self, transport: PushTransport, topic: str) -> None:
        if not topic:
            raise ValueError("topic is required")

        self.topic = str(topic)
        self.connectivity = ConnectivityTracker()
        self.stats = SubscriberStats()

        self._transport = transport
        self._state = SubscriberState.IDLE
        self._subscription: Optional[Subscription] = None
        self._on_entry: Optional[EntryHandler] = None
        self._generation = 0

    @property
    def state(self) -> SubscriberState:
        return self._state

    @property
    def connected(self) -> bool:
        return self.connectivity.connected

    # ------------------------------------------------------------------ #

    def start(self, on_entry: EntryHandler) -> None:
        if self._state is SubscriberState.SUBSCRIBED:
            raise RuntimeError(f"Subscriber for {self.topic!r} is already started")

        self._generation += 1
        generation = self._generation
        self._on_entry = on_entry
        self._state = SubscriberState.SUBSCRIBED

        def _payload(payload: Any) -> None:
            self._handle_payload(payload, generation)

        def _state(connected: bool, error: Optional[SubscriptionLost] = None) -> None:
            self._handle_state(connected, error, generation)

        try:
            self._subscription = self._transport.subscribe(self.topic, _payload, _state)
        except Exception:
            self._state = SubscriberState.IDLE
            self._on_entry = None
            raise

        log.info(f"[{self.topic}] Channel subscriber started")

    def stop(self) -> None:
        if self._state is SubscriberState.IDLE:
            return

        self._state = SubscriberState.IDLE
        self._generation += 1
        self._on_entry = None

        subscription, self._subscription = self._subscription, None
        if subscription is not None:
            subscription.cancel()

        self.connectivity.mark_disconnected()
        log.info(f"[{self.topic}] Channel subscriber stopped")

    @contextmanager
    def subscription(self, on_entry: EntryHandler) -> Iterator["ChannelSubscriber"]:
        self.start(on_entry)
        try:
            yield self
        finally:
            self.stop()

    # ------------------------------------------------------------------ #

    def _is_current(self, generation: int) -> bool:
        return self._state is SubscriberState.SUBSCRIBED and generation == self._generation

    def _handle_payload(self, payload: Any, generation: int) -> None:
        if not self._is_current(generation):
            log.debug(f"[{self.topic}] Ignoring event delivered after stop")
            return

        self.stats.received += 1

        try:
            entry = normalize_payload(payload)
        except MalformedPayload as e:
            self.stats.dropped += 1
            log.warning(f"[{self.topic}] Dropped malformed payload: {e.reason}")
            return

        handler = self._on_entry
        if handler is None:
            return

        try:
            handler(entry)
        except DuplicateEntry as e:
            self.stats.duplicates += 1
            log.debug(f"[{self.topic}] Duplicate delivery ignored: {e.message_id!r}")
            return
        except Exception as e:
            self.stats.handler_errors += 1
            log.error(f"[{self.topic}] Entry handler failed for {entry.message_id!r}: {e}")
            return

        self.stats.delivered += 1

    def _handle_state(
        self,
        connected: bool,
        error: Optional[SubscriptionLost],
        generation: int,
    ) -> None:
        if not self._is_current(generation):
            return

        if connected:
            self.connectivity.mark_connected()
            log.info(f"[{self.topic}] Push channel connected")
            return

        lost = error or SubscriptionLost(self.topic)
        self.connectivity.mark_disconnected(lost)
        log.warning(f"[{self.topic}] {lost}")


__all__ = [
    "ChannelSubscriber",
    "EntryHandler",
    "SubscriberState",
    "SubscriberStats",
]
