"""Push channel transport contract and an in-process implementation.

Transports deliver raw payloads per topic and report connectivity changes.
They know nothing about feeds; normalization happens in the subscriber.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional, Protocol

from shared.chat.errors import SubscriptionLost
from shared.logging.logger import get_logger

log = get_logger("services.chat.transport")

PayloadHandler = Callable[[Any], None]
# on_state(connected, error)
StateHandler = Callable[[bool, Optional[SubscriptionLost]], None]


class Subscription(Protocol):
    def cancel(self) -> None:
        ...


class PushTransport(Protocol):
    def subscribe(
        self,
        topic: str,
        on_payload: PayloadHandler,
        on_state: Optional[StateHandler] = None,
    ) -> Subscription:
        ...


class _LocalSubscription:
    def __init__(
        self,
        transport: "LocalPushTransport",
        topic: str,
        on_payload: PayloadHandler,
        on_state: Optional[StateHandler],
    ) -> None:
        self.topic = topic
        self.on_payload = on_payload
        self.on_state = on_state
        self.active = True
        self._transport = transport

    def cancel(self) -> None:
        if not self.active:
            return
        self.active = False
        self._transport._remove(self)


class LocalPushTransport:
    """
    Synchronous in-process fan-out hub.

    Rules:
    - publish() delivers to every active subscription of a topic, in
      subscription order, before returning
    - set_connected() flips the simulated link and notifies subscribers
    - Handler errors are logged and never stop delivery to other subscribers
    """

    def __init__(self, *, connected: bool = True) -> None:
        self._subscriptions: Dict[str, List[_LocalSubscription]] = {}
        self._connected = connected

    def subscribe(
        self,
        topic: str,
        on_payload: PayloadHandler,
        on_state: Optional[StateHandler] = None,
    ) -> _LocalSubscription:
        subscription = _LocalSubscription(self, topic, on_payload, on_state)
        self._subscriptions.setdefault(topic, []).append(subscription)
        log.debug(f"Local subscription opened (topic={topic})")
        if on_state is not None and self._connected:
            on_state(True, None)
        return subscription

    def subscriber_count(self, topic: str) -> int:
        return len(self._subscriptions.get(topic, []))

    def publish(self, topic: str, payload: Any) -> int:
        delivered = 0
        for subscription in list(self._subscriptions.get(topic, [])):
            if not subscription.active:
                continue
            try:
                subscription.on_payload(payload)
                delivered += 1
            except Exception as e:
                log.error(f"Local delivery failed (topic={topic}): {e}")
        return delivered

    def set_connected(self, connected: bool, reason: Optional[str] = None) -> None:
        self._connected = connected
        for topic, subscriptions in self._subscriptions.items():
            error = None if connected else SubscriptionLost(topic, reason)
            for subscription in list(subscriptions):
                if subscription.active and subscription.on_state is not None:
                    subscription.on_state(connected, error)

    def _remove(self, subscription: _LocalSubscription) -> None:
        subscriptions = self._subscriptions.get(subscription.topic, [])
        if subscription in subscriptions:
            subscriptions.remove(subscription)
        if not subscriptions:
            self._subscriptions.pop(subscription.topic, None)
        log.debug(f"Local subscription closed (topic={subscription.topic})")


__all__ = [
    "LocalPushTransport",
    "PayloadHandler",
    "PushTransport",
    "StateHandler",
    "Subscription",
]
