"""Push channel connectivity tracking.

Connectivity is advisory: it feeds a status indicator and never gates feed
mutations.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from threading import Lock
from typing import Callable, List, Optional

from shared.chat.errors import SubscriptionLost
from shared.logging.logger import get_logger

log = get_logger("runtime.connectivity")


class ConnectionState(Enum):
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


@dataclass
class ConnectionStatus:
    state: ConnectionState = ConnectionState.DISCONNECTED
    changed_at: Optional[datetime] = None
    last_error: Optional[SubscriptionLost] = None

    @property
    def connected(self) -> bool:
        return self.state is ConnectionState.CONNECTED

    def to_dict(self) -> dict:
        return {
            "state": self.state.value,
            "changed_at": self.changed_at.isoformat() if self.changed_at else None,
            "last_error": str(self.last_error) if self.last_error else None,
        }


StatusListener = Callable[[ConnectionStatus], None]


class ConnectivityTracker:
    def __init__(self) -> None:
        self._lock = Lock()
        self._status = ConnectionStatus()
        self._listeners: List[StatusListener] = []

    def get_status(self) -> ConnectionStatus:
        with self._lock:
            return ConnectionStatus(
                state=self._status.state,
                changed_at=self._status.changed_at,
                last_error=self._status.last_error,
            )

    @property
    def connected(self) -> bool:
        return self.get_status().connected

    def mark_connected(self) -> ConnectionStatus:
        return self._update(ConnectionState.CONNECTED, None)

    def mark_disconnected(self, error: Optional[SubscriptionLost] = None) -> ConnectionStatus:
        return self._update(ConnectionState.DISCONNECTED, error)

    def add_listener(self, listener: StatusListener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def _remove() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _remove

    def _update(
        self,
        state: ConnectionState,
        error: Optional[SubscriptionLost],
    ) -> ConnectionStatus:
        with self._lock:
            unchanged = self._status.state is state and error is None
            if unchanged:
                listeners = []
            else:
                listeners = list(self._listeners)
                self._status = self._next(state, error)
        status = self.get_status()
        for listener in listeners:
            try:
                listener(status)
            except Exception as e:
                log.error(f"Connectivity listener failed ({status.state.value}): {e}")
        return status

    def _next(
        self,
        state: ConnectionState,
        error: Optional[SubscriptionLost],
    ) -> ConnectionStatus:
        return ConnectionStatus(
            state=state,
            changed_at=datetime.now(timezone.utc),
            last_error=error if error is not None else self._status.last_error,
        )


__all__ = [
    "ConnectionState",
    "ConnectionStatus",
    "ConnectivityTracker",
    "StatusListener",
]
