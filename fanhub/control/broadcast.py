"""Broadcast channel: the set of connected observers and fan-out to them.

Delivery is best-effort: an observer whose socket fails is dropped and the
event is simply missed.  Nothing is queued or replayed on reconnect.
"""

from __future__ import annotations

import logging
import time
import uuid
from typing import Any, Protocol

logger = logging.getLogger(__name__)


class JSONSocket(Protocol):
    async def send_json(self, data: Any, mode: str = "text") -> None: ...


class Observer:
    """Tracks one connected client's socket and metadata."""

    def __init__(self, websocket: JSONSocket, client_id: str | None = None) -> None:
        self.websocket = websocket
        self.client_id = client_id or f"client-{uuid.uuid4().hex[:8]}"
        self.connected_at = time.time()

    async def send(self, event: str, payload: dict | None = None) -> None:
        """Send a ``{"type": event, ...}`` message to this client."""
        await self.websocket.send_json({"type": event, **(payload or {})})

    def __repr__(self) -> str:
        return f"<Observer {self.client_id}>"


class ConnectionHub:
    """Owns the active observers; request handlers never hold the registry."""

    def __init__(self) -> None:
        self._observers: dict[str, Observer] = {}

    def __len__(self) -> int:
        return len(self._observers)

    def register(self, websocket: JSONSocket) -> Observer:
        observer = Observer(websocket)
        self._observers[observer.client_id] = observer
        logger.info("Observer connected: %s (%d active)", observer.client_id, len(self))
        return observer

    def unregister(self, observer: Observer) -> None:
        if self._observers.pop(observer.client_id, None) is not None:
            logger.info("Observer disconnected: %s (%d active)", observer.client_id, len(self))

    def observers(self) -> list[Observer]:
        return list(self._observers.values())

    async def send(self, observer: Observer, event: str, payload: dict | None = None) -> bool:
        """Unicast to one observer; drops it if the socket is gone."""
        try:
            await observer.send(event, payload)
        except Exception:
            logger.warning("Dropping observer %s after failed send", observer.client_id, exc_info=True)
            self.unregister(observer)
            return False
        return True

    async def broadcast(self, event: str, payload: dict | None = None) -> int:
        """Send to every observer connected right now; returns delivered count."""
        delivered = 0
        for observer in self.observers():
            if await self.send(observer, event, payload):
                delivered += 1
        logger.debug("Broadcast %s to %d observers", event, delivered)
        return delivered


hub = ConnectionHub()
