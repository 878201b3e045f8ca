"""Best-effort event fan-out to connected clients.

Services receive a ``Notifier`` explicitly; it wraps whatever
``NotificationBus`` the application was built with and guarantees that
publishing never blocks or fails the business operation that triggered it.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Protocol

from fastapi import WebSocket

from farmlink.config import settings
from farmlink.core.async_tasks import fire_and_forget

logger = logging.getLogger(__name__)

EVENT_NAMES = frozenset({
    "product:new",
    "product:bid",
    "sale:accepted",
    "request:new",
    "request:quote",
    "quote:accepted",
    "job:active",
    "job:awarded",
    "pickup:confirmed",
    "job:completed",
    "job:cancelled",
})


class NotificationBus(Protocol):
    async def emit(self, event: str, payload: dict[str, Any]) -> None: ...


class WebSocketNotificationBus:
    """Broadcasts every event to all connected WebSocket clients."""

    def __init__(self, max_connections: int | None = None):
        self.max_connections = max_connections or settings.ws_max_connections
        self.active: dict[WebSocket, str] = {}

    async def connect(self, ws: WebSocket, principal_id: str) -> bool:
        if len(self.active) >= self.max_connections:
            await ws.close(code=4029, reason="Too many connections")
            return False
        await ws.accept()
        self.active[ws] = principal_id
        return True

    def disconnect(self, ws: WebSocket) -> None:
        self.active.pop(ws, None)

    async def emit(self, event: str, payload: dict[str, Any]) -> None:
        data = json.dumps({
            "type": event,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "data": payload,
        })
        dead: list[WebSocket] = []
        for ws in list(self.active):
            try:
                await ws.send_text(data)
            except Exception:
                dead.append(ws)
        for ws in dead:
            self.disconnect(ws)


class RecordingNotificationBus:
    """Keeps emitted events in memory. Handy for tests and local debugging."""

    def __init__(self):
        self.events: list[tuple[str, dict[str, Any]]] = []

    async def emit(self, event: str, payload: dict[str, Any]) -> None:
        self.events.append((event, payload))

    def names(self) -> list[str]:
        return [name for name, _ in self.events]


class Notifier:
    def __init__(self, bus: NotificationBus, timeout_seconds: float | None = None):
        self.bus = bus
        self.timeout_seconds = (
            settings.notification_timeout_seconds if timeout_seconds is None else timeout_seconds
        )

    def publish(self, event: str, payload: dict[str, Any]) -> None:
        if event not in EVENT_NAMES:
            logger.warning("Publishing unregistered event '%s'", event)
        try:
            fire_and_forget(
                self.bus.emit(event, payload),
                task_name=f"emit_{event}",
                timeout_seconds=self.timeout_seconds,
            )
        except Exception:
            logger.exception("Failed to schedule event '%s'", event)
