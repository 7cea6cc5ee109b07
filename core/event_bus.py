"""Status broadcasting: the pub/sub contract and a simple in-process bus."""

from __future__ import annotations

import logging
import threading
import time
from abc import ABC, abstractmethod
from collections import defaultdict
from collections.abc import Callable
from typing import Any

EventHandler = Callable[[str, dict[str, Any]], None]

QUEUE_UPDATE = "queue_update"
AUTOMATION_STATUS = "automation_status"
SETTINGS_UPDATED = "settings-updated"
BANK_SETTINGS_UPDATED = "bank-settings-updated"
SETTING_CHANGED = "setting-changed"

logger = logging.getLogger("dash.event_bus")


def channel_for(identifier: str) -> str:
    """Return the channel name scoped to one identifier."""
    return f"igg-{identifier}"


def status_event(status: str, message: str) -> dict[str, Any]:
    """Build an ``automation_status`` payload stamped in epoch milliseconds."""
    return {"status": status, "message": message, "timestamp": int(time.time() * 1000)}


class StatusBroadcaster(ABC):
    """Delivers events to every subscriber or to one channel's subscribers."""

    @abstractmethod
    def publish(self, event_name: str, payload: dict[str, Any]) -> None:
        """Emit an event to all subscribers."""

    @abstractmethod
    def publish_to(self, channel: str, event_name: str, payload: dict[str, Any]) -> None:
        """Emit an event to subscribers of ``channel``."""


class EventBus(StatusBroadcaster):
    """Dispatches events to callbacks registered per channel.

    Handlers registered without a channel receive every event, channel-scoped
    or not. A failing handler is logged and does not stop delivery.
    """

    def __init__(self) -> None:
        self._handlers: dict[str | None, list[EventHandler]] = defaultdict(list)
        self._lock = threading.Lock()

    def subscribe(self, handler: EventHandler, channel: str | None = None) -> None:
        """Register a callback, optionally scoped to one channel."""
        with self._lock:
            self._handlers[channel].append(handler)

    def unsubscribe(self, handler: EventHandler, channel: str | None = None) -> None:
        with self._lock:
            handlers = self._handlers.get(channel, [])
            if handler in handlers:
                handlers.remove(handler)

    def publish(self, event_name: str, payload: dict[str, Any]) -> None:
        with self._lock:
            targets: list[EventHandler] = []
            for handlers in self._handlers.values():
                for handler in handlers:
                    if handler not in targets:
                        targets.append(handler)
        self._deliver(targets, event_name, payload)

    def publish_to(self, channel: str, event_name: str, payload: dict[str, Any]) -> None:
        with self._lock:
            targets = list(self._handlers.get(None, []))
            for handler in self._handlers.get(channel, []):
                if handler not in targets:
                    targets.append(handler)
        self._deliver(targets, event_name, payload)

    @staticmethod
    def _deliver(targets: list[EventHandler], event_name: str, payload: dict[str, Any]) -> None:
        for handler in targets:
            try:
                handler(event_name, payload)
            except Exception:
                logger.exception("Event handler failed for %s", event_name)
