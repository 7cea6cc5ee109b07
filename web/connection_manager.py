"""WebSocket pub/sub with per-identifier channels."""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Coroutine
from typing import Any

from fastapi import WebSocket

from core.event_bus import StatusBroadcaster, channel_for

logger = logging.getLogger("dash.websocket")


class ConnectionManager(StatusBroadcaster):
    """Tracks connected dashboards and the channels each one joined.

    ``publish``/``publish_to`` may be called from any thread (the automation
    worker, request threads); delivery is always scheduled on the server's
    event loop.
    """

    def __init__(self) -> None:
        self.connections: dict[WebSocket, set[str]] = {}
        self._lock = threading.Lock()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._pending: set[asyncio.Task[None]] = set()

    def set_loop(self, loop: asyncio.AbstractEventLoop | None) -> None:
        self._loop = loop

    async def connect(self, ws: WebSocket) -> None:
        await ws.accept()
        with self._lock:
            self.connections[ws] = set()
            count = len(self.connections)
        logger.info("WebSocket connected (%d active)", count)

    def disconnect(self, ws: WebSocket) -> None:
        with self._lock:
            self.connections.pop(ws, None)
            count = len(self.connections)
        logger.info("WebSocket disconnected (%d active)", count)

    def subscribe(self, ws: WebSocket, identifier: str) -> None:
        with self._lock:
            self.connections.setdefault(ws, set()).add(channel_for(identifier))
        logger.info("Client subscribed to IGG ID: %s", identifier)

    def unsubscribe(self, ws: WebSocket, identifier: str) -> None:
        with self._lock:
            self.connections.get(ws, set()).discard(channel_for(identifier))
        logger.info("Client unsubscribed from IGG ID: %s", identifier)

    def channels_of(self, ws: WebSocket) -> set[str]:
        with self._lock:
            return set(self.connections.get(ws, set()))

    async def broadcast(self, event_name: str, payload: dict[str, Any], channel: str | None = None) -> None:
        """Send ``{"event", "data"}`` to every connection, or one channel's members."""
        message = {"event": event_name, "data": payload}
        with self._lock:
            targets = [
                ws for ws, channels in self.connections.items()
                if channel is None or channel in channels
            ]
        dead = []
        for ws in targets:
            try:
                await ws.send_json(message)
            except Exception:
                dead.append(ws)
        for ws in dead:
            self.disconnect(ws)

    def publish(self, event_name: str, payload: dict[str, Any]) -> None:
        self._schedule(self.broadcast(event_name, payload))

    def publish_to(self, channel: str, event_name: str, payload: dict[str, Any]) -> None:
        self._schedule(self.broadcast(event_name, payload, channel))

    def _schedule(self, coro: Coroutine[Any, Any, None]) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            coro.close()
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            task = loop.create_task(coro)
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)
        else:
            asyncio.run_coroutine_threadsafe(coro, loop)
