"""WebSocket connection management."""

import asyncio
import json
import logging
from typing import Any

from fastapi import WebSocket

logger = logging.getLogger(__name__)

TASKS_CHANGED = {"type": "tasks_changed"}


class ConnectionManager:
    """Tracks board clients and pushes change notifications to them."""

    def __init__(self) -> None:
        self.active_connections: list[WebSocket] = []
        self._loop: asyncio.AbstractEventLoop | None = None

    def bind_loop(self, loop: asyncio.AbstractEventLoop) -> None:
        """Remember the event loop that owns the connections.

        Notifications from watcher threads are scheduled onto this loop.
        """
        self._loop = loop

    async def connect(self, websocket: WebSocket) -> None:
        """Accept a connection and register it for broadcasts."""
        await websocket.accept()
        self.active_connections.append(websocket)
        logger.info(f"[ConnectionManager] Client connected (total: {len(self.active_connections)})")

    def disconnect(self, websocket: WebSocket) -> None:
        if websocket in self.active_connections:
            self.active_connections.remove(websocket)
            logger.info(
                f"[ConnectionManager] Client disconnected (total: {len(self.active_connections)})"
            )

    async def broadcast(self, message: dict[str, Any]) -> None:
        """Send a JSON message to every client, dropping those that fail.

        Args:
            message: Dictionary to send as JSON to all clients
        """
        if not self.active_connections:
            logger.debug("[ConnectionManager] No active connections to broadcast to")
            return

        message_json = json.dumps(message)
        logger.debug(
            f"[ConnectionManager] Broadcasting to {len(self.active_connections)} clients: "
            f"{message_json}"
        )

        dead_connections = []
        for connection in list(self.active_connections):
            try:
                await connection.send_text(message_json)
            except Exception as e:
                logger.warning(f"[ConnectionManager] Failed to send to client: {e}")
                dead_connections.append(connection)

        for connection in dead_connections:
            self.disconnect(connection)

    def notify_tasks_changed(self) -> None:
        """Broadcast a tasks_changed message; safe to call from any thread."""
        if self._loop is None or self._loop.is_closed():
            logger.debug("[ConnectionManager] No event loop bound, skipping notification")
            return
        asyncio.run_coroutine_threadsafe(self.broadcast(dict(TASKS_CHANGED)), self._loop)
