"""Realtime change hints over WebSocket.

Clients subscribe to their own account channel and, optionally, to the
channels of matches they are watching. Hints only say *what* changed; clients
re-read the authoritative state through the HTTP API.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Optional
from uuid import UUID

logger = logging.getLogger(__name__)


def account_channel(account_id: UUID | str) -> str:
    return f"account:{account_id}"


def match_channel(match_id: UUID | str) -> str:
    return f"match:{match_id}"


@dataclass
class WebSocketConnection:
    """Metadata about a single WebSocket connection."""

    websocket: "WebSocket"
    context: Optional[str] = None


class RealtimeService:
    """Manage WebSocket connections grouped by channel and publish hints."""

    def __init__(self) -> None:
        # Map channel_id (str) → client_id (str) → WebSocketConnection
        self._channels: Dict[str, Dict[str, WebSocketConnection]] = {}
        # Keep references so fire-and-forget sends are not garbage collected
        self._pending: set[asyncio.Task] = set()

    async def connect(
        self,
        channel_id: str,
        client_id: str,
        websocket: "WebSocket",
        *,
        context: Optional[str] = None,
        accept: bool = True,
    ) -> None:
        """Accept and store a connection for later targeted delivery."""

        if accept:
            await websocket.accept()

        channel_connections = self._channels.setdefault(channel_id, {})
        channel_connections[client_id] = WebSocketConnection(websocket=websocket, context=context)
        logger.debug("Registered websocket client %s in channel %s", client_id, channel_id)

    async def disconnect(self, channel_id: str, client_id: str) -> Optional[WebSocketConnection]:
        """Remove a connection from the given channel."""

        channel_connections = self._channels.get(channel_id)
        if not channel_connections:
            return None

        connection = channel_connections.pop(client_id, None)
        if connection:
            logger.debug("Removed websocket client %s from channel %s", client_id, channel_id)

        if not channel_connections:
            self._channels.pop(channel_id, None)

        return connection

    async def disconnect_everywhere(self, client_id: str) -> None:
        for channel_id in list(self._channels):
            await self.disconnect(channel_id, client_id)

    def get_connection_count(self, channel_id: str) -> int:
        """Return how many clients are connected to a channel."""

        channel_connections = self._channels.get(channel_id)
        return len(channel_connections) if channel_connections else 0

    async def broadcast(self, channel_id: str, message: dict) -> None:
        """Send a message to every client in a channel, dropping dead sockets."""

        channel_connections = self._channels.get(channel_id)
        if not channel_connections:
            logger.debug("Channel %s has no connections, skipping broadcast", channel_id)
            return

        disconnected: list[str] = []

        for client_id, connection in list(channel_connections.items()):
            try:
                await connection.websocket.send_json(message)
            except Exception as exc:  # pragma: no cover - network stack
                logger.warning(
                    "Failed to send websocket message to %s in channel %s: %s",
                    client_id,
                    channel_id,
                    exc,
                )
                disconnected.append(client_id)

        for client_id in disconnected:
            await self.disconnect(channel_id, client_id)

    def publish(self, topic: str, entity_id: UUID | str, event: str) -> None:
        """
        Schedule a hint without waiting for delivery.

        Called after a commit; delivery failures never reach the caller.
        """
        channel_id = f"{topic}:{entity_id}"
        if not self._channels.get(channel_id):
            return

        message = {
            "topic": topic,
            "id": str(entity_id),
            "event": event,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        try:
            task = asyncio.get_running_loop().create_task(self.broadcast(channel_id, message))
        except RuntimeError:
            logger.debug(f"No running loop, dropping realtime hint for {channel_id}")
            return
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    def publish_account(self, account_id: UUID | str, event: str) -> None:
        self.publish("account", account_id, event)

    def publish_match(self, match_id: UUID | str, event: str) -> None:
        self.publish("match", match_id, event)


# Global singleton instance
_realtime_service = RealtimeService()


def get_realtime_service() -> RealtimeService:
    """Get the global RealtimeService singleton."""
    return _realtime_service
