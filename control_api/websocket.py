"""Fan-out of stream events to connected control clients."""

import logging
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import WebSocket, WebSocketDisconnect

logger = logging.getLogger(__name__)

EVENT_TYPES = frozenset({"status", "log", "progress", "error"})


def stream_event(event_type: str, payload: Any) -> dict:
    """Build a `{"type", "payload"}` event stamped with the current UTC time.

    Raises:
        ValueError: If the event type is not one clients understand.
    """
    if event_type not in EVENT_TYPES:
        raise ValueError(f"Unknown stream event type: {event_type}")
    return {
        "type": event_type,
        "payload": payload,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


class EventHub:
    """Tracks control clients by id and publishes stream events to all of them.

    `publish` is the sink handed to StreamSession; a client whose socket
    fails during a publish is dropped.
    """

    def __init__(self):
        self.clients: Dict[str, WebSocket] = {}

    @property
    def client_count(self) -> int:
        return len(self.clients)

    async def register(self, client_id: str, websocket: WebSocket, greeting: dict) -> None:
        """Accept a client and send it the current stream status.

        Args:
            client_id: Unique client identifier.
            websocket: Client connection.
            greeting: First message the client receives.
        """
        await websocket.accept()
        self.clients[client_id] = websocket
        logger.info(f"Control client connected: {client_id} ({self.client_count} total)")
        await self.send(client_id, greeting)

    def unregister(self, client_id: str) -> None:
        if self.clients.pop(client_id, None) is not None:
            logger.info(f"Control client disconnected: {client_id}")

    async def send(self, client_id: str, message: dict) -> None:
        """Send a message to one client, dropping it if the socket is gone."""
        websocket = self.clients.get(client_id)
        if websocket is None:
            return
        if not await self._deliver(client_id, websocket, message):
            self.unregister(client_id)

    async def notify_error(self, client_id: str, reason: str) -> None:
        """Report a problem with a client's own command to that client only."""
        await self.send(client_id, stream_event("error", reason))

    async def publish(self, message: dict) -> None:
        """Send a stream event to every client.

        Args:
            message: `{"type", "payload"}` event; stamped if it has no timestamp.
        """
        event = stream_event(message["type"], message["payload"])
        if "timestamp" in message:
            event["timestamp"] = message["timestamp"]

        dead = [
            client_id
            for client_id, websocket in list(self.clients.items())
            if not await self._deliver(client_id, websocket, event)
        ]
        for client_id in dead:
            self.unregister(client_id)

    async def _deliver(self, client_id: str, websocket: WebSocket, message: dict) -> bool:
        try:
            await websocket.send_json(message)
            return True
        except WebSocketDisconnect:
            return False
        except Exception as e:
            logger.error(f"Error sending {message.get('type')} event to {client_id}: {e}")
            return False


# Global event hub instance
hub = EventHub()
