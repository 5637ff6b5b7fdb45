"""WebSocket channel pushing tracking updates to customers."""

import json
from typing import Any
from uuid import UUID

from fastapi import WebSocket, WebSocketDisconnect
from pydantic import BaseModel, ValidationError

from courier_dispatch.utils.logging import get_logger

logger = get_logger(__name__)


class WebSocketMessage(BaseModel):
    """Client to server message format."""

    type: str  # "ping"
    metadata: dict[str, Any] = {}


class ConnectionManager:
    """Manages WebSocket connections, several per customer."""

    def __init__(self) -> None:
        self.active_connections: dict[str, list[WebSocket]] = {}

    async def connect(self, customer_id: str, websocket: WebSocket) -> None:
        """Accept and register a WebSocket connection."""
        await websocket.accept()
        self.active_connections.setdefault(customer_id, []).append(websocket)
        logger.info("websocket_connected", customer_id=customer_id)

    def disconnect(self, customer_id: str, websocket: WebSocket) -> None:
        """Remove a WebSocket connection."""
        connections = self.active_connections.get(customer_id, [])
        if websocket in connections:
            connections.remove(websocket)
            logger.info("websocket_disconnected", customer_id=customer_id)
        if not connections:
            self.active_connections.pop(customer_id, None)

    def connection_count(self, customer_id: str) -> int:
        return len(self.active_connections.get(customer_id, []))

    async def send_message(self, customer_id: str, message: dict[str, Any]) -> int:
        """Send a message to every connection of a customer. Returns how many got it."""
        sent = 0
        for websocket in list(self.active_connections.get(customer_id, [])):
            try:
                await websocket.send_json(message)
                sent += 1
            except (WebSocketDisconnect, RuntimeError) as e:
                logger.warning("websocket_send_failed", customer_id=customer_id, error=str(e))
                self.disconnect(customer_id, websocket)
        return sent


class WebSocketNotifier:
    """Notifier backed by the customer WebSocket connections."""

    def __init__(self, connections: ConnectionManager):
        self.connections = connections

    async def emit_to_customer(self, customer_id: str, payload: dict[str, Any]) -> None:
        sent = await self.connections.send_message(customer_id, payload)
        logger.debug(
            "customer_notified",
            customer_id=customer_id,
            event_type=payload.get("type"),
            connections=sent,
        )


# Global connection manager
manager = ConnectionManager()


async def handle_customer_websocket(
    websocket: WebSocket,
    customer_id: UUID,
    connections: ConnectionManager | None = None,
) -> None:
    """
    Keep a customer's tracking channel open until the client leaves.

    Args:
        websocket: WebSocket connection
        customer_id: Customer receiving tracking events
        connections: Connection registry, the module-level one by default
    """
    connections = connections or manager
    customer_str = str(customer_id)

    await connections.connect(customer_str, websocket)

    await websocket.send_json(
        {
            "type": "connected",
            "customer_id": customer_str,
            "message": "Listening for delivery tracking updates",
        }
    )

    try:
        while True:
            data = await websocket.receive_text()

            try:
                ws_message = WebSocketMessage(**json.loads(data))

                if ws_message.type == "ping":
                    await websocket.send_json({"type": "pong"})

            except (ValidationError, json.JSONDecodeError, TypeError) as e:
                await websocket.send_json(
                    {
                        "type": "error",
                        "message": "Invalid message format",
                        "details": str(e),
                    }
                )

    except WebSocketDisconnect:
        connections.disconnect(customer_str, websocket)
        logger.info("websocket_client_disconnected", customer_id=customer_str)
