"""WebSocket handler for live round events."""

import json
from typing import Set, Optional, Dict, Any
from datetime import datetime, timezone

from fastapi import WebSocket, WebSocketDisconnect
from fastapi.concurrency import run_in_threadpool
from loguru import logger

from arena.engine.errors import UserInputError
from arena.engine.service import PredictionService


class ConnectionManager:
    """
    Manages WebSocket connections and broadcasts.

    Round events from the scheduler reach `broadcast` through
    WebSocketChannel, which schedules it on the API event loop.
    """

    def __init__(self):
        """Initialize connection manager."""
        self.active_connections: Set[WebSocket] = set()

    async def connect(self, websocket: WebSocket) -> None:
        """
        Accept and register a new WebSocket connection.

        Args:
            websocket: WebSocket connection to register
        """
        await websocket.accept()
        self.active_connections.add(websocket)
        logger.info(f"WebSocket connected. Total connections: {len(self.active_connections)}")

    def disconnect(self, websocket: WebSocket) -> None:
        """
        Remove a WebSocket connection.

        Args:
            websocket: WebSocket connection to remove
        """
        self.active_connections.discard(websocket)
        logger.info(f"WebSocket disconnected. Total connections: {len(self.active_connections)}")

    async def send_personal_message(self, message: Dict[str, Any], websocket: WebSocket) -> None:
        """
        Send a message to a specific client.

        Args:
            message: Message dictionary to send
            websocket: Target WebSocket connection
        """
        try:
            await websocket.send_json(message)
        except Exception as e:
            logger.error(f"Failed to send personal message: {e}")
            self.disconnect(websocket)

    async def broadcast(self, message: Dict[str, Any]) -> None:
        """
        Broadcast a message to all connected clients.

        Args:
            message: Message dictionary to broadcast
        """
        disconnected = set()

        for connection in list(self.active_connections):
            try:
                await connection.send_json(message)
            except Exception as e:
                logger.error(f"Failed to broadcast to connection: {e}")
                disconnected.add(connection)

        # Clean up disconnected clients
        for connection in disconnected:
            self.disconnect(connection)


# Global connection manager instance
manager = ConnectionManager()


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


async def handle_websocket_connection(
    websocket: WebSocket,
    service: Optional[PredictionService] = None,
) -> None:
    """
    Handle a WebSocket connection lifecycle.

    Accepts the connection, processes incoming messages, and handles disconnection.

    Args:
        websocket: WebSocket connection
        service: PredictionService instance (optional)
    """
    await manager.connect(websocket)

    await manager.send_personal_message(
        {
            "type": "connected",
            "message": "Connected to Rainmaker Arena live rounds",
            "timestamp": _timestamp(),
        },
        websocket,
    )

    try:
        while True:
            data = await websocket.receive_text()

            try:
                message = json.loads(data)
            except json.JSONDecodeError:
                await manager.send_personal_message(
                    {"type": "error", "message": "Invalid JSON format"},
                    websocket,
                )
                continue

            await process_client_message(websocket, message, service)

    except WebSocketDisconnect:
        logger.info("Client disconnected normally")
        manager.disconnect(websocket)
    except Exception as e:
        logger.error(f"WebSocket error: {e}")
        manager.disconnect(websocket)


async def process_client_message(
    websocket: WebSocket,
    message: Dict[str, Any],
    service: Optional[PredictionService],
) -> None:
    """
    Process incoming message from WebSocket client.

    Supports commands:
    - ping: Keepalive
    - rounds: List open rounds
    - predict: Submit a prediction {"user_id", "asset", "direction"}

    Args:
        websocket: WebSocket connection
        message: Message dictionary from client
        service: PredictionService instance
    """
    msg_type = message.get("type", "") if isinstance(message, dict) else ""

    if msg_type == "ping":
        await manager.send_personal_message(
            {"type": "pong", "timestamp": _timestamp()},
            websocket,
        )

    elif msg_type in ("rounds", "predict") and service is None:
        await manager.send_personal_message(
            {"type": "error", "message": "Prediction service not available"},
            websocket,
        )

    elif msg_type == "rounds":
        await manager.send_personal_message(
            {
                "type": "rounds",
                "rounds": [r.to_dict() for r in service.active_rounds()],
                "timestamp": _timestamp(),
            },
            websocket,
        )

    elif msg_type == "predict":
        user_id = str(message.get("user_id", "")).strip()
        if not user_id:
            await manager.send_personal_message(
                {"type": "error", "message": "user_id is required"},
                websocket,
            )
            return

        try:
            # User registry writes may hit the database
            receipt = await run_in_threadpool(
                service.submit_prediction,
                user_id,
                str(message.get("asset", "")),
                message.get("direction", ""),
            )
        except UserInputError as e:
            await manager.send_personal_message(
                {"type": "error", "message": str(e)},
                websocket,
            )
            return

        await manager.send_personal_message(
            {"type": "prediction_accepted", "receipt": receipt.to_dict()},
            websocket,
        )

    else:
        await manager.send_personal_message(
            {
                "type": "error",
                "message": f"Unknown message type: {msg_type}",
            },
            websocket,
        )
