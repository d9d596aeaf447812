"""WebSocket transport for the exercise message protocol.

One websocket = one connection identity.  Client frames are JSON objects
``{"type": "<command>", "id": <optional>, ...payload}``; acknowledgments
come back as ``{"type": "ack", "id": <same>, "data": {...}}``.  Events the
engine publishes for the connection's current session are pushed as
``{"type": "<event>", "data": {...}}``.
"""

import asyncio
import json
import uuid
from typing import Dict

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from loguru import logger

from exercise.commands import dispatch

router = APIRouter(prefix="/ws", tags=["websocket"])


class ConnectionManager:
    """Manages WebSocket connections, keyed by connection id."""

    def __init__(self):
        self.active_connections: Dict[str, WebSocket] = {}

    async def connect(self, websocket: WebSocket) -> str:
        """Accept and register a new WebSocket connection."""
        await websocket.accept()
        conn_id = uuid.uuid4().hex
        self.active_connections[conn_id] = websocket
        logger.info(f"WebSocket connected. Total connections: {len(self.active_connections)}")
        return conn_id

    def disconnect(self, conn_id: str):
        """Remove a WebSocket connection."""
        self.active_connections.pop(conn_id, None)
        logger.info(f"WebSocket disconnected. Total connections: {len(self.active_connections)}")

    async def send_to(self, websocket: WebSocket, message: dict) -> bool:
        """Send a message to a specific client."""
        try:
            await websocket.send_text(json.dumps(message))
            return True
        except Exception as e:
            logger.warning(f"Failed to send to websocket: {e}")
            return False


# Global connection manager
manager = ConnectionManager()


@router.websocket("/exercise")
async def websocket_exercise(websocket: WebSocket):
    """WebSocket endpoint carrying commands, acks and session events."""
    engine = getattr(websocket.app.state, "engine", None)
    if engine is None:
        await websocket.close(code=1013)
        return

    conn_id = await manager.connect(websocket)
    sub = engine.event_bus.subscribe()
    pump = asyncio.create_task(forward_events(websocket, engine, conn_id, sub))

    await manager.send_to(
        websocket,
        {"type": "connected", "data": {"connId": conn_id, "serverTimeMs": engine.now()}},
    )

    try:
        while True:
            data = await websocket.receive_text()
            try:
                message = json.loads(data)
            except json.JSONDecodeError:
                await manager.send_to(
                    websocket, {"type": "error", "message": "Invalid JSON"}
                )
                continue
            await handle_client_message(websocket, engine, conn_id, message)
    except WebSocketDisconnect:
        pass
    finally:
        pump.cancel()
        engine.event_bus.unsubscribe(sub)
        engine.disconnect(conn_id)
        manager.disconnect(conn_id)


async def handle_client_message(websocket: WebSocket, engine, conn_id: str, message):
    """Dispatch one decoded frame and send its acknowledgment, if any."""
    request_id = None
    if isinstance(message, dict):
        request_id = message.pop("id", None)
        if message.get("type") == "ping":
            await manager.send_to(
                websocket,
                {"type": "pong", "id": request_id, "data": {"serverTimeMs": engine.now()}},
            )
            return

    ack = dispatch(engine, conn_id, message)
    if ack is not None:
        await manager.send_to(websocket, {"type": "ack", "id": request_id, "data": ack})


async def forward_events(websocket: WebSocket, engine, conn_id: str, sub: asyncio.Queue):
    """Push engine events for this connection's session until the socket dies."""
    while True:
        msg = await sub.get()
        session_id = msg.get("session_id")
        if session_id is None or session_id != engine.session_of(conn_id):
            continue
        sent = await manager.send_to(
            websocket, {"type": msg["type"], "data": msg.get("data")}
        )
        if not sent:
            return
