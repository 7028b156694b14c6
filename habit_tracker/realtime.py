"""
Real-time gateway for the Habit Tracker backend.
Tracks authenticated WebSocket clients and pushes events to them.

Frames in both directions are JSON objects ``{"event": str, "data": any}``.
"""

import asyncio
import json
import logging
from typing import Any, Dict, Iterable, List

from fastapi import FastAPI, WebSocket, WebSocketDisconnect, status

from habit_tracker.auth import session_from_connection
from habit_tracker.config import Settings

logger = logging.getLogger(__name__)

WS_PATH = "/ws"


def _frame(event: str, data: Any = None) -> str:
    return json.dumps({"event": event, "data": data}, default=str)


class RealtimeGateway:
    """Tracks connected WebSocket clients per user and delivers events."""

    def __init__(self):
        self._connections: Dict[int, List[WebSocket]] = {}
        self._lock = asyncio.Lock()

    async def connect(self, user_id: int, websocket: WebSocket):
        """Accept a new WebSocket connection and register it for ``user_id``."""
        await websocket.accept()
        async with self._lock:
            self._connections.setdefault(user_id, []).append(websocket)
        logger.info(
            "WebSocket client connected for user %s. Total clients: %d",
            user_id, self.client_count,
        )

    async def disconnect(self, user_id: int, websocket: WebSocket):
        """Remove a disconnected client."""
        async with self._lock:
            self._remove_locked(user_id, websocket)
        logger.info(
            "WebSocket client disconnected for user %s. Total clients: %d",
            user_id, self.client_count,
        )

    def _remove_locked(self, user_id: int, websocket: WebSocket):
        sockets = self._connections.get(user_id)
        if not sockets:
            return
        if websocket in sockets:
            sockets.remove(websocket)
        if not sockets:
            del self._connections[user_id]

    async def _send(self, targets: List[tuple], payload: str) -> int:
        """Send ``payload`` to each (user_id, socket); drop the ones that fail."""
        stale = []
        delivered = 0
        for user_id, ws in targets:
            try:
                await ws.send_text(payload)
                delivered += 1
            except Exception:
                stale.append((user_id, ws))

        if stale:
            async with self._lock:
                for user_id, ws in stale:
                    self._remove_locked(user_id, ws)
            logger.info("Removed %d stale WebSocket connections", len(stale))
        return delivered

    async def emit_to_user(self, user_id: int, event: str, data: Any = None) -> int:
        """Send an event to every socket of one user. Returns sockets reached."""
        return await self.emit_to_users([user_id], event, data)

    async def emit_to_users(self, user_ids: Iterable[int], event: str, data: Any = None) -> int:
        async with self._lock:
            targets = [
                (uid, ws)
                for uid in set(user_ids)
                for ws in self._connections.get(uid, [])
            ]
        return await self._send(targets, _frame(event, data))

    async def close_all(self):
        async with self._lock:
            targets = [ws for sockets in self._connections.values() for ws in sockets]
            self._connections.clear()
        for ws in targets:
            try:
                await ws.close(code=status.WS_1001_GOING_AWAY)
            except Exception:
                logger.debug("WebSocket already closed during shutdown")

    def is_online(self, user_id: int) -> bool:
        return bool(self._connections.get(user_id))

    @property
    def client_count(self) -> int:
        return sum(len(sockets) for sockets in self._connections.values())


async def _handle_message(gateway: RealtimeGateway, user_id: int, websocket: WebSocket, raw: str):
    try:
        message = json.loads(raw)
    except ValueError:
        await websocket.send_text(_frame("error", {"message": "Invalid JSON"}))
        return

    event = message.get("event") if isinstance(message, dict) else None
    if event == "ping":
        await websocket.send_text(_frame("pong", message.get("data")))
    elif event == "presence":
        ids = message.get("data") or []
        if not isinstance(ids, list):
            await websocket.send_text(_frame("error", {"message": "Invalid presence payload"}))
            return
        online = {str(i): gateway.is_online(i) for i in ids if isinstance(i, int)}
        await websocket.send_text(_frame("presence", online))
    else:
        await websocket.send_text(_frame("error", {"message": "Unknown event"}))


def initialize_gateway(app: FastAPI, gateway: RealtimeGateway, settings: Settings):
    """Register the WebSocket endpoint that feeds ``gateway``."""

    @app.websocket(WS_PATH)
    async def realtime_socket(websocket: WebSocket):
        origin = websocket.headers.get("origin")
        if origin is not None and origin.rstrip("/") not in settings.cors_origins:
            logger.warning("Rejected WebSocket from origin %s", origin)
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
            return

        session = session_from_connection(websocket)
        if session is None:
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
            return

        user_id = int(session["sub"])
        await gateway.connect(user_id, websocket)
        try:
            while True:
                raw = await websocket.receive_text()
                await _handle_message(gateway, user_id, websocket, raw)
        except WebSocketDisconnect:
            pass
        finally:
            await gateway.disconnect(user_id, websocket)

    return realtime_socket
