"""Fan-out of room events to live connections.

Limitation: like the rest of the runtime state this is in-memory and assumes
a single server process.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Protocol

from .registry import ConnectionRegistry
from .schemas import RoomSnapshot

logger = logging.getLogger(__name__)


class Transport(Protocol):
    """What the broadcaster needs from a connection (a FastAPI ``WebSocket`` fits)."""

    async def send_json(self, data: Any) -> None: ...

    async def close(self, code: int = 1000, reason: Optional[str] = None) -> None: ...


def event(event_type: str, data: Any = None) -> dict:
    return {"type": event_type, "data": data}


class EventBroadcaster:
    def __init__(self, registry: ConnectionRegistry):
        self._registry = registry
        # connection_id -> transport
        self._transports: Dict[str, Transport] = {}

    def register(self, connection_id: str, transport: Transport) -> None:
        self._transports[connection_id] = transport

    def forget(self, connection_id: str) -> None:
        self._transports.pop(connection_id, None)

    def is_open(self, connection_id: str) -> bool:
        return connection_id in self._transports

    async def _send(self, connection_id: str, payload: dict) -> bool:
        transport = self._transports.get(connection_id)
        if transport is None:
            return False
        try:
            await transport.send_json(payload)
        except Exception as exc:
            # The disconnect handler of that connection does the cleanup.
            logger.warning("Dropping %s for connection %s: %s", payload.get("type"), connection_id, exc)
            return False
        return True

    async def broadcast_room_update(self, room: str, snapshot: RoomSnapshot) -> None:
        """Send one identical full snapshot to every connection bound to *room*."""
        payload = event("roomUpdate", snapshot.wire())
        for connection_id in self._registry.connections_in(room):
            await self._send(connection_id, payload)

    async def broadcast_to_connection(self, connection_id: str, payload: dict) -> bool:
        return await self._send(connection_id, payload)

    async def broadcast_ephemeral(self, room: str, payload: dict) -> None:
        """Fire-and-forget notification that is not part of room state."""
        for connection_id in self._registry.connections_in(room):
            await self._send(connection_id, payload)

    async def close(self, connection_id: str, code: int, reason: Optional[str] = None) -> None:
        """Force-terminate a connection's transport and stop sending to it."""
        transport = self._transports.pop(connection_id, None)
        if transport is None:
            return
        try:
            await transport.close(code=code, reason=reason)
        except Exception as exc:
            logger.warning("Closing connection %s failed: %s", connection_id, exc)


__all__ = ["Transport", "event", "EventBroadcaster"]
