import asyncio
import logging
from typing import Dict, Set

from fastapi import WebSocket

from isagip.access.models import Capability

logger = logging.getLogger("notifications.utils")


class ConnectionManager:
    """In-memory WebSocket connections grouped by topic."""
    def __init__(self) -> None:
        self._topic_to_connections: Dict[str, Set[WebSocket]] = {}
        self._lock = asyncio.Lock()

    async def connect(self, websocket: WebSocket, topic: str) -> None:
        async with self._lock:
            self._topic_to_connections.setdefault(topic, set()).add(websocket)
        logger.debug(f"WebSocket joined topic '{topic}'")

    async def disconnect(self, websocket: WebSocket, topic: str) -> None:
        async with self._lock:
            conns = self._topic_to_connections.get(topic)
            if conns and websocket in conns:
                conns.remove(websocket)
                if not conns:
                    self._topic_to_connections.pop(topic, None)
        logger.debug(f"WebSocket left topic '{topic}'")

    def count(self, topic: str) -> int:
        return len(self._topic_to_connections.get(topic, ()))

    async def broadcast(self, topic: str, message: dict) -> int:
        """Send to every socket on the topic; returns how many got it"""
        connections = list(self._topic_to_connections.get(topic, set()))
        delivered = 0
        for ws in connections:
            try:
                await ws.send_json(message)
                delivered += 1
            except (RuntimeError, OSError) as e:
                logger.warning(f"Dropping broken WebSocket on '{topic}': {e}")
                await self.disconnect(ws, topic)
        return delivered


manager = ConnectionManager()

# Collections a subscriber may stream, and the capability each needs
SUBSCRIBABLE = {
    "reports": Capability.VIEW_REPORTS,
    "ambulances": Capability.MANAGE_AMBULANCES,
    "requests": Capability.MANAGE_RESIDENTS,
    "residents": Capability.MANAGE_RESIDENTS,
}


def topic_staff() -> str:
    return "staff"


def topic_for_identity(identity: str) -> str:
    return f"user:{identity}"
