import asyncio
import logging
from typing import Set
from fastapi import WebSocket

logger = logging.getLogger(__name__)


class Broadcaster:
    """Fan persisted readings out to connected dashboard sockets."""

    def __init__(self):
        self.clients: Set[WebSocket] = set()
        self._lock = asyncio.Lock()

    async def connect(self, ws: WebSocket):
        await ws.accept()
        async with self._lock:
            self.clients.add(ws)

    async def disconnect(self, ws: WebSocket):
        async with self._lock:
            self.clients.discard(ws)

    async def broadcast_json(self, payload: dict) -> int:
        stale = []
        delivered = 0
        for ws in list(self.clients):
            try:
                await ws.send_json(payload)
                delivered += 1
            except Exception:
                logger.debug("Dropping stale websocket client", exc_info=True)
                stale.append(ws)
        for ws in stale:
            await self.disconnect(ws)
        return delivered
