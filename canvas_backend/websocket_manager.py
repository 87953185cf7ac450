"""
WebSocket fan-out for structure change events.

Clients subscribe on `/ws`; every committed change is announced as a
`structure_updated` message carrying the structure id and its current
entity and connection counts. Clients re-fetch the structure over REST.
"""
import asyncio
import json
from typing import Any, Optional

from fastapi import WebSocket

from entity_canvas.logging import get_logger

logger = get_logger("backend.websocket")


class WebSocketManager:
    """Subscriber set guarded by an asyncio lock."""

    def __init__(self):
        self._subscribers: set[WebSocket] = set()
        self._lock = asyncio.Lock()

    @property
    def connection_count(self) -> int:
        return len(self._subscribers)

    async def connect(self, websocket: WebSocket):
        await websocket.accept()
        async with self._lock:
            self._subscribers.add(websocket)
        logger.info("Subscriber joined (%d open)", len(self._subscribers))

    async def disconnect(self, websocket: WebSocket):
        async with self._lock:
            self._subscribers.discard(websocket)
        logger.info("Subscriber left (%d open)", len(self._subscribers))

    async def reply(self, websocket: WebSocket, message: dict[str, Any]):
        """Answer a single subscriber, e.g. a keep-alive pong."""
        await websocket.send_text(json.dumps(message))

    async def _send(self, websocket: WebSocket, text: str) -> Optional[WebSocket]:
        try:
            await websocket.send_text(text)
        except Exception:
            logger.debug("Send to subscriber failed, dropping it", exc_info=True)
            return websocket
        return None

    async def broadcast(self, message: dict[str, Any]) -> int:
        """
        Send `message` to every subscriber concurrently.

        Subscribers whose send fails are dropped. Returns how many
        received the message.
        """
        async with self._lock:
            targets = list(self._subscribers)
        if not targets:
            return 0

        text = json.dumps(message)
        results = await asyncio.gather(*(self._send(ws, text) for ws in targets))
        dead = {ws for ws in results if ws is not None}
        if dead:
            async with self._lock:
                self._subscribers -= dead
        return len(targets) - len(dead)

    async def notify_structure_updated(
        self,
        structure_id: Optional[str],
        entity_count: int = 0,
        connection_count: int = 0,
    ) -> int:
        return await self.broadcast({
            "type": "structure_updated",
            "structure_id": structure_id,
            "entities": entity_count,
            "connections": connection_count,
        })

    async def close_all(self, code: int = 1001):
        """Close every subscriber, used on shutdown."""
        async with self._lock:
            subscribers, self._subscribers = self._subscribers, set()
        for websocket in subscribers:
            try:
                await websocket.close(code=code)
            except Exception:
                logger.debug("Closing subscriber failed", exc_info=True)
