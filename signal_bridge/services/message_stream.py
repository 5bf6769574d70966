import asyncio
import logging
from typing import Any, Dict, List, Set

from fastapi import WebSocket
from fastapi.encoders import jsonable_encoder

logger = logging.getLogger(__name__)


class SignalStreamManager:
    """Fans bridge events out to dashboard WebSocket clients.

    Registered as an ``EventDispatcher`` listener; every event becomes a
    ``{"type": ..., "data": ...}`` frame.  A client whose send fails is dropped.
    """

    def __init__(self) -> None:
        self._clients: Set[WebSocket] = set()
        self._lock = asyncio.Lock()

    @property
    def connection_count(self) -> int:
        return len(self._clients)

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        async with self._lock:
            self._clients.add(websocket)
        logger.debug("Dashboard client connected (%s open).", len(self._clients))

    async def disconnect(self, websocket: WebSocket) -> None:
        async with self._lock:
            self._clients.discard(websocket)
        logger.debug("Dashboard client disconnected (%s open).", len(self._clients))

    async def handle_event(self, event_type: str, payload: Dict[str, Any]) -> None:
        await self._broadcast(_frame(event_type, payload))

    async def send_history(self, websocket: WebSocket, records: List[Dict[str, Any]]) -> None:
        await websocket.send_json(_frame("history", records))

    async def _broadcast(self, frame: Dict[str, Any]) -> None:
        async with self._lock:
            clients = list(self._clients)
        if not clients:
            return

        results = await asyncio.gather(*(client.send_json(frame) for client in clients), return_exceptions=True)
        failed: List[WebSocket] = []
        for client, result in zip(clients, results):
            if isinstance(result, Exception):
                logger.warning("Dropping dashboard client after failed %s send: %s", frame["type"], result)
                failed.append(client)
        if not failed:
            return
        async with self._lock:
            self._clients.difference_update(failed)


def _frame(event_type: str, data: Any) -> Dict[str, Any]:
    return {"type": event_type, "data": jsonable_encoder(data)}
