from typing import Dict, Iterable, Optional
from fastapi import WebSocket
import asyncio
import logging

from genai_demo.core.events import OperationEvent

logger = logging.getLogger(__name__)


class EventBus:
    """Fan-out of operation events to connected WebSocket clients.

    Each connection may subscribe to a single store; it then only receives
    events for operations targeting that store.
    """

    def __init__(self):
        self.connections: Dict[WebSocket, Optional[str]] = {}
        self._lock = asyncio.Lock()

    async def connect(self, websocket: WebSocket, store_name: Optional[str] = None):
        await websocket.accept()
        async with self._lock:
            self.connections[websocket] = store_name
        logger.debug("WebSocket connected (store=%s, total=%d)", store_name, len(self.connections))

    async def disconnect(self, websocket: WebSocket):
        async with self._lock:
            self.connections.pop(websocket, None)

    async def replay(self, websocket: WebSocket, events: Iterable[OperationEvent]):
        """Send events to one client, honouring its store filter."""
        store_name = self.connections.get(websocket)
        for event in events:
            if store_name is None or event.store_name == store_name:
                await websocket.send_text(event.model_dump_json())

    async def publish(self, event: OperationEvent):
        """Deliver an event to every client subscribed to its store."""
        message = event.model_dump_json()
        closed = []

        for ws, store_name in list(self.connections.items()):
            if store_name is not None and store_name != event.store_name:
                continue
            try:
                await ws.send_text(message)
            except Exception:
                closed.append(ws)

        if closed:
            logger.debug("Dropping %d closed websocket connections", len(closed))
            async with self._lock:
                for ws in closed:
                    self.connections.pop(ws, None)


event_bus = EventBus()
