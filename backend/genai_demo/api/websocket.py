from typing import Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from genai_demo.core.events import OperationEvent
from genai_demo.services.event_bus import event_bus

router = APIRouter()


# TODO: [SECURITY] Add WebSocket authentication before production deployment
# See: https://fastapi.tiangolo.com/advanced/websockets/#handling-disconnections-and-multiple-clients
@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket, store: Optional[str] = None):
    """Stream upload operation progress, optionally for a single store.

    On connect the client first receives a snapshot of every operation the
    server is tracking, so a reloaded page can resume its status display.
    """
    await event_bus.connect(websocket, store_name=store)
    try:
        session = getattr(websocket.app.state, "file_search", None)
        if session is not None:
            tracked = list(session.poller.statuses.values())
            await event_bus.replay(websocket, [OperationEvent.snapshot(t) for t in tracked])
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        await event_bus.disconnect(websocket)
