import logging
from typing import Optional

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect

from ...core.container import ApplicationContainer

router = APIRouter()

logger = logging.getLogger(__name__)

HISTORY_SIZE = 50


@router.websocket("/ws/signals")
async def signal_stream(
    websocket: WebSocket,
    channel_id: Optional[str] = Query(default=None),
) -> None:
    """Send recent processed records, then relay live bridge events until the client leaves."""
    container: Optional[ApplicationContainer] = getattr(websocket.app.state, "container", None)
    if container is None:
        logger.error("Signal stream requested before the application container was ready.")
        await websocket.close(code=1011)
        return

    manager = container.stream_manager
    await manager.connect(websocket)
    try:
        history = container.signal_query_service.get_recent_signals(HISTORY_SIZE, channel_id=channel_id)
        await manager.send_history(websocket, history["items"])
        # Clients only listen; inbound frames are read to notice the disconnect.
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    except Exception:
        logger.exception("Signal stream closed unexpectedly.")
    finally:
        await manager.disconnect(websocket)
