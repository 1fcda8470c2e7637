import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect


logger = logging.getLogger(__name__)

router = APIRouter()


@router.websocket("/ws/events")
async def events_socket(websocket: WebSocket) -> None:
    hub = websocket.app.state.runtime.events
    queue = hub.subscribe()
    try:
        await websocket.accept()
        logger.info("Event subscriber connected (%d total)", hub.subscriber_count)
        while True:
            message = await queue.get()
            await websocket.send_json(message)
    except WebSocketDisconnect:
        pass
    finally:
        hub.unsubscribe(queue)
        logger.info("Event subscriber disconnected (%d left)", hub.subscriber_count)
