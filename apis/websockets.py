from fastapi import APIRouter, Request, WebSocket, WebSocketDisconnect
from settings import logger
import json

router = APIRouter(tags=["websockets"])


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """
    WebSocket endpoint for project chat and presence.

    Frames are JSON objects `{"event": <name>, "data": {...}}` in both
    directions. The first event a client sends should be `authenticate`.
    """
    engine = websocket.app.state.chat_engine
    socket_id = await engine.connect(websocket)

    try:
        while True:
            data = await websocket.receive_text()

            # Parse incoming frame
            try:
                frame = json.loads(data)
            except json.JSONDecodeError:
                logger.warning("Invalid JSON received from WebSocket client", extra={
                    "socket_id": socket_id,
                    "data": data[:100] + "..." if len(data) > 100 else data
                })
                await engine.manager.send(socket_id, "error", {"message": "Invalid JSON"})
                continue

            if not isinstance(frame, dict) or not isinstance(frame.get("event"), str):
                await engine.manager.send(socket_id, "error", {"message": "Frame must carry an event name"})
                continue

            await engine.handle_event(socket_id, frame["event"], frame.get("data"))

    except WebSocketDisconnect:
        pass
    finally:
        await engine.handle_disconnect(socket_id)


@router.get("/ws/stats")
async def get_websocket_stats(request: Request) -> dict:
    """Get WebSocket connection statistics."""
    return request.app.state.chat_engine.get_stats()
