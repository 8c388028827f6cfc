from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from classgrid.services.notification_hub import TIMETABLE_CHANNEL, notification_hub

router = APIRouter()


@router.websocket("/ws")
async def timetable_events(websocket: WebSocket) -> None:
    await notification_hub.connect(TIMETABLE_CHANNEL, websocket)
    try:
        await websocket.send_json({"event": "connected", "channel": TIMETABLE_CHANNEL})
        while True:
            message = await websocket.receive_text()
            if message.strip().lower() == "ping":
                await websocket.send_json({"event": "pong"})
    except WebSocketDisconnect:
        pass
    finally:
        await notification_hub.disconnect(TIMETABLE_CHANNEL, websocket)
