from fastapi import APIRouter, Query, Request
from fastapi.responses import StreamingResponse
from broadcast import format_sse
from logging_config import get_logger

logger = get_logger(__name__)

stream_router = APIRouter(prefix="/api/rooms", tags=["stream"])

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    # stop nginx-style proxies from buffering the stream
    "X-Accel-Buffering": "no",
}


@stream_router.get("/{room_id}/stream")
async def stream_room(room_id: str, request: Request, user_name: str = Query(..., alias="userName", min_length=1)):
    """Server-Sent Events stream: ``init`` first, then room events and ``: heartbeat`` comments."""
    service = request.app.state.service
    heartbeat_interval = request.app.state.heartbeat_interval
    # Raises RoomNotFound (404) before any byte of the stream is sent
    subscription = await service.connect(room_id, user_name)
    logger.info(f"SSE stream opened for {user_name} in room {subscription.room_id}")

    async def event_stream():
        try:
            async for item in subscription.events(heartbeat_interval):
                if await request.is_disconnected():
                    break
                yield format_sse(item)
        finally:
            await service.disconnect(subscription)
            logger.info(f"SSE stream closed for {user_name} in room {subscription.room_id}")

    return StreamingResponse(event_stream(), media_type="text/event-stream", headers=SSE_HEADERS)
