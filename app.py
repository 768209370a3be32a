from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from routers.rooms import rooms_router
from routers.stream import stream_router
from schemas.rooms import FileUpdateFrame, FileDeleteFrame, FileRenameFrame, PresenceFrame
from backend import create_redis_client, RoomStore, FileStore, PresenceTracker
from broadcast import BroadcastHub, Subscription, format_ws, EVENT_FILE_CREATE, EVENT_FILE_DELETE, EVENT_FILE_RENAME, EVENT_FILE_UPDATE, EVENT_PRESENCE
from clock import Clock
from constants import HEARTBEAT_INTERVAL_SECONDS, PRESENCE_SWEEP_INTERVAL_SECONDS
from exceptions import RoomNotFound, FilenameConflict, ValidationGap, SyncError
from poll import PollSync
from registry import RoomRegistry
from room_codes import RoomCodeGenerator
from service import SyncService
import asyncio
import json
from logging_config import get_logger, setup_logging
import os

# Setup logging
log_level = os.getenv("LOG_LEVEL", "INFO")
log_file = os.getenv("LOG_FILE", None)
setup_logging(log_level=log_level, log_file=log_file)
logger = get_logger(__name__)


def _build_state(app: FastAPI, redis_client, clock, code_generator) -> None:
    """Construct the sync core once and hang it off ``app.state`` for every route."""
    rooms = RoomStore(redis_client, clock)
    files = FileStore(redis_client, clock)
    presence = PresenceTracker(redis_client, clock)
    registry = RoomRegistry(rooms, files, presence, code_generator)
    hub = BroadcastHub()
    app.state.redis_client = redis_client
    app.state.registry = registry
    app.state.hub = hub
    app.state.service = SyncService(registry, hub)
    app.state.poll_sync = PollSync(registry, clock)


async def sweep_presence(presence: PresenceTracker, interval: float):
    """Periodically drop expired presence rows. Readers already filter them out."""
    while True:
        await asyncio.sleep(interval)
        try:
            presence.sweep_all()
        except Exception as e:
            logger.error(f"Presence sweep failed: {e}", exc_info=True)


def create_app(redis_client=None, clock=None, code_generator: RoomCodeGenerator = None,
               heartbeat_interval: float = HEARTBEAT_INTERVAL_SECONDS,
               sweep_interval: float = PRESENCE_SWEEP_INTERVAL_SECONDS) -> FastAPI:
    clock = clock or Clock()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if not hasattr(app.state, "registry"):
            _build_state(app, create_redis_client(), clock, code_generator)
        sweeper = None
        if sweep_interval:
            sweeper = asyncio.create_task(sweep_presence(app.state.registry.presence, sweep_interval))
        logger.info("Sync core ready")
        try:
            yield
        finally:
            if sweeper:
                sweeper.cancel()
                try:
                    await sweeper
                except asyncio.CancelledError:
                    pass

    app = FastAPI(title="MonkeySkript", lifespan=lifespan)

    # Configure CORS to allow all origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(rooms_router)
    app.include_router(stream_router)
    app.add_api_websocket_route("/api/rooms/{room_id}/ws", websocket_endpoint)
    app.add_api_route("/health/live", live, methods=["GET"])

    app.add_exception_handler(RoomNotFound, room_not_found_handler)
    app.add_exception_handler(FilenameConflict, filename_conflict_handler)
    app.add_exception_handler(ValidationGap, validation_gap_handler)

    app.state.heartbeat_interval = heartbeat_interval
    if redis_client is not None:
        _build_state(app, redis_client, clock, code_generator)

    logger.info("FastAPI application initialized")
    return app


async def room_not_found_handler(request: Request, exc: RoomNotFound):
    return JSONResponse(status_code=404, content={"error": "Room not found"})


async def filename_conflict_handler(request: Request, exc: FilenameConflict):
    logger.warning(f"Rename rejected: {exc}")
    return JSONResponse(status_code=409, content={"error": str(exc)})


async def validation_gap_handler(request: Request, exc: ValidationGap):
    logger.warning(f"Rejected request to {request.url.path}: {exc}")
    return JSONResponse(status_code=422, content={"error": str(exc)})


async def live():
    return {"status": "ok"}


async def pump_events(websocket: WebSocket, subscription: Subscription, heartbeat_interval: float):
    """Forward a subscription's events to the socket until either side goes away."""
    async for item in subscription.events(heartbeat_interval):
        await websocket.send_text(format_ws(item))
    # Only reached when the hub dropped this subscriber; the client must
    # reconnect to get a fresh init snapshot.
    logger.warning(f"Closing WebSocket for {subscription.user_name} in room {subscription.room_id}: subscriber dropped")
    await websocket.close(code=1013, reason="Too far behind, reconnect")


async def handle_client_frame(service: SyncService, subscription: Subscription, message: dict):
    room_id = subscription.room_id
    user_name = subscription.user_name
    message_type = message.get("type")
    if message_type in (EVENT_FILE_UPDATE, EVENT_FILE_CREATE):
        frame = FileUpdateFrame.model_validate(message)
        await service.upsert_file(room_id, frame.filename, frame.content, user_name)
    elif message_type == EVENT_FILE_DELETE:
        frame = FileDeleteFrame.model_validate(message)
        await service.delete_file(room_id, frame.filename, user_name)
    elif message_type == EVENT_FILE_RENAME:
        frame = FileRenameFrame.model_validate(message)
        await service.rename_file(room_id, frame.old_name, frame.new_name, user_name)
    elif message_type == EVENT_PRESENCE:
        frame = PresenceFrame.model_validate(message)
        await service.update_presence(room_id, user_name, frame.user_color, frame.editing_file)
    else:
        raise ValidationGap("type", f"{message_type!r} is not a known message type")


async def websocket_endpoint(room_id: str, websocket: WebSocket, userName: str = None):
    """Persistent push channel.

    Query parameters:
    - userName: display name, required; used for presence and echo suppression

    The server sends ``{"type": <event>, "data": {...}}`` frames starting with
    ``init``, plus ``{"type": "heartbeat"}`` when idle. The client may send
    ``file:update``, ``file:delete``, ``file:rename`` and ``presence`` frames.
    """
    logger.info(f"WebSocket connection attempt for room: {room_id}, userName: {userName}")
    service: SyncService = websocket.app.state.service
    registry: RoomRegistry = websocket.app.state.registry

    if not userName or not userName.strip():
        logger.info(f"WebSocket connection rejected: missing userName for room {room_id}")
        await websocket.close(code=1008, reason="userName is required")
        return
    if not registry.room_exists(room_id):
        logger.info(f"WebSocket connection rejected: Room {room_id} not found")
        await websocket.close(code=1008, reason="Room not found")
        return

    await websocket.accept()
    try:
        subscription = await service.connect(room_id, userName)
    except RoomNotFound:
        await websocket.close(code=1008, reason="Room not found")
        return

    pump = asyncio.create_task(pump_events(websocket, subscription, websocket.app.state.heartbeat_interval))
    try:
        while True:
            data = await websocket.receive_text()
            try:
                message = json.loads(data)
                if not isinstance(message, dict):
                    raise ValidationGap("message", "must be a JSON object")
                await handle_client_frame(service, subscription, message)
            except (json.JSONDecodeError, ValidationError, SyncError) as e:
                logger.warning(f"Rejected frame from {userName} in room {subscription.room_id}: {e}")
                await websocket.send_text(json.dumps({"type": "error", "message": str(e)}))
    except WebSocketDisconnect:
        logger.info(f"WebSocket disconnected normally for {userName} in room {subscription.room_id}")
    except Exception as e:
        logger.error(f"WebSocket error for {userName} in room {subscription.room_id}: {e}", exc_info=True)
        try:
            await websocket.close(code=1011, reason="Internal error")
        except Exception as close_error:
            logger.debug(f"Error closing WebSocket for {userName}: {close_error}")
    finally:
        pump.cancel()
        try:
            await pump
        except asyncio.CancelledError:
            pass
        except Exception as e:
            # Delivery failure: the channel is gone, nothing to retry
            logger.debug(f"Event pump for {userName} ended with: {e}")
        await service.disconnect(subscription)


app = create_app()
