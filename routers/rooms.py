from fastapi import APIRouter, Body, Query, Request
from schemas.rooms import (
    CreateRoomResponse, RoomResponse, JoinRoomRequest, JoinRoomResponse, UpsertFileRequest, DeleteFileRequest,
    RenameFileRequest, PresenceRequest, PollResponse, OkResponse,
)
from typing import Dict, Optional
from logging_config import get_logger

logger = get_logger(__name__)

rooms_router = APIRouter(prefix="/api/rooms", tags=["rooms"])


@rooms_router.post("", response_model=CreateRoomResponse)
async def create_room(request: Request):
    logger.info(f"Room creation request from {request.client.host if request.client else 'unknown'}")
    room_id = request.app.state.registry.create_room()
    return CreateRoomResponse(room_id=room_id)


@rooms_router.get("/{room_id}", response_model=RoomResponse)
async def get_room(room_id: str, request: Request):
    room = request.app.state.registry.get_room(room_id)
    return RoomResponse(room_id=room["id"])


@rooms_router.post("/{room_id}/join", response_model=JoinRoomResponse)
async def join_room(room_id: str, join_room_request: JoinRoomRequest, request: Request):
    # Validates the room and returns the full state. Live updates need a
    # separate /stream or /ws connection, or /poll.
    registry = request.app.state.registry
    canonical, files, users = registry.join_room(room_id, join_room_request.user_name)
    return JoinRoomResponse(room_id=canonical, files=files, users=users)


@rooms_router.get("/{room_id}/files", response_model=Dict[str, str])
async def list_files(room_id: str, request: Request):
    registry = request.app.state.registry
    return registry.files.list_files(registry.require_room(room_id))


@rooms_router.post("/{room_id}/files", response_model=OkResponse)
async def upsert_file(room_id: str, upsert_request: UpsertFileRequest, request: Request):
    await request.app.state.service.upsert_file(
        room_id, upsert_request.filename, upsert_request.content, upsert_request.user_name
    )
    return OkResponse()


@rooms_router.delete("/{room_id}/files/{filename:path}", response_model=OkResponse)
async def delete_file(
    room_id: str,
    filename: str,
    request: Request,
    user_name: Optional[str] = Query(None, alias="userName"),
    delete_request: Optional[DeleteFileRequest] = Body(None),
):
    # userName may come as a query parameter or in the body
    if user_name is None and delete_request is not None:
        user_name = delete_request.user_name
    await request.app.state.service.delete_file(room_id, filename, user_name)
    return OkResponse()


@rooms_router.post("/{room_id}/files/{filename:path}/rename", response_model=OkResponse)
async def rename_file(room_id: str, filename: str, rename_request: RenameFileRequest, request: Request):
    await request.app.state.service.rename_file(room_id, filename, rename_request.new_name, rename_request.user_name)
    return OkResponse()


@rooms_router.post("/{room_id}/presence", response_model=OkResponse)
async def update_presence(room_id: str, presence_request: PresenceRequest, request: Request):
    await request.app.state.service.update_presence(
        room_id, presence_request.user_name, presence_request.user_color, presence_request.editing_file
    )
    return OkResponse()


@rooms_router.delete("/{room_id}/presence/{user_name}", response_model=OkResponse)
async def remove_presence(room_id: str, user_name: str, request: Request):
    await request.app.state.service.remove_presence(room_id, user_name)
    return OkResponse()


@rooms_router.get("/{room_id}/poll", response_model=PollResponse)
async def poll(room_id: str, request: Request, since: Optional[float] = Query(None, ge=0)):
    return request.app.state.poll_sync.poll(room_id, since)
