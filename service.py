from typing import Optional

from broadcast import (
    BroadcastHub, Subscription,
    EVENT_FILE_CREATE, EVENT_FILE_DELETE, EVENT_FILE_RENAME, EVENT_FILE_UPDATE, EVENT_PRESENCE,
)
from constants import MAX_CONTENT_BYTES
from exceptions import ValidationGap
from registry import RoomRegistry
from logging_config import get_logger

logger = get_logger(__name__)


def _require(value: Optional[str], field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationGap(field, "must be a non-empty string")
    return value


def _optional(value: Optional[str], field: str) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValidationGap(field, "must be a string")
    return value


class SyncService:
    """Mutation surface shared by every transport.

    Each operation writes the store first, then fans the change out to push
    subscribers. Pull clients see the same change through PollSync.
    """

    def __init__(self, registry: RoomRegistry, hub: BroadcastHub):
        self.registry = registry
        self.hub = hub

    async def upsert_file(self, room_id: str, filename: str, content: Optional[str], user_name: Optional[str] = None) -> None:
        room_id = self.registry.require_room(room_id)
        filename = _require(filename, "filename")
        content = _optional(content, "content")
        if len(content.encode("utf-8")) > MAX_CONTENT_BYTES:
            raise ValidationGap("content", f"exceeds {MAX_CONTENT_BYTES} bytes")
        created = self.registry.files.upsert_file(room_id, filename, content)
        event_type = EVENT_FILE_CREATE if created else EVENT_FILE_UPDATE
        await self.hub.publish(room_id, event_type, {"filename": filename, "content": content}, exclude_user=user_name)

    async def delete_file(self, room_id: str, filename: str, user_name: Optional[str] = None) -> None:
        room_id = self.registry.require_room(room_id)
        filename = _require(filename, "filename")
        self.registry.files.delete_file(room_id, filename)
        await self.hub.publish(room_id, EVENT_FILE_DELETE, {"filename": filename}, exclude_user=user_name)

    async def rename_file(self, room_id: str, old_name: str, new_name: str, user_name: Optional[str] = None) -> bool:
        room_id = self.registry.require_room(room_id)
        old_name = _require(old_name, "filename")
        new_name = _require(new_name, "newName")
        moved = self.registry.files.rename_file(room_id, old_name, new_name)
        if moved and old_name != new_name:
            await self.hub.publish(room_id, EVENT_FILE_RENAME, {"oldName": old_name, "newName": new_name}, exclude_user=user_name)
        return moved

    async def update_presence(self, room_id: str, user_name: str, user_color: Optional[str] = None, editing_file: Optional[str] = None) -> None:
        room_id = self.registry.require_room(room_id)
        user_name = _require(user_name, "userName")
        self.registry.presence.upsert_presence(
            room_id, user_name, _optional(user_color, "userColor"), _optional(editing_file, "editingFile")
        )
        await self.broadcast_presence(room_id)

    async def remove_presence(self, room_id: str, user_name: str) -> None:
        room_id = self.registry.require_room(room_id)
        user_name = _require(user_name, "userName")
        self.registry.presence.remove_presence(room_id, user_name)
        await self.broadcast_presence(room_id)

    async def broadcast_presence(self, room_id: str) -> None:
        # Sent to everyone, the originator included, as confirmation
        users = self.registry.presence.list_live_presence(room_id)
        await self.hub.publish(room_id, EVENT_PRESENCE, {"users": users})

    async def connect(self, room_id: str, user_name: str) -> Subscription:
        """Open a push subscription: ``init`` snapshot first, then a presence broadcast to the room."""
        room_id = self.registry.require_room(room_id)
        user_name = _require(user_name, "userName")
        subscription = await self.hub.subscribe(room_id, user_name, lambda: self.registry.snapshot(room_id))
        await self.broadcast_presence(room_id)
        return subscription

    async def disconnect(self, subscription: Subscription) -> None:
        await self.hub.unsubscribe(subscription)
        self.registry.presence.remove_presence(subscription.room_id, subscription.user_name)
        await self.broadcast_presence(subscription.room_id)
        logger.info(f"{subscription.user_name} left room {subscription.room_id}")
