from typing import Callable, Optional

from registry import RoomRegistry
from logging_config import get_logger

logger = get_logger(__name__)


class PollSync:
    """Delta queries for pull clients.

    Each call is an independent read: no batching, no sender filtering. A
    client's own edit comes back in its next poll and must be applied
    idempotently.
    """

    def __init__(self, registry: RoomRegistry, clock: Callable[[], float]):
        self.registry = registry
        self.clock = clock

    def poll(self, room_id: str, since: Optional[float] = None) -> dict:
        canonical = self.registry.require_room(room_id)
        since = since or 0.0
        # Taken before the reads so writes landing during this call are
        # picked up by the next cursor rather than skipped.
        server_time = self.clock()
        changed = self.registry.files.list_changed_since(canonical, since)
        deleted = self.registry.files.list_deleted_since(canonical, since)
        users = self.registry.presence.list_live_presence(canonical)
        logger.debug(f"Poll of room {canonical} since {since}: {len(changed)} changed, {len(deleted)} deleted, {len(users)} live")
        return {
            "files": changed,
            "deleted": deleted,
            "users": users,
            "serverTime": server_time,
        }
