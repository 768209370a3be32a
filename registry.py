from typing import Dict, List, Tuple

from backend import RoomStore, FileStore, PresenceTracker
from exceptions import RoomNotFound
from room_codes import RoomCodeGenerator, canonical_room_id
from logging_config import get_logger

logger = get_logger(__name__)


class RoomRegistry:
    """Owns room creation and existence checks, and composes the per-room stores.

    Callers may pass room ids in any case; they are canonicalized here before
    any store is touched.
    """

    def __init__(self, rooms: RoomStore, files: FileStore, presence: PresenceTracker,
                 code_generator: RoomCodeGenerator = None):
        self.rooms = rooms
        self.files = files
        self.presence = presence
        self.code_generator = code_generator or RoomCodeGenerator()

    def create_room(self) -> str:
        attempts = 0
        while True:
            attempts += 1
            room_id = self.code_generator.generate()
            if self.rooms.exists(room_id):
                logger.debug(f"Room code {room_id} collides, regenerating")
                continue
            if self.rooms.create_if_absent(room_id):
                break
        logger.info(f"Room {room_id} created after {attempts} attempt(s)")
        return room_id

    def room_exists(self, room_id: str) -> bool:
        return self.rooms.exists(canonical_room_id(room_id))

    def get_room(self, room_id: str) -> dict:
        room = self.rooms.get_room(canonical_room_id(room_id))
        if not room:
            raise RoomNotFound(canonical_room_id(room_id))
        return room

    def require_room(self, room_id: str) -> str:
        """Return the canonical id of an existing room or raise RoomNotFound."""
        canonical = canonical_room_id(room_id)
        if not canonical or not self.rooms.exists(canonical):
            logger.warning(f"Room {canonical!r} not found")
            raise RoomNotFound(canonical)
        return canonical

    def snapshot(self, room_id: str) -> Dict[str, object]:
        """Full state of an existing room: every file and the live presence list."""
        return {
            "files": self.files.list_files(room_id),
            "users": self.presence.list_live_presence(room_id),
        }

    def join_room(self, room_id: str, user_name: str) -> Tuple[str, Dict[str, str], List[dict]]:
        """Returns the canonical room id with the room's files and live presence."""
        canonical = self.require_room(room_id)
        state = self.snapshot(canonical)
        logger.info(f"{user_name} joined room {canonical}: {len(state['files'])} files, {len(state['users'])} live users")
        return canonical, state["files"], state["users"]
