class SyncError(Exception):
    """Base class for errors surfaced to callers of the sync core."""


class RoomNotFound(SyncError):
    def __init__(self, room_id: str):
        super().__init__(f"Room {room_id} not found")
        self.room_id = room_id


class FilenameConflict(SyncError):
    def __init__(self, room_id: str, filename: str):
        super().__init__(f"File {filename} already exists in room {room_id}")
        self.room_id = room_id
        self.filename = filename


class ValidationGap(SyncError):
    """A required field (filename, user name) is missing or malformed."""

    def __init__(self, field: str, message: str = "is required"):
        super().__init__(f"{field} {message}")
        self.field = field
