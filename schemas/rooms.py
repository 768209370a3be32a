from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing import Dict, List, Optional


class CamelModel(BaseModel):
    # Clients speak camelCase (userName, editingFile); Python code uses snake_case
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CreateRoomResponse(CamelModel):
    room_id: str

class RoomResponse(CamelModel):
    room_id: str

class JoinRoomRequest(CamelModel):
    user_name: str = Field(min_length=1)

class PresenceUser(CamelModel):
    user_name: str
    user_color: str = ""
    editing_file: str = ""

class JoinRoomResponse(CamelModel):
    room_id: str
    files: Dict[str, str]
    users: List[PresenceUser]

class UpsertFileRequest(CamelModel):
    filename: str = Field(min_length=1)
    content: str = ""
    user_name: Optional[str] = None

class DeleteFileRequest(CamelModel):
    user_name: Optional[str] = None

class RenameFileRequest(CamelModel):
    new_name: str = Field(min_length=1)
    user_name: Optional[str] = None

class PresenceRequest(CamelModel):
    user_name: str = Field(min_length=1)
    user_color: str = ""
    editing_file: str = ""

class ChangedFile(CamelModel):
    filename: str
    content: str

class PollResponse(CamelModel):
    files: List[ChangedFile]
    deleted: List[str]
    users: List[PresenceUser]
    server_time: float

class OkResponse(CamelModel):
    ok: bool = True


# Frames a client may send over the WebSocket; "type" selects the model
class FileUpdateFrame(CamelModel):
    filename: str = Field(min_length=1)
    content: str = ""

class FileDeleteFrame(CamelModel):
    filename: str = Field(min_length=1)

class FileRenameFrame(CamelModel):
    old_name: str = Field(min_length=1)
    new_name: str = Field(min_length=1)

class PresenceFrame(CamelModel):
    user_color: str = ""
    editing_file: str = ""
