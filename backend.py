## Redis Schema / Keys


# **Key naming conventions**
# - `room:meta:{roomId}` - hash, one per room, never expires
# - `room:files:{roomId}` - hash filename -> json {"content", "updated_at"}
# - `room:tombstones:{roomId}` - hash filename -> deleted_at, short retention
# - `room:presence:{roomId}` - hash user_name -> json presence entry


# **Writes**
# - Every file write is a single HSET of the whole record, so content and
#   updated_at of one record always come from the same call (last write wins).
# - Rename is the only read-modify-write; it runs as WATCH/MULTI on the
#   room's file hash.


# **Presence**
# - Liveness is computed when reading (now - last_seen < TTL); expired
#   entries linger until removed or swept.
import json
from typing import Callable, Dict, List, Optional

import redis

from constants import REDIS_DB, REDIS_HOST, REDIS_PASSWORD, REDIS_PORT, PRESENCE_TTL_SECONDS, TOMBSTONE_RETENTION_SECONDS
from redis_keys import REDIS_META_KEY, REDIS_FILES_KEY, REDIS_TOMBSTONES_KEY, REDIS_PRESENCE_KEY
from clock import is_live
from exceptions import FilenameConflict
from logging_config import get_logger

logger = get_logger(__name__)


def create_redis_client() -> redis.Redis:
    try:
        client = redis.Redis(host=REDIS_HOST, port=REDIS_PORT, db=REDIS_DB, password=REDIS_PASSWORD, decode_responses=True)
        # Test connection
        client.ping()
        logger.info(f"Redis client connected successfully to {REDIS_HOST}:{REDIS_PORT}")
        return client
    except Exception as e:
        logger.error(f"Failed to connect to Redis at {REDIS_HOST}:{REDIS_PORT}: {e}", exc_info=True)
        raise


def _loads(raw: Optional[str]) -> Optional[dict]:
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        logger.warning(f"Discarding undecodable record: {raw!r:.80}")
        return None


class RoomStore:
    def __init__(self, redis_client: redis.Redis, clock: Callable[[], float]):
        self.redis_client = redis_client
        self.clock = clock

    def create_if_absent(self, room_id: str) -> bool:
        """Claim ``room_id``; returns False when a room with that id already exists."""
        key = REDIS_META_KEY.format(slug=room_id)
        created = self.redis_client.hsetnx(key, "id", room_id)
        if not created:
            logger.debug(f"Room id {room_id} already taken")
            return False
        self.redis_client.hset(key, "created_at", str(self.clock()))
        logger.debug(f"Room {room_id} created with key: {key}")
        return True

    def get_room(self, room_id: str) -> Optional[dict]:
        room_data = self.redis_client.hgetall(REDIS_META_KEY.format(slug=room_id))
        if not room_data:
            logger.debug(f"Room {room_id} not found in Redis")
            return None
        return {
            "id": room_data.get("id", room_id),
            "created_at": float(room_data.get("created_at") or 0),
        }

    def exists(self, room_id: str) -> bool:
        return bool(self.redis_client.exists(REDIS_META_KEY.format(slug=room_id)))


class FileStore:
    def __init__(self, redis_client: redis.Redis, clock: Callable[[], float],
                 tombstone_retention: float = TOMBSTONE_RETENTION_SECONDS):
        self.redis_client = redis_client
        self.clock = clock
        self.tombstone_retention = tombstone_retention

    def _records(self, room_id: str) -> Dict[str, dict]:
        raw = self.redis_client.hgetall(REDIS_FILES_KEY.format(slug=room_id))
        records = {}
        for filename, value in raw.items():
            record = _loads(value)
            if record is not None:
                records[filename] = record
        return records

    def list_files(self, room_id: str) -> Dict[str, str]:
        return {filename: record.get("content", "") for filename, record in self._records(room_id).items()}

    def list_changed_since(self, room_id: str, since: float) -> List[dict]:
        changed = [
            (record.get("updated_at", 0), filename, record.get("content", ""))
            for filename, record in self._records(room_id).items()
            if record.get("updated_at", 0) > since
        ]
        changed.sort()
        logger.debug(f"Room {room_id} has {len(changed)} files changed since {since}")
        return [{"filename": filename, "content": content} for _, filename, content in changed]

    def list_deleted_since(self, room_id: str, since: float) -> List[str]:
        """Filenames deleted (or renamed away) after ``since`` that do not exist again."""
        tombstones = self.redis_client.hgetall(REDIS_TOMBSTONES_KEY.format(slug=room_id))
        if not tombstones:
            return []
        current = set(self.redis_client.hkeys(REDIS_FILES_KEY.format(slug=room_id)))
        deleted = [
            (float(deleted_at), filename)
            for filename, deleted_at in tombstones.items()
            if float(deleted_at) > since and filename not in current
        ]
        deleted.sort()
        return [filename for _, filename in deleted]

    def upsert_file(self, room_id: str, filename: str, content: str) -> bool:
        """Create or overwrite; returns True when the file did not exist before."""
        record = json.dumps({"content": content, "updated_at": self.clock()})
        pipe = self.redis_client.pipeline()
        pipe.hset(REDIS_FILES_KEY.format(slug=room_id), filename, record)
        pipe.hdel(REDIS_TOMBSTONES_KEY.format(slug=room_id), filename)
        created, _ = pipe.execute()
        logger.debug(f"Upserted {filename} in room {room_id} ({len(content)} chars, created={bool(created)})")
        return bool(created)

    def delete_file(self, room_id: str, filename: str) -> bool:
        removed = self.redis_client.hdel(REDIS_FILES_KEY.format(slug=room_id), filename)
        if not removed:
            logger.debug(f"Delete of missing file {filename} in room {room_id} is a no-op")
            return False
        now = self.clock()
        self.redis_client.hset(REDIS_TOMBSTONES_KEY.format(slug=room_id), filename, str(now))
        self._prune_tombstones(room_id, now)
        logger.debug(f"Deleted {filename} from room {room_id}")
        return True

    def rename_file(self, room_id: str, old_name: str, new_name: str) -> bool:
        """Move ``old_name`` to ``new_name``.

        Returns False when ``old_name`` does not exist (zero rows affected).
        Raises FilenameConflict when ``new_name`` is already taken in the room.
        """
        files_key = REDIS_FILES_KEY.format(slug=room_id)
        tombstones_key = REDIS_TOMBSTONES_KEY.format(slug=room_id)

        if old_name == new_name:
            return bool(self.redis_client.hexists(files_key, old_name))

        def move(pipe) -> bool:
            record = _loads(pipe.hget(files_key, old_name))
            if record is None:
                return False
            if pipe.hexists(files_key, new_name):
                raise FilenameConflict(room_id, new_name)
            now = self.clock()
            record["updated_at"] = now
            pipe.multi()
            pipe.hdel(files_key, old_name)
            pipe.hset(files_key, new_name, json.dumps(record))
            pipe.hdel(tombstones_key, new_name)
            pipe.hset(tombstones_key, old_name, str(now))
            return True

        moved = self.redis_client.transaction(move, files_key, value_from_callable=True)
        if moved:
            self._prune_tombstones(room_id, self.clock())
            logger.debug(f"Renamed {old_name} -> {new_name} in room {room_id}")
        else:
            logger.debug(f"Rename of missing file {old_name} in room {room_id} affected zero rows")
        return moved

    def _prune_tombstones(self, room_id: str, now: float) -> None:
        key = REDIS_TOMBSTONES_KEY.format(slug=room_id)
        stale = [
            filename for filename, deleted_at in self.redis_client.hgetall(key).items()
            if now - float(deleted_at) > self.tombstone_retention
        ]
        if stale:
            self.redis_client.hdel(key, *stale)
            logger.debug(f"Pruned {len(stale)} tombstones in room {room_id}")


class PresenceTracker:
    def __init__(self, redis_client: redis.Redis, clock: Callable[[], float], ttl: float = PRESENCE_TTL_SECONDS):
        self.redis_client = redis_client
        self.clock = clock
        self.ttl = ttl

    def upsert_presence(self, room_id: str, user_name: str, user_color: str, editing_file: str = "") -> None:
        entry = {
            "user_name": user_name,
            "user_color": user_color,
            "editing_file": editing_file or "",
            "last_seen": self.clock(),
        }
        self.redis_client.hset(REDIS_PRESENCE_KEY.format(slug=room_id), user_name, json.dumps(entry))
        logger.debug(f"Presence refreshed for {user_name} in room {room_id} (editing {entry['editing_file']!r})")

    def _entries(self, room_id: str) -> List[dict]:
        raw = self.redis_client.hgetall(REDIS_PRESENCE_KEY.format(slug=room_id))
        return [entry for entry in (_loads(value) for value in raw.values()) if entry is not None]

    def list_live_presence(self, room_id: str) -> List[dict]:
        now = self.clock()
        live = [
            {
                "userName": entry["user_name"],
                "userColor": entry.get("user_color", ""),
                "editingFile": entry.get("editing_file", ""),
            }
            for entry in self._entries(room_id)
            if is_live(now, entry.get("last_seen", 0), self.ttl)
        ]
        live.sort(key=lambda user: user["userName"])
        return live

    def remove_presence(self, room_id: str, user_name: str) -> bool:
        removed = self.redis_client.hdel(REDIS_PRESENCE_KEY.format(slug=room_id), user_name)
        logger.debug(f"Presence removed for {user_name} in room {room_id}: {bool(removed)}")
        return bool(removed)

    def sweep_expired(self, room_id: str) -> int:
        """Delete expired entries. Readers already ignore them; this only frees storage."""
        now = self.clock()
        expired = [
            entry["user_name"] for entry in self._entries(room_id)
            if not is_live(now, entry.get("last_seen", 0), self.ttl)
        ]
        if expired:
            self.redis_client.hdel(REDIS_PRESENCE_KEY.format(slug=room_id), *expired)
            logger.info(f"Swept {len(expired)} expired presence entries from room {room_id}")
        return len(expired)

    def sweep_all(self) -> int:
        swept = 0
        prefix = REDIS_PRESENCE_KEY.format(slug="")
        for key in self.redis_client.scan_iter(match=REDIS_PRESENCE_KEY.format(slug="*")):
            swept += self.sweep_expired(key[len(prefix):])
        return swept
