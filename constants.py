import os

REDIS_HOST = os.getenv("REDIS_HOST", "localhost")
REDIS_PORT = int(os.getenv("REDIS_PORT", 6379))
REDIS_PASSWORD = os.getenv("REDIS_PASSWORD", None)
REDIS_DB = int(os.getenv("REDIS_DB", 0))

ROOM_CODE_PREFIX = "MONK-"
ROOM_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"  # no I, O, 0, 1
ROOM_CODE_LENGTH = 4

# A presence entry is live while now - last_seen < PRESENCE_TTL_SECONDS
PRESENCE_TTL_SECONDS = float(os.getenv("PRESENCE_TTL_SECONDS", 15))
HEARTBEAT_INTERVAL_SECONDS = float(os.getenv("HEARTBEAT_INTERVAL_SECONDS", 20))
TOMBSTONE_RETENTION_SECONDS = float(os.getenv("TOMBSTONE_RETENTION_SECONDS", 300))

# Pending events per push subscriber before it is dropped as too slow
SUBSCRIBER_QUEUE_SIZE = int(os.getenv("SUBSCRIBER_QUEUE_SIZE", 1000))
MAX_CONTENT_BYTES = int(os.getenv("MAX_CONTENT_BYTES", 5 * 1024 * 1024))
PRESENCE_SWEEP_INTERVAL_SECONDS = float(os.getenv("PRESENCE_SWEEP_INTERVAL_SECONDS", 60))
