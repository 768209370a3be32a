REDIS_META_KEY = "room:meta:{slug}" # room id - hash with id, created_at
REDIS_FILES_KEY = "room:files:{slug}" # room id - hash filename -> {"content", "updated_at"}
REDIS_TOMBSTONES_KEY = "room:tombstones:{slug}" # room id - hash filename -> deleted_at
REDIS_PRESENCE_KEY = "room:presence:{slug}" # room id - hash user_name -> presence json

# **Example `room:presence:{id}` field value**
# - `user_name` = display name, unique per room
# - `user_color` = css colour string picked by the client
# - `editing_file` = filename or ""
# - `last_seen` = epoch seconds, refreshed on every upsert
