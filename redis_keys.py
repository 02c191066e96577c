REDIS_META_KEY = "room:meta:{slug}" # room id - reservation record for an open room

# **Example `room:meta:{id}` value (JSON string)**
# - `room_id` = `{roomId}`
# - `created_at` = ISO timestamp
# - `instance` = hostname of the server process owning the room's hub
