import os

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", 8000))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE", None)

# Room lifecycle
ROOM_ID_LENGTH = 6
ROOM_IDLE_SECONDS = float(os.getenv("ROOM_IDLE_SECONDS", 3600))
REAP_INTERVAL_SECONDS = float(os.getenv("REAP_INTERVAL_SECONDS", 60))
ROOM_ID_MAX_ATTEMPTS = int(os.getenv("ROOM_ID_MAX_ATTEMPTS", 1000))
SESSION_OUTBOX_SIZE = int(os.getenv("SESSION_OUTBOX_SIZE", 256))

# Identifier reservations: "memory" or "redis"
ROOM_BACKEND = os.getenv("ROOM_BACKEND", "memory").lower()

REDIS_HOST = os.getenv("REDIS_HOST", "localhost")
REDIS_PORT = int(os.getenv("REDIS_PORT", 6379))
REDIS_PASSWORD = os.getenv("REDIS_PASSWORD", None)

# Client side
BACKEND_URL = os.getenv("BACKEND_URL", "http://localhost:8000")
CREATE_TIMEOUT_SECONDS = float(os.getenv("CREATE_TIMEOUT_SECONDS", 10))
