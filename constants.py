import os

REDIS_HOST = os.getenv("REDIS_HOST", "localhost")
REDIS_PORT = int(os.getenv("REDIS_PORT", 6379))
REDIS_PASSWORD = os.getenv("REDIS_PASSWORD", None)

# Reconciler tick interval
SYNC_INTERVAL_MS = int(os.getenv("SYNC_INTERVAL_MS", 2000))

ROOM_ID_LENGTH = 6
ROOM_ID_MAX_ATTEMPTS = int(os.getenv("ROOM_ID_MAX_ATTEMPTS", 10))

MIN_PLAYERS = 2
MAX_PLAYERS = 20
DEFAULT_MAX_PLAYERS = int(os.getenv("DEFAULT_MAX_PLAYERS", 4))
