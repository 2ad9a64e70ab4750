import os

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", 3001))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE", None)

REDIS_HOST = os.getenv("REDIS_HOST", "localhost")
REDIS_PORT = int(os.getenv("REDIS_PORT", 6379))
REDIS_PASSWORD = os.getenv("REDIS_PASSWORD", None)

# REDIS_URL wins over the individual host/port/password settings when present
REDIS_URL = os.getenv("REDIS_URL", None)

CORS_ORIGINS = [origin.strip() for origin in os.getenv("CORS_ORIGINS", "*").split(",") if origin.strip()]

# Rooms are strictly two-player
MAX_MEMBERS = 2

# Advisory only, sent with game_started; sessions are never force-ended
SESSION_TIME_BUDGET_SECONDS = int(os.getenv("SESSION_TIME_BUDGET_SECONDS", 300))

ROOM_ID_BYTES = 4
CONNECTION_ID_BYTES = 4
ROOM_ID_ATTEMPTS = 10

SEND_QUEUE_SIZE = int(os.getenv("SEND_QUEUE_SIZE", 100))
SEND_TIMEOUT_SECONDS = float(os.getenv("SEND_TIMEOUT_SECONDS", 5))

REASON_OPPONENT_LEFT = "opponent_left"
REASON_YOU_LEFT = "you_left"
