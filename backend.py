import redis
import json
from typing import Any, Dict, List, Optional
from constants import REDIS_HOST, REDIS_PORT, REDIS_PASSWORD, REDIS_URL
from redis_keys import REDIS_ROOMS_KEY
from errors import PersistenceFailure
from logging_config import get_logger

logger = get_logger(__name__)


def create_redis_client() -> redis.Redis:
    # Constructing the client does not connect; the first command does
    if REDIS_URL:
        return redis.Redis.from_url(REDIS_URL, decode_responses=True)
    return redis.Redis(host=REDIS_HOST, port=REDIS_PORT, password=REDIS_PASSWORD, decode_responses=True)


class RedisBackend:
    def __init__(self, client: Optional[redis.Redis] = None):
        self.redis_client = client if client is not None else create_redis_client()
        logger.info(f"Initializing RedisBackend with connection to {REDIS_URL or f'{REDIS_HOST}:{REDIS_PORT}'}")

    def ping(self) -> bool:
        try:
            self.redis_client.ping()
            logger.info("Redis client connected successfully")
            return True
        except Exception as e:
            logger.error(f"Failed to connect to Redis: {e}", exc_info=True)
            return False

    def save_rooms(self, rooms: List[Dict[str, Any]]) -> None:
        """Overwrite the rooms snapshot with ``rooms``."""
        try:
            self.redis_client.set(REDIS_ROOMS_KEY, json.dumps(rooms))
        except (redis.RedisError, TypeError, ValueError) as e:
            raise PersistenceFailure(f"Error saving rooms to Redis: {e}") from e
        logger.debug(f"Saved {len(rooms)} rooms to Redis key {REDIS_ROOMS_KEY}")

    def load_rooms(self) -> Optional[List[Dict[str, Any]]]:
        """Return the stored rooms snapshot, or None when nothing was saved yet."""
        try:
            data = self.redis_client.get(REDIS_ROOMS_KEY)
        except redis.RedisError as e:
            raise PersistenceFailure(f"Error loading rooms from Redis: {e}") from e
        if not data:
            logger.debug(f"No rooms snapshot under Redis key {REDIS_ROOMS_KEY}")
            return None
        try:
            parsed = json.loads(data)
        except (json.JSONDecodeError, TypeError) as e:
            raise PersistenceFailure(f"Rooms snapshot is not valid JSON: {e}") from e
        if not isinstance(parsed, list):
            raise PersistenceFailure("Rooms snapshot is not a list")
        return parsed


redis_backend = RedisBackend()
