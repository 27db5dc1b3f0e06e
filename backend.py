import redis
from typing import Optional
from constants import REDIS_HOST, REDIS_PORT, REDIS_PASSWORD
from exceptions import PersistenceError
from logging_config import get_logger

logger = get_logger(__name__)


def create_redis_client() -> redis.Redis:
    try:
        redis_client = redis.Redis(host=REDIS_HOST, port=REDIS_PORT, password=REDIS_PASSWORD, decode_responses=True)
        # Test connection
        redis_client.ping()
        logger.info(f"Redis client connected successfully to {REDIS_HOST}:{REDIS_PORT}")
    except Exception as e:
        logger.error(f"Failed to connect to Redis at {REDIS_HOST}:{REDIS_PORT}: {e}", exc_info=True)
        raise
    return redis_client


class RedisBackend:
    """Synchronous key/value persistence adapter over plain Redis string keys.

    The client must be created with ``decode_responses=True`` so reads return text.
    """

    def __init__(self, redis_client: redis.Redis):
        self.redis_client = redis_client
        logger.info("Initializing RedisBackend")

    def read(self, key: str) -> Optional[str]:
        logger.debug(f"Reading key {key}")
        try:
            value = self.redis_client.get(key)
        except redis.RedisError as e:
            raise PersistenceError(key, e) from e
        if value is None:
            logger.debug(f"Key {key} not found in Redis")
        return value

    def write(self, key: str, value: str):
        logger.debug(f"Writing key {key} ({len(value)} chars)")
        try:
            self.redis_client.set(key, value)
        except redis.RedisError as e:
            raise PersistenceError(key, e) from e
