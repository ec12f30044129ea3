from typing import Optional
import redis.asyncio as redis
from opsdesk.core.config import settings
from loguru import logger

_redis_client: Optional[redis.Redis] = None


async def get_optional_redis_client() -> Optional[redis.Redis]:
    """Redis is optional: without it generation relies on the unique index alone."""
    if _redis_client is None:
        logger.warning("Redis client not initialized, generation lock disabled")
    return _redis_client


async def init_redis_client():
    global _redis_client
    try:
        _redis_client = redis.Redis(
            host=settings.REDIS_HOST,
            port=settings.REDIS_PORT,
            db=settings.REDIS_DB,
            decode_responses=True,
        )
        await _redis_client.ping()
        logger.info("Redis client succesfully initialized and connected")
    except Exception as e:
        logger.error(f"Failed to connect to redis :{e}")
        _redis_client = None


async def close_redis_client():
    global _redis_client
    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None
        logger.info("Redis connection is closed")
