import datetime
import uuid
from contextlib import asynccontextmanager
from typing import AsyncIterator

import redis.asyncio as redis
from loguru import logger
from redis.asyncio.lock import Lock
from redis.exceptions import LockError

from opsdesk.core.errors import GenerationInProgress


class GenerationLock:
    """
    Per-(staff, date) mutex held in redis while a runbook batch is planned and written.

    Acquisition never waits: a second request for the same key gets
    GenerationInProgress and may retry, since generation is idempotent.
    """
    REDIS_KEY_PREFIX = "runbook:generate:"

    def __init__(self, redis_client: redis.Redis, ttl_seconds: int = 30):
        self.redis_client = redis_client
        self.ttl_seconds = ttl_seconds

    def key(self, staff_id: uuid.UUID, task_date: datetime.date) -> str:
        return f"{self.REDIS_KEY_PREFIX}{staff_id}:{task_date.isoformat()}"

    async def acquire(self, staff_id: uuid.UUID, task_date: datetime.date) -> Lock:
        lock = self.redis_client.lock(self.key(staff_id, task_date), timeout=self.ttl_seconds, blocking=False)
        if not await lock.acquire():
            logger.warning(f"Generation lock busy for staff {staff_id} on {task_date}")
            raise GenerationInProgress(staff_id, task_date)
        return lock

    async def release(self, lock: Lock):
        try:
            await lock.release()
        except LockError as e:
            # TTL expired and someone else may hold the key now; theirs is left alone
            logger.warning(f"Generation lock {lock.name} expired before release: {e}")

    @asynccontextmanager
    async def hold(self, staff_id: uuid.UUID, task_date: datetime.date) -> AsyncIterator[None]:
        lock = await self.acquire(staff_id, task_date)
        try:
            yield
        finally:
            await self.release(lock)
