# opsdesk/api/v1/endpoints/runbook.py
import datetime
import uuid
from typing import Optional

import redis.asyncio as redis
from fastapi import APIRouter, Depends, Query
from loguru import logger

from opsdesk.core.config import settings
from opsdesk.core.database import get_db, AsyncSession
from opsdesk.core.redis_client import get_optional_redis_client
from opsdesk.models.work_task import TimeBlock
from opsdesk.schemas.runbook import GenerateRequest, RangeGenerationResult, RunbookMatrix, RunbookToday
from opsdesk.services.generation_lock import GenerationLock
from opsdesk.services.runbook_generator import RunbookGenerator
from opsdesk.services.runbook_view import RunbookViewService

router = APIRouter()


async def get_generation_lock(
    redis_client: Optional[redis.Redis] = Depends(get_optional_redis_client),
) -> Optional[GenerationLock]:
    if redis_client is None:
        return None
    return GenerationLock(redis_client, ttl_seconds=settings.GENERATION_LOCK_TTL_SECONDS)


@router.get("/today", response_model=RunbookToday)
async def get_runbook_today(
    staff_id: uuid.UUID = Query(...),
    date: datetime.date = Query(...),
    db: AsyncSession = Depends(get_db),
):
    """Tasks of a staff member for a day plus the persona/account columns to lay them out in."""
    logger.info(f"Fetching runbook for staff {staff_id} on {date}")
    return await RunbookViewService(db).today(staff_id, date)


@router.get("/matrix", response_model=RunbookMatrix)
async def get_runbook_matrix(
    staff_id: uuid.UUID = Query(...),
    date: datetime.date = Query(...),
    current_block: Optional[TimeBlock] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    return await RunbookViewService(db).matrix(staff_id, date, current_block)


@router.post("/generate-daily", response_model=RangeGenerationResult)
async def generate_daily_runbook(
    request: GenerateRequest,
    db: AsyncSession = Depends(get_db),
    lock: Optional[GenerationLock] = Depends(get_generation_lock),
):
    """
    Expands templates into tasks for `days` consecutive days starting at `date`.
    Safe to call repeatedly: existing slots are never duplicated.
    """
    logger.info(f"Generating runbook for staff {request.staff_id} from {request.date} ({request.days} days)")
    return await RunbookGenerator(db, lock=lock).generate_range(request.staff_id, request.date, request.days)
