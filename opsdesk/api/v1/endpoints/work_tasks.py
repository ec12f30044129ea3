# opsdesk/api/v1/endpoints/work_tasks.py
import uuid
from typing import List

from fastapi import APIRouter, Depends, status
from loguru import logger

from opsdesk.core.database import get_db, AsyncSession
from opsdesk.schemas.work_task import ManualTaskCreate, WorkTaskInDB, WorkTaskLogInDB, WorkTaskUpdate
from opsdesk.services.task_lifecycle import TaskLifecycleManager

router = APIRouter()


@router.post("/", response_model=WorkTaskInDB, status_code=status.HTTP_201_CREATED)
async def create_manual_task(
    task_data: ManualTaskCreate,
    db: AsyncSession = Depends(get_db),
):
    """Creates an ad-hoc task that is not produced by the runbook generator."""
    task = await TaskLifecycleManager(db).create_manual_task(task_data)
    return WorkTaskInDB.from_orm_task(task)


@router.get("/{task_id}", response_model=WorkTaskInDB)
async def get_task(task_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    task = await TaskLifecycleManager(db).get_task(task_id)
    return WorkTaskInDB.from_orm_task(task)


@router.put("/{task_id}", response_model=WorkTaskInDB)
async def update_task(
    task_id: uuid.UUID,
    update: WorkTaskUpdate,
    db: AsyncSession = Depends(get_db),
):
    """
    Saves a draft (post_url / notes) or, when status is completed or skipped,
    submits the task. Returns the task as stored after the write.
    """
    logger.info(f"Updating task {task_id} (status={update.status.value if update.status else 'draft'})")
    task = await TaskLifecycleManager(db).apply_update(task_id, update)
    return WorkTaskInDB.from_orm_task(task)


@router.get("/{task_id}/logs", response_model=List[WorkTaskLogInDB])
async def list_task_logs(task_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    logs = await TaskLifecycleManager(db).list_logs(task_id)
    return [WorkTaskLogInDB.model_validate(log) for log in logs]
