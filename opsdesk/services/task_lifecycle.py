# opsdesk/services/task_lifecycle.py
import uuid
from typing import List, Optional
from loguru import logger
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from opsdesk.core.errors import InvalidStateTransition, NotFound, PersistenceFailure, PreconditionFailed
from opsdesk.models.account import Account
from opsdesk.models.common import utcnow
from opsdesk.models.persona import Persona
from opsdesk.models.staff import Staff
from opsdesk.models.work_task import TaskSource, TaskStatus, WorkTask, WorkTaskLog
from opsdesk.schemas.work_task import (
    CompletionSubmission,
    DraftUpdate,
    ManualTaskCreate,
    WorkTaskUpdate,
    parse_payload,
)
from opsdesk.services.schedule_rules import time_block_for


def logs_results(task: WorkTask) -> bool:
    """Ops and SOP checklist tasks keep an audit log; content tasks record the result on themselves."""
    return parse_payload(task.payload, task.task_kind).kind != "content"


class TaskLifecycleManager:
    """
    Moves work tasks from pending_publish to completed or skipped.

    Terminal states are final here: correcting a completed or skipped task is
    a data-store edit, not a lifecycle transition. Concurrent drafts on one
    task are last-writer-wins.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_task(self, task_id: uuid.UUID) -> WorkTask:
        task = await self.db.get(WorkTask, task_id)
        if task is None:
            raise NotFound("task", task_id)
        return task

    async def list_logs(self, task_id: uuid.UUID) -> List[WorkTaskLog]:
        await self.get_task(task_id)
        result = await self.db.execute(
            select(WorkTaskLog).where(WorkTaskLog.task_id == task_id).order_by(WorkTaskLog.created_at)
        )
        return list(result.scalars().all())

    def _require_pending(self, task: WorkTask, attempted: str):
        if task.status.is_terminal:
            logger.warning(f"Rejected {attempted} on task {task.id}: already {task.status.value}")
            raise InvalidStateTransition("task", task.id, task.status.value, attempted)

    async def _commit(self, task: WorkTask, operation: str):
        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to persist {operation} for task {task.id}: {e}")
            raise PersistenceFailure(operation, e) from e
        await self.db.refresh(task)

    async def submit_completion(
        self, task_id: uuid.UUID, submission: CompletionSubmission, staff_id: Optional[uuid.UUID] = None
    ) -> WorkTask:
        task = await self.get_task(task_id)
        self._require_pending(task, "complete")

        logged = logs_results(task)
        if not logged and (submission.evidence_url is not None or submission.counts):
            raise PreconditionFailed(
                "Content tasks do not record evidence or counters",
                "Submit the published post_url, or log this work on an ops task",
                task_id=task.id,
            )
        if logged:
            self.db.add(
                WorkTaskLog(
                    task_id=task.id,
                    staff_id=staff_id or task.staff_id,
                    result_status="done",
                    evidence_url=submission.evidence_url,
                    notes=submission.notes,
                    counts=dict(submission.counts),
                )
            )
        if submission.notes is not None:
            task.notes = submission.notes
        if submission.post_url is not None:
            task.post_url = submission.post_url
        task.status = TaskStatus.COMPLETED
        task.completed_at = utcnow()

        await self._commit(task, "task completion")
        logger.info(f"Task {task.id} ({task.task_kind}) completed by staff {staff_id or task.staff_id}")
        return task

    async def skip(
        self, task_id: uuid.UUID, reason: Optional[str] = None, staff_id: Optional[uuid.UUID] = None
    ) -> WorkTask:
        task = await self.get_task(task_id)
        self._require_pending(task, "skip")

        if logs_results(task):
            self.db.add(
                WorkTaskLog(
                    task_id=task.id,
                    staff_id=staff_id or task.staff_id,
                    result_status="skipped",
                    notes=reason,
                    counts={},
                )
            )
        if reason is not None:
            task.notes = reason
        task.status = TaskStatus.SKIPPED
        task.completed_at = utcnow()

        await self._commit(task, "task skip")
        logger.info(f"Task {task.id} skipped")
        return task

    async def save_draft(self, task_id: uuid.UUID, draft: DraftUpdate) -> WorkTask:
        task = await self.get_task(task_id)
        self._require_pending(task, "edit")

        changes = draft.model_dump(exclude_unset=True)
        for key, value in changes.items():
            setattr(task, key, value)

        await self._commit(task, "task draft")
        logger.debug(f"Saved draft on task {task.id}: {sorted(changes)}")
        return task

    async def apply_update(self, task_id: uuid.UUID, update: WorkTaskUpdate) -> WorkTask:
        """Dispatches PUT work_tasks/{id}: a terminal status submits, anything else is a draft save."""
        if update.status is TaskStatus.COMPLETED:
            submission = CompletionSubmission(
                post_url=update.post_url,
                notes=update.notes,
                evidence_url=update.evidence_url,
                counts=update.counts,
            )
            return await self.submit_completion(task_id, submission, staff_id=update.staff_id)
        if update.status is TaskStatus.SKIPPED:
            return await self.skip(task_id, reason=update.notes, staff_id=update.staff_id)

        fields = update.model_dump(include={"post_url", "notes"}, exclude_unset=True)
        return await self.save_draft(task_id, DraftUpdate(**fields))

    async def create_manual_task(self, data: ManualTaskCreate) -> WorkTask:
        """Ad-hoc task outside the runbook; several may share a persona, block and day."""
        if await self.db.get(Staff, data.staff_id) is None:
            raise NotFound("staff", data.staff_id)
        if await self.db.get(Persona, data.persona_id) is None:
            raise NotFound("persona", data.persona_id)
        if data.account_id is not None and await self.db.get(Account, data.account_id) is None:
            raise NotFound("account", data.account_id)

        time_block = data.time_block
        if time_block is None and data.scheduled_time is not None:
            time_block = time_block_for(data.scheduled_time)

        task = WorkTask(
            persona_id=data.persona_id,
            staff_id=data.staff_id,
            account_id=data.account_id,
            source=TaskSource.MANUAL,
            task_kind=data.task_kind,
            task_date=data.task_date,
            scheduled_time=data.scheduled_time,
            time_block=time_block,
            priority=data.priority,
            payload=data.payload.model_dump(mode="json"),
            status=TaskStatus.PENDING_PUBLISH,
        )
        self.db.add(task)
        await self._commit(task, "manual task")
        logger.info(f"Created manual task {task.id} for staff {data.staff_id}, persona {data.persona_id} on {data.task_date}")
        return task
