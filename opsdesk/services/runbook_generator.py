# opsdesk/services/runbook_generator.py
import datetime
import uuid
from typing import Dict, List, Optional, Sequence, Set, Tuple
from loguru import logger
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from opsdesk.core.config import settings
from opsdesk.core.errors import PersistenceFailure, PreconditionFailed
from opsdesk.models.sop_template import SopTemplate
from opsdesk.models.work_task import TaskSource, TaskStatus, TimeBlock, WorkTask
from opsdesk.schemas.runbook import GenerationResult, RangeGenerationResult, ResolvedAssignment
from opsdesk.schemas.work_task import ContentTaskPayload, OpsTaskPayload, SopTaskPayload, WorkTaskInDB, payload_kind_for
from opsdesk.services.assignment_resolver import AssignmentResolver
from opsdesk.services.generation_lock import GenerationLock
from opsdesk.services.schedule_rules import LegacyWeeklyRule, date_range, matches_frequency, time_block_for
from opsdesk.services.template_store import TemplateStore

SlotKey = Tuple[uuid.UUID, TimeBlock]

# Counters an ops task asks for on completion
OPS_DEFAULT_COUNTERS = ["inbound_count"]


async def list_tasks_for_day(db: AsyncSession, staff_id: uuid.UUID, day: datetime.date) -> List[WorkTask]:
    """All tasks (generated and manual) of a staff member on a day, unscheduled ones last."""
    result = await db.execute(
        select(WorkTask)
        .where(WorkTask.staff_id == staff_id, WorkTask.task_date == day)
        .order_by(
            WorkTask.scheduled_time.is_(None),
            WorkTask.scheduled_time,
            WorkTask.priority.desc(),
            WorkTask.created_at,
        )
    )
    return list(result.scalars().all())


def build_payload(template: SopTemplate) -> dict:
    kind = payload_kind_for(template.task_kind)
    steps = list(template.steps or [])
    if kind == "ops":
        payload = OpsTaskPayload(
            title=template.task_label,
            instruction=template.task_label,
            steps=steps,
            counters=list(OPS_DEFAULT_COUNTERS),
        )
    elif kind == "content":
        payload = ContentTaskPayload(title=template.task_label, instruction=template.task_label)
    else:
        payload = SopTaskPayload(title=template.task_label, instruction=template.task_label, steps=steps)
    return payload.model_dump(mode="json")


class RunbookGenerator:
    """
    Expands SOP templates into the concrete runbook of a staff member for a day.

    Generation is idempotent: a task is created at most once per
    (persona, time block, date), enforced by the uq_work_tasks_runbook_slot
    index. Each day is written in one transaction.
    """

    def __init__(self, db: AsyncSession, lock: Optional[GenerationLock] = None):
        self.db = db
        self.lock = lock
        self.resolver = AssignmentResolver(db)
        self.templates = TemplateStore(db)

    async def generate(self, staff_id: uuid.UUID, task_date: datetime.date) -> GenerationResult:
        if self.lock is None:
            return await self._generate(staff_id, task_date)
        async with self.lock.hold(staff_id, task_date):
            return await self._generate(staff_id, task_date)

    async def generate_range(self, staff_id: uuid.UUID, start: datetime.date, days: int) -> RangeGenerationResult:
        if not 1 <= days <= settings.RUNBOOK_MAX_RANGE_DAYS:
            raise PreconditionFailed(
                f"Cannot generate {days} days at once",
                f"Pick between 1 and {settings.RUNBOOK_MAX_RANGE_DAYS} days",
                days=days,
            )
        results = []
        for day in date_range(start, days):
            results.append(await self.generate(staff_id, day))
        created = sum(r.created for r in results)
        logger.info(f"Generated {created} tasks for staff {staff_id} over {days} days from {start}")
        return RangeGenerationResult(
            staff_id=staff_id,
            start_date=start,
            days=days,
            created=created,
            results=results,
        )

    async def _generate(self, staff_id: uuid.UUID, task_date: datetime.date) -> GenerationResult:
        # Two passes at most: if a concurrent request inserts the same slot first,
        # the unique index rejects our batch, and re-planning skips the slots it took.
        for attempt in (1, 2):
            resolved = await self.resolver.resolve(staff_id)
            if not resolved:
                logger.info(f"No personas assigned to staff {staff_id}, nothing to generate for {task_date}")
                return GenerationResult(
                    staff_id=staff_id,
                    date=task_date,
                    created=0,
                    tasks=[],
                    message="No personas assigned; nothing to generate",
                )

            planned = await self._plan(staff_id, task_date, resolved)
            if not planned:
                break
            try:
                self.db.add_all(planned)
                await self.db.commit()
                break
            except IntegrityError as e:
                await self.db.rollback()
                if attempt == 2:
                    logger.error(f"Runbook slots for staff {staff_id} on {task_date} still conflicting after re-plan: {e}")
                    raise PersistenceFailure("runbook generation", e) from e
                logger.warning(f"Concurrent generation detected for staff {staff_id} on {task_date}, re-planning")
            except SQLAlchemyError as e:
                await self.db.rollback()
                logger.error(f"Failed to persist runbook for staff {staff_id} on {task_date}: {e}")
                raise PersistenceFailure("runbook generation", e) from e

        tasks = await list_tasks_for_day(self.db, staff_id, task_date)
        created = len(planned)
        logger.info(f"Runbook for staff {staff_id} on {task_date}: {created} created, {len(tasks)} total")
        return GenerationResult(
            staff_id=staff_id,
            date=task_date,
            created=created,
            tasks=[WorkTaskInDB.from_orm_task(t) for t in tasks],
            message=f"Generated {created} new tasks" if created else "Runbook already up to date",
        )

    async def _taken_slots(self, persona_ids: Sequence[uuid.UUID], task_date: datetime.date) -> Set[SlotKey]:
        result = await self.db.execute(
            select(WorkTask.persona_id, WorkTask.time_block).where(
                WorkTask.source == TaskSource.RUNBOOK,
                WorkTask.task_date == task_date,
                WorkTask.persona_id.in_(persona_ids),
            )
        )
        return {(persona_id, block) for persona_id, block in result.all()}

    async def _plan(
        self, staff_id: uuid.UUID, task_date: datetime.date, resolved: List[ResolvedAssignment]
    ) -> List[WorkTask]:
        persona_ids = list(dict.fromkeys(r.persona_id for r in resolved))
        account_for: Dict[uuid.UUID, uuid.UUID] = {}
        for entry in resolved:
            if entry.account_id is not None:
                account_for.setdefault(entry.persona_id, entry.account_id)

        templates = await self.templates.list_enabled_for_personas(persona_ids)
        taken = await self._taken_slots(persona_ids, task_date)

        planned = []
        for template in templates:
            try:
                due = matches_frequency(template.frequency, template.weekly_days, task_date)
            except LegacyWeeklyRule:
                logger.warning(f"Skipping template {template.id} '{template.task_label}': weekly rule has no anchor day, migrate it")
                continue
            if not due:
                continue

            block = time_block_for(template.time_slot)
            targets = persona_ids if template.persona_id is None else [template.persona_id]
            for persona_id in targets:
                if persona_id not in persona_ids:
                    continue
                key = (persona_id, block)
                if key in taken:
                    continue
                taken.add(key)
                planned.append(
                    WorkTask(
                        persona_id=persona_id,
                        staff_id=staff_id,
                        account_id=account_for.get(persona_id),
                        template_id=template.id,
                        source=TaskSource.RUNBOOK,
                        task_kind=template.task_kind,
                        task_date=task_date,
                        scheduled_time=template.time_slot,
                        time_block=block,
                        priority=template.priority,
                        payload=build_payload(template),
                        status=TaskStatus.PENDING_PUBLISH,
                    )
                )
        return planned
