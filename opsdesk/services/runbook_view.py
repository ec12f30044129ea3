# opsdesk/services/runbook_view.py
import datetime
import uuid
from typing import Dict, List, Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from opsdesk.models.account import Account
from opsdesk.models.persona import Persona
from opsdesk.models.work_task import TaskStatus, TimeBlock
from opsdesk.schemas.runbook import (
    AccountMapEntry,
    AccountSummary,
    MatrixRow,
    PersonaSummary,
    RunbookMatrix,
    RunbookToday,
)
from opsdesk.schemas.work_task import WorkTaskInDB
from opsdesk.services.assignment_resolver import AssignmentResolver
from opsdesk.services.runbook_generator import list_tasks_for_day
from opsdesk.services.schedule_rules import TIME_BLOCK_ORDER, block_index


class RunbookViewService:
    """Read-only projections of a staff member's day for the dashboard."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.resolver = AssignmentResolver(db)

    async def _summaries(self, persona_ids, account_ids):
        personas: Dict[uuid.UUID, Persona] = {}
        accounts: Dict[uuid.UUID, Account] = {}
        if persona_ids:
            result = await self.db.execute(select(Persona).where(Persona.id.in_(persona_ids)))
            personas = {p.id: p for p in result.scalars().all()}
        if account_ids:
            result = await self.db.execute(select(Account).where(Account.id.in_(account_ids)))
            accounts = {a.id: a for a in result.scalars().all()}
        return personas, accounts

    async def today(self, staff_id: uuid.UUID, day: datetime.date) -> RunbookToday:
        tasks = await list_tasks_for_day(self.db, staff_id, day)
        resolved = await self.resolver.resolve(staff_id)

        pairs = [(r.persona_id, r.account_id) for r in resolved]
        # Personas that only show up through tasks (manual work) still get a column
        known = {persona_id for persona_id, _ in pairs}
        for task in tasks:
            if task.persona_id not in known:
                pairs.append((task.persona_id, task.account_id))
                known.add(task.persona_id)

        personas, accounts = await self._summaries(
            {p for p, _ in pairs}, {a for _, a in pairs if a is not None}
        )

        accounts_map = []
        for persona_id, account_id in pairs:
            persona = personas.get(persona_id)
            account = accounts.get(account_id) if account_id is not None else None
            accounts_map.append(
                AccountMapEntry(
                    account_id=account_id,
                    persona_id=persona_id,
                    persona=PersonaSummary(id=persona.id, name=persona.name) if persona else None,
                    account=AccountSummary(
                        id=account.id,
                        platform=account.platform,
                        account_name=account.account_name,
                        account_handle=account.account_handle,
                    )
                    if account
                    else None,
                )
            )

        return RunbookToday(tasks=[WorkTaskInDB.from_orm_task(t) for t in tasks], accounts_map=accounts_map)

    async def matrix(
        self, staff_id: uuid.UUID, day: datetime.date, current_block: Optional[TimeBlock] = None
    ) -> RunbookMatrix:
        """Lays the day out as time block rows by persona columns."""
        runbook = await self.today(staff_id, day)

        # One column per persona, even when it runs several accounts
        columns: List[AccountMapEntry] = []
        seen = set()
        for entry in runbook.accounts_map:
            if entry.persona_id not in seen:
                seen.add(entry.persona_id)
                columns.append(entry)

        rows = []
        for block in TIME_BLOCK_ORDER:
            cells = []
            for column in columns:
                cell = next(
                    (t for t in runbook.tasks if t.time_block is block and t.persona_id == column.persona_id),
                    None,
                )
                cells.append(cell)
            rows.append(MatrixRow(time_block=block, cells=cells))

        overdue = []
        current_index = block_index(current_block)
        if current_index > 0:
            for column in columns:
                if any(
                    t.persona_id == column.persona_id
                    and t.status is TaskStatus.PENDING_PUBLISH
                    and 0 <= block_index(t.time_block) < current_index
                    for t in runbook.tasks
                ):
                    overdue.append(column.persona_id)

        return RunbookMatrix(
            date=day,
            columns=columns,
            rows=rows,
            current_block=current_block,
            overdue_persona_ids=overdue,
        )
