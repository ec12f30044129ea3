# opsdesk/services/assignment_resolver.py
import uuid
from typing import Dict, List, Optional, Sequence
from loguru import logger
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from opsdesk.core.errors import NotFound, PersistenceFailure
from opsdesk.models.account import Account, OnboardingStatus
from opsdesk.models.persona import Persona
from opsdesk.models.staff import Staff, StaffPersonaAssignment
from opsdesk.models.work_task import TaskSource, TaskStatus, WorkTask
from opsdesk.schemas.runbook import ResolvedAssignment


class AssignmentResolver:
    """
    Answers "which personas and accounts is this staff member responsible for".

    Ownership rule: when an account is bound to a persona that has an owner,
    the persona's owner is responsible for the account; otherwise the
    account's direct ``assigned_to`` applies.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def owned_persona_ids(self, staff_id: uuid.UUID) -> List[uuid.UUID]:
        result = await self.db.execute(
            select(StaffPersonaAssignment.persona_id)
            .where(StaffPersonaAssignment.staff_id == staff_id)
            .order_by(StaffPersonaAssignment.created_at, StaffPersonaAssignment.persona_id)
        )
        return list(result.scalars().all())

    async def owned_personas(self, staff_id: uuid.UUID) -> List[Persona]:
        result = await self.db.execute(
            select(Persona)
            .join(StaffPersonaAssignment, StaffPersonaAssignment.persona_id == Persona.id)
            .where(StaffPersonaAssignment.staff_id == staff_id)
            .order_by(Persona.name)
        )
        return list(result.scalars().all())

    async def persona_owner(self, persona_id: uuid.UUID) -> Optional[uuid.UUID]:
        result = await self.db.execute(
            select(StaffPersonaAssignment.staff_id).where(StaffPersonaAssignment.persona_id == persona_id)
        )
        return result.scalar_one_or_none()

    async def effective_owner(self, account: Account) -> Optional[uuid.UUID]:
        if account.persona_id is not None:
            owner = await self.persona_owner(account.persona_id)
            if owner is not None:
                return owner
        return account.assigned_to

    async def resolve(self, staff_id: uuid.UUID) -> List[ResolvedAssignment]:
        """
        Returns one entry per (owned persona, completed account bound to it).
        Owned personas without a completed account appear once with account_id=None.
        Unknown staff simply owns nothing.
        """
        persona_ids = await self.owned_persona_ids(staff_id)
        if not persona_ids:
            logger.debug(f"Staff {staff_id} owns no personas")
            return []

        result = await self.db.execute(
            select(Account)
            .where(
                Account.persona_id.in_(persona_ids),
                Account.onboarding_status == OnboardingStatus.COMPLETED,
            )
            .order_by(Account.created_at, Account.id)
        )
        accounts_by_persona: Dict[uuid.UUID, List[uuid.UUID]] = {}
        for account in result.scalars().all():
            accounts_by_persona.setdefault(account.persona_id, []).append(account.id)

        resolved = []
        for persona_id in persona_ids:
            account_ids = accounts_by_persona.get(persona_id)
            if not account_ids:
                resolved.append(ResolvedAssignment(persona_id=persona_id, account_id=None))
                continue
            resolved.extend(ResolvedAssignment(persona_id=persona_id, account_id=a) for a in account_ids)

        logger.debug(f"Resolved {len(resolved)} persona/account pairs for staff {staff_id}")
        return resolved

    async def assign_personas(self, staff_id: uuid.UUID, persona_ids: Sequence[uuid.UUID]) -> List[uuid.UUID]:
        """
        Replaces the staff member's persona set with persona_ids.

        Personas currently owned by someone else move to this staff member.
        Accounts and pending runbook tasks follow their persona's owner.
        Returns the removed persona ids.
        """
        if await self.db.get(Staff, staff_id) is None:
            raise NotFound("staff", staff_id)

        wanted = list(dict.fromkeys(persona_ids))
        if wanted:
            result = await self.db.execute(select(Persona.id).where(Persona.id.in_(wanted)))
            known = set(result.scalars().all())
            for persona_id in wanted:
                if persona_id not in known:
                    raise NotFound("persona", persona_id)

        current = await self.owned_persona_ids(staff_id)
        removed = [p for p in current if p not in wanted]

        try:
            if removed:
                await self.db.execute(
                    update(Account)
                    .where(Account.persona_id.in_(removed), Account.assigned_to == staff_id)
                    .values(assigned_to=None)
                )

            existing = await self.db.execute(
                select(StaffPersonaAssignment).where(
                    (StaffPersonaAssignment.staff_id == staff_id)
                    | StaffPersonaAssignment.persona_id.in_(wanted)
                )
            )
            for assignment in existing.scalars().all():
                await self.db.delete(assignment)
            await self.db.flush()

            for persona_id in wanted:
                self.db.add(StaffPersonaAssignment(staff_id=staff_id, persona_id=persona_id))

            if wanted:
                await self.db.execute(
                    update(Account).where(Account.persona_id.in_(wanted)).values(assigned_to=staff_id)
                )
                # Open runbook work moves with the persona; finished tasks stay with whoever did them
                await self.db.execute(
                    update(WorkTask)
                    .where(
                        WorkTask.persona_id.in_(wanted),
                        WorkTask.source == TaskSource.RUNBOOK,
                        WorkTask.status == TaskStatus.PENDING_PUBLISH,
                        WorkTask.staff_id != staff_id,
                    )
                    .values(staff_id=staff_id)
                )
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to update persona assignments for staff {staff_id}: {e}")
            raise PersistenceFailure("persona assignment", e) from e

        logger.info(f"Staff {staff_id} now owns personas {[str(p) for p in wanted]}, removed {[str(p) for p in removed]}")
        return removed
