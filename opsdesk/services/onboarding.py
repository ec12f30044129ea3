"""
Account onboarding: binding a freshly created platform account to a persona.

    assigned --notify--> notified --start_binding--> binding
             --confirm_binding--> setting_persona --bind_persona--> completed

Every step is an explicit staff action and moves strictly forward. Only
completed accounts are visible to the runbook, so bind_persona is what makes
an account schedulable.
"""
import uuid
from typing import List, Optional
from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from opsdesk.core.errors import InvalidStateTransition, NotFound, PersistenceFailure, PreconditionFailed
from opsdesk.models.account import Account, OnboardingStatus
from opsdesk.models.persona import Persona
from opsdesk.models.staff import Staff
from opsdesk.services.assignment_resolver import AssignmentResolver


class OnboardingStateMachine:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.resolver = AssignmentResolver(db)

    async def get_account(self, account_id: uuid.UUID) -> Account:
        account = await self.db.get(Account, account_id)
        if account is None:
            raise NotFound("account", account_id)
        return account

    async def _commit(self, account: Account, operation: str):
        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to persist {operation} for account {account.id}: {e}")
            raise PersistenceFailure(operation, e) from e
        await self.db.refresh(account)

    def _require_state(self, account: Account, expected: OnboardingStatus, attempted: str):
        if account.onboarding_status is not expected:
            logger.warning(
                f"Rejected {attempted} on account {account.id}: status is {account.onboarding_status.value}, "
                f"needs {expected.value}"
            )
            raise InvalidStateTransition("account", account.id, account.onboarding_status.value, attempted)

    async def _require_owner(self, account: Account) -> uuid.UUID:
        owner = await self.resolver.effective_owner(account)
        if owner is None:
            raise PreconditionFailed(
                "Account has no responsible staff member",
                "Assign the account to a staff member first",
                account_id=account.id,
            )
        return owner

    async def _advance(self, account: Account, target: OnboardingStatus, operation: str) -> Account:
        previous = account.onboarding_status
        account.onboarding_status = target
        await self._commit(account, operation)
        logger.info(f"Account {account.id} onboarding {previous.value} -> {target.value}")
        return account

    async def assign(self, account_id: uuid.UUID, staff_id: Optional[uuid.UUID]) -> Account:
        """
        Sets the account's direct assignee. If the account is bound to an owned
        persona the persona's owner wins. A first assignment fires notify.
        """
        account = await self.get_account(account_id)
        if staff_id is not None and await self.db.get(Staff, staff_id) is None:
            raise NotFound("staff", staff_id)

        owner = staff_id
        if account.persona_id is not None:
            persona_owner = await self.resolver.persona_owner(account.persona_id)
            if persona_owner is not None:
                if staff_id is not None and persona_owner != staff_id:
                    logger.info(
                        f"Account {account.id} follows persona {account.persona_id}: "
                        f"assigned to {persona_owner} instead of {staff_id}"
                    )
                owner = persona_owner

        previous = account.assigned_to
        account.assigned_to = owner
        await self._commit(account, "account assignment")
        logger.info(f"Account {account.id} assigned_to {previous} -> {owner}")

        if owner is not None and account.onboarding_status is OnboardingStatus.ASSIGNED:
            return await self.notify(account.id)
        return account

    async def notify(self, account_id: uuid.UUID) -> Account:
        account = await self.get_account(account_id)
        self._require_state(account, OnboardingStatus.ASSIGNED, "notify")
        owner = await self._require_owner(account)
        logger.info(f"Notifying staff {owner} about account {account.id} ({account.platform})")
        return await self._advance(account, OnboardingStatus.NOTIFIED, "onboarding notify")

    async def start_binding(self, account_id: uuid.UUID) -> Account:
        # Platform connection is a confirmation step only, no OAuth round trip
        account = await self.get_account(account_id)
        self._require_state(account, OnboardingStatus.NOTIFIED, "start binding")
        await self._require_owner(account)
        return await self._advance(account, OnboardingStatus.BINDING, "onboarding start binding")

    async def confirm_binding(self, account_id: uuid.UUID) -> Account:
        account = await self.get_account(account_id)
        self._require_state(account, OnboardingStatus.BINDING, "confirm binding")
        owner = await self._require_owner(account)

        if not await self.resolver.owned_persona_ids(owner):
            logger.warning(f"Account {account.id} blocked at binding: staff {owner} has no personas")
            raise PreconditionFailed(
                "Staff member has no personas assigned",
                "Assign a persona to this staff member first",
                staff_id=owner,
                account_id=account.id,
            )
        return await self._advance(account, OnboardingStatus.SETTING_PERSONA, "onboarding confirm binding")

    async def available_personas(self, account_id: uuid.UUID) -> List[Persona]:
        """Personas the account may be bound to. Empty means the UI shows the empty state."""
        account = await self.get_account(account_id)
        owner = await self.resolver.effective_owner(account)
        if owner is None:
            return []
        return await self.resolver.owned_personas(owner)

    async def bind_persona(self, account_id: uuid.UUID, persona_id: Optional[uuid.UUID]) -> Account:
        account = await self.get_account(account_id)
        self._require_state(account, OnboardingStatus.SETTING_PERSONA, "bind persona")
        if persona_id is None:
            raise PreconditionFailed("No persona selected", "Select one of your personas", account_id=account.id)
        if await self.db.get(Persona, persona_id) is None:
            raise NotFound("persona", persona_id)

        owner = await self._require_owner(account)
        if persona_id not in await self.resolver.owned_persona_ids(owner):
            raise PreconditionFailed(
                "Persona is not assigned to the account's staff member",
                "Select one of your assigned personas",
                staff_id=owner,
                persona_id=persona_id,
            )

        account.persona_id = persona_id
        account.assigned_to = owner
        return await self._advance(account, OnboardingStatus.COMPLETED, "onboarding bind persona")
