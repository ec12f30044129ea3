# opsdesk/api/v1/endpoints/accounts.py
import uuid

from fastapi import APIRouter, Depends

from opsdesk.core.database import get_db, AsyncSession
from opsdesk.schemas.account import AccountAssignRequest, AccountInDB, AvailablePersonas, BindPersonaRequest
from opsdesk.schemas.runbook import PersonaSummary
from opsdesk.services.onboarding import OnboardingStateMachine

router = APIRouter()


@router.get("/{account_id}", response_model=AccountInDB)
async def get_account(account_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    account = await OnboardingStateMachine(db).get_account(account_id)
    return AccountInDB.model_validate(account)


@router.post("/{account_id}/assign", response_model=AccountInDB)
async def assign_account(
    account_id: uuid.UUID,
    request: AccountAssignRequest,
    db: AsyncSession = Depends(get_db),
):
    """Assigns the account to a staff member; a first assignment moves onboarding to notified."""
    account = await OnboardingStateMachine(db).assign(account_id, request.staff_id)
    return AccountInDB.model_validate(account)


@router.post("/{account_id}/notify", response_model=AccountInDB)
async def notify_account(account_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    account = await OnboardingStateMachine(db).notify(account_id)
    return AccountInDB.model_validate(account)


@router.post("/{account_id}/start-binding", response_model=AccountInDB)
async def start_binding(account_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    account = await OnboardingStateMachine(db).start_binding(account_id)
    return AccountInDB.model_validate(account)


@router.post("/{account_id}/confirm-binding", response_model=AccountInDB)
async def confirm_binding(account_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    """Fails with 412 while the responsible staff member has no personas."""
    account = await OnboardingStateMachine(db).confirm_binding(account_id)
    return AccountInDB.model_validate(account)


@router.get("/{account_id}/personas", response_model=AvailablePersonas)
async def list_available_personas(account_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    machine = OnboardingStateMachine(db)
    account = await machine.get_account(account_id)
    personas = await machine.available_personas(account_id)
    return AvailablePersonas(
        account_id=account.id,
        owner_id=await machine.resolver.effective_owner(account),
        personas=[PersonaSummary(id=p.id, name=p.name) for p in personas],
    )


@router.post("/{account_id}/bind", response_model=AccountInDB)
async def bind_persona(
    account_id: uuid.UUID,
    request: BindPersonaRequest,
    db: AsyncSession = Depends(get_db),
):
    """Final onboarding step: binds the persona and makes the account schedulable."""
    account = await OnboardingStateMachine(db).bind_persona(account_id, request.persona_id)
    return AccountInDB.model_validate(account)
