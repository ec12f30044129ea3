import datetime
import uuid
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field

from opsdesk.models.account import OnboardingStatus
from opsdesk.schemas.runbook import PersonaSummary


class AccountInDB(BaseModel):
    id: uuid.UUID
    platform: str
    account_name: str
    account_handle: Optional[str] = None
    persona_id: Optional[uuid.UUID] = None
    assigned_to: Optional[uuid.UUID] = None
    onboarding_status: OnboardingStatus
    created_at: Optional[datetime.datetime] = None

    model_config = ConfigDict(from_attributes=True)


class AccountAssignRequest(BaseModel):
    staff_id: Optional[uuid.UUID] = Field(None, description="NULL unassigns the account")


class BindPersonaRequest(BaseModel):
    persona_id: uuid.UUID


class AvailablePersonas(BaseModel):
    account_id: uuid.UUID
    owner_id: Optional[uuid.UUID] = None
    personas: List[PersonaSummary]


class StaffPersonasRequest(BaseModel):
    persona_ids: List[uuid.UUID]


class StaffPersonasResponse(BaseModel):
    staff_id: uuid.UUID
    persona_ids: List[uuid.UUID]
    removed_persona_ids: List[uuid.UUID]
