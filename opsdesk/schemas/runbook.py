import datetime
import uuid
from typing import List, Optional
from pydantic import BaseModel, Field

from opsdesk.core.config import settings
from opsdesk.models.work_task import TimeBlock
from opsdesk.schemas.work_task import WorkTaskInDB


class ResolvedAssignment(BaseModel):
    persona_id: uuid.UUID
    account_id: Optional[uuid.UUID] = None


class PersonaSummary(BaseModel):
    id: uuid.UUID
    name: str


class AccountSummary(BaseModel):
    id: uuid.UUID
    platform: str
    account_name: str
    account_handle: Optional[str] = None


class AccountMapEntry(BaseModel):
    account_id: Optional[uuid.UUID] = None
    persona_id: uuid.UUID
    account: Optional[AccountSummary] = None
    persona: Optional[PersonaSummary] = None


class RunbookToday(BaseModel):
    tasks: List[WorkTaskInDB]
    accounts_map: List[AccountMapEntry]


class GenerateRequest(BaseModel):
    staff_id: uuid.UUID
    date: datetime.date
    days: int = Field(settings.RUNBOOK_DEFAULT_RANGE_DAYS, ge=1, description="Number of consecutive days starting at date")


class GenerationResult(BaseModel):
    staff_id: uuid.UUID
    date: datetime.date
    created: int
    tasks: List[WorkTaskInDB]
    message: str


class RangeGenerationResult(BaseModel):
    success: bool = True
    staff_id: uuid.UUID
    start_date: datetime.date
    days: int
    created: int
    results: List[GenerationResult]


class MatrixRow(BaseModel):
    time_block: TimeBlock
    cells: List[Optional[WorkTaskInDB]] = Field(..., description="One cell per column, in column order")


class RunbookMatrix(BaseModel):
    date: datetime.date
    columns: List[AccountMapEntry]
    rows: List[MatrixRow]
    current_block: Optional[TimeBlock] = None
    overdue_persona_ids: List[uuid.UUID] = Field(default_factory=list)
