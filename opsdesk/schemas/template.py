import datetime
import uuid
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field, model_validator

from opsdesk.models.common import DayOfWeek, Priority, TimeSlot
from opsdesk.models.sop_template import Frequency


def _check_weekly_days(frequency: Frequency, weekly_days: List[int]) -> List[int]:
    """Normalises weekly_days for a frequency, raising ValueError when the rule is incomplete."""
    if frequency is Frequency.WEEKLY_CUSTOM:
        if not weekly_days:
            raise ValueError("weekly_custom requires at least one day in weekly_days")
        return sorted(set(weekly_days))
    if frequency is Frequency.WEEKLY:
        # A bare weekly rule has no anchor day. Require it explicitly.
        if len(set(weekly_days)) != 1:
            raise ValueError("weekly requires exactly one anchor day in weekly_days")
        return sorted(set(weekly_days))
    return []


class SopTemplateBase(BaseModel):
    task_label: str = Field(..., min_length=1, max_length=200)
    task_kind: str = Field("sop", min_length=1, max_length=50, description="Carried into generated tasks, e.g. ops_reply")
    time_slot: TimeSlot
    priority: Priority = 5
    persona_id: Optional[uuid.UUID] = Field(None, description="NULL for a generic template")
    frequency: Frequency = Frequency.DAILY
    weekly_days: List[DayOfWeek] = Field(default_factory=list)
    steps: List[str] = Field(default_factory=list, description="Ordered checklist")
    enabled: bool = True


class SopTemplateCreate(SopTemplateBase):
    @model_validator(mode="after")
    def check_frequency_rule(self):
        self.weekly_days = _check_weekly_days(self.frequency, self.weekly_days)
        return self


class SopTemplateUpdate(BaseModel):
    task_label: Optional[str] = Field(None, min_length=1, max_length=200)
    task_kind: Optional[str] = Field(None, min_length=1, max_length=50)
    time_slot: Optional[TimeSlot] = None
    priority: Optional[Priority] = None
    persona_id: Optional[uuid.UUID] = None
    frequency: Optional[Frequency] = None
    weekly_days: Optional[List[DayOfWeek]] = None
    steps: Optional[List[str]] = None
    enabled: Optional[bool] = None


class SopTemplateInDB(SopTemplateBase):
    id: uuid.UUID
    created_at: Optional[datetime.datetime] = None

    model_config = ConfigDict(from_attributes=True)


class WeeklyMigrationRequest(BaseModel):
    anchor_day: DayOfWeek = Field(..., description="Day legacy weekly templates are pinned to")
