import datetime
import uuid
from typing import Any, Dict, List, Literal, Optional, Union
from pydantic import BaseModel, ConfigDict, Field, NonNegativeInt, TypeAdapter, field_validator, model_validator
from typing_extensions import Annotated

from opsdesk.models.common import Priority, TimeSlot
from opsdesk.models.work_task import TaskSource, TaskStatus, TimeBlock


# --- Task payload: one variant per kind of work ---

class SopTaskPayload(BaseModel):
    """Generic checklist task expanded from an SOP template."""
    kind: Literal["sop"] = "sop"
    title: str
    instruction: str
    steps: List[str] = Field(default_factory=list)


class OpsTaskPayload(BaseModel):
    """Operations work (replies, hype, daily report). Completion is logged with counters."""
    kind: Literal["ops"] = "ops"
    title: str
    instruction: str
    steps: List[str] = Field(default_factory=list)
    counters: List[str] = Field(default_factory=list, description="Names of counters expected on completion")


class ContentTaskPayload(BaseModel):
    """A post to publish. Completion is recorded on the task itself via post_url."""
    kind: Literal["content"] = "content"
    title: Optional[str] = None
    instruction: str
    content_text: Optional[str] = None
    asset_id: Optional[uuid.UUID] = None


TaskPayload = Annotated[
    Union[SopTaskPayload, OpsTaskPayload, ContentTaskPayload],
    Field(discriminator="kind"),
]

task_payload_adapter: TypeAdapter = TypeAdapter(TaskPayload)


# task_kind given to manual tasks that name only a payload
DEFAULT_TASK_KIND = {"sop": "sop", "ops": "ops", "content": "content_post"}


def payload_kind_for(task_kind: str) -> str:
    if task_kind.startswith("ops"):
        return "ops"
    if task_kind.startswith("content"):
        return "content"
    return "sop"


def parse_payload(raw: Optional[Dict[str, Any]], task_kind: str):
    """Reads a stored payload, tagging rows written before the discriminator existed."""
    data = dict(raw or {})
    data.setdefault("kind", payload_kind_for(task_kind))
    if "instruction" not in data:
        data["instruction"] = data.get("title") or ""
    if data["kind"] != "content" and "title" not in data:
        data["title"] = data["instruction"]
    return task_payload_adapter.validate_python(data)


# --- Work tasks ---

class WorkTaskInDB(BaseModel):
    id: uuid.UUID
    persona_id: uuid.UUID
    staff_id: uuid.UUID
    account_id: Optional[uuid.UUID] = None
    template_id: Optional[uuid.UUID] = None
    source: TaskSource
    task_kind: str
    task_date: datetime.date
    scheduled_time: Optional[str] = None
    time_block: Optional[TimeBlock] = None
    priority: int
    payload: TaskPayload
    status: TaskStatus
    post_url: Optional[str] = None
    notes: Optional[str] = None
    completed_at: Optional[datetime.datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def from_orm_task(cls, task) -> "WorkTaskInDB":
        return cls(
            id=task.id,
            persona_id=task.persona_id,
            staff_id=task.staff_id,
            account_id=task.account_id,
            template_id=task.template_id,
            source=task.source,
            task_kind=task.task_kind,
            task_date=task.task_date,
            scheduled_time=task.scheduled_time,
            time_block=task.time_block,
            priority=task.priority,
            payload=parse_payload(task.payload, task.task_kind),
            status=task.status,
            post_url=task.post_url,
            notes=task.notes,
            completed_at=task.completed_at,
        )


class ManualTaskCreate(BaseModel):
    staff_id: uuid.UUID
    persona_id: uuid.UUID
    account_id: Optional[uuid.UUID] = None
    task_kind: Optional[str] = Field(None, min_length=1, max_length=50, description="Defaults from payload.kind")
    task_date: datetime.date
    scheduled_time: Optional[TimeSlot] = None
    time_block: Optional[TimeBlock] = None
    priority: Priority = 5
    payload: TaskPayload

    @model_validator(mode="after")
    def check_kind_matches_payload(self):
        if self.task_kind is None:
            self.task_kind = DEFAULT_TASK_KIND[self.payload.kind]
        elif payload_kind_for(self.task_kind) != self.payload.kind:
            raise ValueError(
                f"task_kind '{self.task_kind}' is a {payload_kind_for(self.task_kind)} task, "
                f"but payload.kind is '{self.payload.kind}'"
            )
        return self


class CompletionSubmission(BaseModel):
    post_url: Optional[str] = Field(None, max_length=500)
    notes: Optional[str] = None
    evidence_url: Optional[str] = Field(None, max_length=500)
    counts: Dict[str, NonNegativeInt] = Field(default_factory=dict, description="Named counters, e.g. inbound_count")


class DraftUpdate(BaseModel):
    post_url: Optional[str] = Field(None, max_length=500)
    notes: Optional[str] = None


class WorkTaskUpdate(BaseModel):
    """Body of PUT work_tasks/{id}. A terminal status submits, anything else saves a draft."""
    post_url: Optional[str] = Field(None, max_length=500)
    notes: Optional[str] = None
    status: Optional[TaskStatus] = None
    evidence_url: Optional[str] = Field(None, max_length=500)
    counts: Dict[str, NonNegativeInt] = Field(default_factory=dict)
    staff_id: Optional[uuid.UUID] = Field(None, description="Staff member submitting, defaults to the task owner")

    @field_validator("post_url", "evidence_url")
    @classmethod
    def blank_url_is_none(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not value.strip():
            return None
        return value


class WorkTaskLogInDB(BaseModel):
    id: uuid.UUID
    task_id: uuid.UUID
    staff_id: Optional[uuid.UUID] = None
    result_status: str
    evidence_url: Optional[str] = None
    notes: Optional[str] = None
    counts: Dict[str, int] = Field(default_factory=dict)
    created_at: Optional[datetime.datetime] = None

    model_config = ConfigDict(from_attributes=True)
