# opsdesk/models/work_task.py
import datetime
import enum
import uuid
from typing import Any, Dict, Optional
from sqlalchemy import JSON, Date, DateTime, ForeignKey, Index, Integer, String, Text, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from opsdesk.core.database import Base
from opsdesk.models.common import enum_column, utcnow


class TaskStatus(str, enum.Enum):
    PENDING_PUBLISH = "pending_publish"
    COMPLETED = "completed"
    SKIPPED = "skipped"

    @property
    def is_terminal(self) -> bool:
        return self is not TaskStatus.PENDING_PUBLISH


class TimeBlock(str, enum.Enum):
    WAKE_UP = "wake_up"
    WARM_UP = "warm_up"
    PRODUCTION = "production"
    WAR = "war"
    CLOSING = "closing"


class TaskSource(str, enum.Enum):
    RUNBOOK = "runbook"
    MANUAL = "manual"


class WorkTask(Base):
    __tablename__ = "work_tasks"
    __table_args__ = (
        # One generated task per persona, block and day. Manual tasks are exempt.
        Index(
            "uq_work_tasks_runbook_slot",
            "persona_id",
            "time_block",
            "task_date",
            unique=True,
            postgresql_where=text("source = 'runbook'"),
            sqlite_where=text("source = 'runbook'"),
        ),
        Index("ix_work_tasks_staff_date", "staff_id", "task_date"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    persona_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("personas.id", ondelete="CASCADE"), nullable=False)
    staff_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("staff.id", ondelete="CASCADE"), nullable=False)
    account_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("accounts.id", ondelete="SET NULL"), nullable=True
    )
    template_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("sop_templates.id", ondelete="SET NULL"), nullable=True
    )
    source: Mapped[TaskSource] = mapped_column(enum_column(TaskSource), nullable=False, default=TaskSource.RUNBOOK)
    task_kind: Mapped[str] = mapped_column(String(50), nullable=False)
    task_date: Mapped[datetime.date] = mapped_column(Date, nullable=False)
    scheduled_time: Mapped[Optional[str]] = mapped_column(String(5), nullable=True)
    time_block: Mapped[Optional[TimeBlock]] = mapped_column(enum_column(TimeBlock), nullable=True)
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=5)
    payload: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    status: Mapped[TaskStatus] = mapped_column(
        enum_column(TaskStatus), nullable=False, default=TaskStatus.PENDING_PUBLISH
    )
    post_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    completed_at: Mapped[Optional[datetime.datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    def __repr__(self):
        return (
            f"<WorkTask(id={self.id}, persona_id={self.persona_id}, task_date={self.task_date}, "
            f"time_block={self.time_block}, status='{self.status.value}')>"
        )


class WorkTaskLog(Base):
    """Append-only result record written when an ops task is completed or skipped."""
    __tablename__ = "work_task_logs"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    task_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("work_tasks.id", ondelete="CASCADE"), nullable=False, index=True)
    staff_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, ForeignKey("staff.id", ondelete="SET NULL"), nullable=True)
    result_status: Mapped[str] = mapped_column(String(32), nullable=False, default="done")
    evidence_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    counts: Mapped[Dict[str, int]] = mapped_column(JSON, nullable=False, default=dict)
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    def __repr__(self):
        return f"<WorkTaskLog(id={self.id}, task_id={self.task_id}, result_status='{self.result_status}')>"
