# opsdesk/models/sop_template.py
import datetime
import enum
import uuid
from typing import List, Optional
from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from opsdesk.core.database import Base
from opsdesk.models.common import enum_column, utcnow


class Frequency(str, enum.Enum):
    DAILY = "daily"
    WEEKDAY = "weekday"
    WEEKEND = "weekend"
    WEEKLY = "weekly"
    WEEKLY_CUSTOM = "weekly_custom"


class SopTemplate(Base):
    """A recurring task definition the runbook generator expands into work tasks."""
    __tablename__ = "sop_templates"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    task_label: Mapped[str] = mapped_column(String(200), nullable=False)
    task_kind: Mapped[str] = mapped_column(String(50), nullable=False, default="sop")
    time_slot: Mapped[str] = mapped_column(String(5), nullable=False)
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=5)
    # NULL means a generic template that fans out to every persona of the staff member
    persona_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("personas.id", ondelete="CASCADE"), nullable=True, index=True
    )
    frequency: Mapped[Frequency] = mapped_column(enum_column(Frequency), nullable=False, default=Frequency.DAILY)
    weekly_days: Mapped[List[int]] = mapped_column(JSON, nullable=False, default=list)
    steps: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    def __repr__(self):
        return f"<SopTemplate(id={self.id}, task_label='{self.task_label}', frequency='{self.frequency.value}')>"
