# opsdesk/models/staff.py
import datetime
import uuid
from sqlalchemy import DateTime, ForeignKey, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from opsdesk.core.database import Base
from opsdesk.models.common import utcnow


class Staff(Base):
    __tablename__ = "staff"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    full_name: Mapped[str] = mapped_column(String(100), nullable=False)
    role: Mapped[str] = mapped_column(String(32), nullable=False, default="operator")

    def __repr__(self):
        return f"<Staff(id={self.id}, full_name='{self.full_name}')>"


class StaffPersonaAssignment(Base):
    """Explicit persona -> staff ownership. A persona has at most one owner."""
    __tablename__ = "staff_persona_assignments"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    staff_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("staff.id", ondelete="CASCADE"), nullable=False, index=True)
    persona_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("personas.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    def __repr__(self):
        return f"<StaffPersonaAssignment(staff_id={self.staff_id}, persona_id={self.persona_id})>"
