# opsdesk/models/account.py
import datetime
import enum
import uuid
from typing import Optional
from sqlalchemy import DateTime, ForeignKey, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from opsdesk.core.database import Base
from opsdesk.models.common import enum_column, utcnow


class OnboardingStatus(str, enum.Enum):
    ASSIGNED = "assigned"
    NOTIFIED = "notified"
    BINDING = "binding"
    SETTING_PERSONA = "setting_persona"
    COMPLETED = "completed"


class Account(Base):
    __tablename__ = "accounts"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    platform: Mapped[str] = mapped_column(String(32), nullable=False)
    account_name: Mapped[str] = mapped_column(String(100), nullable=False)
    account_handle: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    persona_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("personas.id", ondelete="SET NULL"), nullable=True, index=True
    )
    assigned_to: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("staff.id", ondelete="SET NULL"), nullable=True, index=True
    )
    onboarding_status: Mapped[OnboardingStatus] = mapped_column(
        enum_column(OnboardingStatus), nullable=False, default=OnboardingStatus.ASSIGNED
    )
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    def __repr__(self):
        return f"<Account(id={self.id}, platform='{self.platform}', onboarding_status='{self.onboarding_status.value}')>"
