import datetime
import enum
from typing import Type, TypeAlias

from pydantic import Field
from sqlalchemy import Enum as SAEnum
from typing_extensions import Annotated

# HH:MM on a 24h clock, as stored on templates and tasks
TimeSlot: TypeAlias = Annotated[str, Field(..., pattern=r"^([01]\d|2[0-3]):[0-5]\d$", description="Time of day, HH:MM")]
Priority: TypeAlias = Annotated[int, Field(..., ge=1, le=10, description="1 (lowest) to 10 (highest)")]
DayOfWeek: TypeAlias = Annotated[int, Field(..., ge=0, le=6, description="0=Sunday .. 6=Saturday")]


def enum_column(enum_cls: Type[enum.Enum]) -> SAEnum:
    """Stores a str enum by value in a portable VARCHAR column."""
    return SAEnum(
        enum_cls,
        native_enum=False,
        length=32,
        values_callable=lambda members: [m.value for m in members],
        validate_strings=True,
    )


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)
