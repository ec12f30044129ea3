"""
Calendar rules shared by the runbook generator and the matrix view.

Days of the week use the console's convention, 0=Sunday .. 6=Saturday, which
is what templates store in ``weekly_days``.
"""
import datetime
from typing import Iterable, Optional, Sequence

from opsdesk.models.sop_template import Frequency
from opsdesk.models.work_task import TimeBlock

TIME_BLOCK_ORDER: Sequence[TimeBlock] = (
    TimeBlock.WAKE_UP,
    TimeBlock.WARM_UP,
    TimeBlock.PRODUCTION,
    TimeBlock.WAR,
    TimeBlock.CLOSING,
)

DEFAULT_TIME_BLOCK = TimeBlock.PRODUCTION

# (first hour, block) in ascending order; the shift starts at 12:00
_BLOCK_START_HOURS = (
    (12, TimeBlock.WAKE_UP),
    (15, TimeBlock.WARM_UP),
    (17, TimeBlock.PRODUCTION),
    (20, TimeBlock.WAR),
    (22, TimeBlock.CLOSING),
)

SUNDAY, SATURDAY = 0, 6


class LegacyWeeklyRule(ValueError):
    """A 'weekly' template without a single anchor day. It must be migrated, not guessed."""


def day_of_week(day: datetime.date) -> int:
    return (day.weekday() + 1) % 7


def matches_frequency(frequency: Frequency, weekly_days: Optional[Iterable[int]], day: datetime.date) -> bool:
    dow = day_of_week(day)
    days = set(weekly_days or ())

    if frequency is Frequency.DAILY:
        return True
    if frequency is Frequency.WEEKDAY:
        return SUNDAY < dow < SATURDAY
    if frequency is Frequency.WEEKEND:
        return dow in (SUNDAY, SATURDAY)
    if frequency is Frequency.WEEKLY:
        if len(days) != 1:
            raise LegacyWeeklyRule(f"weekly rule needs exactly one anchor day, got {sorted(days)}")
        return dow in days
    if frequency is Frequency.WEEKLY_CUSTOM:
        return dow in days
    raise ValueError(f"Unknown frequency: {frequency}")


def time_block_for(time_slot: Optional[str]) -> TimeBlock:
    """Buckets an HH:MM slot into a time block. Slots outside the shift land in production."""
    if not time_slot:
        return DEFAULT_TIME_BLOCK
    try:
        hour = int(time_slot.split(":", 1)[0])
    except ValueError:
        return DEFAULT_TIME_BLOCK
    if not 0 <= hour <= 23:
        return DEFAULT_TIME_BLOCK

    block = None
    for start_hour, candidate in _BLOCK_START_HOURS:
        if hour >= start_hour:
            block = candidate
    return block or DEFAULT_TIME_BLOCK


def block_index(block: Optional[TimeBlock]) -> int:
    """Position of a block in the working day, -1 when unknown."""
    if block is None:
        return -1
    return TIME_BLOCK_ORDER.index(block)


def date_range(start: datetime.date, days: int):
    for offset in range(days):
        yield start + datetime.timedelta(days=offset)
