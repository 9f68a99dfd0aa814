"""
Day, week and month buckets of a doctor's slots for calendar displays.
"""

from collections import Counter
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List

from pendulum import Date

from ..domain.models import Slot, SlotStatus, parse_date
from .booking_service import BookingService


class ViewMode(str, Enum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"


@dataclass(frozen=True)
class DayView:
    date: str
    slots: List[Slot]

    def counts(self) -> Dict[SlotStatus, int]:
        """Number of slots per status, every status present."""
        counter = Counter(slot.status for slot in self.slots)
        return {status: counter.get(status, 0) for status in SlotStatus}

    @property
    def available(self) -> List[Slot]:
        return [slot for slot in self.slots if slot.is_available]


def week_start(day) -> Date:
    """Sunday on or before ``day``; calendar weeks run Sunday to Saturday."""
    day = parse_date(day)
    return day.subtract(days=(day.weekday() + 1) % 7)


def navigate(day, mode: ViewMode, direction: int) -> Date:
    """Move a calendar cursor one day, week or month forwards or backwards."""
    day = parse_date(day)
    mode = ViewMode(mode)
    if mode is ViewMode.DAY:
        return day.add(days=direction)
    if mode is ViewMode.WEEK:
        return day.add(weeks=direction)
    return day.add(months=direction)


class ScheduleView:
    """
    Maps availability into calendar buckets.

    Only the service's public slot listing is used, so the view never
    re-implements availability rules.
    """

    def __init__(self, service: BookingService, granularity_minutes: int = 30):
        self.service = service
        self.granularity_minutes = granularity_minutes

    def day(self, doctor_id: str, day) -> DayView:
        key = parse_date(day).isoformat()
        slots = list(self.service.list_slots(doctor_id, key, self.granularity_minutes))
        return DayView(date=key, slots=slots)

    def week(self, doctor_id: str, day) -> List[DayView]:
        first = week_start(day)
        return [self.day(doctor_id, first.add(days=offset)) for offset in range(7)]

    def month(self, doctor_id: str, day) -> List[DayView]:
        first = parse_date(day).start_of("month")
        return [
            self.day(doctor_id, first.add(days=offset))
            for offset in range(first.days_in_month)
        ]

    def render(self, doctor_id: str, day, mode: ViewMode) -> List[DayView]:
        mode = ViewMode(mode)
        if mode is ViewMode.DAY:
            return [self.day(doctor_id, day)]
        if mode is ViewMode.WEEK:
            return self.week(doctor_id, day)
        return self.month(doctor_id, day)
