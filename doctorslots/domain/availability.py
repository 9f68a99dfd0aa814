"""
Core business logic for deciding whether a doctor's slot is bookable.

This is the heart of the application - pure domain logic without any
external dependencies (no API calls, no database, no I/O). Every answer is a
function of the immutable ``DoctorSchedule`` snapshot it was built with.
"""

import logging
from typing import Iterator, List, Optional, Tuple

from .exceptions import InvalidSchedule
from .models import (
    MINUTES_PER_DAY,
    DoctorSchedule,
    Slot,
    SlotStatus,
    TimeRange,
    date_key,
    format_minutes,
    parse_date,
    parse_time,
)
from .recurrence import BlockOccurrence, expand_for_date

logger = logging.getLogger(__name__)

DEFAULT_SCAN_START = "06:00"
DEFAULT_SCAN_END = "22:00"

Reason = Tuple[SlotStatus, Optional[str]]


class SlotSequence:
    """
    Lazy, finite and restartable sequence of slots for one date.

    Each iteration re-evaluates the snapshot, so iterating twice yields the
    same slots without storing them.
    """

    def __init__(self, evaluator: "AvailabilityEvaluator", day: str, granularity_minutes: int):
        if granularity_minutes <= 0:
            raise InvalidSchedule(f"Granularity must be positive, got {granularity_minutes}")
        self._evaluator = evaluator
        self.date = day
        self.granularity_minutes = granularity_minutes

    def _starts(self) -> range:
        return range(
            self._evaluator.scan_start,
            self._evaluator.scan_end,
            self.granularity_minutes,
        )

    def __iter__(self) -> Iterator[Slot]:
        for minute in self._starts():
            yield self._evaluator.describe_slot(
                self.date, format_minutes(minute), self.granularity_minutes
            )

    def __len__(self) -> int:
        return len(self._starts())

    def __repr__(self) -> str:
        return f"SlotSequence(date={self.date!r}, granularity={self.granularity_minutes})"


class AvailabilityEvaluator:
    """
    Answers availability questions for a single doctor snapshot.

    Unavailability reasons are checked in a fixed order:
    1. Day off, outside working hours or during the break (OutOfHours)
    2. An active appointment already occupies the time (Booked)
    3. A one-off or recurring blocked interval (Blocked)
    4. A vacation or leave day (Blocked)

    An existing appointment is reported as Booked even when a block was added
    over it later.
    """

    def __init__(
        self,
        schedule: DoctorSchedule,
        scan_start: str = DEFAULT_SCAN_START,
        scan_end: str = DEFAULT_SCAN_END,
    ):
        self.schedule = schedule
        self.scan_start = parse_time(scan_start)
        self.scan_end = parse_time(scan_end)
        if self.scan_start >= self.scan_end:
            raise InvalidSchedule(f"Scan window start {scan_start} must be before end {scan_end}")

    @property
    def doctor_id(self) -> str:
        return self.schedule.doctor_id

    def is_available(self, day, time: str) -> bool:
        """Check if ``day@time`` can be booked."""
        return self.slot_status(day, time) is SlotStatus.AVAILABLE

    def slot_status(self, day, time: str) -> SlotStatus:
        """Classify a point in time on the doctor's calendar."""
        status, _ = self._classify(date_key(day), parse_time(time))
        return status

    def describe_slot(self, day, time: str, duration_minutes: int = 30) -> Slot:
        """Build a Slot carrying both the status and the reason behind it."""
        key = date_key(day)
        status, detail = self._classify(key, parse_time(time))
        return Slot(
            date=key,
            time=time,
            duration_minutes=duration_minutes,
            status=status,
            detail=detail,
        )

    def list_slots(self, day, granularity_minutes: int = 30) -> SlotSequence:
        """
        Every slot of the scan window on ``day``, including out-of-hours ones.

        The scan window is fixed and independent of the day's working hours,
        so early and late slots are labelled instead of omitted.
        """
        return SlotSequence(self, date_key(day), granularity_minutes)

    def bookable_slots(self, day, granularity_minutes: int = 30) -> List[Slot]:
        """Only the available slots of ``day``."""
        return [slot for slot in self.list_slots(day, granularity_minutes) if slot.is_available]

    def next_available(
        self,
        from_day,
        from_time: str = "00:00",
        days_ahead: int = 14,
        granularity_minutes: int = 30,
    ) -> Slot | None:
        """
        Find the first available slot at or after ``from_day@from_time``.

        Searches at most ``days_ahead`` days including the first one.
        """
        start = parse_date(from_day)
        earliest = parse_time(from_time)

        for offset in range(days_ahead):
            day = start.add(days=offset)
            for slot in self.list_slots(day, granularity_minutes):
                if offset == 0 and parse_time(slot.time) < earliest:
                    continue
                if slot.is_available:
                    return slot

        logger.debug(
            "No available slot for doctor %s within %d day(s) of %s",
            self.doctor_id,
            days_ahead,
            start.isoformat(),
        )
        return None

    def interval_obstacle(self, day, time: str, duration_minutes: int) -> Reason | None:
        """
        Find working-hour, break or block limits inside ``[time, time + duration)``.

        Appointments are not considered here; overlap with them is a
        conflict, not an unavailability.
        """
        key = date_key(day)
        start = parse_time(time)
        requested = TimeRange(key, start, min(start + duration_minutes, MINUTES_PER_DAY))

        day_schedule = self.schedule.weekly_schedule.for_date(key)
        working = day_schedule.working_range(key)
        if working is None:
            return SlotStatus.OUT_OF_HOURS, "day off"
        if requested.start < working.start or requested.end > working.end:
            return SlotStatus.OUT_OF_HOURS, "outside working hours"

        lunch = day_schedule.break_range(key)
        if lunch is not None and requested.overlaps(lunch):
            return SlotStatus.OUT_OF_HOURS, "break"

        for occurrence in self._blocks_on(key):
            if requested.overlaps(occurrence.time_range):
                return SlotStatus.BLOCKED, occurrence.reason or "blocked"

        vacation = self._vacation_on(key)
        if vacation is not None:
            return SlotStatus.BLOCKED, f"vacation: {vacation.type.value}"

        return None

    def _classify(self, key: str, minute: int) -> Reason:
        day_schedule = self.schedule.weekly_schedule.for_date(key)

        working = day_schedule.working_range(key)
        if working is None:
            return SlotStatus.OUT_OF_HOURS, "day off"
        if not working.contains(minute):
            return SlotStatus.OUT_OF_HOURS, "outside working hours"

        lunch = day_schedule.break_range(key)
        if lunch is not None and lunch.contains(minute):
            return SlotStatus.OUT_OF_HOURS, "break"

        for appointment in self.schedule.active_appointments():
            if appointment.date == key and appointment.time_range.contains(minute):
                return SlotStatus.BOOKED, appointment.id or "booked"

        for occurrence in self._blocks_on(key):
            if occurrence.time_range.contains(minute):
                return SlotStatus.BLOCKED, occurrence.reason or "blocked"

        vacation = self._vacation_on(key)
        if vacation is not None:
            return SlotStatus.BLOCKED, f"vacation: {vacation.type.value}"

        return SlotStatus.AVAILABLE, None

    def _blocks_on(self, key: str) -> List[BlockOccurrence]:
        return expand_for_date(self.schedule.blocked_intervals, key)

    def _vacation_on(self, key: str):
        for vacation in self.schedule.vacations:
            if vacation.covers(key):
                return vacation
        return None


def is_available(schedule: DoctorSchedule, day, time: str) -> bool:
    """Functional shortcut for ``AvailabilityEvaluator(schedule).is_available``."""
    return AvailabilityEvaluator(schedule).is_available(day, time)


def slot_status(schedule: DoctorSchedule, day, time: str) -> SlotStatus:
    """Functional shortcut for ``AvailabilityEvaluator(schedule).slot_status``."""
    return AvailabilityEvaluator(schedule).slot_status(day, time)
