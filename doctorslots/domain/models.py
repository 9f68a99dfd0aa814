"""
Domain models for working hours, blocked time, leave and appointments.

Dates and times cross the boundary of this package as ``YYYY-MM-DD`` and
24-hour ``HH:MM`` strings in the doctor's timezone. Internally every time range
is reduced to minutes since midnight on a given date key.
"""

import datetime
import re
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Tuple

import pendulum
from pendulum import Date, DateTime

from .exceptions import (
    InvalidDate,
    InvalidRecurrenceRange,
    InvalidSchedule,
    InvalidTimeFormat,
)

MINUTES_PER_DAY = 24 * 60

WEEKDAYS = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)

_TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")
_DATE_PATTERN = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")


def parse_time(value: str) -> int:
    """
    Convert an ``HH:MM`` string into minutes since midnight.

    Raises:
        InvalidTimeFormat: If the value is not a valid 24-hour time
    """
    if not isinstance(value, str):
        raise InvalidTimeFormat(f"Time must be a 'HH:MM' string, got {value!r}")

    match = _TIME_PATTERN.match(value.strip())
    if not match:
        raise InvalidTimeFormat(f"Invalid time '{value}', expected HH:MM (00:00-23:59)")

    return int(match.group(1)) * 60 + int(match.group(2))


def format_minutes(minutes: int) -> str:
    """Format minutes since midnight as ``HH:MM``."""
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def parse_date(value) -> Date:
    """
    Convert a ``YYYY-MM-DD`` string (or a date object) into a pendulum Date.

    Raises:
        InvalidDate: If the value is not an existing calendar date
    """
    if isinstance(value, Date):
        return value
    if isinstance(value, datetime.datetime):
        value = value.date()
    if isinstance(value, datetime.date):
        return pendulum.date(value.year, value.month, value.day)
    if not isinstance(value, str):
        raise InvalidDate(f"Date must be a 'YYYY-MM-DD' string, got {value!r}")

    match = _DATE_PATTERN.match(value.strip())
    if not match:
        raise InvalidDate(f"Invalid date '{value}', expected YYYY-MM-DD")

    year, month, day = (int(part) for part in match.groups())
    try:
        return pendulum.date(year, month, day)
    except ValueError as exc:
        raise InvalidDate(f"Invalid date '{value}': {exc}") from exc


def date_key(value) -> str:
    """Normalize a date string or object to its ``YYYY-MM-DD`` key."""
    return parse_date(value).isoformat()


def weekday_name(value) -> str:
    """Return the lowercase English weekday name for a date."""
    return WEEKDAYS[parse_date(value).weekday()]


@dataclass(frozen=True)
class TimeRange:
    """
    Half-open ``[start, end)`` range of minutes on a single calendar date.

    Invariant: start must be before end, both within the day.
    """
    date_key: str
    start: int
    end: int

    def __post_init__(self):
        if not 0 <= self.start < self.end <= MINUTES_PER_DAY:
            raise InvalidSchedule(
                f"Start {format_minutes(self.start)} must be before end "
                f"{format_minutes(self.end)} within one day"
            )

    def duration_minutes(self) -> int:
        """Return the duration in minutes."""
        return self.end - self.start

    def contains(self, minute: int) -> bool:
        """Check if a minute of the day falls inside this range."""
        return self.start <= minute < self.end

    def overlaps(self, other: "TimeRange") -> bool:
        """Check if this range overlaps with another on the same date."""
        return (
            self.date_key == other.date_key
            and self.start < other.end
            and other.start < self.end
        )

    def intersect(self, other: "TimeRange") -> "TimeRange | None":
        """
        Calculate the intersection of two time ranges.
        Returns None if there is no overlap.
        """
        if not self.overlaps(other):
            return None

        return TimeRange(
            date_key=self.date_key,
            start=max(self.start, other.start),
            end=min(self.end, other.end),
        )

    def __str__(self) -> str:
        return f"{self.date_key} {format_minutes(self.start)}-{format_minutes(self.end)}"


@dataclass(frozen=True)
class DaySchedule:
    """
    Working hours for one weekday.

    When ``is_working`` is false every time field is ignored.
    """
    is_working: bool
    start: Optional[str] = None
    end: Optional[str] = None
    break_start: Optional[str] = None
    break_end: Optional[str] = None

    def __post_init__(self):
        if not self.is_working:
            return

        if not self.start or not self.end:
            raise InvalidSchedule("A working day needs both start and end times")

        start, end = parse_time(self.start), parse_time(self.end)
        if start >= end:
            raise InvalidSchedule(f"Working hours start {self.start} must be before end {self.end}")

        if self.has_break:
            break_start, break_end = parse_time(self.break_start), parse_time(self.break_end)
            if not start <= break_start < break_end <= end:
                raise InvalidSchedule(
                    f"Break {self.break_start}-{self.break_end} must lie within "
                    f"working hours {self.start}-{self.end}"
                )

    @property
    def has_break(self) -> bool:
        return bool(self.break_start and self.break_end)

    def working_range(self, day) -> TimeRange | None:
        """Working hours on a concrete date, or None on a day off."""
        if not self.is_working:
            return None
        return TimeRange(date_key(day), parse_time(self.start), parse_time(self.end))

    def break_range(self, day) -> TimeRange | None:
        """Break on a concrete date, or None if there is none."""
        if not self.is_working or not self.has_break:
            return None
        return TimeRange(date_key(day), parse_time(self.break_start), parse_time(self.break_end))


DAY_OFF = DaySchedule(is_working=False)


@dataclass(frozen=True)
class WeeklySchedule:
    """
    Recurring weekly template of a doctor's working hours.

    Invariant: all seven weekdays are present.
    """
    days: Dict[str, DaySchedule]

    def __post_init__(self):
        missing = [day for day in WEEKDAYS if day not in self.days]
        if missing:
            raise InvalidSchedule(f"Weekly schedule is missing: {', '.join(missing)}")
        unknown = sorted(set(self.days) - set(WEEKDAYS))
        if unknown:
            raise InvalidSchedule(f"Unknown weekday(s) in schedule: {', '.join(unknown)}")

    @classmethod
    def from_mapping(cls, days: Dict[str, DaySchedule]) -> "WeeklySchedule":
        """Build a schedule, treating weekdays that are not listed as days off."""
        normalized = {name.lower(): schedule for name, schedule in days.items()}
        unknown = sorted(set(normalized) - set(WEEKDAYS))
        if unknown:
            raise InvalidSchedule(f"Unknown weekday(s) in schedule: {', '.join(unknown)}")
        return cls(days={day: normalized.get(day, DAY_OFF) for day in WEEKDAYS})

    @classmethod
    def standard(cls) -> "WeeklySchedule":
        """Monday to Friday 09:00-17:00 with a lunch break, weekends off."""
        weekday = DaySchedule(True, "09:00", "17:00", "12:00", "13:00")
        return cls.from_mapping({day: weekday for day in WEEKDAYS[:5]})

    def for_date(self, day) -> DaySchedule:
        return self.days[weekday_name(day)]


class RecurrenceFrequency(str, Enum):
    WEEKLY = "weekly"
    MONTHLY = "monthly"


@dataclass(frozen=True)
class RecurrenceRule:
    frequency: RecurrenceFrequency
    until: str

    def __post_init__(self):
        object.__setattr__(self, "frequency", RecurrenceFrequency(self.frequency))
        object.__setattr__(self, "until", date_key(self.until))


@dataclass(frozen=True)
class BlockedInterval:
    """
    Time explicitly carved out of a doctor's working hours.

    Blocks are never mutated in place; a change is a delete plus a new block.
    """
    date: str
    start_time: str
    end_time: str
    reason: str = ""
    recurrence: Optional[RecurrenceRule] = None
    id: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "date", date_key(self.date))
        object.__setattr__(self, "start_time", format_minutes(parse_time(self.start_time)))
        object.__setattr__(self, "end_time", format_minutes(parse_time(self.end_time)))
        if parse_time(self.start_time) >= parse_time(self.end_time):
            raise InvalidSchedule(
                f"Blocked time start {self.start_time} must be before end {self.end_time}"
            )
        if self.recurrence is not None and self.recurrence.until < self.date:
            raise InvalidRecurrenceRange(
                f"Recurrence ends {self.recurrence.until}, before the block starts {self.date}"
            )

    @property
    def is_recurring(self) -> bool:
        return self.recurrence is not None

    def time_range(self, day=None) -> TimeRange:
        """The blocked range on its own date or on a given occurrence date."""
        return TimeRange(
            date_key(day) if day is not None else self.date,
            parse_time(self.start_time),
            parse_time(self.end_time),
        )


class VacationType(str, Enum):
    VACATION = "vacation"
    SICK_LEAVE = "sick_leave"
    PERSONAL = "personal"
    CONFERENCE = "conference"


@dataclass(frozen=True)
class Vacation:
    """Whole-day leave from ``start_date`` through ``end_date`` inclusive."""
    start_date: str
    end_date: str
    type: VacationType = VacationType.VACATION
    reason: str = ""
    id: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "start_date", date_key(self.start_date))
        object.__setattr__(self, "end_date", date_key(self.end_date))
        object.__setattr__(self, "type", VacationType(self.type))
        if self.start_date > self.end_date:
            raise InvalidSchedule(
                f"Vacation start {self.start_date} must not be after end {self.end_date}"
            )

    def covers(self, day) -> bool:
        return self.start_date <= date_key(day) <= self.end_date


class AppointmentStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    NO_SHOW = "no-show"
    RESCHEDULED = "rescheduled"


ACTIVE_STATUSES = frozenset({AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED})


class Role(str, Enum):
    PATIENT = "patient"
    DOCTOR = "doctor"
    ADMIN = "admin"


@dataclass(frozen=True)
class Appointment:
    """
    A booked visit. Appointments are never deleted, only transitioned.

    Appointments end at midnight at the latest; longer durations are clipped.
    """
    doctor_id: str
    patient_id: str
    date: str
    time: str
    duration_minutes: int = 30
    status: AppointmentStatus = AppointmentStatus.PENDING
    id: Optional[str] = None
    reason: str = ""
    notes: str = ""
    rescheduled_from: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "date", date_key(self.date))
        object.__setattr__(self, "status", AppointmentStatus(self.status))
        object.__setattr__(self, "time", format_minutes(parse_time(self.time)))
        if self.duration_minutes <= 0:
            raise InvalidSchedule(
                f"Appointment duration must be positive, got {self.duration_minutes}"
            )

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    @property
    def time_range(self) -> TimeRange:
        start = parse_time(self.time)
        return TimeRange(self.date, start, min(start + self.duration_minutes, MINUTES_PER_DAY))

    def starts_at(self, timezone: str) -> DateTime:
        return combine(self.date, self.time, timezone)


def combine(day, time_of_day: str, timezone: str) -> DateTime:
    """Build a timezone-aware datetime from a date and an ``HH:MM`` time."""
    calendar_date = parse_date(day)
    minutes = parse_time(time_of_day)
    return pendulum.datetime(
        calendar_date.year,
        calendar_date.month,
        calendar_date.day,
        minutes // 60,
        minutes % 60,
        tz=timezone,
    )


class SlotStatus(str, Enum):
    AVAILABLE = "available"
    BOOKED = "booked"
    BLOCKED = "blocked"
    OUT_OF_HOURS = "out_of_hours"


@dataclass(frozen=True)
class Slot:
    """
    A derived, fixed-length position on a doctor's day.

    ``detail`` names the cause when the slot is not available.
    """
    date: str
    time: str
    duration_minutes: int
    status: SlotStatus
    detail: Optional[str] = None

    @property
    def is_available(self) -> bool:
        return self.status is SlotStatus.AVAILABLE

    def format_display(self) -> str:
        """
        Format the slot for display.
        Format: Mon, 2024-01-01 | 09:00 - 09:30 | available
        """
        day = parse_date(self.date)
        start = parse_time(self.time)
        end = min(start + self.duration_minutes, MINUTES_PER_DAY)
        label = self.status.value.replace("_", " ")
        if self.detail:
            label = f"{label} ({self.detail})"
        return (
            f"{day.format('ddd')}, {self.date} | "
            f"{format_minutes(start)} - {format_minutes(end)} | {label}"
        )


@dataclass(frozen=True)
class DoctorSchedule:
    """
    Immutable snapshot of everything the evaluator needs for one doctor.

    Blocks are raw (unexpanded); the evaluator expands them on demand.
    """
    doctor_id: str
    weekly_schedule: WeeklySchedule
    blocked_intervals: Tuple[BlockedInterval, ...] = ()
    vacations: Tuple[Vacation, ...] = ()
    appointments: Tuple[Appointment, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "blocked_intervals", tuple(self.blocked_intervals))
        object.__setattr__(self, "vacations", tuple(self.vacations))
        object.__setattr__(self, "appointments", tuple(self.appointments))

    def active_appointments(self):
        return [
            appointment for appointment in self.appointments
            if appointment.is_active and appointment.doctor_id == self.doctor_id
        ]
