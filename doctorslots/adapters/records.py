"""
Wire records exchanged with the hospital API and the JSON data file.

Records use the dashboard's camelCase keys and are validated with Pydantic
before they are turned into domain objects.
"""

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from ..domain.models import (
    Appointment,
    AppointmentStatus,
    BlockedInterval,
    DaySchedule,
    RecurrenceFrequency,
    RecurrenceRule,
    Vacation,
    VacationType,
    WeeklySchedule,
)


def _date_part(value):
    """Accept full ISO timestamps (``2024-01-01T00:00:00Z``) for date fields."""
    if isinstance(value, str) and "T" in value:
        return value.split("T", 1)[0]
    return value


def _blank_to_none(value):
    if isinstance(value, str) and not value.strip():
        return None
    return value


class Record(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_payload(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class DayScheduleRecord(Record):
    is_working: bool = False
    start: Optional[str] = None
    end: Optional[str] = None
    break_start: Optional[str] = None
    break_end: Optional[str] = None

    @field_validator("start", "end", "break_start", "break_end", mode="before")
    @classmethod
    def blank_times(cls, value):
        return _blank_to_none(value)

    def to_domain(self) -> DaySchedule:
        return DaySchedule(
            is_working=self.is_working,
            start=self.start,
            end=self.end,
            break_start=self.break_start,
            break_end=self.break_end,
        )

    @classmethod
    def from_domain(cls, day: DaySchedule) -> "DayScheduleRecord":
        return cls(
            is_working=day.is_working,
            start=day.start,
            end=day.end,
            break_start=day.break_start,
            break_end=day.break_end,
        )


def weekly_schedule_from_payload(payload: Optional[Dict[str, dict]]) -> WeeklySchedule:
    """Build a weekly schedule; weekdays missing from the payload are days off."""
    days = {
        name: DayScheduleRecord.model_validate(day).to_domain()
        for name, day in (payload or {}).items()
    }
    return WeeklySchedule.from_mapping(days)


def weekly_schedule_to_payload(schedule: WeeklySchedule) -> Dict[str, dict]:
    return {
        name: DayScheduleRecord.from_domain(day).to_payload()
        for name, day in schedule.days.items()
    }


class BlockedTimeRecord(Record):
    id: Optional[str] = None
    date: str
    start_time: str
    end_time: str
    reason: str = ""
    is_recurring: bool = False
    recurrence_type: Optional[RecurrenceFrequency] = None
    recurrence_end: Optional[str] = None

    @field_validator("id", mode="before")
    @classmethod
    def stringify_id(cls, value):
        return None if value is None else str(value)

    @field_validator("date", "recurrence_end", mode="before")
    @classmethod
    def date_only(cls, value):
        return _date_part(_blank_to_none(value))

    @field_validator("recurrence_type", mode="before")
    @classmethod
    def blank_recurrence(cls, value):
        return _blank_to_none(value)

    def to_domain(self) -> BlockedInterval:
        recurrence = None
        if self.is_recurring:
            recurrence = RecurrenceRule(
                frequency=self.recurrence_type or RecurrenceFrequency.WEEKLY,
                until=self.recurrence_end or self.date,
            )
        return BlockedInterval(
            date=self.date,
            start_time=self.start_time,
            end_time=self.end_time,
            reason=self.reason,
            recurrence=recurrence,
            id=self.id,
        )

    @classmethod
    def from_domain(cls, block: BlockedInterval) -> "BlockedTimeRecord":
        return cls(
            id=block.id,
            date=block.date,
            start_time=block.start_time,
            end_time=block.end_time,
            reason=block.reason,
            is_recurring=block.recurrence is not None,
            recurrence_type=block.recurrence.frequency if block.recurrence else None,
            recurrence_end=block.recurrence.until if block.recurrence else None,
        )


class VacationRecord(Record):
    id: Optional[str] = None
    start_date: str
    end_date: str
    type: VacationType = VacationType.VACATION
    reason: str = ""

    @field_validator("id", mode="before")
    @classmethod
    def stringify_id(cls, value):
        return None if value is None else str(value)

    @field_validator("start_date", "end_date", mode="before")
    @classmethod
    def date_only(cls, value):
        return _date_part(value)

    def to_domain(self) -> Vacation:
        return Vacation(
            start_date=self.start_date,
            end_date=self.end_date,
            type=self.type,
            reason=self.reason,
            id=self.id,
        )

    @classmethod
    def from_domain(cls, vacation: Vacation) -> "VacationRecord":
        return cls(
            id=vacation.id,
            start_date=vacation.start_date,
            end_date=vacation.end_date,
            type=vacation.type,
            reason=vacation.reason,
        )


class AppointmentRecord(Record):
    id: Optional[str] = None
    doctor_id: str
    patient_id: str
    appointment_date: str
    appointment_time: str
    duration: int = Field(default=30, gt=0)
    status: AppointmentStatus = AppointmentStatus.PENDING
    reason: str = ""
    notes: str = ""
    rescheduled_from: Optional[str] = None

    @field_validator("id", "doctor_id", "patient_id", "rescheduled_from", mode="before")
    @classmethod
    def stringify_ids(cls, value):
        return None if value is None else str(value)

    @field_validator("appointment_date", mode="before")
    @classmethod
    def date_only(cls, value):
        return _date_part(value)

    @field_validator("status", mode="before")
    @classmethod
    def normalize_status(cls, value):
        if isinstance(value, str):
            value = value.strip().lower().replace("_", "-")
            return "no-show" if value == "noshow" else value
        return value

    def to_domain(self) -> Appointment:
        return Appointment(
            doctor_id=self.doctor_id,
            patient_id=self.patient_id,
            date=self.appointment_date,
            time=self.appointment_time,
            duration_minutes=self.duration,
            status=self.status,
            id=self.id,
            reason=self.reason,
            notes=self.notes,
            rescheduled_from=self.rescheduled_from,
        )

    @classmethod
    def from_domain(cls, appointment: Appointment) -> "AppointmentRecord":
        return cls(
            id=appointment.id,
            doctor_id=appointment.doctor_id,
            patient_id=appointment.patient_id,
            appointment_date=appointment.date,
            appointment_time=appointment.time,
            duration=appointment.duration_minutes,
            status=appointment.status,
            reason=appointment.reason,
            notes=appointment.notes,
            rescheduled_from=appointment.rescheduled_from,
        )


class ScheduleRecord(Record):
    """Payload of ``GET /doctors/{id}/schedule``."""
    working_hours: Dict[str, dict] = Field(default_factory=dict)
    blocked_times: List[BlockedTimeRecord] = Field(default_factory=list)
    vacations: List[VacationRecord] = Field(default_factory=list)
