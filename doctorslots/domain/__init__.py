"""
Domain layer - Pure business logic without external dependencies.
"""

from .availability import AvailabilityEvaluator, SlotSequence
from .booking import (
    BookingDecision,
    BookingPolicy,
    Conflict,
    ConflictKind,
    ConflictResolver,
    RescheduleOutcome,
)
from .models import (
    Appointment,
    AppointmentStatus,
    BlockedInterval,
    DaySchedule,
    DoctorSchedule,
    RecurrenceFrequency,
    RecurrenceRule,
    Role,
    Slot,
    SlotStatus,
    TimeRange,
    Vacation,
    VacationType,
    WeeklySchedule,
)
from .recurrence import BlockOccurrence, expand_block, expand_blocks

__all__ = [
    "Appointment",
    "AppointmentStatus",
    "AvailabilityEvaluator",
    "BlockOccurrence",
    "BlockedInterval",
    "BookingDecision",
    "BookingPolicy",
    "Conflict",
    "ConflictKind",
    "ConflictResolver",
    "DaySchedule",
    "DoctorSchedule",
    "RecurrenceFrequency",
    "RecurrenceRule",
    "RescheduleOutcome",
    "Role",
    "Slot",
    "SlotSequence",
    "SlotStatus",
    "TimeRange",
    "Vacation",
    "VacationType",
    "WeeklySchedule",
    "expand_block",
    "expand_blocks",
]
