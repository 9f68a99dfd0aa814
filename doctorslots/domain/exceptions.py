"""
Domain-specific exception hierarchy for the doctor scheduling engine.
"""


class SchedulingError(Exception):
    """Base class for all application-level errors."""


class InvalidTimeFormat(SchedulingError, ValueError):
    """Raised when a time of day is not a valid 24-hour ``HH:MM`` string."""


class InvalidDate(SchedulingError, ValueError):
    """Raised when a calendar date is not a valid ``YYYY-MM-DD`` string."""


class InvalidRecurrenceRange(SchedulingError, ValueError):
    """Raised when a recurrence ends before the block it repeats."""


class InvalidSchedule(SchedulingError, ValueError):
    """Raised when working hours, blocks or vacations break their invariants."""


class PastDateError(SchedulingError):
    """Raised when a booking is proposed for a moment that has already passed."""


class SlotUnavailable(SchedulingError):
    """Raised when the requested slot is not bookable."""

    def __init__(self, reason, detail: str | None = None):
        self.reason = reason
        self.detail = detail
        message = f"Slot is not available ({getattr(reason, 'value', reason)})"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class SlotConflict(SchedulingError):
    """Raised when the requested interval overlaps an active appointment."""

    def __init__(self, appointment_id: str | None):
        self.appointment_id = appointment_id
        super().__init__(f"Slot conflicts with appointment {appointment_id}")


class ModificationWindowExceeded(SchedulingError):
    """Raised when an appointment can no longer be changed by the acting role."""


class InvalidStatusTransition(SchedulingError):
    """Raised when an appointment status change is not allowed."""


class AppointmentNotFound(SchedulingError):
    """Raised when an appointment id cannot be resolved by the store."""


class StoreError(SchedulingError):
    """Raised when schedule data cannot be fetched, parsed or written."""
