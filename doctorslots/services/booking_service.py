"""
Application services for querying availability and booking appointments.

The service fetches an immutable snapshot of a doctor's schedule through a
store adapter and delegates every decision to the domain-level
``AvailabilityEvaluator`` and ``ConflictResolver``. Dependency inversion
toward a protocol makes it easy to plug in the REST adapter or the in-memory
store in tests.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Callable, List, Optional, Protocol

import pendulum
from pendulum import DateTime

from ..config import AppConfig
from ..domain.availability import (
    DEFAULT_SCAN_END,
    DEFAULT_SCAN_START,
    AvailabilityEvaluator,
    SlotSequence,
)
from ..domain.booking import (
    BookingDecision,
    BookingPolicy,
    ConflictResolver,
    initial_status,
    transition,
)
from ..domain.exceptions import AppointmentNotFound, SlotConflict
from ..domain.models import (
    Appointment,
    AppointmentStatus,
    BlockedInterval,
    DoctorSchedule,
    Role,
    Slot,
    SlotStatus,
    Vacation,
    WeeklySchedule,
    date_key,
    parse_date,
)

logger = logging.getLogger(__name__)


class ScheduleStoreProtocol(Protocol):
    """Protocol describing the store behaviour needed by the service."""

    def get_weekly_schedule(self, doctor_id: str) -> WeeklySchedule:
        """Return the doctor's weekly working hours."""

    def get_blocked_intervals(self, doctor_id: str, start, end) -> List[BlockedInterval]:
        """Return raw (unexpanded) blocks that may apply between start and end."""

    def get_vacations(self, doctor_id: str, start, end) -> List[Vacation]:
        """Return vacations overlapping start..end."""

    def get_appointments(self, doctor_id: str, start, end) -> List[Appointment]:
        """Return appointments of every status dated start..end."""

    def get_doctor_schedule(self, doctor_id: str, start, end) -> DoctorSchedule:
        """Return hours, blocks, vacations and appointments for start..end in one read."""

    def get_appointment(self, appointment_id: str) -> Optional[Appointment]:
        """Return a single appointment, or None when unknown."""

    def insert_appointment(
        self,
        appointment: Appointment,
        replacing: Appointment | None = None,
    ) -> Appointment:
        """Atomically check for overlaps and insert; raise SlotConflict on a lost race."""

    def update_appointment(self, appointment: Appointment) -> Appointment:
        """Persist a status change."""

    def save_weekly_schedule(self, doctor_id: str, schedule: WeeklySchedule) -> WeeklySchedule:
        """Replace the doctor's working hours."""

    def add_blocked_interval(self, doctor_id: str, block: BlockedInterval) -> BlockedInterval:
        """Store a new block and return it with its id."""

    def delete_blocked_interval(self, doctor_id: str, block_id: str) -> bool:
        """Remove a block; return False if it did not exist."""

    def add_vacation(self, doctor_id: str, vacation: Vacation) -> Vacation:
        """Store a new vacation and return it with its id."""


class BookingService:
    """
    Orchestrates snapshot retrieval, availability queries and bookings.

    Every call reads a fresh snapshot; the service itself holds no schedule
    state. The store's atomic insert is the only guard against two callers
    booking the same slot at once.
    """

    def __init__(
        self,
        store: ScheduleStoreProtocol,
        timezone: str = "Europe/Berlin",
        policy: BookingPolicy | None = None,
        scan_start: str = DEFAULT_SCAN_START,
        scan_end: str = DEFAULT_SCAN_END,
        clock: Callable[[], DateTime] | None = None,
    ) -> None:
        self._store = store
        self.timezone = timezone
        self.policy = policy or BookingPolicy()
        self._scan_window = (scan_start, scan_end)
        self._clock = clock or (lambda: pendulum.now(self.timezone))

    @classmethod
    def from_config(
        cls,
        store: ScheduleStoreProtocol,
        config: AppConfig,
        clock: Callable[[], DateTime] | None = None,
    ) -> "BookingService":
        return cls(
            store=store,
            timezone=config.timezone,
            policy=config.policy.to_policy(),
            scan_start=config.scan_window.start,
            scan_end=config.scan_window.end,
            clock=clock,
        )

    def now(self) -> DateTime:
        return self._clock()

    # Snapshots

    def snapshot(self, doctor_id: str, start, end=None) -> DoctorSchedule:
        """Fetch everything the evaluator needs for ``start..end`` (inclusive)."""
        first = date_key(start)
        last = date_key(end) if end is not None else first

        return self._store.get_doctor_schedule(doctor_id, first, last)

    def evaluator(self, doctor_id: str, start, end=None) -> AvailabilityEvaluator:
        return AvailabilityEvaluator(self.snapshot(doctor_id, start, end), *self._scan_window)

    def resolver(self, doctor_id: str, day) -> ConflictResolver:
        return ConflictResolver(
            self.snapshot(doctor_id, day),
            timezone=self.timezone,
            policy=self.policy,
            scan_start=self._scan_window[0],
            scan_end=self._scan_window[1],
        )

    # Queries

    def is_available(self, doctor_id: str, day, time: str) -> bool:
        return self.evaluator(doctor_id, day).is_available(day, time)

    def slot_status(self, doctor_id: str, day, time: str) -> SlotStatus:
        return self.evaluator(doctor_id, day).slot_status(day, time)

    def list_slots(self, doctor_id: str, day, granularity_minutes: int = 30) -> SlotSequence:
        return self.evaluator(doctor_id, day).list_slots(day, granularity_minutes)

    def next_available(
        self,
        doctor_id: str,
        from_day=None,
        from_time: str | None = None,
        days_ahead: int = 14,
        granularity_minutes: int = 30,
    ) -> Slot | None:
        """First available slot from now (or from the given moment) on."""
        current = self.now()
        if current.second or current.microsecond:
            # a slot that began during the current minute is already past
            current = current.add(minutes=1).start_of("minute")
        start = parse_date(from_day) if from_day is not None else current.date()
        if from_time is None:
            from_time = current.format("HH:mm") if start == current.date() else "00:00"

        end = start.add(days=max(days_ahead - 1, 0))
        return self.evaluator(doctor_id, start, end).next_available(
            start, from_time, days_ahead, granularity_minutes
        )

    def can_modify(self, appointment: Appointment | str, acting_role: Role) -> bool:
        appointment = self._resolve(appointment)
        return self.resolver(appointment.doctor_id, appointment.date).can_modify(
            appointment, acting_role, self.now()
        )

    # Bookings

    def propose_booking(
        self,
        doctor_id: str,
        day,
        time: str,
        duration_minutes: int = 30,
        acting_role: Role = Role.PATIENT,
    ) -> BookingDecision:
        return self.resolver(doctor_id, day).propose_booking(
            day, time, duration_minutes, acting_role, now=self.now()
        )

    def book(
        self,
        doctor_id: str,
        patient_id: str,
        day,
        time: str,
        duration_minutes: int = 30,
        acting_role: Role = Role.PATIENT,
        reason: str = "",
        notes: str = "",
    ) -> Appointment:
        """
        Check a booking and insert it atomically.

        Raises:
            PastDateError, SlotUnavailable, SlotConflict: When the booking is rejected
        """
        decision = self.propose_booking(doctor_id, day, time, duration_minutes, acting_role)
        decision.raise_for_conflict()

        appointment = Appointment(
            doctor_id=doctor_id,
            patient_id=patient_id,
            date=decision.date,
            time=decision.time,
            duration_minutes=duration_minutes,
            status=initial_status(acting_role),
            reason=reason,
            notes=notes,
        )
        try:
            stored = self._store.insert_appointment(appointment)
        except SlotConflict as exc:
            logger.warning(
                "Lost booking race for doctor %s at %s %s against %s",
                doctor_id,
                decision.date,
                decision.time,
                exc.appointment_id,
            )
            raise

        logger.info(
            "Booked appointment %s with doctor %s at %s %s (%s)",
            stored.id,
            doctor_id,
            stored.date,
            stored.time,
            stored.status.value,
        )
        return stored

    def reschedule(
        self,
        appointment: Appointment | str,
        new_day,
        new_time: str,
        acting_role: Role,
        duration_minutes: int | None = None,
    ) -> Appointment:
        """
        Move an appointment to a new slot.

        The original row is only marked Rescheduled when the new row is stored;
        if any check fails the original is left untouched.

        Raises:
            ModificationWindowExceeded, InvalidStatusTransition: When the move is not allowed
            PastDateError, SlotUnavailable, SlotConflict: When the new slot is rejected
        """
        original = self._resolve(appointment)
        resolver = self.resolver(original.doctor_id, new_day)
        outcome = resolver.reschedule(
            original, new_day, new_time, acting_role, self.now(), duration_minutes
        )
        outcome.decision.raise_for_conflict()

        stored = self._store.insert_appointment(outcome.replacement, replacing=outcome.original)
        logger.info(
            "Rescheduled appointment %s to %s (%s %s)",
            original.id,
            stored.id,
            stored.date,
            stored.time,
        )
        return stored

    # Status transitions

    def cancel(self, appointment: Appointment | str, acting_role: Role, reason: str = "") -> Appointment:
        """
        Cancel an appointment within the acting role's modification window.

        Raises:
            ModificationWindowExceeded: If too little notice is left
            InvalidStatusTransition: If the appointment is already terminal
        """
        appointment = self._resolve(appointment)
        cancelled = transition(appointment, AppointmentStatus.CANCELLED)
        resolver = self.resolver(appointment.doctor_id, appointment.date)
        resolver.ensure_can_modify(appointment, acting_role, self.now())

        if reason:
            notes = f"{cancelled.notes}\n{reason}".strip()
            cancelled = replace(cancelled, notes=notes)
        return self._save_transition(appointment, cancelled)

    def confirm(self, appointment: Appointment | str) -> Appointment:
        appointment = self._resolve(appointment)
        return self._save_transition(appointment, transition(appointment, AppointmentStatus.CONFIRMED))

    def complete(self, appointment: Appointment | str) -> Appointment:
        appointment = self._resolve(appointment)
        return self._save_transition(appointment, transition(appointment, AppointmentStatus.COMPLETED))

    def mark_no_show(self, appointment: Appointment | str) -> Appointment:
        appointment = self._resolve(appointment)
        return self._save_transition(appointment, transition(appointment, AppointmentStatus.NO_SHOW))

    def _save_transition(self, before: Appointment, after: Appointment) -> Appointment:
        stored = self._store.update_appointment(after)
        logger.info(
            "Appointment %s: %s -> %s",
            before.id,
            before.status.value,
            stored.status.value,
        )
        return stored

    def _resolve(self, appointment: Appointment | str) -> Appointment:
        """Accept an appointment or its id; always re-read the stored version."""
        appointment_id = appointment if isinstance(appointment, str) else appointment.id
        stored = self._store.get_appointment(appointment_id) if appointment_id else None
        if stored is None:
            raise AppointmentNotFound(f"Appointment {appointment_id} not found")
        return stored

    # Doctor schedule maintenance

    def update_working_hours(self, doctor_id: str, schedule: WeeklySchedule) -> WeeklySchedule:
        stored = self._store.save_weekly_schedule(doctor_id, schedule)
        logger.info("Updated working hours for doctor %s", doctor_id)
        return stored

    def block_time(self, doctor_id: str, block: BlockedInterval) -> BlockedInterval:
        stored = self._store.add_blocked_interval(doctor_id, block)
        logger.info(
            "Blocked %s %s-%s for doctor %s (%s)",
            stored.date,
            stored.start_time,
            stored.end_time,
            doctor_id,
            stored.recurrence.frequency.value if stored.recurrence else "once",
        )
        return stored

    def unblock_time(self, doctor_id: str, block_id: str) -> bool:
        return self._store.delete_blocked_interval(doctor_id, block_id)

    def add_vacation(self, doctor_id: str, vacation: Vacation) -> Vacation:
        stored = self._store.add_vacation(doctor_id, vacation)
        logger.info(
            "Added %s for doctor %s from %s to %s",
            stored.type.value,
            doctor_id,
            stored.start_date,
            stored.end_date,
        )
        return stored
