"""
Booking decisions, the appointment state machine and modification rules.

The resolver never raises for ordinary business outcomes: a rejected booking
is a ``BookingDecision`` carrying a typed ``Conflict``. Callers that prefer
exceptions use ``BookingDecision.raise_for_conflict()``.
"""

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Dict, FrozenSet, List, Optional

import pendulum
from pendulum import DateTime

from .availability import DEFAULT_SCAN_END, DEFAULT_SCAN_START, AvailabilityEvaluator
from .exceptions import (
    InvalidSchedule,
    InvalidStatusTransition,
    ModificationWindowExceeded,
    PastDateError,
    SchedulingError,
    SlotConflict,
    SlotUnavailable,
)
from .models import (
    MINUTES_PER_DAY,
    Appointment,
    AppointmentStatus,
    DoctorSchedule,
    Role,
    SlotStatus,
    TimeRange,
    combine,
    date_key,
    parse_time,
)

logger = logging.getLogger(__name__)

TRANSITIONS: Dict[AppointmentStatus, FrozenSet[AppointmentStatus]] = {
    AppointmentStatus.PENDING: frozenset({
        AppointmentStatus.CONFIRMED,
        AppointmentStatus.CANCELLED,
    }),
    AppointmentStatus.CONFIRMED: frozenset({
        AppointmentStatus.COMPLETED,
        AppointmentStatus.CANCELLED,
        AppointmentStatus.NO_SHOW,
        AppointmentStatus.RESCHEDULED,
    }),
}

TERMINAL_STATUSES = frozenset(set(AppointmentStatus) - set(TRANSITIONS))


def can_transition(current: AppointmentStatus, target: AppointmentStatus) -> bool:
    return AppointmentStatus(target) in TRANSITIONS.get(AppointmentStatus(current), frozenset())


def transition(appointment: Appointment, target: AppointmentStatus) -> Appointment:
    """
    Return a copy of the appointment in the target status.

    Raises:
        InvalidStatusTransition: If the state machine does not allow the move
    """
    target = AppointmentStatus(target)
    if not can_transition(appointment.status, target):
        raise InvalidStatusTransition(
            f"Appointment {appointment.id} cannot move from "
            f"{appointment.status.value} to {target.value}"
        )
    return replace(appointment, status=target)


def initial_status(acting_role: Role) -> AppointmentStatus:
    """Staff bookings are confirmed straight away, patient requests start pending."""
    if Role(acting_role) is Role.PATIENT:
        return AppointmentStatus.PENDING
    return AppointmentStatus.CONFIRMED


class ConflictKind(str, Enum):
    PAST_DATE = "past_date"
    SLOT_UNAVAILABLE = "slot_unavailable"
    SLOT_CONFLICT = "slot_conflict"


@dataclass(frozen=True)
class Conflict:
    """Why a proposed booking was rejected."""
    kind: ConflictKind
    slot_status: Optional[SlotStatus] = None
    appointment_id: Optional[str] = None
    detail: Optional[str] = None

    def to_exception(self) -> SchedulingError:
        if self.kind is ConflictKind.PAST_DATE:
            return PastDateError(self.detail or "Cannot book appointments in the past")
        if self.kind is ConflictKind.SLOT_UNAVAILABLE:
            return SlotUnavailable(self.slot_status, self.detail)
        return SlotConflict(self.appointment_id)


@dataclass(frozen=True)
class BookingDecision:
    doctor_id: str
    date: str
    time: str
    duration_minutes: int
    conflict: Optional[Conflict] = None

    @property
    def accepted(self) -> bool:
        return self.conflict is None

    def raise_for_conflict(self) -> None:
        """Raise the typed error matching the conflict, if there is one."""
        if self.conflict is not None:
            raise self.conflict.to_exception()


@dataclass(frozen=True)
class BookingPolicy:
    """Minimum notice, in minutes, before an appointment can still be changed."""
    patient_notice_minutes: int = 120
    staff_notice_minutes: int = 30

    def notice_for(self, acting_role: Role) -> int:
        if Role(acting_role) is Role.PATIENT:
            return self.patient_notice_minutes
        return self.staff_notice_minutes


@dataclass(frozen=True)
class RescheduleOutcome:
    """
    Result of a reschedule check.

    On success ``original`` is already in the Rescheduled state and
    ``replacement`` is the new row to insert; on failure ``original`` is the
    untouched input and ``replacement`` is None.
    """
    decision: BookingDecision
    original: Appointment
    replacement: Optional[Appointment] = None

    @property
    def accepted(self) -> bool:
        return self.decision.accepted


class ConflictResolver:
    """
    Validates proposed bookings against a doctor snapshot.

    Algorithm:
    1. Reject moments in the past
    2. Reject points the availability evaluator does not consider available
       (a point taken by an appointment is reported as a conflict with it)
    3. Reject intervals overlapping an active appointment
    4. Reject intervals running into the break, a block or the end of the day
    5. Accept
    """

    def __init__(
        self,
        schedule: DoctorSchedule,
        timezone: str = "Europe/Berlin",
        policy: BookingPolicy | None = None,
        scan_start: str = DEFAULT_SCAN_START,
        scan_end: str = DEFAULT_SCAN_END,
    ):
        self.schedule = schedule
        self.timezone = timezone
        self.policy = policy or BookingPolicy()
        self._scan_window = (scan_start, scan_end)

    def _now(self, now: DateTime | None) -> DateTime:
        return now if now is not None else pendulum.now(self.timezone)

    def _evaluator(self, ignore_appointment_id: str | None = None) -> AvailabilityEvaluator:
        schedule = self.schedule
        if ignore_appointment_id is not None:
            schedule = replace(
                schedule,
                appointments=tuple(
                    appointment for appointment in schedule.appointments
                    if appointment.id != ignore_appointment_id
                ),
            )
        return AvailabilityEvaluator(schedule, *self._scan_window)

    def find_conflicts(
        self,
        day,
        time: str,
        duration_minutes: int,
        ignore_appointment_id: str | None = None,
    ) -> List[Appointment]:
        """Active appointments whose interval overlaps ``[time, time + duration)``."""
        key = date_key(day)
        start = parse_time(time)
        requested = TimeRange(key, start, min(start + duration_minutes, MINUTES_PER_DAY))

        return [
            appointment for appointment in self.schedule.active_appointments()
            if ignore_appointment_id is None or appointment.id != ignore_appointment_id
            if appointment.date == key and requested.overlaps(appointment.time_range)
        ]

    def propose_booking(
        self,
        day,
        time: str,
        duration_minutes: int = 30,
        acting_role: Role = Role.PATIENT,
        now: DateTime | None = None,
        ignore_appointment_id: str | None = None,
    ) -> BookingDecision:
        """
        Decide whether a new appointment can take ``[time, time + duration)``.

        Args:
            day: Appointment date (``YYYY-MM-DD``)
            time: Start time (``HH:MM``)
            duration_minutes: Length of the appointment
            acting_role: Who is booking
            now: Current time, defaults to the wall clock in the doctor's timezone
            ignore_appointment_id: Appointment being moved away from (reschedules)

        Returns:
            BookingDecision, with ``conflict`` set when the booking is rejected

        Raises:
            InvalidDate, InvalidTimeFormat, InvalidSchedule: On malformed input
        """
        key = date_key(day)
        parse_time(time)
        if duration_minutes <= 0:
            raise InvalidSchedule(f"Duration must be positive, got {duration_minutes}")

        def decide(conflict: Conflict | None = None) -> BookingDecision:
            decision = BookingDecision(self.schedule.doctor_id, key, time, duration_minutes, conflict)
            if conflict is not None:
                logger.debug(
                    "Rejected %s booking for doctor %s at %s %s: %s",
                    Role(acting_role).value,
                    self.schedule.doctor_id,
                    key,
                    time,
                    conflict.kind.value,
                )
            return decision

        current = self._now(now)
        if combine(key, time, self.timezone) < current:
            return decide(Conflict(
                ConflictKind.PAST_DATE,
                detail=f"{key} {time} is before {current.format('YYYY-MM-DD HH:mm')}",
            ))

        evaluator = self._evaluator(ignore_appointment_id)
        slot = evaluator.describe_slot(key, time, duration_minutes)
        if slot.status is SlotStatus.BOOKED:
            # The point is taken by an appointment: that is a conflict with it.
            return decide(Conflict(
                ConflictKind.SLOT_CONFLICT,
                slot_status=slot.status,
                appointment_id=slot.detail,
            ))
        if not slot.is_available:
            return decide(Conflict(
                ConflictKind.SLOT_UNAVAILABLE,
                slot_status=slot.status,
                detail=slot.detail,
            ))

        clashes = self.find_conflicts(key, time, duration_minutes, ignore_appointment_id)
        if clashes:
            return decide(Conflict(ConflictKind.SLOT_CONFLICT, appointment_id=clashes[0].id))

        obstacle = evaluator.interval_obstacle(key, time, duration_minutes)
        if obstacle is not None:
            status, detail = obstacle
            return decide(Conflict(ConflictKind.SLOT_UNAVAILABLE, slot_status=status, detail=detail))

        return decide()

    def can_modify(
        self,
        appointment: Appointment,
        acting_role: Role,
        now: DateTime | None = None,
    ) -> bool:
        """
        Check if the acting role may still cancel or reschedule an appointment.

        Terminal appointments can never be modified; otherwise the role's
        minimum notice must remain before the appointment starts.
        """
        if appointment.status in TERMINAL_STATUSES:
            return False

        notice = appointment.starts_at(self.timezone) - self._now(now)
        return notice.total_seconds() >= self.policy.notice_for(acting_role) * 60

    def ensure_can_modify(
        self,
        appointment: Appointment,
        acting_role: Role,
        now: DateTime | None = None,
    ) -> None:
        if not self.can_modify(appointment, acting_role, now):
            raise ModificationWindowExceeded(
                f"Appointment {appointment.id} can no longer be modified by a "
                f"{Role(acting_role).value} (status {appointment.status.value}, "
                f"{self.policy.notice_for(acting_role)} min notice required)"
            )

    def reschedule(
        self,
        appointment: Appointment,
        new_day,
        new_time: str,
        acting_role: Role,
        now: DateTime | None = None,
        duration_minutes: int | None = None,
    ) -> RescheduleOutcome:
        """
        Check a move of ``appointment`` to a new slot.

        The old row only becomes Rescheduled when the new slot is accepted;
        the new row starts Pending or Confirmed depending on the acting role.

        Raises:
            ModificationWindowExceeded: If the appointment can no longer be changed
            InvalidStatusTransition: If the appointment is not confirmed
        """
        current = self._now(now)
        self.ensure_can_modify(appointment, acting_role, current)
        if not can_transition(appointment.status, AppointmentStatus.RESCHEDULED):
            raise InvalidStatusTransition(
                f"Only confirmed appointments can be rescheduled, "
                f"{appointment.id} is {appointment.status.value}"
            )

        duration = duration_minutes or appointment.duration_minutes
        decision = self.propose_booking(
            new_day,
            new_time,
            duration,
            acting_role,
            now=current,
            ignore_appointment_id=appointment.id,
        )
        if not decision.accepted:
            return RescheduleOutcome(decision=decision, original=appointment)

        replacement = replace(
            appointment,
            id=None,
            date=decision.date,
            time=decision.time,
            duration_minutes=duration,
            status=initial_status(acting_role),
            rescheduled_from=appointment.id,
        )
        return RescheduleOutcome(
            decision=decision,
            original=transition(appointment, AppointmentStatus.RESCHEDULED),
            replacement=replacement,
        )
