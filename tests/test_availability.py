"""
Tests for the availability evaluator.
"""

import pytest

from doctorslots.domain.availability import AvailabilityEvaluator, is_available, slot_status
from doctorslots.domain.exceptions import InvalidSchedule, InvalidTimeFormat
from doctorslots.domain.models import (
    Appointment,
    AppointmentStatus,
    BlockedInterval,
    DoctorSchedule,
    RecurrenceFrequency,
    RecurrenceRule,
    SlotStatus,
    Vacation,
    VacationType,
    WeeklySchedule,
)

MONDAY = "2024-01-01"
SATURDAY = "2024-01-06"


def _schedule(blocks=(), vacations=(), appointments=()):
    return DoctorSchedule(
        doctor_id="doc-1",
        weekly_schedule=WeeklySchedule.standard(),
        blocked_intervals=blocks,
        vacations=vacations,
        appointments=appointments,
    )


def _appointment(time="09:00", duration=30, status=AppointmentStatus.CONFIRMED, **kwargs):
    return Appointment(
        doctor_id=kwargs.pop("doctor_id", "doc-1"),
        patient_id="pat-1",
        date=kwargs.pop("date", MONDAY),
        time=time,
        duration_minutes=duration,
        status=status,
        id=kwargs.pop("id", "apt-1"),
    )


class TestWorkingHours:
    """Tests for working hours, breaks and days off."""

    def test_working_day_listing(self):
        """Mon 09-17 with a 12-13 break, listed over the 06-22 window."""
        evaluator = AvailabilityEvaluator(_schedule())
        statuses = {slot.time: slot.status for slot in evaluator.list_slots(MONDAY, 30)}

        available = [time for time, status in statuses.items() if status is SlotStatus.AVAILABLE]
        assert available == [
            "09:00", "09:30", "10:00", "10:30", "11:00", "11:30",
            "13:00", "13:30", "14:00", "14:30", "15:00", "15:30", "16:00", "16:30",
        ]
        for time in ["06:00", "08:30", "12:00", "12:30", "17:00", "21:30"]:
            assert statuses[time] is SlotStatus.OUT_OF_HOURS

    def test_listing_covers_whole_scan_window(self):
        slots = AvailabilityEvaluator(_schedule()).list_slots(MONDAY, 30)
        assert len(slots) == 32
        times = [slot.time for slot in slots]
        assert times[0] == "06:00"
        assert times[-1] == "21:30"

    def test_day_off_is_out_of_hours(self):
        evaluator = AvailabilityEvaluator(_schedule())
        slots = list(evaluator.list_slots(SATURDAY, 60))
        assert slots
        assert all(slot.status is SlotStatus.OUT_OF_HOURS for slot in slots)
        assert all(slot.detail == "day off" for slot in slots)

    def test_end_of_day_is_exclusive(self):
        evaluator = AvailabilityEvaluator(_schedule())
        assert evaluator.is_available(MONDAY, "16:59")
        assert not evaluator.is_available(MONDAY, "17:00")

    def test_break_detail(self):
        slot = AvailabilityEvaluator(_schedule()).describe_slot(MONDAY, "12:15")
        assert slot.status is SlotStatus.OUT_OF_HOURS
        assert slot.detail == "break"

    def test_custom_scan_window(self):
        evaluator = AvailabilityEvaluator(_schedule(), scan_start="08:00", scan_end="18:00")
        assert len(evaluator.list_slots(MONDAY, 60)) == 10

    def test_inverted_scan_window(self):
        with pytest.raises(InvalidSchedule):
            AvailabilityEvaluator(_schedule(), scan_start="18:00", scan_end="08:00")

    def test_non_positive_granularity(self):
        with pytest.raises(InvalidSchedule, match="Granularity"):
            AvailabilityEvaluator(_schedule()).list_slots(MONDAY, 0)

    def test_malformed_time(self):
        with pytest.raises(InvalidTimeFormat):
            AvailabilityEvaluator(_schedule()).is_available(MONDAY, "9am")


class TestOccupancy:
    """Tests for appointments, blocks and vacations."""

    def test_appointment_books_its_whole_duration(self):
        evaluator = AvailabilityEvaluator(_schedule(appointments=[_appointment(duration=45)]))

        assert evaluator.slot_status(MONDAY, "09:00") is SlotStatus.BOOKED
        assert evaluator.slot_status(MONDAY, "09:30") is SlotStatus.BOOKED
        assert evaluator.slot_status(MONDAY, "09:45") is SlotStatus.AVAILABLE

    def test_booked_slot_names_appointment(self):
        evaluator = AvailabilityEvaluator(_schedule(appointments=[_appointment()]))
        assert evaluator.describe_slot(MONDAY, "09:00").detail == "apt-1"

    @pytest.mark.parametrize("status", [
        AppointmentStatus.CANCELLED,
        AppointmentStatus.COMPLETED,
        AppointmentStatus.NO_SHOW,
        AppointmentStatus.RESCHEDULED,
    ])
    def test_inactive_appointments_free_the_slot(self, status):
        evaluator = AvailabilityEvaluator(_schedule(appointments=[_appointment(status=status)]))
        assert evaluator.is_available(MONDAY, "09:00")

    def test_pending_appointment_occupies(self):
        evaluator = AvailabilityEvaluator(
            _schedule(appointments=[_appointment(status=AppointmentStatus.PENDING)])
        )
        assert not evaluator.is_available(MONDAY, "09:00")

    def test_other_doctors_appointments_are_ignored(self):
        evaluator = AvailabilityEvaluator(_schedule(appointments=[_appointment(doctor_id="doc-2")]))
        assert evaluator.is_available(MONDAY, "09:00")

    def test_recurring_block(self):
        block = BlockedInterval(
            date=MONDAY,
            start_time="10:00",
            end_time="11:00",
            reason="Team meeting",
            recurrence=RecurrenceRule(RecurrenceFrequency.WEEKLY, "2024-01-22"),
        )
        evaluator = AvailabilityEvaluator(_schedule(blocks=[block]))

        slot = evaluator.describe_slot("2024-01-15", "10:30")
        assert slot.status is SlotStatus.BLOCKED
        assert slot.detail == "Team meeting"
        assert evaluator.is_available("2024-01-15", "11:00")
        assert evaluator.is_available("2024-01-29", "10:30")

    def test_vacation_blocks_whole_day(self):
        vacation = Vacation(MONDAY, "2024-01-05", type=VacationType.CONFERENCE)
        evaluator = AvailabilityEvaluator(_schedule(vacations=[vacation]))

        slot = evaluator.describe_slot("2024-01-03", "10:00")
        assert slot.status is SlotStatus.BLOCKED
        assert slot.detail == "vacation: conference"
        assert evaluator.slot_status("2024-01-03", "07:00") is SlotStatus.OUT_OF_HOURS

    def test_booked_takes_precedence_over_block(self):
        """An appointment made before a block was added is still reported as booked."""
        block = BlockedInterval(date=MONDAY, start_time="09:00", end_time="10:00")
        evaluator = AvailabilityEvaluator(_schedule(blocks=[block], appointments=[_appointment()]))

        assert evaluator.slot_status(MONDAY, "09:00") is SlotStatus.BOOKED
        assert evaluator.slot_status(MONDAY, "09:30") is SlotStatus.BLOCKED

    def test_out_of_hours_takes_precedence(self):
        block = BlockedInterval(date=MONDAY, start_time="07:00", end_time="10:00")
        evaluator = AvailabilityEvaluator(_schedule(blocks=[block]))
        assert evaluator.slot_status(MONDAY, "07:30") is SlotStatus.OUT_OF_HOURS


class TestQueries:
    """Tests for query consistency and search helpers."""

    def test_queries_are_idempotent(self):
        evaluator = AvailabilityEvaluator(_schedule(appointments=[_appointment()]))
        first = [evaluator.slot_status(MONDAY, "09:00") for _ in range(3)]
        assert first == [SlotStatus.BOOKED] * 3

    def test_listing_is_restartable(self):
        slots = AvailabilityEvaluator(_schedule()).list_slots(MONDAY, 30)
        assert list(slots) == list(slots)

    def test_listing_matches_point_queries(self):
        evaluator = AvailabilityEvaluator(_schedule(appointments=[_appointment(duration=60)]))
        for slot in evaluator.list_slots(MONDAY, 15):
            assert slot.status is evaluator.slot_status(MONDAY, slot.time)

    def test_bookable_slots(self):
        evaluator = AvailabilityEvaluator(_schedule(appointments=[_appointment()]))
        bookable = evaluator.bookable_slots(MONDAY, 60)
        assert [slot.time for slot in bookable] == ["10:00", "11:00", "13:00", "14:00", "15:00", "16:00"]

    def test_next_available_same_day(self):
        evaluator = AvailabilityEvaluator(_schedule(appointments=[_appointment()]))
        slot = evaluator.next_available(MONDAY, "08:00")
        assert (slot.date, slot.time) == (MONDAY, "09:30")

    def test_next_available_skips_weekend(self):
        evaluator = AvailabilityEvaluator(_schedule())
        slot = evaluator.next_available("2024-01-05", "17:00")
        assert (slot.date, slot.time) == ("2024-01-08", "09:00")

    def test_next_available_none(self):
        vacation = Vacation(MONDAY, "2024-01-31")
        evaluator = AvailabilityEvaluator(_schedule(vacations=[vacation]))
        assert evaluator.next_available(MONDAY, days_ahead=7) is None

    def test_interval_obstacle(self):
        block = BlockedInterval(date=MONDAY, start_time="10:30", end_time="11:00", reason="Rounds")
        evaluator = AvailabilityEvaluator(_schedule(blocks=[block]))

        assert evaluator.interval_obstacle(MONDAY, "09:00", 60) is None
        assert evaluator.interval_obstacle(MONDAY, "10:00", 60) == (SlotStatus.BLOCKED, "Rounds")
        assert evaluator.interval_obstacle(MONDAY, "11:30", 60) == (SlotStatus.OUT_OF_HOURS, "break")
        assert evaluator.interval_obstacle(MONDAY, "16:30", 60) == (
            SlotStatus.OUT_OF_HOURS,
            "outside working hours",
        )

    def test_functional_shortcuts(self):
        schedule = _schedule()
        assert is_available(schedule, MONDAY, "09:00")
        assert slot_status(schedule, SATURDAY, "09:00") is SlotStatus.OUT_OF_HOURS
