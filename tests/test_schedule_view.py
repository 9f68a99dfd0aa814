"""
Tests for calendar views.
"""

import pendulum

from doctorslots.adapters.memory_store import MemoryScheduleStore
from doctorslots.domain.models import SlotStatus, Vacation, WeeklySchedule
from doctorslots.services.booking_service import BookingService
from doctorslots.services.schedule_view import ScheduleView, ViewMode, navigate, week_start


def _view():
    store = MemoryScheduleStore()
    store.save_weekly_schedule("doc-1", WeeklySchedule.standard())
    store.add_vacation("doc-1", Vacation("2024-01-03", "2024-01-03"))
    service = BookingService(store, clock=lambda: pendulum.datetime(2023, 12, 1, tz="Europe/Berlin"))
    return ScheduleView(service, granularity_minutes=60)


class TestCalendarHelpers:
    """Tests for week boundaries and navigation."""

    def test_week_starts_on_sunday(self):
        assert week_start("2024-01-03").isoformat() == "2023-12-31"
        assert week_start("2023-12-31").isoformat() == "2023-12-31"
        assert week_start("2024-01-06").isoformat() == "2023-12-31"

    def test_navigate(self):
        assert navigate("2024-01-31", ViewMode.DAY, 1).isoformat() == "2024-02-01"
        assert navigate("2024-01-03", ViewMode.WEEK, -1).isoformat() == "2023-12-27"
        assert navigate("2024-01-31", "month", 1).isoformat() == "2024-02-29"


class TestScheduleView:
    """Tests for ScheduleView."""

    def test_day_counts(self):
        day = _view().day("doc-1", "2024-01-01")
        counts = day.counts()

        assert counts[SlotStatus.AVAILABLE] == 7
        assert counts[SlotStatus.OUT_OF_HOURS] == 9
        assert counts[SlotStatus.BOOKED] == 0
        assert len(day.available) == 7

    def test_week(self):
        days = _view().week("doc-1", "2024-01-03")

        assert [d.date for d in days][0] == "2023-12-31"
        assert len(days) == 7
        vacation_day = days[3]
        assert vacation_day.date == "2024-01-03"
        assert vacation_day.counts()[SlotStatus.BLOCKED] == 7

    def test_month(self):
        days = _view().render("doc-1", "2024-02-10", ViewMode.MONTH)
        assert len(days) == 29
        assert days[0].date == "2024-02-01"
