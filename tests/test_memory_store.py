"""
Tests for the in-memory schedule store and its JSON data file.
"""

import json
from dataclasses import replace

import pytest

from doctorslots.adapters.memory_store import MemoryScheduleStore
from doctorslots.domain.exceptions import (
    AppointmentNotFound,
    InvalidStatusTransition,
    SlotConflict,
    StoreError,
)
from doctorslots.domain.models import (
    Appointment,
    AppointmentStatus,
    BlockedInterval,
    RecurrenceFrequency,
    RecurrenceRule,
    Vacation,
    WeeklySchedule,
)

SAMPLE = {
    "doctors": {
        "doc-1": {
            "workingHours": {
                "monday": {"isWorking": True, "start": "08:00", "end": "16:00",
                           "breakStart": "12:00", "breakEnd": "12:30"},
                "tuesday": {"isWorking": False, "start": "", "end": ""},
            },
            "blockedTimes": [
                {"id": 7, "date": "2024-01-01T00:00:00Z", "startTime": "10:00", "endTime": "11:00",
                 "reason": "Meeting", "isRecurring": True, "recurrenceType": "weekly",
                 "recurrenceEnd": "2024-01-22"},
            ],
            "vacations": [
                {"id": "leave-9", "startDate": "2024-02-01", "endDate": "2024-02-05", "type": "conference"},
            ],
        },
    },
    "appointments": [
        {"id": "apt-100", "doctorId": "doc-1", "patientId": "pat-1", "appointmentDate": "2024-01-01",
         "appointmentTime": "09:00", "duration": 45, "status": "CONFIRMED"},
        {"doctorId": "doc-1", "patientId": "pat-2", "appointmentDate": "2024-01-02",
         "appointmentTime": "09:00", "status": "NoShow"},
    ],
}


def _appointment(time="09:00", doctor_id="doc-1", **kwargs):
    return Appointment(doctor_id, kwargs.pop("patient_id", "pat-1"), "2024-01-01", time, **kwargs)


class TestLoading:
    """Tests for reading the JSON data format."""

    def test_load_payload(self):
        store = MemoryScheduleStore()
        store.load_payload(SAMPLE)

        schedule = store.get_weekly_schedule("doc-1")
        assert schedule.days["monday"].break_end == "12:30"
        assert not schedule.days["tuesday"].is_working
        assert not schedule.days["sunday"].is_working

        blocks = store.get_blocked_intervals("doc-1", "2024-01-15", "2024-01-15")
        assert blocks[0].id == "7"
        assert blocks[0].date == "2024-01-01"
        assert blocks[0].recurrence == RecurrenceRule(RecurrenceFrequency.WEEKLY, "2024-01-22")

        assert store.get_vacations("doc-1", "2024-02-03", "2024-02-03")[0].type.value == "conference"

        appointment = store.get_appointment("apt-100")
        assert appointment.status is AppointmentStatus.CONFIRMED
        assert appointment.duration_minutes == 45

    def test_status_spellings(self):
        store = MemoryScheduleStore()
        store.load_payload(SAMPLE)
        statuses = {a.patient_id: a.status for a in store.get_appointments("doc-1", "2024-01-01", "2024-01-31")}
        assert statuses["pat-2"] is AppointmentStatus.NO_SHOW

    def test_range_filters(self):
        store = MemoryScheduleStore()
        store.load_payload(SAMPLE)

        assert store.get_blocked_intervals("doc-1", "2024-01-23", "2024-01-31") == []
        assert store.get_vacations("doc-1", "2024-01-01", "2024-01-31") == []
        assert [a.id for a in store.get_appointments("doc-1", "2024-01-01", "2024-01-01")] == ["apt-100"]

    def test_invalid_records(self):
        store = MemoryScheduleStore()
        with pytest.raises(StoreError, match="Invalid schedule data"):
            store.load_payload({"appointments": [{"doctorId": "doc-1", "appointmentTime": "25:00"}]})

    def test_missing_file_gives_empty_store(self, tmp_path):
        store = MemoryScheduleStore.load_json(tmp_path / "missing.json")
        assert store.get_appointment("apt-1") is None

    def test_unreadable_file(self, tmp_path):
        data_file = tmp_path / "broken.json"
        data_file.write_text("{not json", encoding="utf-8")
        with pytest.raises(StoreError, match="Could not read"):
            MemoryScheduleStore.load_json(data_file)

    def test_save_and_reload(self, tmp_path):
        data_file = tmp_path / "schedule.json"
        store = MemoryScheduleStore.load_json(data_file)
        store.save_weekly_schedule("doc-1", WeeklySchedule.standard())
        store.add_blocked_interval(
            "doc-1", BlockedInterval(date="2024-01-01", start_time="10:00", end_time="11:00")
        )
        store.add_vacation("doc-1", Vacation("2024-02-01", "2024-02-02"))
        booked = store.insert_appointment(_appointment())

        saved = json.loads(data_file.read_text(encoding="utf-8"))
        assert saved["appointments"][0]["appointmentDate"] == "2024-01-01"

        reloaded = MemoryScheduleStore.load_json(data_file)
        assert reloaded.get_weekly_schedule("doc-1") == WeeklySchedule.standard()
        assert reloaded.get_appointment(booked.id) == booked
        assert len(reloaded.get_blocked_intervals("doc-1", "2024-01-01", "2024-01-01")) == 1
        assert len(reloaded.get_vacations("doc-1", "2024-02-01", "2024-02-01")) == 1


class TestWrites:
    """Tests for the atomic appointment insert and other writes."""

    def test_insert_assigns_id(self):
        store = MemoryScheduleStore()
        stored = store.insert_appointment(_appointment())
        assert stored.id.startswith("apt-")
        assert store.get_appointment(stored.id) == stored

    def test_insert_rejects_overlap(self):
        store = MemoryScheduleStore()
        first = store.insert_appointment(_appointment(duration_minutes=60))

        with pytest.raises(SlotConflict) as exc_info:
            store.insert_appointment(_appointment(time="09:30", patient_id="pat-2"))
        assert exc_info.value.appointment_id == first.id

    def test_insert_ignores_inactive_and_other_doctors(self):
        store = MemoryScheduleStore()
        store.insert_appointment(_appointment(status=AppointmentStatus.CANCELLED))
        store.insert_appointment(_appointment(doctor_id="doc-2"))
        store.insert_appointment(_appointment())

        assert len(store.get_appointments("doc-1", "2024-01-01", "2024-01-01")) == 2

    def test_replacing_swaps_rows(self):
        store = MemoryScheduleStore()
        original = store.insert_appointment(_appointment(status=AppointmentStatus.CONFIRMED))
        moved = _appointment(time="09:15", rescheduled_from=original.id)
        store.insert_appointment(moved, replacing=replace(original, status=AppointmentStatus.RESCHEDULED))

        assert store.get_appointment(original.id).status is AppointmentStatus.RESCHEDULED
        active = [a for a in store.get_appointments("doc-1", "2024-01-01", "2024-01-01") if a.is_active]
        assert [a.time for a in active] == ["09:15"]

    def test_replacing_requires_active_original(self):
        store = MemoryScheduleStore()
        cancelled = store.insert_appointment(_appointment(status=AppointmentStatus.CANCELLED))
        with pytest.raises(InvalidStatusTransition):
            store.insert_appointment(_appointment(time="14:00"), replacing=cancelled)

    def test_replacing_unknown_original(self):
        store = MemoryScheduleStore()
        with pytest.raises(AppointmentNotFound):
            store.insert_appointment(_appointment(), replacing=_appointment(id="apt-404"))

    def test_update_unknown_appointment(self):
        with pytest.raises(AppointmentNotFound):
            MemoryScheduleStore().update_appointment(_appointment(id="apt-404"))

    def test_delete_block(self):
        store = MemoryScheduleStore()
        block = store.add_blocked_interval(
            "doc-1", BlockedInterval(date="2024-01-01", start_time="10:00", end_time="11:00")
        )
        assert store.delete_blocked_interval("doc-1", block.id)
        assert not store.delete_blocked_interval("doc-1", block.id)

    def test_failed_save_rolls_back_insert(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("", encoding="utf-8")
        store = MemoryScheduleStore(data_file=blocker / "schedule.json")

        with pytest.raises(StoreError, match="Could not save"):
            store.insert_appointment(_appointment())

        assert store.get_appointments("doc-1", "2024-01-01", "2024-01-01") == []
        store.data_file = tmp_path / "schedule.json"
        assert store.insert_appointment(_appointment()).time == "09:00"

    def test_failed_save_rolls_back_schedule_and_blocks(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("", encoding="utf-8")
        store = MemoryScheduleStore(data_file=blocker / "schedule.json")

        with pytest.raises(StoreError):
            store.save_weekly_schedule("doc-1", WeeklySchedule.standard())
        with pytest.raises(StoreError):
            store.add_blocked_interval(
                "doc-1", BlockedInterval(date="2024-01-01", start_time="10:00", end_time="11:00")
            )

        assert store.get_weekly_schedule("doc-1") != WeeklySchedule.standard()
        assert store.get_blocked_intervals("doc-1", "2024-01-01", "2024-01-01") == []

    def test_doctor_schedule_snapshot(self):
        store = MemoryScheduleStore()
        store.load_payload(SAMPLE)

        snapshot = store.get_doctor_schedule("doc-1", "2024-01-01", "2024-01-01")

        assert snapshot.doctor_id == "doc-1"
        assert snapshot.weekly_schedule.days["monday"].start == "08:00"
        assert [block.id for block in snapshot.blocked_intervals] == ["7"]
        assert snapshot.vacations == ()
        assert [a.id for a in snapshot.appointments] == ["apt-100"]
