"""
In-memory schedule store, optionally backed by a JSON data file.

Used for offline work (``--mock``) and in tests. Appointment inserts are an
atomic check-and-insert under a single lock, the same guarantee a database
unique constraint gives the REST backend.
"""

import itertools
import json
import logging
import threading
from contextlib import contextmanager
from dataclasses import replace
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import ValidationError

from ..domain.exceptions import (
    AppointmentNotFound,
    InvalidStatusTransition,
    SchedulingError,
    SlotConflict,
    StoreError,
)
from ..domain.models import (
    DAY_OFF,
    WEEKDAYS,
    Appointment,
    BlockedInterval,
    DoctorSchedule,
    Vacation,
    WeeklySchedule,
    date_key,
)
from ..domain.recurrence import is_expired
from .records import (
    AppointmentRecord,
    BlockedTimeRecord,
    VacationRecord,
    weekly_schedule_from_payload,
    weekly_schedule_to_payload,
)

logger = logging.getLogger(__name__)


class MemoryScheduleStore:
    """
    Dict-backed implementation of the schedule store protocol.

    Doctors without stored working hours have every day off, so nothing can
    be booked for them until their hours are saved.
    """

    def __init__(self, data_file: Path | None = None):
        self.data_file = data_file
        self._lock = threading.RLock()
        self._ids = itertools.count(1)
        self._schedules: Dict[str, WeeklySchedule] = {}
        self._blocks: Dict[str, List[BlockedInterval]] = {}
        self._vacations: Dict[str, List[Vacation]] = {}
        self._appointments: Dict[str, Appointment] = {}

    @classmethod
    def load_json(cls, data_file: Path) -> "MemoryScheduleStore":
        """
        Load a store from a JSON data file.

        A missing file gives an empty store that will be created on first save.

        Raises:
            StoreError: If the file cannot be read or contains invalid records
        """
        store = cls(data_file=data_file)
        if not data_file.exists():
            return store

        try:
            with open(data_file, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as exc:
            raise StoreError(f"Could not read schedule data from {data_file}: {exc}") from exc

        store.load_payload(data)
        return store

    def load_payload(self, data: dict) -> None:
        """Replace the store content with the given JSON payload."""
        try:
            with self._lock:
                for doctor_id, doctor in (data.get("doctors") or {}).items():
                    self._schedules[doctor_id] = weekly_schedule_from_payload(
                        doctor.get("workingHours")
                    )
                    self._blocks[doctor_id] = [
                        BlockedTimeRecord.model_validate(record).to_domain()
                        for record in doctor.get("blockedTimes", [])
                    ]
                    self._vacations[doctor_id] = [
                        VacationRecord.model_validate(record).to_domain()
                        for record in doctor.get("vacations", [])
                    ]

                for record in data.get("appointments", []):
                    appointment = AppointmentRecord.model_validate(record).to_domain()
                    if appointment.id is None:
                        appointment = replace(appointment, id=self._next_id("apt"))
                    self._appointments[appointment.id] = appointment
        except (ValidationError, SchedulingError, AttributeError) as exc:
            raise StoreError(f"Invalid schedule data: {exc}") from exc

    def to_payload(self) -> dict:
        with self._lock:
            doctor_ids = sorted(set(self._schedules) | set(self._blocks) | set(self._vacations))
            return {
                "doctors": {
                    doctor_id: {
                        "workingHours": weekly_schedule_to_payload(
                            self.get_weekly_schedule(doctor_id)
                        ),
                        "blockedTimes": [
                            BlockedTimeRecord.from_domain(block).to_payload()
                            for block in self._blocks.get(doctor_id, [])
                        ],
                        "vacations": [
                            VacationRecord.from_domain(vacation).to_payload()
                            for vacation in self._vacations.get(doctor_id, [])
                        ],
                    }
                    for doctor_id in doctor_ids
                },
                "appointments": [
                    AppointmentRecord.from_domain(appointment).to_payload()
                    for appointment in self._appointments.values()
                ],
            }

    def save(self) -> None:
        """Write the store back to its data file, if it has one."""
        if self.data_file is None:
            return

        try:
            with self._lock:
                payload = self.to_payload()
                self.data_file.parent.mkdir(parents=True, exist_ok=True)
                with open(self.data_file, "w", encoding="utf-8") as f:
                    json.dump(payload, f, indent=2)
        except OSError as exc:
            raise StoreError(f"Could not save schedule data to {self.data_file}: {exc}") from exc

    def _next_id(self, prefix: str) -> str:
        while True:
            candidate = f"{prefix}-{next(self._ids)}"
            if candidate not in self._appointments and not self._block_id_taken(candidate):
                return candidate

    def _block_id_taken(self, candidate: str) -> bool:
        for blocks in self._blocks.values():
            if any(block.id == candidate for block in blocks):
                return True
        for vacations in self._vacations.values():
            if any(vacation.id == candidate for vacation in vacations):
                return True
        return False

    @contextmanager
    def _writing(self):
        """
        Apply a write under the lock and persist it before releasing the lock.

        If the data file cannot be written, memory is restored to the state
        before the write, so memory and file never disagree.
        """
        with self._lock:
            before = (
                dict(self._schedules),
                {doctor_id: list(blocks) for doctor_id, blocks in self._blocks.items()},
                {doctor_id: list(leave) for doctor_id, leave in self._vacations.items()},
                dict(self._appointments),
            )
            try:
                yield
                self.save()
            except StoreError:
                self._schedules, self._blocks, self._vacations, self._appointments = before
                raise

    # Reads

    def get_weekly_schedule(self, doctor_id: str) -> WeeklySchedule:
        with self._lock:
            schedule = self._schedules.get(doctor_id)
        if schedule is None:
            return WeeklySchedule(days={day: DAY_OFF for day in WEEKDAYS})
        return schedule

    def get_blocked_intervals(self, doctor_id: str, start, end) -> List[BlockedInterval]:
        """Raw blocks that may produce an occurrence between start and end."""
        first, last = date_key(start), date_key(end)
        with self._lock:
            blocks = list(self._blocks.get(doctor_id, []))
        return [
            block for block in blocks
            if block.date <= last and not is_expired(block, first)
        ]

    def get_vacations(self, doctor_id: str, start, end) -> List[Vacation]:
        first, last = date_key(start), date_key(end)
        with self._lock:
            vacations = list(self._vacations.get(doctor_id, []))
        return [
            vacation for vacation in vacations
            if vacation.start_date <= last and vacation.end_date >= first
        ]

    def get_appointments(self, doctor_id: str, start, end) -> List[Appointment]:
        first, last = date_key(start), date_key(end)
        with self._lock:
            return [
                appointment for appointment in self._appointments.values()
                if appointment.doctor_id == doctor_id and first <= appointment.date <= last
            ]

    def get_appointment(self, appointment_id: str) -> Optional[Appointment]:
        with self._lock:
            return self._appointments.get(appointment_id)

    def get_doctor_schedule(self, doctor_id: str, start, end) -> DoctorSchedule:
        """Everything known about a doctor for ``start..end``, read under one lock."""
        with self._lock:
            return DoctorSchedule(
                doctor_id=doctor_id,
                weekly_schedule=self.get_weekly_schedule(doctor_id),
                blocked_intervals=self.get_blocked_intervals(doctor_id, start, end),
                vacations=self.get_vacations(doctor_id, start, end),
                appointments=self.get_appointments(doctor_id, start, end),
            )

    # Writes

    def insert_appointment(
        self,
        appointment: Appointment,
        replacing: Appointment | None = None,
    ) -> Appointment:
        """
        Atomically check for overlapping active appointments and insert.

        When ``replacing`` is given (a reschedule), the replaced row is
        written in the same critical section and ignored by the overlap check.

        Raises:
            SlotConflict: If an active appointment already overlaps the interval
            AppointmentNotFound: If the replaced appointment is unknown
            StoreError: If the data file cannot be written; nothing is kept
        """
        with self._writing():
            if replacing is not None:
                stored = self._appointments.get(replacing.id)
                if stored is None:
                    raise AppointmentNotFound(f"Appointment {replacing.id} not found")
                if not stored.is_active:
                    raise InvalidStatusTransition(
                        f"Appointment {stored.id} is already {stored.status.value}"
                    )

            requested = appointment.time_range
            for existing in self._appointments.values():
                if replacing is not None and existing.id == replacing.id:
                    continue
                if (
                    existing.is_active
                    and existing.doctor_id == appointment.doctor_id
                    and existing.time_range.overlaps(requested)
                ):
                    raise SlotConflict(existing.id)

            stored_appointment = appointment
            if stored_appointment.id is None:
                stored_appointment = replace(appointment, id=self._next_id("apt"))
            self._appointments[stored_appointment.id] = stored_appointment
            if replacing is not None:
                self._appointments[replacing.id] = replacing

        return stored_appointment

    def update_appointment(self, appointment: Appointment) -> Appointment:
        with self._writing():
            if appointment.id not in self._appointments:
                raise AppointmentNotFound(f"Appointment {appointment.id} not found")
            self._appointments[appointment.id] = appointment
        return appointment

    def save_weekly_schedule(self, doctor_id: str, schedule: WeeklySchedule) -> WeeklySchedule:
        with self._writing():
            self._schedules[doctor_id] = schedule
        return schedule

    def add_blocked_interval(self, doctor_id: str, block: BlockedInterval) -> BlockedInterval:
        with self._writing():
            if block.id is None:
                block = replace(block, id=self._next_id("block"))
            self._blocks.setdefault(doctor_id, []).append(block)
        return block

    def delete_blocked_interval(self, doctor_id: str, block_id: str) -> bool:
        with self._lock:
            blocks = self._blocks.get(doctor_id, [])
            if not any(block.id == block_id for block in blocks):
                logger.debug("No blocked interval %s for doctor %s", block_id, doctor_id)
                return False
            with self._writing():
                self._blocks[doctor_id] = [block for block in blocks if block.id != block_id]
        return True

    def add_vacation(self, doctor_id: str, vacation: Vacation) -> Vacation:
        with self._writing():
            if vacation.id is None:
                vacation = replace(vacation, id=self._next_id("leave"))
            self._vacations.setdefault(doctor_id, []).append(vacation)
        return vacation
