"""
Hospital REST API client acting as the schedule store.
"""

import logging
from typing import Any, Dict, List, Optional

import requests
from pydantic import ValidationError

from ..domain.exceptions import (
    AppointmentNotFound,
    SchedulingError,
    SlotConflict,
    StoreError,
)
from ..domain.models import (
    Appointment,
    BlockedInterval,
    DoctorSchedule,
    Vacation,
    WeeklySchedule,
    date_key,
)
from .records import (
    AppointmentRecord,
    BlockedTimeRecord,
    ScheduleRecord,
    VacationRecord,
    weekly_schedule_from_payload,
    weekly_schedule_to_payload,
)

logger = logging.getLogger(__name__)


class ApiScheduleStore:
    """
    Client for the dashboard's doctor schedule and appointment endpoints.

    The server owns the booking guarantee: ``POST /appointments`` is a
    conditional write that answers 409 when the slot was taken concurrently.
    """

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        timeout: float = 30,
        session: requests.Session | None = None,
    ):
        """
        Initialize the API client.

        Args:
            base_url: API root, e.g. ``https://hospital.example.com/api``
            token: Optional bearer token
            timeout: Request timeout in seconds
            session: Optional pre-configured requests session
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.headers = {"Content-Type": "application/json"}
        if token:
            self.headers["Authorization"] = f"Bearer {token}"

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(
                method,
                url,
                headers=self.headers,
                timeout=self.timeout,
                **kwargs,
            )
        except requests.exceptions.RequestException as exc:
            raise StoreError(f"{method} {url} failed: {exc}") from exc

        logger.debug("%s %s -> %s", method, url, response.status_code)
        return response

    def _json(self, response: requests.Response) -> Any:
        try:
            response.raise_for_status()
            return response.json()
        except requests.exceptions.HTTPError as exc:
            raise StoreError(f"Schedule API error: {exc}") from exc
        except ValueError as exc:
            raise StoreError(f"Schedule API returned invalid JSON: {exc}") from exc

    def _schedule(self, doctor_id: str, params: Optional[Dict[str, str]] = None) -> ScheduleRecord:
        data = self._json(self._request("GET", f"/doctors/{doctor_id}/schedule", params=params))
        try:
            return ScheduleRecord.model_validate(data.get("data", data))
        except (ValidationError, AttributeError) as exc:
            raise StoreError(f"Invalid schedule payload for doctor {doctor_id}: {exc}") from exc

    @staticmethod
    def _unwrap_list(data: Any) -> List[dict]:
        """Responses are either a bare list or ``{"data": [...]}``."""
        if isinstance(data, dict):
            data = data.get("data", [])
        if not isinstance(data, list):
            raise StoreError(f"Expected a list of records, got {type(data).__name__}")
        return data

    @staticmethod
    def _to_domain(records, what: str) -> list:
        try:
            return [record.to_domain() for record in records]
        except SchedulingError as exc:
            raise StoreError(f"Invalid {what} record: {exc}") from exc

    # Reads

    def get_weekly_schedule(self, doctor_id: str) -> WeeklySchedule:
        schedule = self._schedule(doctor_id)
        try:
            return weekly_schedule_from_payload(schedule.working_hours)
        except (ValidationError, SchedulingError) as exc:
            raise StoreError(f"Invalid working hours for doctor {doctor_id}: {exc}") from exc

    def get_blocked_intervals(self, doctor_id: str, start, end) -> List[BlockedInterval]:
        params = {"from": date_key(start), "to": date_key(end)}
        return self._to_domain(self._schedule(doctor_id, params).blocked_times, "blocked time")

    def get_vacations(self, doctor_id: str, start, end) -> List[Vacation]:
        params = {"from": date_key(start), "to": date_key(end)}
        return self._to_domain(self._schedule(doctor_id, params).vacations, "vacation")

    def get_appointments(self, doctor_id: str, start, end) -> List[Appointment]:
        params = {"from": date_key(start), "to": date_key(end)}
        data = self._json(self._request("GET", f"/appointments/doctor/{doctor_id}", params=params))
        try:
            records = [AppointmentRecord.model_validate(item) for item in self._unwrap_list(data)]
        except ValidationError as exc:
            raise StoreError(f"Invalid appointment payload: {exc}") from exc
        return self._to_domain(records, "appointment")

    def get_doctor_schedule(self, doctor_id: str, start, end) -> DoctorSchedule:
        """One schedule request plus one appointment request for ``start..end``."""
        params = {"from": date_key(start), "to": date_key(end)}
        schedule = self._schedule(doctor_id, params)
        try:
            weekly = weekly_schedule_from_payload(schedule.working_hours)
        except (ValidationError, SchedulingError) as exc:
            raise StoreError(f"Invalid working hours for doctor {doctor_id}: {exc}") from exc

        return DoctorSchedule(
            doctor_id=doctor_id,
            weekly_schedule=weekly,
            blocked_intervals=self._to_domain(schedule.blocked_times, "blocked time"),
            vacations=self._to_domain(schedule.vacations, "vacation"),
            appointments=self.get_appointments(doctor_id, start, end),
        )

    def get_appointment(self, appointment_id: str) -> Optional[Appointment]:
        response = self._request("GET", f"/appointments/{appointment_id}")
        if response.status_code == 404:
            return None
        data = self._json(response)
        try:
            record = AppointmentRecord.model_validate(data.get("data", data))
        except (ValidationError, AttributeError) as exc:
            raise StoreError(f"Invalid appointment payload: {exc}") from exc
        return self._to_domain([record], "appointment")[0]

    # Writes

    def _appointment_from_response(self, response: requests.Response) -> Appointment:
        if response.status_code == 409:
            body = {}
            try:
                body = response.json() or {}
            except ValueError:
                logger.warning("Conflict response without JSON body")
            raise SlotConflict(body.get("conflictingAppointmentId"))

        data = self._json(response)
        try:
            record = AppointmentRecord.model_validate(data.get("data", data))
        except (ValidationError, AttributeError) as exc:
            raise StoreError(f"Invalid appointment payload: {exc}") from exc
        return self._to_domain([record], "appointment")[0]

    def insert_appointment(
        self,
        appointment: Appointment,
        replacing: Appointment | None = None,
    ) -> Appointment:
        """
        Create an appointment through the server's conditional write.

        Reschedules go through ``POST /appointments/{id}/reschedule`` so that
        the old and new rows change in one server-side transaction.

        Raises:
            SlotConflict: If the server reports the slot as taken (HTTP 409)
        """
        payload = AppointmentRecord.from_domain(appointment).to_payload()
        path = "/appointments"
        if replacing is not None:
            path = f"/appointments/{replacing.id}/reschedule"

        response = self._request("POST", path, json=payload)
        if response.status_code == 404 and replacing is not None:
            raise AppointmentNotFound(f"Appointment {replacing.id} not found")
        return self._appointment_from_response(response)

    def update_appointment(self, appointment: Appointment) -> Appointment:
        payload = AppointmentRecord.from_domain(appointment).to_payload()
        response = self._request("PATCH", f"/appointments/{appointment.id}", json=payload)
        if response.status_code == 404:
            raise AppointmentNotFound(f"Appointment {appointment.id} not found")
        return self._appointment_from_response(response)

    def save_weekly_schedule(self, doctor_id: str, schedule: WeeklySchedule) -> WeeklySchedule:
        self._json(self._request(
            "PUT",
            f"/doctors/{doctor_id}/schedule/working-hours",
            json=weekly_schedule_to_payload(schedule),
        ))
        return schedule

    def add_blocked_interval(self, doctor_id: str, block: BlockedInterval) -> BlockedInterval:
        data = self._json(self._request(
            "POST",
            f"/doctors/{doctor_id}/schedule/blocks",
            json=BlockedTimeRecord.from_domain(block).to_payload(),
        ))
        try:
            record = BlockedTimeRecord.model_validate(data.get("data", data))
        except (ValidationError, AttributeError) as exc:
            raise StoreError(f"Invalid blocked time payload: {exc}") from exc
        return self._to_domain([record], "blocked time")[0]

    def delete_blocked_interval(self, doctor_id: str, block_id: str) -> bool:
        response = self._request("DELETE", f"/doctors/{doctor_id}/schedule/blocks/{block_id}")
        if response.status_code == 404:
            return False
        self._raise_for_status(response)
        return True

    def add_vacation(self, doctor_id: str, vacation: Vacation) -> Vacation:
        data = self._json(self._request(
            "POST",
            f"/doctors/{doctor_id}/schedule/vacations",
            json=VacationRecord.from_domain(vacation).to_payload(),
        ))
        try:
            record = VacationRecord.model_validate(data.get("data", data))
        except (ValidationError, AttributeError) as exc:
            raise StoreError(f"Invalid vacation payload: {exc}") from exc
        return self._to_domain([record], "vacation")[0]

    @staticmethod
    def _raise_for_status(response: requests.Response) -> None:
        try:
            response.raise_for_status()
        except requests.exceptions.HTTPError as exc:
            raise StoreError(f"Schedule API error: {exc}") from exc
