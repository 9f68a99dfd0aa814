"""
Main CLI application using Typer.
"""

import logging
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ..adapters.api_store import ApiScheduleStore
from ..adapters.memory_store import MemoryScheduleStore
from ..config import AppConfig, load_config
from ..domain.exceptions import SchedulingError
from ..domain.models import (
    WEEKDAYS,
    Appointment,
    BlockedInterval,
    DaySchedule,
    RecurrenceFrequency,
    RecurrenceRule,
    Role,
    SlotStatus,
    Vacation,
    VacationType,
    WeeklySchedule,
)
from ..services.booking_service import BookingService
from ..services.schedule_view import ScheduleView, ViewMode, navigate

app = typer.Typer(
    name="doctorslots",
    help="Check doctor availability and book appointments without double-booking",
    add_completion=False
)

console = Console()

MOCK_DATA_FILE = Path(__file__).parent.parent / "adapters" / "mock_schedule_data.json"

STATUS_STYLES = {
    SlotStatus.AVAILABLE: "green",
    SlotStatus.BOOKED: "bold red",
    SlotStatus.BLOCKED: "yellow",
    SlotStatus.OUT_OF_HOURS: "dim",
}


class State:
    """Options shared by every command."""

    def __init__(self):
        self.config_file: Optional[Path] = None
        self.mock = False
        self._config: Optional[AppConfig] = None
        self._service: Optional[BookingService] = None

    @property
    def config(self) -> AppConfig:
        if self._config is None:
            self._config = load_config(self.config_file)
        return self._config

    @property
    def service(self) -> BookingService:
        if self._service is None:
            self._service = BookingService.from_config(self._build_store(), self.config)
        return self._service

    def _build_store(self):
        config = self.config
        if self.mock:
            if config.data_file is not None:
                return MemoryScheduleStore.load_json(config.data_file)
            store = MemoryScheduleStore.load_json(MOCK_DATA_FILE)
            # Bundled sample data is never written back.
            store.data_file = None
            return store

        if config.data_file is not None:
            return MemoryScheduleStore.load_json(config.data_file)

        return ApiScheduleStore(
            base_url=config.api.base_url,
            token=config.api.token,
            timeout=config.api.timeout_seconds,
        )

    def doctor(self, identifier: str) -> str:
        return self.config.resolve_doctor(identifier)


def _state(ctx: typer.Context) -> State:
    return ctx.ensure_object(State)


def _fail(error: Exception) -> None:
    console.print(f"[bold red]Error:[/bold red] {error}")
    raise typer.Exit(1)


def _print_appointment(title: str, appointment: Appointment) -> None:
    console.print(Panel.fit(
        f"[bold]ID:[/bold] {appointment.id}\n"
        f"[bold]Doctor:[/bold] {appointment.doctor_id}\n"
        f"[bold]Patient:[/bold] {appointment.patient_id}\n"
        f"[bold]When:[/bold] {appointment.date} {appointment.time} "
        f"({appointment.duration_minutes} min)\n"
        f"[bold]Status:[/bold] {appointment.status.value}",
        title=title
    ))


@app.callback()
def main(
    ctx: typer.Context,
    config_file: Annotated[Optional[Path], typer.Option("--config", "-c", help="Path to config file. Defaults to ./config.yaml")] = None,
    mock: Annotated[bool, typer.Option("--mock", help="Use local sample data instead of the hospital API.")] = False,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Enable debug logging.")] = False,
):
    """
    Doctor availability and booking-conflict engine.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    state = _state(ctx)
    state.config_file = config_file
    state.mock = mock


@app.command()
def slots(
    ctx: typer.Context,
    doctor: Annotated[str, typer.Argument(help="Doctor alias or id")],
    date: Annotated[Optional[str], typer.Option("--date", "-d", help="Date (YYYY-MM-DD), defaults to today")] = None,
    granularity: Annotated[Optional[int], typer.Option("--granularity", "-g", help="Slot length in minutes")] = None,
    only_available: Annotated[bool, typer.Option("--available", help="Only show bookable slots")] = False,
):
    """
    List the slots of one day with their status.
    """
    state = _state(ctx)
    try:
        service = state.service
        day = date or service.now().date().isoformat()
        step = granularity or state.config.defaults.granularity_minutes
        doctor_id = state.doctor(doctor)

        table = Table(
            title=f"Slots for {doctor_id} on {day}",
            show_header=True,
            header_style="bold cyan"
        )
        table.add_column("Time", style="bold")
        table.add_column("Status")
        table.add_column("Detail", style="dim")

        for slot in service.list_slots(doctor_id, day, step):
            if only_available and not slot.is_available:
                continue
            style = STATUS_STYLES[slot.status]
            table.add_row(
                slot.time,
                f"[{style}]{slot.status.value.replace('_', ' ')}[/{style}]",
                slot.detail or ""
            )

        console.print()
        console.print(table)
        console.print()

    except (SchedulingError, FileNotFoundError, ValueError) as e:
        _fail(e)


@app.command()
def check(
    ctx: typer.Context,
    doctor: Annotated[str, typer.Argument(help="Doctor alias or id")],
    date: Annotated[str, typer.Argument(help="Date (YYYY-MM-DD)")],
    time: Annotated[str, typer.Argument(help="Time (HH:MM)")],
):
    """
    Check whether a single point in time is bookable.
    """
    state = _state(ctx)
    try:
        status = state.service.slot_status(state.doctor(doctor), date, time)
    except (SchedulingError, FileNotFoundError, ValueError) as e:
        _fail(e)
        return

    style = STATUS_STYLES[status]
    console.print(f"{date} {time}: [{style}]{status.value.replace('_', ' ')}[/{style}]")
    if status is not SlotStatus.AVAILABLE:
        raise typer.Exit(2)


@app.command("next")
def next_slot(
    ctx: typer.Context,
    doctor: Annotated[str, typer.Argument(help="Doctor alias or id")],
    days: Annotated[int, typer.Option("--days", help="How many days ahead to search")] = 14,
):
    """
    Show the next available slot from now on.
    """
    state = _state(ctx)
    try:
        slot = state.service.next_available(
            state.doctor(doctor),
            days_ahead=days,
            granularity_minutes=state.config.defaults.granularity_minutes,
        )
    except (SchedulingError, FileNotFoundError, ValueError) as e:
        _fail(e)
        return

    if slot is None:
        console.print(f"[yellow]No available slot in the next {days} day(s).[/yellow]")
        raise typer.Exit(2)
    console.print(f"[green]Next available:[/green] {slot.format_display()}")


@app.command()
def book(
    ctx: typer.Context,
    doctor: Annotated[str, typer.Argument(help="Doctor alias or id")],
    date: Annotated[str, typer.Argument(help="Date (YYYY-MM-DD)")],
    time: Annotated[str, typer.Argument(help="Time (HH:MM)")],
    patient: Annotated[str, typer.Option("--patient", "-p", help="Patient id")],
    duration: Annotated[Optional[int], typer.Option("--duration", help="Duration in minutes")] = None,
    role: Annotated[Role, typer.Option("--role", help="Acting role")] = Role.PATIENT,
    reason: Annotated[str, typer.Option("--reason", help="Reason for the visit")] = "",
):
    """
    Book an appointment if the slot is free.
    """
    state = _state(ctx)
    try:
        appointment = state.service.book(
            state.doctor(doctor),
            patient,
            date,
            time,
            duration or state.config.defaults.duration_minutes,
            role,
            reason=reason,
        )
    except (SchedulingError, FileNotFoundError, ValueError) as e:
        _fail(e)
        return

    _print_appointment("✓ Booked", appointment)


@app.command()
def reschedule(
    ctx: typer.Context,
    appointment_id: Annotated[str, typer.Argument(help="Appointment id")],
    date: Annotated[str, typer.Argument(help="New date (YYYY-MM-DD)")],
    time: Annotated[str, typer.Argument(help="New time (HH:MM)")],
    role: Annotated[Role, typer.Option("--role", help="Acting role")] = Role.PATIENT,
):
    """
    Move an appointment to a new slot.
    """
    state = _state(ctx)
    try:
        appointment = state.service.reschedule(appointment_id, date, time, role)
    except (SchedulingError, FileNotFoundError, ValueError) as e:
        _fail(e)
        return

    _print_appointment("✓ Rescheduled", appointment)


@app.command()
def cancel(
    ctx: typer.Context,
    appointment_id: Annotated[str, typer.Argument(help="Appointment id")],
    role: Annotated[Role, typer.Option("--role", help="Acting role")] = Role.PATIENT,
    reason: Annotated[str, typer.Option("--reason", help="Cancellation reason")] = "",
):
    """
    Cancel an appointment.
    """
    state = _state(ctx)
    try:
        appointment = state.service.cancel(appointment_id, role, reason)
    except (SchedulingError, FileNotFoundError, ValueError) as e:
        _fail(e)
        return

    _print_appointment("✓ Cancelled", appointment)


def _status_command(name: str, help_text: str, action: str):
    @app.command(name, help=help_text)
    def command(
        ctx: typer.Context,
        appointment_id: Annotated[str, typer.Argument(help="Appointment id")],
    ):
        state = _state(ctx)
        try:
            appointment = getattr(state.service, action)(appointment_id)
        except (SchedulingError, FileNotFoundError, ValueError) as e:
            _fail(e)
            return

        _print_appointment(f"✓ {appointment.status.value}", appointment)

    return command


_status_command("confirm", "Confirm a pending appointment.", "confirm")
_status_command("complete", "Mark a confirmed appointment as completed.", "complete")
_status_command("no-show", "Mark a confirmed appointment as a no-show.", "mark_no_show")


def _print_overview(state: State, doctor: str, date: Optional[str], mode: ViewMode, shift: int = 0) -> None:
    service = state.service
    day = navigate(date or service.now().date(), mode, shift)
    doctor_id = state.doctor(doctor)
    view = ScheduleView(service, state.config.defaults.granularity_minutes)

    table = Table(
        title=f"{mode.value.capitalize()} overview for {doctor_id}",
        show_header=True,
        header_style="bold cyan"
    )
    table.add_column("Date", style="bold")
    for status in SlotStatus:
        table.add_column(status.value.replace("_", " "), justify="right", style=STATUS_STYLES[status])

    for day_view in view.render(doctor_id, day, mode):
        counts = day_view.counts()
        table.add_row(day_view.date, *(str(counts[status]) for status in SlotStatus))

    console.print()
    console.print(table)
    console.print()


@app.command()
def week(
    ctx: typer.Context,
    doctor: Annotated[str, typer.Argument(help="Doctor alias or id")],
    date: Annotated[Optional[str], typer.Option("--date", "-d", help="Any date in the week")] = None,
    shift: Annotated[int, typer.Option("--shift", "-s", help="Number of weeks to move forward (negative moves back)")] = 0,
):
    """
    Summarize slot statuses for the week (Sunday to Saturday).
    """
    try:
        _print_overview(_state(ctx), doctor, date, ViewMode.WEEK, shift)
    except (SchedulingError, FileNotFoundError, ValueError) as e:
        _fail(e)


@app.command()
def month(
    ctx: typer.Context,
    doctor: Annotated[str, typer.Argument(help="Doctor alias or id")],
    date: Annotated[Optional[str], typer.Option("--date", "-d", help="Any date in the month")] = None,
    shift: Annotated[int, typer.Option("--shift", "-s", help="Number of months to move forward (negative moves back)")] = 0,
):
    """
    Summarize slot statuses for every day of the month.
    """
    try:
        _print_overview(_state(ctx), doctor, date, ViewMode.MONTH, shift)
    except (SchedulingError, FileNotFoundError, ValueError) as e:
        _fail(e)


@app.command()
def block(
    ctx: typer.Context,
    doctor: Annotated[str, typer.Argument(help="Doctor alias or id")],
    date: Annotated[str, typer.Argument(help="Date (YYYY-MM-DD)")],
    start: Annotated[str, typer.Argument(help="Start time (HH:MM)")],
    end: Annotated[str, typer.Argument(help="End time (HH:MM)")],
    reason: Annotated[str, typer.Option("--reason", help="Why the time is blocked")] = "",
    repeat: Annotated[Optional[RecurrenceFrequency], typer.Option("--repeat", help="Repeat weekly or monthly")] = None,
    until: Annotated[Optional[str], typer.Option("--until", help="Last date of the recurrence (YYYY-MM-DD)")] = None,
):
    """
    Block time in a doctor's calendar, once or recurring.
    """
    state = _state(ctx)
    try:
        recurrence = None
        if repeat is not None:
            if not until:
                raise ValueError("--until is required with --repeat")
            recurrence = RecurrenceRule(frequency=repeat, until=until)

        stored = state.service.block_time(
            state.doctor(doctor),
            BlockedInterval(
                date=date,
                start_time=start,
                end_time=end,
                reason=reason,
                recurrence=recurrence,
            ),
        )
    except (SchedulingError, FileNotFoundError, ValueError) as e:
        _fail(e)
        return

    console.print(f"[green]✓ Time blocked[/green] ({stored.id}): {stored.date} {stored.start_time}-{stored.end_time}")


@app.command()
def unblock(
    ctx: typer.Context,
    doctor: Annotated[str, typer.Argument(help="Doctor alias or id")],
    block_id: Annotated[str, typer.Argument(help="Blocked interval id")],
):
    """
    Remove a blocked interval.
    """
    state = _state(ctx)
    try:
        removed = state.service.unblock_time(state.doctor(doctor), block_id)
    except (SchedulingError, FileNotFoundError, ValueError) as e:
        _fail(e)
        return

    if not removed:
        console.print(f"[yellow]No blocked interval {block_id} found.[/yellow]")
        raise typer.Exit(1)
    console.print(f"[green]✓ Block {block_id} removed[/green]")


@app.command()
def vacation(
    ctx: typer.Context,
    doctor: Annotated[str, typer.Argument(help="Doctor alias or id")],
    start: Annotated[str, typer.Argument(help="First day (YYYY-MM-DD)")],
    end: Annotated[str, typer.Argument(help="Last day (YYYY-MM-DD)")],
    leave_type: Annotated[VacationType, typer.Option("--type", help="Kind of leave")] = VacationType.VACATION,
    reason: Annotated[str, typer.Option("--reason", help="Optional note")] = "",
):
    """
    Schedule whole days of leave.
    """
    state = _state(ctx)
    try:
        stored = state.service.add_vacation(
            state.doctor(doctor),
            Vacation(start_date=start, end_date=end, type=leave_type, reason=reason),
        )
    except (SchedulingError, FileNotFoundError, ValueError) as e:
        _fail(e)
        return

    console.print(f"[green]✓ {stored.type.value} scheduled[/green]: {stored.start_date} - {stored.end_date}")


@app.command()
def hours(
    ctx: typer.Context,
    doctor: Annotated[str, typer.Argument(help="Doctor alias or id")],
    weekday: Annotated[Optional[str], typer.Option("--day", help="Weekday to change, e.g. monday")] = None,
    start: Annotated[Optional[str], typer.Option("--start", help="Start of work (HH:MM)")] = None,
    end: Annotated[Optional[str], typer.Option("--end", help="End of work (HH:MM)")] = None,
    break_start: Annotated[Optional[str], typer.Option("--break-start", help="Break start (HH:MM)")] = None,
    break_end: Annotated[Optional[str], typer.Option("--break-end", help="Break end (HH:MM)")] = None,
    day_off: Annotated[bool, typer.Option("--off", help="Make the weekday a day off")] = False,
):
    """
    Show working hours, or change them for one weekday.
    """
    state = _state(ctx)
    try:
        doctor_id = state.doctor(doctor)
        service = state.service
        schedule = service.snapshot(doctor_id, service.now().date()).weekly_schedule

        if weekday is not None:
            name = weekday.lower()
            if name not in WEEKDAYS:
                raise ValueError(f"Unknown weekday '{weekday}'")
            if day_off:
                updated_day = DaySchedule(is_working=False)
            else:
                updated_day = DaySchedule(True, start, end, break_start, break_end)
            schedule = service.update_working_hours(
                doctor_id,
                WeeklySchedule(days={**schedule.days, name: updated_day}),
            )
    except (SchedulingError, FileNotFoundError, ValueError) as e:
        _fail(e)
        return

    table = Table(
        title=f"Working hours for {doctor_id}",
        show_header=True,
        header_style="bold cyan"
    )
    table.add_column("Day", style="bold")
    table.add_column("Hours")
    table.add_column("Break", style="dim")

    for name in WEEKDAYS:
        day = schedule.days[name]
        if not day.is_working:
            table.add_row(name.capitalize(), "[dim]off[/dim]", "")
            continue
        lunch = f"{day.break_start}-{day.break_end}" if day.has_break else ""
        table.add_row(name.capitalize(), f"{day.start}-{day.end}", lunch)

    console.print()
    console.print(table)
    console.print()


@app.command()
def doctors(ctx: typer.Context):
    """
    List all configured doctors.
    """
    try:
        config = _state(ctx).config
    except (FileNotFoundError, ValueError) as e:
        _fail(e)
        return

    if not config.doctors:
        console.print("[yellow]No doctors defined in the config file.[/yellow]")
        return

    table = Table(
        title="Configured doctors",
        show_header=True,
        header_style="bold cyan"
    )
    table.add_column("Name (Alias)", style="bold yellow")
    table.add_column("ID", style="dim")
    table.add_column("Specialty")

    for doctor in config.doctors:
        table.add_row(doctor.name, doctor.id, doctor.specialty)

    console.print()
    console.print(table)
    console.print()


@app.command()
def version():
    """
    Show version information.
    """
    from .. import __version__
    console.print(f"\n[bold cyan]doctorslots[/bold cyan] version [bold]{__version__}[/bold]\n")


if __name__ == "__main__":
    app()
