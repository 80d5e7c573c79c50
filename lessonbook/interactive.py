from __future__ import annotations

from datetime import date, timedelta
from typing import Optional

from rich import box
from rich.console import Console
from rich.table import Table

from lessonbook.errors import LessonbookError
from lessonbook.model import ABSENT, PRESENT, Appointment, Enrollment
from lessonbook.recovery import LOST, RECOVER_AUTO, RECOVER_MANUAL, ManualRecovery
from lessonbook.service import EnrollmentService

console = Console()

STATUS_STYLE = {
    PRESENT: "[green]Present[/]",
    ABSENT: "[red]Absent[/]",
}


def _prompt(msg: str) -> str:
    return console.input(msg)


def _status_label(app: Appointment) -> str:
    return STATUS_STYLE.get(app.status, "[dim]Scheduled[/]")


def _parse_day(text: str) -> Optional[date]:
    try:
        return date.fromisoformat(text.strip())
    except ValueError:
        return None


def run_interactive(service: EnrollmentService) -> None:
    """
    Interactive menu loop around the attendance register.
    """
    changes: list[str] = []
    unsubscribe = service.subscribe(lambda ev: changes.append(ev.enrollment_id))
    try:
        day = date.today()
        while True:
            console.print(f"\n=== lessonbook register: {day.strftime('%a %d/%m/%Y')} ===")
            if changes:
                console.print(f"[dim]Enrollments updated this session: {len(set(changes))}[/]")

            choice = _prompt(
                "\n[1] Lessons of the day\n"
                "[2] Previous day\n"
                "[3] Next day\n"
                "[4] Go to date\n"
                "[5] Enrollment detail\n"
                "[6] Consolidate past lessons\n"
                "[0] Exit\n"
                "Select: "
            ).strip()

            if choice == "0":
                console.print("Bye.")
                return
            if choice == "1":
                _flow_register(service, day)
            elif choice == "2":
                day -= timedelta(days=1)
            elif choice == "3":
                day += timedelta(days=1)
            elif choice == "4":
                picked = _parse_day(_prompt("Date (YYYY-MM-DD): "))
                if picked is None:
                    console.print("Invalid date.")
                else:
                    day = picked
            elif choice == "5":
                _flow_enrollment(service)
            elif choice == "6":
                n = service.consolidate(date.today())
                console.print(f"Consolidated enrollments: [yellow]{n}[/]")
            else:
                console.print("Invalid choice.")
    finally:
        unsubscribe()


def _register_table(day: date, rows: list[tuple[Enrollment, Appointment]]) -> Table:
    table = Table(title=f"Lessons on {day.isoformat()}", box=box.SIMPLE)
    table.add_column("#", justify="right")
    table.add_column("Time")
    table.add_column("Child")
    table.add_column("Location")
    table.add_column("Credit", justify="right")
    table.add_column("Status")
    for i, (enr, app) in enumerate(rows, start=1):
        table.add_row(
            str(i),
            f"{app.start_time}-{app.end_time}",
            f"[bold cyan]{app.child_name or enr.child_name}[/]",
            app.location_name,
            f"{enr.lessons_remaining}/{enr.lessons_total}",
            _status_label(app),
        )
    return table


def _flow_register(service: EnrollmentService, day: date) -> None:
    while True:
        rows = service.lessons_on(day)
        if not rows:
            console.print("No lessons on this day.")
            return

        console.print(_register_table(day, rows))
        pick = _prompt("Select number, or 0 to go back: ").strip()
        if pick in ("", "0"):
            return
        if not pick.isdigit() or not 1 <= int(pick) <= len(rows):
            console.print("Not a valid number.")
            continue

        enr, app = rows[int(pick) - 1]
        action = _prompt("[p] present  [a] absent  [r] revert  [d] delete: ").strip().lower()
        try:
            if action == "p":
                service.mark_present(enr.id, app.lesson_id)
            elif action == "a":
                _flow_absence(service, enr, app)
            elif action == "r":
                service.revert(enr.id, app.lesson_id)
            elif action == "d":
                if _prompt("Delete this lesson? [y/N]: ").strip().lower() == "y":
                    service.delete(enr.id, app.lesson_id)
            else:
                console.print("Invalid choice.")
        except LessonbookError as e:
            console.print(f"[red]{e}[/]")


def _flow_absence(service: EnrollmentService, enr: Enrollment, app: Appointment) -> None:
    choice = _prompt("[1] lesson lost  [2] recover next week  [3] recover on a chosen date: ").strip()
    if choice == "1":
        service.mark_absent(enr.id, app.lesson_id, LOST)
        console.print("Lesson marked absent and lost.")
        return
    if choice == "2":
        plan = service.mark_absent(enr.id, app.lesson_id, RECOVER_AUTO)
        if plan.new_appointment is None:
            console.print("[yellow]No free week found for the recovery.[/]")
        else:
            console.print(f"Recovery scheduled on [bold]{plan.new_appointment.date.isoformat()}[/]")
        return
    if choice == "3":
        target = _parse_day(_prompt("Recovery date (YYYY-MM-DD): "))
        if target is None:
            console.print("Invalid date.")
            return
        start = _prompt(f"Start time [{app.start_time}]: ").strip() or app.start_time
        end = _prompt(f"End time [{app.end_time}]: ").strip() or app.end_time
        location = None
        loc_id = _prompt("Location id (empty = current): ").strip()
        if loc_id:
            location = service.location(loc_id)
            if location is None:
                console.print("Unknown location.")
                return
        details = ManualRecovery(date=target, start_time=start, end_time=end, location=location)
        service.mark_absent(enr.id, app.lesson_id, RECOVER_MANUAL, details)
        console.print(f"Recovery scheduled on [bold]{target.isoformat()}[/]")
        return
    console.print("Invalid choice.")


def _flow_enrollment(service: EnrollmentService) -> None:
    query = _prompt("Child name contains: ").strip().lower()
    matches = [e for e in service.all() if query in e.child_name.lower()]
    if not matches:
        console.print("No results.")
        return

    for enr in matches[:10]:
        table = Table(
            title=f"{enr.child_name} | {enr.location_name} | {enr.status} | "
            f"remaining {enr.lessons_remaining}/{enr.lessons_total}",
            box=box.SIMPLE,
        )
        table.add_column("Date")
        table.add_column("Time")
        table.add_column("Location")
        table.add_column("Status")
        for app in enr.appointments:
            table.add_row(app.date.strftime("%a %d/%m/%Y"), f"{app.start_time}-{app.end_time}", app.location_name, _status_label(app))
        console.print(table)
    if len(matches) > 10:
        console.print(f"... and {len(matches) - 10} more results")
