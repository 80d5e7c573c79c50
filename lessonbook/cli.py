"""
CLI (Command Line Interface).

Quick terminal commands for the front desk and for testing, e.g.:

    lessonbook holidays 2025
    lessonbook enroll E1 "Anna Rossi" --location SEDE1 --slot 0 --from 2025-01-06 --lessons 10
    lessonbook enroll-custom E2 "Scuola Rodari" --weekly 3 SEDE1 09:00 11:00 8 --single 2025-05-20 SEDE2 09:00 11:00
    lessonbook close 2025-12-24 --reason "Vigilia"
    lessonbook show E1
    lessonbook present E1 <lesson_id>
    lessonbook absent E1 <lesson_id> --strategy recover_auto
    lessonbook consolidate
    lessonbook interactive

Note:
- The interactive register lives in lessonbook/interactive.py
- This CLI prints plain text (no rich formatting)
"""

from __future__ import annotations

import argparse
import sys
from datetime import date

from lessonbook.config import load_settings
from lessonbook.conflicts import by_start_time, child_conflicts, location_conflicts
from lessonbook.errors import LessonbookError
from lessonbook.holidays import italian_holidays
from lessonbook.log import setup_logging
from lessonbook.model import AvailabilitySlot, Enrollment
from lessonbook.recovery import APPEND_END, MOVE_TO_DATE, RECOVER_MANUAL, STRATEGIES, ManualRecovery
from lessonbook.service import EnrollmentService


def _iso_date(text: str) -> date:
    try:
        return date.fromisoformat(text.strip())
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid date {text!r}, expected YYYY-MM-DD")


def _non_negative_int(text: str) -> int:
    try:
        value = int(text)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid number {text!r}")
    if value < 0:
        raise argparse.ArgumentTypeError(f"must be 0 or more, got {value}")
    return value


def _print_enrollment(enrollment: Enrollment) -> None:
    print(
        f"{enrollment.id} | {enrollment.child_name} | {enrollment.location_name} | "
        f"{enrollment.status} | {enrollment.start_date} -> {enrollment.end_date} | "
        f"remaining {enrollment.lessons_remaining}/{enrollment.lessons_total}"
    )
    for app in enrollment.appointments:
        print(f"  {app.lesson_id}  {app.date} {app.start_time}-{app.end_time}  {app.location_name:<20} {app.status}")


def _cmd_holidays(args: argparse.Namespace, service: EnrollmentService) -> int:
    for d, name in sorted(italian_holidays(args.year).items()):
        print(f"{d.isoformat()}  {name}")
    return 0


def _cmd_locations(args: argparse.Namespace, service: EnrollmentService) -> int:
    locations = service.locations()
    if not locations:
        print("No locations in the directory.")
        return 0
    for loc in locations:
        print(f"{loc.id} | {loc.name} | {loc.supplier_name}")
        for i, slot in enumerate(loc.availability):
            print(f"  [{i}] day {slot.day_of_week} {slot.start_time}-{slot.end_time}")
    return 0


def _cmd_enroll(args: argparse.Namespace, service: EnrollmentService) -> int:
    location = service.location(args.location)
    if location is None:
        print(f"Unknown location: {args.location}")
        return 1

    if args.slot is not None:
        if not 0 <= args.slot < len(location.availability):
            print(f"Location {location.id} has no slot #{args.slot}")
            return 1
        slot = location.availability[args.slot]
    elif args.day is not None and args.start and args.end:
        slot = AvailabilitySlot(day_of_week=args.day, start_time=args.start, end_time=args.end)
    else:
        print("Please provide --slot or --day/--start/--end.")
        return 1

    enrollment, result = service.enroll(
        args.enrollment_id,
        args.child,
        location,
        slot,
        args.start_date or date.today(),
        args.lessons,
        client_id=args.client or "",
    )
    if result.exhausted:
        print(f"Warning: only {result.produced} of {result.requested} lessons could be scheduled.")
    _print_enrollment(enrollment)
    return 0


def _cmd_enroll_custom(args: argparse.Namespace, service: EnrollmentService) -> int:
    """
    Compose a custom schedule from --weekly DAY LOCATION START END COUNT and
    --single DATE LOCATION START END items, then store it as one enrollment.
    """
    if not args.weekly and not args.single:
        print("Please provide at least one --weekly or --single item.")
        return 1

    builder = service.custom_builder(args.child, today=args.start_date)
    for day, loc_id, start, end, count in args.weekly or []:
        location = service.location(loc_id)
        if location is None:
            print(f"Unknown location: {loc_id}")
            return 1
        if not (day.isdigit() and 0 <= int(day) <= 6) or not count.isdigit():
            print(f"Invalid weekly item: {day} {loc_id} {start} {end} {count}")
            return 1
        result = builder.add_weekly(int(day), location, start, end, int(count))
        if result.exhausted:
            print(f"Warning: only {result.produced} of {result.requested} lessons placed on day {day}.")

    for day, loc_id, start, end in args.single or []:
        location = service.location(loc_id)
        if location is None:
            print(f"Unknown location: {loc_id}")
            return 1
        try:
            d = date.fromisoformat(day)
        except ValueError:
            print(f"Invalid date: {day}")
            return 1
        builder.add_single(d, location, start, end)

    if not len(builder):
        print("No lessons could be placed.")
        return 1
    _print_enrollment(service.enroll_custom(args.enrollment_id, builder, client_id=args.client or ""))
    return 0


def _cmd_closures(args: argparse.Namespace, service: EnrollmentService) -> int:
    closures = service.closures()
    if not closures:
        print("No closure days.")
        return 0
    for d, reason in sorted(closures.items()):
        print(f"{d.isoformat()}  {reason}")
    return 0


def _cmd_close(args: argparse.Namespace, service: EnrollmentService) -> int:
    action = MOVE_TO_DATE if args.move_to else APPEND_END
    moves = service.close_day(args.date, args.reason, action, args.move_to)
    print(f"Closed {args.date.isoformat()}: {len(moves)} lessons affected")
    for m in moves:
        target = m.new_date.isoformat() if m.new_date else "not moved (no free date)"
        print(f"  {m.enrollment_id} {m.lesson_id} -> {target}")
    return 0


def _cmd_reopen(args: argparse.Namespace, service: EnrollmentService) -> int:
    if not service.reopen_day(args.date):
        print(f"{args.date.isoformat()} is not a closure day")
        return 1
    print(f"Reopened {args.date.isoformat()}")
    return 0


def _cmd_show(args: argparse.Namespace, service: EnrollmentService) -> int:
    _print_enrollment(service.get(args.enrollment_id))
    return 0


def _cmd_list(args: argparse.Namespace, service: EnrollmentService) -> int:
    enrollments = service.all()
    if not enrollments:
        print("No enrollments.")
        return 0
    for e in enrollments:
        print(
            f"{e.id} | {e.child_name} | {e.location_name} | {e.status} | "
            f"remaining {e.lessons_remaining}/{e.lessons_total}"
        )
    return 0


def _cmd_present(args: argparse.Namespace, service: EnrollmentService) -> int:
    app = service.mark_present(args.enrollment_id, args.lesson_id)
    print(f"Present: {app.date} {app.start_time}-{app.end_time} {app.child_name}")
    return 0


def _cmd_absent(args: argparse.Namespace, service: EnrollmentService) -> int:
    details = None
    if args.strategy == RECOVER_MANUAL:
        if not (args.date and args.start and args.end):
            print("recover_manual needs --date, --start and --end.")
            return 1
        location = None
        if args.location:
            location = service.location(args.location)
            if location is None:
                print(f"Unknown location: {args.location}")
                return 1
        details = ManualRecovery(date=args.date, start_time=args.start, end_time=args.end, location=location)

    plan = service.mark_absent(args.enrollment_id, args.lesson_id, args.strategy, details)
    if plan.new_appointment is not None:
        new = plan.new_appointment
        print(f"Absent. Recovery lesson {new.lesson_id} on {new.date} {new.start_time}-{new.end_time}")
    elif plan.exhausted:
        print("Absent. No recovery date could be found.")
    else:
        print("Absent. Lesson lost.")
    return 0


def _cmd_revert(args: argparse.Namespace, service: EnrollmentService) -> int:
    app = service.revert(args.enrollment_id, args.lesson_id)
    print(f"Reverted: {app.date} is {app.status} again")
    return 0


def _cmd_delete(args: argparse.Namespace, service: EnrollmentService) -> int:
    app = service.delete(args.enrollment_id, args.lesson_id)
    print(f"Deleted: {app.date} {app.start_time}-{app.end_time}")
    return 0


def _cmd_status(args: argparse.Namespace, service: EnrollmentService) -> int:
    enrollment = service.set_status(args.enrollment_id, args.transition)
    print(f"{enrollment.id}: {enrollment.status}")
    return 0


def _cmd_consolidate(args: argparse.Namespace, service: EnrollmentService) -> int:
    n = service.consolidate(args.today or date.today())
    print(f"Consolidated enrollments: {n}")
    return 0


def _cmd_conflicts(args: argparse.Namespace, service: EnrollmentService) -> int:
    """
    Print double-booked locations (overlapping lessons at the same site)
    and children booked into two overlapping lessons.
    """
    apps = [a for e in service.all() for a in e.appointments]
    if args.date:
        apps = [a for a in apps if a.date == args.date]

    confs = [("location", a, b) for a, b in location_conflicts(apps)]
    confs += [("child", a, b) for a, b in child_conflicts(apps)]
    if not confs:
        print("No conflicts found.")
        return 0

    confs.sort(key=lambda item: (by_start_time(item[1]), item[0]))
    print(f"Conflicts found: {len(confs)}")
    for kind, a, b in confs:
        what = a.location_name if kind == "location" else a.child_name
        print(
            f"- {a.date} [{kind}] {what}: {a.start_time}-{a.end_time} {a.child_name} @ {a.location_name}"
            f"  <->  {b.start_time}-{b.end_time} {b.child_name} @ {b.location_name}"
        )
    return 0


def build_parser() -> argparse.ArgumentParser:
    """
    Build the argparse CLI parser with sub-commands.
    """
    parser = argparse.ArgumentParser(prog="lessonbook", description="Lesson scheduling and attendance")
    sub = parser.add_subparsers(dest="command", required=True)

    p_hol = sub.add_parser("holidays", help="List the holidays of a year")
    p_hol.add_argument("year", type=int)

    sub.add_parser("locations", help="List the location directory")
    sub.add_parser("list", help="List enrollments")

    p_enroll = sub.add_parser("enroll", help="Create a weekly enrollment")
    p_enroll.add_argument("enrollment_id", type=str)
    p_enroll.add_argument("child", type=str, help="Child name")
    p_enroll.add_argument("--location", required=True, help="Location id")
    p_enroll.add_argument("--slot", type=int, help="Index of the location availability slot")
    p_enroll.add_argument("--day", type=int, choices=range(7), help="Weekday, 0=Sunday..6=Saturday")
    p_enroll.add_argument("--start", type=str, help="Start time HH:MM")
    p_enroll.add_argument("--end", type=str, help="End time HH:MM")
    p_enroll.add_argument("--from", dest="start_date", type=_iso_date, help="First possible date (default today)")
    p_enroll.add_argument("--lessons", type=_non_negative_int, required=True, help="Package size")
    p_enroll.add_argument("--client", type=str, help="Client id")

    p_custom = sub.add_parser("enroll-custom", help="Create a custom (institutional) enrollment")
    p_custom.add_argument("enrollment_id", type=str)
    p_custom.add_argument("child", type=str, help="Child, class or project name")
    p_custom.add_argument(
        "--weekly",
        nargs=5,
        action="append",
        metavar=("DAY", "LOCATION", "START", "END", "COUNT"),
        help="Weekly series, DAY 0=Sunday..6=Saturday (repeatable)",
    )
    p_custom.add_argument(
        "--single",
        nargs=4,
        action="append",
        metavar=("DATE", "LOCATION", "START", "END"),
        help="One lesson on a chosen date, no holiday check (repeatable)",
    )
    p_custom.add_argument("--from", dest="start_date", type=_iso_date, help="Weekly series start (default today)")
    p_custom.add_argument("--client", type=str, help="Client id")

    sub.add_parser("closures", help="List closure days")

    p_close = sub.add_parser("close", help="Close a day and move its scheduled lessons")
    p_close.add_argument("date", type=_iso_date)
    p_close.add_argument("--reason", type=str, default="Chiusura")
    p_close.add_argument("--move-to", type=_iso_date, help="Move lessons to this date instead of the end")

    p_reopen = sub.add_parser("reopen", help="Remove a closure day")
    p_reopen.add_argument("date", type=_iso_date)

    p_show = sub.add_parser("show", help="Show one enrollment with its lessons")
    p_show.add_argument("enrollment_id", type=str)

    for name, help_text in (
        ("present", "Mark a lesson present"),
        ("revert", "Return a lesson to Scheduled"),
        ("delete", "Delete a lesson"),
    ):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("enrollment_id", type=str)
        p.add_argument("lesson_id", type=str)

    p_absent = sub.add_parser("absent", help="Mark a lesson absent and apply a recovery strategy")
    p_absent.add_argument("enrollment_id", type=str)
    p_absent.add_argument("lesson_id", type=str)
    p_absent.add_argument("--strategy", choices=STRATEGIES, default="lost")
    p_absent.add_argument("--date", type=_iso_date, help="Recovery date (recover_manual)")
    p_absent.add_argument("--start", type=str, help="Recovery start time (recover_manual)")
    p_absent.add_argument("--end", type=str, help="Recovery end time (recover_manual)")
    p_absent.add_argument("--location", type=str, help="Recovery location id (recover_manual)")

    p_status = sub.add_parser("status", help="Change the enrollment status")
    p_status.add_argument("enrollment_id", type=str)
    p_status.add_argument("transition", choices=("activate", "revoke", "abandon", "terminate"))

    p_cons = sub.add_parser("consolidate", help="Mark past scheduled lessons as present")
    p_cons.add_argument("--today", type=_iso_date)

    p_conf = sub.add_parser("conflicts", help="Show double-booked locations and children")
    p_conf.add_argument("--date", type=_iso_date)

    sub.add_parser("interactive", help="Interactive attendance register")

    return parser


COMMANDS = {
    "holidays": _cmd_holidays,
    "locations": _cmd_locations,
    "list": _cmd_list,
    "enroll": _cmd_enroll,
    "enroll-custom": _cmd_enroll_custom,
    "closures": _cmd_closures,
    "close": _cmd_close,
    "reopen": _cmd_reopen,
    "show": _cmd_show,
    "present": _cmd_present,
    "absent": _cmd_absent,
    "revert": _cmd_revert,
    "delete": _cmd_delete,
    "status": _cmd_status,
    "consolidate": _cmd_consolidate,
    "conflicts": _cmd_conflicts,
}


def main(argv: list[str] | None = None, service: EnrollmentService | None = None) -> None:
    """
    CLI entry point. Parses args, dispatches to command handlers,
    and exits via SystemExit with a return code.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    settings = load_settings()
    setup_logging(settings.log_level, settings.log_file)
    if service is None:
        service = EnrollmentService(
            settings.enrollments_path, settings.locations_path, closures_path=settings.closures_path
        )

    if args.command == "interactive":
        from lessonbook.interactive import run_interactive

        run_interactive(service)
        raise SystemExit(0)

    handler = COMMANDS.get(args.command)
    if handler is None:
        raise SystemExit(2)

    try:
        code = handler(args, service)
    except LessonbookError as e:
        print(f"Error: {e}", file=sys.stderr)
        code = 1
    raise SystemExit(code)
