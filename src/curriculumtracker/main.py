"""CLI entrypoint for the curriculum progress tracker."""

from __future__ import annotations

import argparse
import logging
from collections.abc import Callable
from datetime import datetime
from pathlib import Path

from .curriculum import load_curriculum
from .errors import MalformedCurriculumError, ProgressImportError
from .service import TrackerService

InputFn = Callable[[str], str]
PrintFn = Callable[[str], None]
MENU_QUIT_COMMANDS = {"q"}
MENU_BACK_COMMANDS = {"b"}
DEFAULT_DB_PATH = Path(".curriculumtracker") / "progress.db"


class QuitApp(Exception):
    """Signal immediate app exit from nested menu flows."""


def _service(db_path: Path, curriculum_path: Path | None) -> TrackerService:
    """Create app service for the given database and curriculum."""
    progression = load_curriculum(curriculum_path) if curriculum_path is not None else None
    return TrackerService(db_path=db_path, progression=progression)


def run(argv: list[str] | None = None, input_fn: InputFn = input, print_fn: PrintFn = print) -> int:
    """Run the CLI application."""
    parser = argparse.ArgumentParser(prog="curriculumtracker", description="Curriculum progress tracker")
    parser.add_argument("command", nargs="?", default="play", choices=["play"])
    parser.add_argument("--db", type=Path, default=DEFAULT_DB_PATH, help="progress database path")
    parser.add_argument("--curriculum", type=Path, default=None, help="curriculum JSON file (default: bundled)")
    parser.add_argument("--verbose", action="store_true", help="log state changes")
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO if args.verbose else logging.WARNING, format="%(levelname)s %(message)s")

    try:
        service = _service(args.db, args.curriculum)
    except MalformedCurriculumError as exc:
        print_fn(f"Could not load curriculum: {exc}")
        return 1
    return play_shell(service, input_fn, print_fn)


def play_shell(service: TrackerService, input_fn: InputFn = input, print_fn: PrintFn = print) -> int:
    """Run persistent menu-driven shell."""
    try:
        if not service.persistent:
            print_fn("Note: progress storage is unavailable; changes last for this session only.")
        while True:
            print_fn("\n=== Curriculum Progress ===")
            print_fn(f"User: {service.active_user}")
            print_fn("1) Subjects")
            print_fn("2) Leaderboard")
            print_fn("3) Switch user")
            print_fn("4) Export progress")
            print_fn("5) Import progress")
            print_fn("6) Reset progress")
            print_fn("q) Quit")
            choice = input_fn("Choose: ").strip().lower()

            if choice == "1":
                _subjects_flow(service, input_fn, print_fn)
            elif choice == "2":
                _leaderboard_flow(service, print_fn)
            elif choice == "3":
                _switch_user_flow(service, input_fn, print_fn)
            elif choice == "4":
                _export_flow(service, input_fn, print_fn)
            elif choice == "5":
                _import_flow(service, input_fn, print_fn)
            elif choice == "6":
                _reset_flow(service, input_fn, print_fn)
            elif choice in MENU_QUIT_COMMANDS:
                return 0
            else:
                print_fn("Invalid choice.")
    except QuitApp:
        return 0
    finally:
        service.close()


def _subjects_flow(service: TrackerService, input_fn: InputFn, print_fn: PrintFn) -> None:
    """Choose a subject and open its checklist."""
    subjects = service.subjects()
    if not subjects:
        print_fn("No subjects in this curriculum.")
        return

    print_fn("\n=== Subjects ===")
    name_width = max(len("Subject"), max(len(subject) for subject in subjects))
    header = f"{'#':>2} {'Subject':<{name_width}} {'Done':>4} {'Left':>4}"
    print_fn(header)
    print_fn("-" * len(header))
    for idx, subject in enumerate(subjects, start=1):
        summary = service.subject_summary(subject)
        print_fn(f"{idx:>2} {subject:<{name_width}} {summary.percent:>3}% {summary.remaining:>4}")
    print_fn("b) Back")
    print_fn("q) Quit")

    choice = input_fn("Choose subject: ").strip().lower()
    if choice in MENU_BACK_COMMANDS:
        return
    if choice in MENU_QUIT_COMMANDS:
        raise QuitApp()
    if not choice.isdigit():
        print_fn("Invalid choice.")
        return
    index = int(choice) - 1
    if not (0 <= index < len(subjects)):
        print_fn("Invalid choice.")
        return
    _checklist_flow(service, subjects[index], input_fn, print_fn)


def _checklist_flow(service: TrackerService, subject: str, input_fn: InputFn, print_fn: PrintFn) -> None:
    """Show a subject's topics by year and toggle them by code."""
    while True:
        record = service.current_record()
        summary = service.subject_summary(subject)
        print_fn(f"\n=== {subject}: {summary.percent}% complete, {summary.remaining} remaining ===")
        years = service.subject_years(subject)
        for group, row in zip(service.progression[subject], years, strict=True):
            print_fn("")
            print_fn(f"{row.year} ({row.completed}/{row.total}, {row.percent}%)")
            for topic in group.topics:
                mark = "x" if record.get(topic.code, False) else " "
                print_fn(f"  [{mark}] {topic.code:<14} {topic.topic}")
        print_fn("\nType a topic code to toggle it.")
        print_fn("b) Back")
        print_fn("q) Quit")

        choice = input_fn("Topic code: ").strip()
        if choice.lower() in MENU_BACK_COMMANDS:
            return
        if choice.lower() in MENU_QUIT_COMMANDS:
            raise QuitApp()
        try:
            done = service.toggle_topic(choice)
        except KeyError:
            print_fn(f"Unknown topic code: {choice}")
            continue
        print_fn(f"{choice} marked {'complete' if done else 'not complete'}.")


def _leaderboard_flow(service: TrackerService, print_fn: PrintFn) -> None:
    """Print users ranked by overall completion."""
    entries = service.leaderboard()
    print_fn("\n=== Leaderboard ===")
    user_width = max(len("User"), max(len(entry.user) for entry in entries))
    header = f"{'#':>2} {'User':<{user_width}} {'Done':>4}  Last active"
    print_fn(header)
    print_fn("-" * len(header))
    for idx, entry in enumerate(entries, start=1):
        star = "*" if entry.leader else " "
        print_fn(
            f"{idx:>2} {entry.user:<{user_width}} {entry.percent:>3}%{star} {_format_last_active(entry.last_active)}"
        )


def _switch_user_flow(service: TrackerService, input_fn: InputFn, print_fn: PrintFn) -> None:
    """Select an existing user or start a new one by name."""
    users = service.list_users()
    active = service.active_user
    print_fn("\n=== Users ===")
    for idx, user in enumerate(users, start=1):
        marker = " (active)" if user == active else ""
        print_fn(f"{idx}) {user}{marker}")
    print_fn("Enter a number, or a new name to start tracking.")
    print_fn("b) Back")

    choice = input_fn("Select user: ").strip()
    if choice.lower() in MENU_BACK_COMMANDS or not choice:
        return
    if choice.isdigit():
        index = int(choice) - 1
        if not (0 <= index < len(users)):
            print_fn("Invalid user selection.")
            return
        choice = users[index]
    name = service.switch_user(choice)
    if not service.has_saved_progress(name):
        print_fn(f"Switched to '{name}' (no saved progress yet).")
    else:
        print_fn(f"Switched to '{name}'.")


def _export_flow(service: TrackerService, input_fn: InputFn, print_fn: PrintFn) -> None:
    """Export the active user's progress to a JSON file."""
    print_fn("\n=== Export Progress ===")
    path_text = input_fn("Export file path: ").strip()
    if not path_text:
        print_fn("File path is required.")
        return
    try:
        summary = service.export_progress(path_text)
    except OSError as exc:
        print_fn(f"Export failed: {exc}")
        return
    print_fn(f"Exported progress for '{summary.user}' to {summary.path}")
    print_fn(f"- completed topics: {summary.completed}")


def _import_flow(service: TrackerService, input_fn: InputFn, print_fn: PrintFn) -> None:
    """Import progress from a JSON file into the active user."""
    print_fn("\n=== Import Progress ===")
    path_text = input_fn("Import file path: ").strip()
    if not path_text:
        print_fn("File path is required.")
        return
    try:
        summary = service.import_progress(path_text)
    except ProgressImportError as exc:
        print_fn(f"Import failed, progress unchanged: {exc}")
        return
    print_fn(f"Imported progress for '{summary.user}'.")
    print_fn(f"- completed topics: {summary.completed}")


def _reset_flow(service: TrackerService, input_fn: InputFn, print_fn: PrintFn) -> None:
    """Reset the active user's progress with explicit confirmation safeguard."""
    user = service.active_user
    print_fn(f"WARNING: This permanently deletes all progress for '{user}'.")
    confirm = input_fn("Type YES to confirm reset: ").strip()
    if confirm != "YES":
        print_fn("Reset cancelled.")
        return
    service.reset_progress()
    print_fn(f"Progress for '{user}' was reset.")


def _format_last_active(last_active: datetime | None) -> str:
    """Convert a UTC timestamp to local human-readable datetime."""
    if last_active is None:
        return "never"
    return last_active.astimezone().strftime("%Y-%m-%d %H:%M")


def main_entry() -> None:
    """Console script entrypoint."""
    raise SystemExit(run())


if __name__ == "__main__":  # pragma: no cover
    main_entry()
