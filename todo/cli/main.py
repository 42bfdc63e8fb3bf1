#!/usr/bin/env python3
"""
todo CLI - Asana tasks from the terminal, online or from the local cache.
"""

import argparse
import json
import logging
import math
import sys
from datetime import timedelta

from ..cache import SnapshotStore
from ..config import Config, load_config
from ..credentials import CredentialStore
from ..engine import AsanaClient
from ..dates import parse_due_date
from ..errors import AmbiguousSelection, TodoError
from ..focus_day import FocusDay, current_focus_day
from ..grouping import NO_PROJECT, bucket_by_due, group, summarize, task_or_tasks
from ..models import Task, TaskView
from ..observability import CommandContext, configure_logging
from ..sync import STALE_EPOCH, SyncEngine, SyncMode

logger = logging.getLogger(__name__)

VERBOSITY_LEVELS = ["WARNING", "INFO", "DEBUG"]


def print_header(text: str):
    """Print a section header."""
    print(f"\n{'═' * 50}")
    print(f"  {text}")
    print(f"{'═' * 50}")


def format_task(task: Task) -> str:
    due = task.due_on.strftime("%b %d") if task.due_on else "no due"
    mark = "✓" if task.completed else "•"
    return f"  {mark} {due:<7} {task.name}"


def print_warnings(view: TaskView):
    for warning in view.warnings:
        print(f"⚠️  {warning}", file=sys.stderr)
    for notice in view.notices:
        print(f"⚠️  {notice}", file=sys.stderr)


def sync_mode(args) -> SyncMode:
    if args.use_cache:
        return SyncMode.CACHE_ONLY
    if args.refresh:
        return SyncMode.FORCE_REFRESH
    return SyncMode.PREFER_CACHE


def build_engine(args, config: Config) -> SyncEngine:
    """Wire the store and, unless running offline, the Asana client."""
    store = SnapshotStore(path=args.cache_path)
    client = None
    if not args.use_cache:
        client = AsanaClient(credentials=CredentialStore(), focus=config.focus)
    return SyncEngine(store, client=client, config=config)


def max_age_minutes(value: str) -> timedelta:
    """argparse type for --max-age. "inf" means the cache never goes stale."""
    try:
        minutes = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not a number of minutes: {value!r}") from None
    if math.isnan(minutes) or minutes < 0:
        raise argparse.ArgumentTypeError(f"not a number of minutes: {value!r}")
    if math.isinf(minutes):
        return timedelta.max
    try:
        return timedelta(minutes=minutes)
    except OverflowError:
        return timedelta.max


def load_view(args, config: Config, engine: SyncEngine) -> TaskView:
    explicit = config.explicit_selection(args.workspace, args.project)
    view = engine.get_task_view(sync_mode(args), max_age=args.max_age, explicit=explicit)
    print_warnings(view)
    return view


def cmd_list(args, config, engine):
    """Show tasks grouped by project and section."""
    view = load_view(args, config, engine)
    show_completed = args.show_completed or config.display.show_completed
    tasks = view.tasks if show_completed else [t for t in view.tasks if not t.completed]

    if not tasks:
        print("No incomplete tasks found!")
        return

    snapshot = view.snapshot
    grouped = group(tasks, snapshot.projects, snapshot.sections, show_completed=show_completed)
    for key, group_tasks in grouped.items():
        label = "My Tasks" if key == NO_PROJECT else key.label
        print_header(f"{label} ({task_or_tasks(len(group_tasks))})")
        for task in group_tasks:
            print(format_task(task))


def cmd_summary(args, config, engine):
    """One-line summary plus today's focus."""
    view = load_view(args, config, engine)
    today = engine.today()
    print(summarize(bucket_by_due(view.tasks, today)))

    focus_day = current_focus_day(view.snapshot, today)
    if focus_day is None:
        print("No focus set for today.")
    elif focus_day.completed:
        print("Today's focus is done.")
    else:
        print(f"Today's focus: {focus_day.task.name}")


def focus_day_dict(focus_day: FocusDay) -> dict:
    return {
        "gid": focus_day.task.gid,
        "name": focus_day.task.name,
        "date": focus_day.day.isoformat(),
        "completed": focus_day.completed,
        "stats": focus_day.stats,
        "morning_done": focus_day.is_morning_done,
        "evening_done": focus_day.is_evening_done,
    }


def format_stat(value: float | None) -> str:
    if value is None:
        return "-"
    return f"{value:g}"


def cmd_focus(args, config, engine):
    """Show a focus day, its stats and diary. Defaults to today."""
    view = load_view(args, config, engine)
    day = parse_due_date(args.date, engine.today()) if args.date else engine.today()
    focus_day = current_focus_day(view.snapshot, day)

    print_header(f"FOCUS: {day.isoformat()}")
    if focus_day is None:
        print(f"No focus day found for {day.isoformat()}.")
        return
    print(f"\n{focus_day.task.name}")

    print("\n  Stats:")
    for name, value in focus_day.stats.items():
        print(f"    {name.capitalize():<13} {format_stat(value)}")
    morning = "✓" if focus_day.is_morning_done else "✗"
    evening = "✓" if focus_day.is_evening_done else "✗"
    print(f"\n  Morning {morning}  Evening {evening}")

    if focus_day.diary:
        print()
        for line in focus_day.diary.splitlines():
            print(f"  {line}")


def cmd_status(args, config, engine):
    """Machine-friendly status for prompts and status bars."""
    view = load_view(args, config, engine)
    today = engine.today()
    buckets = bucket_by_due(view.tasks, today)
    focus_day = current_focus_day(view.snapshot, today)

    if args.format == "json":
        status = buckets.to_dict()
        status["focus_day"] = focus_day_dict(focus_day) if focus_day else None
        status["fetched_at"] = view.snapshot.fetched_at.isoformat()
        status["source"] = view.source
        status["stale"] = view.is_stale_fallback
        print(json.dumps(status))
        return

    parts = []
    if buckets.overdue:
        parts.append(f"{len(buckets.overdue)} overdue")
    if buckets.due_today:
        parts.append(f"{len(buckets.due_today)} today")
    if focus_day is None:
        parts.append("no focus")
    elif not focus_day.is_morning_done:
        parts.append("morning stats")
    elif not focus_day.is_evening_done:
        parts.append("evening stats")
    print(" · ".join(parts) if parts else "✓")


def cmd_add(args, config, engine):
    """Create a task assigned to me."""
    outcome = engine.create_task(
        args.name,
        due=args.due,
        notes=args.notes,
        explicit=config.explicit_selection(args.workspace, args.project),
        in_focus_project=args.focus,
        cache_only=args.use_cache,
    )
    print(f"✅ Created: {args.name} ({outcome.task_gid})")
    for warning in outcome.warnings:
        print(f"⚠️  {warning}", file=sys.stderr)


def find_task_gid(tasks: list[Task], selector: str) -> str:
    """
    Match a gid exactly, else a unique case-insensitive name substring.

    A numeric selector that matches nothing is passed through as a gid,
    since the cache only holds incomplete tasks.
    """
    for task in tasks:
        if task.gid == selector:
            return task.gid
    needle = selector.lower()
    matches = [t for t in tasks if needle in t.name.lower() and not t.completed]
    if len(matches) == 1:
        return matches[0].gid
    if not matches:
        if selector.isdigit():
            return selector
        raise TodoError(f"No incomplete task matches {selector!r}")
    raise AmbiguousSelection(
        f"{task_or_tasks(len(matches))} match {selector!r}; use the task id.",
        candidates=[(t.gid, t.name) for t in matches],
    )


def cmd_complete(args, config, engine):
    """Mark a task complete by id or name."""
    explicit = config.explicit_selection(args.workspace, args.project)
    task_gid = args.task
    snapshot = engine.store.load() if not args.use_cache else None
    if snapshot is not None:
        task_gid = find_task_gid(snapshot.tasks, args.task)

    outcome = engine.complete_task(task_gid, explicit=explicit, cache_only=args.use_cache)
    print(f"✅ Completed: {task_gid}")
    for warning in outcome.warnings:
        print(f"⚠️  {warning}", file=sys.stderr)


def cmd_update(args, config, engine):
    """Pull from Asana and cache without printing."""
    view = engine.refresh(config.explicit_selection(args.workspace, args.project))
    print_warnings(view)
    logger.info(f"Cached {task_or_tasks(len(view.tasks))}")


def cmd_cache(args, config, engine):
    """Inspect or clear the local cache."""
    store = engine.store
    if args.action == "clear":
        if store.clear():
            print(f"Cleared cache at {store.path}")
        else:
            print("No cache to clear.")
        return

    snapshot = store.load()
    if snapshot is None:
        print(f"No usable cache at {store.path}")
        return
    if snapshot.fetched_at == STALE_EPOCH:
        fetched = "marked stale, refreshed on next read"
    else:
        age = store.age(snapshot, engine.clock())
        fetched = f"{snapshot.fetched_at.isoformat()} ({int(age.total_seconds() // 60)} min ago)"
    print_header("CACHE")
    print(f"  Path:      {store.path}")
    print(f"  Fetched:   {fetched}")
    print(f"  Workspace: {snapshot.selected_workspace_id or '-'}")
    print(f"  Focus:     {snapshot.selected_focus_project_id or '-'}")
    print(f"  Tasks:     {len(snapshot.tasks)}")


COMMANDS = {
    "list": cmd_list,
    "summary": cmd_summary,
    "focus": cmd_focus,
    "status": cmd_status,
    "add": cmd_add,
    "complete": cmd_complete,
    "update": cmd_update,
    "cache": cmd_cache,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="todo",
        description="Asana tasks from the terminal",
    )
    parser.add_argument("--verbose", "-v", action="count", default=0, help="More log output")
    parser.add_argument("--config-path", help="Config file (default: ~/.todo/config/config.yaml)")
    parser.add_argument("--cache-path", help="Cache file (default: ~/.todo/data/cache.json)")
    parser.add_argument("--workspace", "-w", help="Workspace gid (overrides config)")
    parser.add_argument("--project", "-p", help="Focus project gid (overrides config)")
    parser.add_argument(
        "--max-age", type=max_age_minutes, help="Minutes before the cache is refreshed (inf: never)"
    )
    parser.add_argument("--show-completed", action="store_true", help="Include completed tasks")

    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--use-cache", action="store_true", help="Offline: read only the cache")
    mode.add_argument("--refresh", action="store_true", help="Always fetch from Asana")

    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("list", help="List tasks grouped by project")
    subparsers.add_parser("summary", help="Summarize overdue and upcoming tasks")
    subparsers.add_parser("update", help="Refresh the cache from Asana")

    p = subparsers.add_parser("focus", help="Show the focus day")
    p.add_argument("--date", help="Day to show (default today; yesterday, monday, 2026-01-15)")

    p = subparsers.add_parser("status", help="Status for prompts and status bars")
    p.add_argument("--format", "-f", choices=["short", "json"], default="short")

    p = subparsers.add_parser("add", help="Add a task")
    p.add_argument("name", help="Task name")
    p.add_argument("--due", "-d", help="Due date (today, friday, next week, 2026-01-15)")
    p.add_argument("--notes", "-n", help="Task description")
    p.add_argument("--focus", action="store_true", help="Also add to the focus project")

    p = subparsers.add_parser("complete", help="Complete a task")
    p.add_argument("task", help="Task id, or part of its name")

    p = subparsers.add_parser("cache", help="Inspect or clear the cache")
    p.add_argument("action", choices=["info", "clear"], help="Cache action")

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        args.command = "summary"

    try:
        config = load_config(args.config_path)
    except TodoError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    level = VERBOSITY_LEVELS[min(args.verbose, 2)] if args.verbose else config.logging.level
    configure_logging(level=level, json_format=config.logging.json)

    with CommandContext(name=args.command) as ctx:
        logger.debug(f"Running {args.command} ({ctx.command_id})")
        try:
            engine = build_engine(args, config)
            COMMANDS[args.command](args, config, engine)
        except TodoError as e:
            logger.debug(f"{args.command} failed", exc_info=True)
            print(f"Error: {e}", file=sys.stderr)
            return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
