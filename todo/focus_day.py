"""
Focus days inside the focus project.

The focus project is laid out as one section per week,
"Daily Focuses (2026-01-05 to 2026-01-11)", holding one task per day,
"Daily Focus for Monday (2026-01-05)". The task notes are the day's diary and
its number custom fields (sleep, energy, ...) are the day's stats. Sleep and
energy are filled in the morning, the rest in the evening.
"""

import logging
import re
from dataclasses import dataclass
from datetime import date

from .models import CacheSnapshot, Section, Task

logger = logging.getLogger(__name__)

FOCUS_WEEK_PATTERN = re.compile(
    r"^Daily Focuses \((?P<from>\d{4}-\d{2}-\d{2}) to (?P<to>\d{4}-\d{2}-\d{2})\)$"
)
FOCUS_DAY_PATTERN = re.compile(r"^Daily Focus for \w+ \((?P<date>\d{4}-\d{2}-\d{2})\)$")

MORNING_STATS = ("sleep", "energy")
EVENING_STATS = ("flow", "hydration", "health", "satisfaction", "stress")
STAT_NAMES = MORNING_STATS + EVENING_STATS


@dataclass(frozen=True)
class FocusWeek:
    section: Section
    start: date
    end: date

    def contains(self, day: date) -> bool:
        return self.start <= day <= self.end


@dataclass(frozen=True)
class FocusDay:
    task: Task
    day: date

    @property
    def diary(self) -> str:
        return self.task.notes

    @property
    def completed(self) -> bool:
        return self.task.completed

    @property
    def stats(self) -> dict[str, float | None]:
        """Every stat by name, None where the field is missing or unset."""
        return {name: self.task.custom_fields.get(name) for name in STAT_NAMES}

    @property
    def is_morning_done(self) -> bool:
        stats = self.stats
        return all(stats[name] is not None for name in MORNING_STATS)

    @property
    def is_evening_done(self) -> bool:
        stats = self.stats
        return all(stats[name] is not None for name in EVENING_STATS)


def parse_focus_week(section: Section) -> FocusWeek | None:
    """Parse a week section name. Returns None for non-matching names."""
    match = FOCUS_WEEK_PATTERN.match(section.name)
    if not match:
        return None
    try:
        start = date.fromisoformat(match.group("from"))
        end = date.fromisoformat(match.group("to"))
    except ValueError:
        logger.warning(f"Skipping focus week with invalid dates: {section.name!r}")
        return None
    if end < start:
        logger.warning(f"Skipping focus week ending before it starts: {section.name!r}")
        return None
    return FocusWeek(section=section, start=start, end=end)


def parse_focus_day(task: Task) -> FocusDay | None:
    """Parse a day task name. Returns None for non-matching names."""
    match = FOCUS_DAY_PATTERN.match(task.name)
    if not match:
        return None
    try:
        day = date.fromisoformat(match.group("date"))
    except ValueError:
        logger.warning(f"Skipping focus day with invalid date: {task.name!r}")
        return None
    return FocusDay(task=task, day=day)


def focus_project_id(snapshot: CacheSnapshot) -> str | None:
    """Project the snapshot's tasks were fetched for, else the persisted one."""
    return snapshot.scope_project_id or snapshot.selected_focus_project_id


def focus_weeks(snapshot: CacheSnapshot) -> list[FocusWeek]:
    project_id = focus_project_id(snapshot)
    if project_id is None:
        return []
    weeks = []
    for section in snapshot.sections:
        if section.project_gid not in (None, project_id):
            continue
        week = parse_focus_week(section)
        if week is not None:
            weeks.append(week)
    return sorted(weeks, key=lambda w: w.start)


def current_focus_day(snapshot: CacheSnapshot, today: date) -> FocusDay | None:
    """
    Find the focus day for a date in the cached focus project.

    A day task filed under the week section covering the date wins; otherwise
    any day task for that date in the focus project is used.

    Args:
        snapshot: Cached snapshot (sections and tasks of the focus project).
        today: Caller's local date, or the date asked for with focus --date.

    Returns:
        The focus day, or None if there is no focus project or no entry today.
    """
    project_id = focus_project_id(snapshot)
    if project_id is None:
        logger.debug("No focus project selected, no focus day")
        return None

    week_sections = {w.section.gid for w in focus_weeks(snapshot) if w.contains(today)}

    matches = []
    for task in snapshot.tasks:
        if task.project_gid != project_id:
            continue
        day = parse_focus_day(task)
        if day is None or day.day != today:
            continue
        matches.append(day)

    if not matches:
        logger.info(f"No focus day for {today.isoformat()} in project {project_id}")
        return None

    matches.sort(key=lambda d: (d.task.section_gid not in week_sections, d.task.gid))
    return matches[0]
