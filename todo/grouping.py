"""
Task grouping and summary text for display.

group() orders by project (snapshot order), then section (snapshot order),
then due date ascending with undated tasks last. Completed tasks sink below
incomplete ones unless show_completed is set.
"""

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import NamedTuple

from .models import Project, Section, Task

logger = logging.getLogger(__name__)


class GroupKey(NamedTuple):
    project_gid: str | None
    project_name: str
    section_gid: str | None = None
    section_name: str | None = None

    @property
    def label(self) -> str:
        if self.section_name:
            return f"{self.project_name} / {self.section_name}"
        return self.project_name


NO_PROJECT = GroupKey(project_gid=None, project_name="No project")


def _task_sort_key(task: Task, show_completed: bool):
    completed_rank = 0 if show_completed else int(task.completed)
    return (
        completed_rank,
        task.due_on is None,
        task.due_on or date.max,
        task.name.lower(),
        task.gid,
    )


def group(
    tasks: Iterable[Task],
    projects: Sequence[Project],
    sections: Sequence[Section] = (),
    show_completed: bool = False,
) -> dict[GroupKey, list[Task]]:
    """
    Group tasks for display with deterministic ordering.

    Args:
        tasks: Materialized tasks (from cache or a live fetch).
        projects: Projects in snapshot order; defines group order.
        sections: Sections in snapshot order; defines sub-group order.
        show_completed: Interleave completed tasks by due date instead of
            sorting them last.

    Returns:
        Ordered mapping of group key to ordered tasks. Empty groups are omitted.
    """
    project_rank = {p.gid: i for i, p in enumerate(projects)}
    project_names = {p.gid: p.name for p in projects}
    section_rank = {s.gid: i for i, s in enumerate(sections)}
    section_by_gid = {s.gid: s for s in sections}

    buckets: dict[GroupKey, list[Task]] = {}
    for task in tasks:
        if task.project_gid not in project_rank:
            key = NO_PROJECT
        else:
            section = section_by_gid.get(task.section_gid)
            if section is not None and section.project_gid in (None, task.project_gid):
                key = GroupKey(
                    task.project_gid, project_names[task.project_gid], section.gid, section.name
                )
            else:
                key = GroupKey(task.project_gid, project_names[task.project_gid])
        buckets.setdefault(key, []).append(task)

    def key_order(key: GroupKey):
        if key == NO_PROJECT:
            return (1, 0, 0, 0)
        has_section = key.section_gid is not None
        return (
            0,
            project_rank[key.project_gid],
            has_section,
            section_rank.get(key.section_gid, -1),
        )

    return {
        key: sorted(buckets[key], key=lambda t: _task_sort_key(t, show_completed))
        for key in sorted(buckets, key=key_order)
    }


@dataclass
class DueBuckets:
    """Incomplete tasks bucketed by due date relative to today."""

    overdue: list[Task] = field(default_factory=list)
    due_today: list[Task] = field(default_factory=list)
    due_this_week: list[Task] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "overdue": len(self.overdue),
            "due_today": len(self.due_today),
            "due_this_week": len(self.due_this_week),
        }


def bucket_by_due(tasks: Iterable[Task], today: date) -> DueBuckets:
    """Split incomplete dated tasks into overdue / today / next seven days."""
    week_end = today + timedelta(days=7)
    buckets = DueBuckets()
    for task in tasks:
        if task.completed or task.due_on is None:
            continue
        if task.due_on < today:
            buckets.overdue.append(task)
        elif task.due_on == today:
            buckets.due_today.append(task)
        elif task.due_on <= week_end:
            buckets.due_this_week.append(task)

    for bucket in (buckets.overdue, buckets.due_today, buckets.due_this_week):
        bucket.sort(key=lambda t: (t.due_on, t.name.lower(), t.gid))
    logger.debug(
        f"Grouped tasks: {len(buckets.overdue)} overdue, {len(buckets.due_today)} due today, "
        f"{len(buckets.due_this_week)} due this week"
    )
    return buckets


def task_or_tasks(num: int) -> str:
    return "1 task" if num == 1 else f"{num} tasks"


def summarize(buckets: DueBuckets) -> str:
    """One-line summary of what needs attention."""
    overdue = len(buckets.overdue)
    today = len(buckets.due_today)

    if overdue == 0 and today == 0:
        summary = "Nice! Everything done for now!"
    elif today == 0:
        summary = f"You have {task_or_tasks(overdue)} overdue."
    elif overdue == 0:
        summary = f"You have {task_or_tasks(today)} due today."
    else:
        summary = f"You have {task_or_tasks(overdue + today)} overdue or due today."

    if buckets.due_this_week:
        summary += f" You have another {task_or_tasks(len(buckets.due_this_week))} due within a week."
    return summary
