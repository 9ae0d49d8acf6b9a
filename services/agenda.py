"""Derived views of the day: today's duties, overdue carry-over, upcoming agenda."""
from __future__ import annotations

import datetime as dt
from collections import Counter
from typing import Dict, Iterable, List, Tuple

from core import config
from core.dates import day_range, local_date
from core.models import RecurringTask, Task, TaskStatus


def sort_tasks(tasks: Iterable[Task]) -> List[Task]:
    """Open tasks first, oldest first, key as tie-breaker."""
    return sorted(tasks, key=lambda t: (t.status == TaskStatus.COMPLETED, t.created_at, t.key))


def is_done_today(task: RecurringTask, now: dt.datetime,
                  offset_hours: int = config.TZ_OFFSET_HOURS) -> bool:
    if task.last_completed_at is None:
        return False
    return task.last_completed_at in day_range(now, offset_hours)


def todays_duties(tasks: Iterable[Task], recurring: Iterable[RecurringTask], now: dt.datetime,
                  offset_hours: int = config.TZ_OFFSET_HOURS) -> Tuple[List[Task], List[RecurringTask]]:
    today = day_range(now, offset_hours)
    due = [
        t for t in tasks
        if not t.is_archived and t.status != TaskStatus.COMPLETED and t.created_at in today
    ]
    routines = [r for r in recurring if not is_done_today(r, now, offset_hours)]
    return sort_tasks(due), sorted(routines, key=lambda r: (r.created_at, r.key))


def overdue(tasks: Iterable[Task], now: dt.datetime,
            offset_hours: int = config.TZ_OFFSET_HOURS) -> List[Task]:
    start = day_range(now, offset_hours).start
    return sort_tasks(
        t for t in tasks
        if not t.is_archived and t.status == TaskStatus.WAITING and t.created_at < start
    )


def overdue_count(tasks: Iterable[Task], now: dt.datetime,
                  offset_hours: int = config.TZ_OFFSET_HOURS) -> int:
    return len(overdue(tasks, now, offset_hours))


def upcoming(tasks: Iterable[Task], offset_hours: int = config.TZ_OFFSET_HOURS) -> Dict[dt.date, List[Task]]:
    """Non-archived tasks grouped by local calendar day, days in ascending order."""
    days: Dict[dt.date, List[Task]] = {}
    for t in sorted(tasks, key=lambda t: (t.created_at, t.key)):
        if t.is_archived:
            continue
        days.setdefault(local_date(t.created_at, offset_hours), []).append(t)
    return dict(sorted(days.items()))


def status_counts(tasks: Iterable[Task]) -> Dict[str, int]:
    counts = Counter(t.status.value for t in tasks)
    return {s.value: counts.get(s.value, 0) for s in TaskStatus}
