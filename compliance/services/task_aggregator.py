"""
Task statistics for the dashboard and task views.

All counts go through two steps, in this order:
  1. ``filter_accessible`` — restricted viewers' figures, including the
     "global" totals, cover only the stations they may access.
  2. ``effective_status`` — buckets use the status as of ``now``, so a
     PENDING task past its deadline is counted as OVERDUE.

Global totals are recounted from the tasks, not summed from per-station
rates, so rounding never drifts.

Usage:
    from compliance.services.task_aggregator import aggregate
    summary = aggregate(tasks, viewer, now)
    summary.to_dict()  # {"per_station": [...], "global": {...}}
    overdue_tasks(tasks, viewer, now)  # five oldest overdue deadlines
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable

from compliance.models.station import STATIONS
from compliance.models.task import Task, TaskStatus
from compliance.models.user import Viewer
from compliance.services.access_scope import can_access, filter_accessible
from compliance.services.status_resolver import (
    deadline_date,
    deadline_end,
    effective_status,
)

logger = logging.getLogger(__name__)

# Station history ordering: most urgent first
STATUS_PRIORITY = {
    TaskStatus.OVERDUE: 1,
    TaskStatus.IN_PROGRESS: 2,
    TaskStatus.PENDING: 3,
    TaskStatus.COMPLETED: 4,
}


def completion_rate(completed: int, total: int) -> int:
    """Percentage rounded half-up; 0 for an empty set."""
    if total <= 0:
        return 0
    return (completed * 200 + total) // (total * 2)


@dataclass
class StatusCounts:
    total: int = 0
    pending: int = 0
    in_progress: int = 0
    completed: int = 0
    overdue: int = 0

    def add(self, status: TaskStatus) -> None:
        self.total += 1
        if status == TaskStatus.PENDING:
            self.pending += 1
        elif status == TaskStatus.IN_PROGRESS:
            self.in_progress += 1
        elif status == TaskStatus.COMPLETED:
            self.completed += 1
        else:
            self.overdue += 1

    @property
    def rate(self) -> int:
        return completion_rate(self.completed, self.total)

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "pending": self.pending,
            "in_progress": self.in_progress,
            "completed": self.completed,
            "overdue": self.overdue,
            "rate": self.rate,
        }


@dataclass
class StationStat(StatusCounts):
    station_code: str = ""
    station_name: str = ""

    def to_dict(self) -> dict:
        data = {"station_code": self.station_code, "station_name": self.station_name}
        data.update(super().to_dict())
        return data


@dataclass
class DashboardSummary:
    per_station: list[StationStat]
    global_stats: StatusCounts

    def to_dict(self) -> dict:
        return {
            "per_station": [s.to_dict() for s in self.per_station],
            "global": self.global_stats.to_dict(),
        }


def aggregate(tasks: Iterable[Task], viewer: Viewer | None, now: datetime) -> DashboardSummary:
    """Per-station and global counts over the viewer's accessible tasks.

    Every known station gets an entry, with zero counts where the viewer
    has no tasks.
    """
    visible = filter_accessible(tasks, viewer)

    by_station = {s.code: StationStat(station_code=s.code, station_name=s.name) for s in STATIONS}
    global_stats = StatusCounts()

    for task in visible:
        status = effective_status(task, now)
        global_stats.add(status)
        stat = by_station.get(task.station_code)
        if stat is not None:
            stat.add(status)

    return DashboardSummary(per_station=list(by_station.values()), global_stats=global_stats)


def filter_tasks(
    tasks: Iterable[Task],
    viewer: Viewer | None,
    now: datetime,
    *,
    station: str | None = None,
    status: TaskStatus | None = None,
    month: str | None = None,
    search: str = "",
) -> list[tuple[Task, TaskStatus]]:
    """Task list filtering; returns ``(task, effective_status)`` pairs.

    The scope check is applied regardless of the UI filters. ``status``
    compares against the effective status so the list agrees with what it
    displays. ``month`` is ``YYYY-MM`` matched against the deadline date.
    """
    needle = (search or "").strip().lower()
    rows = []
    for task in tasks:
        if not can_access(viewer, task.station_code):
            continue
        if station and task.station_code != station:
            continue

        current = effective_status(task, now)
        if status is not None and current != status:
            continue

        if month:
            day = deadline_date(task.deadline)
            if day is None or day.strftime("%Y-%m") != month:
                continue

        if needle and needle not in str(task.item_name or "").lower() \
                and needle not in str(task.uid or "").lower():
            continue

        rows.append((task, current))
    return rows


def station_history(
    tasks: Iterable[Task],
    viewer: Viewer | None,
    station_code: str,
    now: datetime,
) -> list[tuple[Task, TaskStatus]]:
    """One station's tasks, most urgent first, then nearest deadline.

    Empty when the viewer cannot access the station.
    """
    if not can_access(viewer, station_code):
        return []

    rows = [(t, effective_status(t, now)) for t in tasks if t.station_code == station_code]

    def _key(row):
        task, current = row
        end = deadline_end(task)
        # Unreadable deadlines sort after every real one
        return (
            STATUS_PRIORITY.get(current, 99),
            end is None,
            end.timestamp() if end is not None else 0.0,
        )

    return sorted(rows, key=_key)


def overdue_tasks(
    tasks: Iterable[Task],
    viewer: Viewer | None,
    now: datetime,
    limit: int = 5,
) -> list[Task]:
    """The dashboard's overdue shortlist: oldest deadline first, at most ``limit``.

    Includes tasks stored as OVERDUE whose deadline cannot be read; those
    sort last.
    """
    overdue = [t for t in filter_accessible(tasks, viewer)
               if effective_status(t, now) == TaskStatus.OVERDUE]

    def _key(task):
        end = deadline_end(task)
        return (end is None, end.timestamp() if end is not None else 0.0)

    return sorted(overdue, key=_key)[:limit]
