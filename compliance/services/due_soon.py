"""
Due-soon reminder shown once after login.

``evaluate`` is pure. Whether it has already been shown this login is a
``DueSoonGate`` value held by the viewer session and reset only by a new
login.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Iterable

from compliance.models.task import Task, TaskStatus
from compliance.models.user import Viewer
from compliance.services.access_scope import filter_accessible
from compliance.services.status_resolver import ONE_DAY, deadline_end, start_of_day

DEFAULT_THRESHOLD_DAYS = 7


class DueSoonGate(str, Enum):
    PENDING = "PENDING"
    FIRED = "FIRED"


def days_left(task: Task, now: datetime) -> float | None:
    """Days from local midnight today to the end of the deadline day.

    Negative once overdue; None when the deadline cannot be read.
    """
    end = deadline_end(task)
    if end is None:
        return None
    return (end - start_of_day(now)) / ONE_DAY


def evaluate(
    tasks: Iterable[Task],
    viewer: Viewer | None,
    now: datetime,
    threshold_days: int = DEFAULT_THRESHOLD_DAYS,
) -> list[Task]:
    """Accessible, unfinished tasks due within ``threshold_days`` (or overdue)."""
    due = []
    for task in filter_accessible(tasks, viewer):
        if task.status == TaskStatus.COMPLETED:
            continue
        left = days_left(task, now)
        if left is not None and left <= threshold_days:
            due.append(task)
    return due


def fire(
    gate: DueSoonGate,
    tasks: list[Task],
    viewer: Viewer | None,
    now: datetime,
    threshold_days: int = DEFAULT_THRESHOLD_DAYS,
) -> tuple[DueSoonGate, list[Task] | None]:
    """Advance the gate; returns the new gate and the tasks to show.

    Nothing is shown (None) when the gate has already fired or no tasks are
    loaded yet; the gate stays PENDING in the latter case.
    """
    if gate == DueSoonGate.FIRED or not tasks:
        return gate, None
    return DueSoonGate.FIRED, evaluate(tasks, viewer, now, threshold_days)
