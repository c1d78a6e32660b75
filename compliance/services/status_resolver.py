"""
Effective task status.

A task's stored status is whatever was last persisted; whether it is overdue
depends on *now*, which keeps moving after the data was fetched. Call
``effective_status`` every time a status is displayed, filtered or counted.
Never store its result.

Deadline rules:
  - Only the deadline's calendar date matters. A timestamp carrying an
    offset is first moved into the local timezone, then its date is taken.
  - The deadline lasts until 23:59:59.999 local time on that date.
  - A COMPLETED task is never re-evaluated.
  - Dates may be unpadded and slash-separated ("2024/1/5"), as the
    spreadsheet backend writes them.
  - An unparseable deadline is treated as "not overdue" and logged.
"""

from __future__ import annotations

import logging
import re
from datetime import date, datetime, time, timedelta, tzinfo
from zoneinfo import ZoneInfo

from compliance.models.task import Task, TaskStatus

logger = logging.getLogger(__name__)

DEFAULT_TIMEZONE = "Asia/Taipei"

# Millisecond precision, matching the timestamps the backend produces
END_OF_DAY = time(23, 59, 59, 999000)
ONE_DAY = timedelta(days=1)

_local_tz: tzinfo = ZoneInfo(DEFAULT_TIMEZONE)

# Y-M-D with optional zero padding, then an optional clock part
_DATE_RE = re.compile(r"^(\d{4})[-/](\d{1,2})[-/](\d{1,2})(?:[ T](\S.*))?$")


def configure_timezone(name: str) -> None:
    """Set the zone that defines calendar days (called by the app factory)."""
    global _local_tz
    _local_tz = ZoneInfo(name)


def local_timezone() -> tzinfo:
    return _local_tz


def to_local(moment: datetime) -> datetime:
    """Aware local datetime; naive input is taken to be local already."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=_local_tz)
    return moment.astimezone(_local_tz)


def deadline_date(raw) -> date | None:
    """Calendar date of a deadline value, or None when it cannot be read."""
    if isinstance(raw, datetime):
        return to_local(raw).date() if raw.tzinfo else raw.date()
    if isinstance(raw, date):
        return raw

    match = _DATE_RE.match(str(raw or "").strip())
    if match is None:
        return None
    year, month, day, clock = match.groups()
    try:
        calendar_day = date(int(year), int(month), int(day))
    except ValueError:
        return None
    if not clock:
        return calendar_day

    clock = clock.strip()
    if clock.endswith("Z"):
        clock = clock[:-1] + "+00:00"
    if clock[1:2] == ":":
        clock = "0" + clock
    try:
        parsed = datetime.fromisoformat(f"{calendar_day.isoformat()}T{clock}")
    except ValueError:
        return None
    return to_local(parsed).date() if parsed.tzinfo else parsed.date()


def end_of_day(day: date) -> datetime:
    """Last representable millisecond of ``day`` in local time."""
    return datetime.combine(day, END_OF_DAY, tzinfo=_local_tz)


def start_of_day(moment: datetime) -> datetime:
    """Local midnight of the day ``moment`` falls on."""
    local = to_local(moment)
    return datetime.combine(local.date(), time.min, tzinfo=_local_tz)


def deadline_end(task: Task) -> datetime | None:
    """End of the task's deadline day, or None (logged) when unreadable."""
    day = deadline_date(task.deadline)
    if day is None:
        logger.warning(
            "Unparseable deadline %r on task %s; treating as not overdue",
            task.deadline, task.uid,
            extra={"station_code": task.station_code},
        )
        return None
    return end_of_day(day)


def effective_status(task: Task, now: datetime) -> TaskStatus:
    """Status to display for ``task`` at ``now``."""
    if task.status == TaskStatus.COMPLETED:
        return TaskStatus.COMPLETED

    end = deadline_end(task)
    if end is not None and to_local(now) > end:
        return TaskStatus.OVERDUE
    return task.status


def format_deadline(raw) -> str:
    """``YYYY-MM-DD`` for display; unreadable values are returned unchanged."""
    day = deadline_date(raw)
    if day is None:
        return "" if raw is None else str(raw)
    return day.isoformat()
