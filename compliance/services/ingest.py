"""
Backend payload → record mapping.

This is the only place raw API shapes are read. Malformed fields degrade
to the least-privileged or least-alarming value and are logged; a single bad
row never fails a whole fetch.

Task rows arrive positionally:
    [uid, stationName, itemCode, itemName, deadline, status,
     executorEmail, lastUpdated, attachmentUrl]
"""

from __future__ import annotations

import logging
from typing import Any, Iterable

from compliance.models.audit import AuditLog
from compliance.models.checklist import (
    CheckStatus,
    ChecklistItem,
    ChecklistResult,
    ChecklistSubmission,
)
from compliance.models.station import station_code_by_name, station_name
from compliance.models.task import Task, TaskStatus
from compliance.models.user import StationAssignment, UserRole, Viewer

logger = logging.getLogger(__name__)

_TASK_COLUMNS = (
    "uid", "stationName", "itemCode", "itemName", "deadline",
    "status", "executorEmail", "lastUpdated", "attachmentUrl",
)


def _text(value: Any) -> str:
    return "" if value is None else str(value).strip()


def _optional(value: Any) -> str | None:
    text = _text(value)
    return text or None


def task_from_row(row: list | dict) -> Task:
    """Build a Task from a positional row (or an already keyed dict)."""
    if isinstance(row, dict):
        fields = row
    else:
        fields = dict(zip(_TASK_COLUMNS, list(row) + [None] * (len(_TASK_COLUMNS) - len(row))))

    uid = _text(fields.get("uid"))
    name = _text(fields.get("stationName"))
    code = _text(fields.get("stationCode")) or station_code_by_name(name)
    if not code:
        # An unknown station must not fall into some real station's scope
        logger.warning("Task %s has unknown station name %r", uid, name)
        code = name

    status = TaskStatus.from_wire(fields.get("status"))
    if status is None:
        logger.warning("Task %s has unknown status %r; treating as PENDING", uid, fields.get("status"))
        status = TaskStatus.PENDING

    return Task(
        uid=uid,
        station_code=code,
        station_name=name or station_name(code),
        item_code=_text(fields.get("itemCode")),
        item_name=_text(fields.get("itemName")),
        deadline=_text(fields.get("deadline")),
        status=status,
        executor_email=_text(fields.get("executorEmail")),
        last_updated=_text(fields.get("lastUpdated")),
        attachment_url=_optional(fields.get("attachmentUrl")),
    )


def tasks_from_rows(rows: Iterable) -> list[Task]:
    tasks = []
    for row in rows:
        if not isinstance(row, (list, tuple, dict)):
            logger.warning("Skipping malformed task row: %r", row)
            continue
        tasks.append(task_from_row(row))
    return tasks


def _resolved_alerts(raw: Any) -> set[str]:
    if not raw:
        return set()
    if isinstance(raw, str):
        return {part.strip() for part in raw.split(",") if part.strip()}
    if isinstance(raw, (list, tuple, set)):
        return {str(part) for part in raw if part}
    logger.warning("Unreadable resolvedAlerts value %r; treating as none resolved", raw)
    return set()


def result_from_wire(data: dict) -> ChecklistResult:
    status = CheckStatus.from_wire(data.get("status"))
    if status is None:
        # Scores 0 and raises no alert
        logger.warning("Checklist result %s has unknown status %r; treating as NA",
                       data.get("itemId"), data.get("status"))
        status = CheckStatus.NA
    return ChecklistResult(
        item_id=_text(data.get("itemId")),
        status=status,
        category=_optional(data.get("category")),
        content=_optional(data.get("content")),
        note=_optional(data.get("note")),
        photo_url=_optional(data.get("photoUrl")),
    )


def submission_from_wire(data: dict) -> ChecklistSubmission:
    code = _text(data.get("stationCode"))
    results = data.get("results")
    if not isinstance(results, list):
        logger.warning("Submission %s has no readable results", data.get("id"))
        results = []
    return ChecklistSubmission(
        id=_text(data.get("id")),
        station_code=code,
        station_name=_text(data.get("stationName")) or station_name(code),
        year_month=_text(data.get("yearMonth")),
        submitted_by=_text(data.get("submittedBy")),
        submitted_at=_text(data.get("submittedAt")),
        resolved_alerts=_resolved_alerts(data.get("resolvedAlerts")),
        results=[result_from_wire(r) for r in results if isinstance(r, dict)],
    )


def submissions_from_wire(items: Iterable) -> list[ChecklistSubmission]:
    return [submission_from_wire(i) for i in items if isinstance(i, dict)]


def template_from_wire(items: Iterable) -> list[ChecklistItem]:
    return [
        ChecklistItem(
            id=_text(i.get("id")),
            category=_text(i.get("category")),
            content=_text(i.get("content")),
        )
        for i in items if isinstance(i, dict)
    ]


def viewer_from_wire(data: dict) -> Viewer:
    """Viewer from the ``user`` object returned by a successful login.

    The station assignment is parsed here, once; a blank assignment means
    no station access.
    """
    return Viewer(
        email=_text(data.get("email")).lower(),
        role=UserRole.from_wire(data.get("role")),
        assignment=StationAssignment.parse(data.get("assignedStation")),
        name=_text(data.get("name")),
        organization=_text(data.get("organization")),
        force_change_password=bool(data.get("forceChangePassword")),
    )


def audit_logs_from_wire(items: Iterable) -> list[AuditLog]:
    return [
        AuditLog(
            id=_text(i.get("id")),
            timestamp=_text(i.get("timestamp")),
            user_email=_text(i.get("userEmail")),
            action=_text(i.get("action")),
            details=_text(i.get("details")),
            task_uid=_optional(i.get("taskUid")),
        )
        for i in items if isinstance(i, dict)
    ]
