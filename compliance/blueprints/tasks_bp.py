"""
Tasks Blueprint — task list, reminders, history and progress reports.

  GET  /api/v1/tasks                  — filtered list (station, status, month, q)
  POST /api/v1/tasks                  — publish a new task (admins only)
  GET  /api/v1/tasks/due-soon         — once-per-login due-soon reminder
  GET  /api/v1/tasks/<uid>/history    — audit history, newest first
  POST /api/v1/tasks/<uid>/progress   — executor progress update (+ optional file)

Statuses in responses and filters are effective statuses: a PENDING task
past its deadline is listed and filtered as OVERDUE.
"""

import logging
import re

from flask import Blueprint, current_app, jsonify, request

from compliance.blueprints import (
    current_viewer_session,
    gateway,
    register_error_handlers,
    require_write,
    wants_refresh,
)
from compliance.blueprints.dashboard_bp import task_row
from compliance.core.exceptions import BackendUnavailable, NotFoundError, ValidationError
from compliance.integrations.backend_gateway import encode_attachment
from compliance.models.station import get_station
from compliance.models.task import TaskStatus
from compliance.services import session_data
from compliance.services.access_scope import can_access
from compliance.services.audit_log_service import newest_first
from compliance.services.backend_writes import task_data
from compliance.services.due_soon import fire
from compliance.services.ingest import audit_logs_from_wire
from compliance.services.permission import Capability, check_permission
from compliance.services.status_resolver import deadline_date, effective_status
from compliance.services.task_aggregator import filter_tasks
from compliance.utils.errors import E, api_error

logger = logging.getLogger(__name__)

tasks_bp = Blueprint("tasks", __name__, url_prefix="/api/v1/tasks")
register_error_handlers(tasks_bp)

_MONTH_RE = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")

# OVERDUE is derived from the deadline, never reported by an executor
_REPORTABLE = (TaskStatus.PENDING, TaskStatus.IN_PROGRESS, TaskStatus.COMPLETED)


def _status_arg(raw):
    if not raw:
        return None
    status = TaskStatus.from_wire(raw)
    if status is None:
        raise ValidationError("Unknown status", details={"status": raw})
    return status


def _accessible_task(vs, uid, refresh=False):
    tasks = session_data.load_tasks(vs, gateway(), refresh=refresh)
    task = next((t for t in tasks if t.uid == uid), None)
    if task is None or not can_access(vs.viewer, task.station_code):
        raise NotFoundError(resource="Task", resource_id=uid)
    return task


@tasks_bp.route("", methods=["GET"])
def list_tasks():
    """
    Query params: station (code), status, month (YYYY-MM), q, refresh
    """
    vs = current_viewer_session()
    month = request.args.get("month") or None
    if month and not _MONTH_RE.match(month):
        raise ValidationError("month must be YYYY-MM", details={"month": month})

    tasks = session_data.load_tasks(vs, gateway(), refresh=wants_refresh())
    rows = filter_tasks(
        tasks, vs.viewer, session_data.now(),
        station=request.args.get("station") or None,
        status=_status_arg(request.args.get("status")),
        month=month,
        search=request.args.get("q", ""),
    )
    return jsonify({"items": [task_row(t, s) for t, s in rows], "total": len(rows)}), 200


@tasks_bp.route("", methods=["POST"])
def create_task():
    """
    Publish a new task (admins only).

    Body: { "station_code", "item_code", "item_name", "deadline", "executor_email" }

    The task starts PENDING. The response carries the task as re-fetched,
    or null when the backend has not listed it yet.
    """
    vs = current_viewer_session()
    check_permission(vs.viewer, Capability.CREATE_TASK)

    body = request.get_json(silent=True) or {}
    code = str(body.get("station_code", "")).strip()
    if not code:
        return api_error(E.VALIDATION_REQUIRED, "station_code is required")
    station = get_station(code)
    if station is None or not can_access(vs.viewer, station.code):
        raise NotFoundError(resource="Station", resource_id=code)

    data = task_data(body, station)
    result = require_write(gateway().create_task(vs.identity, data), "createTask")
    logger.info("Task %s published for %s, due %s", data["itemCode"], station.code, data["deadline"],
                extra={"viewer_email": vs.viewer.email, "station_code": station.code})

    uid = str((result.data or {}).get("uid") or "")
    due = deadline_date(data["deadline"])

    def _is_created(t):
        if uid:
            return t.uid == uid
        return (t.station_code == station.code and t.item_code == data["itemCode"]
                and deadline_date(t.deadline) == due)

    tasks = session_data.load_tasks(vs, gateway(), refresh=True)
    task = next((t for t in reversed(tasks) if _is_created(t)), None)
    return jsonify({
        "task": task_row(task, effective_status(task, session_data.now())) if task else None,
    }), 201


@tasks_bp.route("/due-soon", methods=["GET"])
def due_soon():
    """Returns ``fired: true`` with the due tasks on the first call per login."""
    vs = current_viewer_session()
    tasks = session_data.load_tasks(vs, gateway())
    threshold = current_app.config.get("DUE_SOON_THRESHOLD_DAYS", 7)
    now = session_data.now()

    with vs.lock:
        vs.due_soon_gate, due = fire(vs.due_soon_gate, tasks, vs.viewer, now, threshold)

    if due is None:
        return jsonify({"fired": False, "tasks": []}), 200
    return jsonify({
        "fired": True,
        "threshold_days": threshold,
        "tasks": [task_row(t, effective_status(t, now)) for t in due],
    }), 200


@tasks_bp.route("/<uid>/history", methods=["GET"])
def task_history(uid):
    vs = current_viewer_session()
    _accessible_task(vs, uid)

    result = gateway().get_task_logs(vs.identity, uid)
    if not result.ok:
        raise BackendUnavailable("getTaskLogs", result.error)
    logs = newest_first(audit_logs_from_wire(result.entity_list("logs")))
    return jsonify({"uid": uid, "logs": [log.to_dict() for log in logs]}), 200


@tasks_bp.route("/<uid>/progress", methods=["POST"])
def report_progress(uid):
    """
    Report progress on a task.

    Accepts JSON ``{"status": ...}`` or multipart form data with ``status``
    and an optional ``file``; the file is forwarded base64-encoded.
    """
    vs = current_viewer_session()
    check_permission(vs.viewer, Capability.UPDATE_TASK)
    task = _accessible_task(vs, uid)

    data = request.form if request.files or request.form else (request.get_json(silent=True) or {})
    raw_status = data.get("status")
    if not raw_status:
        raise ValidationError("status is required", details={"status": "missing"})
    status = _status_arg(raw_status)
    if status not in _REPORTABLE:
        raise ValidationError("OVERDUE cannot be reported", details={"status": raw_status})

    attachment = None
    upload = request.files.get("file")
    if upload is not None and upload.filename:
        attachment = encode_attachment(
            upload.filename,
            upload.mimetype or "application/octet-stream",
            upload.read(),
        )

    result = gateway().update_task(
        vs.identity, uid, status.wire,
        current_attachment_url=task.attachment_url,
        attachment=attachment,
    )
    if result.rejected:
        raise ValidationError(result.error or "Update rejected", details={"uid": uid})
    if not result.ok:
        raise BackendUnavailable("updateTask", result.error)

    logger.info("Task %s progress reported as %s", uid, status.value,
                extra={"viewer_email": vs.viewer.email, "station_code": task.station_code})

    refreshed = _accessible_task(vs, uid, refresh=True)
    return jsonify({
        "task": task_row(refreshed, effective_status(refreshed, session_data.now())),
        "uploaded": attachment is not None,
    }), 200
