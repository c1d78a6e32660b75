"""
Dashboard Blueprint — station progress overview.

  GET /api/v1/dashboard                          — per-station and global counts,
                                                   plus the five oldest overdue tasks
  GET /api/v1/dashboard/stations/<code>/tasks    — one station's task history

Counts are always computed over the viewer's accessible stations; a
restricted viewer's "global" figures cover their stations only.
"""

import logging

from flask import Blueprint, jsonify

from compliance.blueprints import (
    current_viewer_session,
    gateway,
    register_error_handlers,
    wants_refresh,
)
from compliance.core.exceptions import NotFoundError
from compliance.models.station import get_station
from compliance.models.task import TaskStatus
from compliance.services import session_data
from compliance.services.access_scope import accessible_stations, can_access
from compliance.services.status_resolver import format_deadline
from compliance.services.task_aggregator import aggregate, overdue_tasks, station_history

logger = logging.getLogger(__name__)

dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/api/v1/dashboard")
register_error_handlers(dashboard_bp)


def task_row(task, status):
    row = task.to_dict(effective_status=status)
    row["deadline_display"] = format_deadline(task.deadline)
    return row


@dashboard_bp.route("", methods=["GET"])
def summary():
    vs = current_viewer_session()
    tasks = session_data.load_tasks(vs, gateway(), refresh=wants_refresh())
    now = session_data.now()
    result = aggregate(tasks, vs.viewer, now).to_dict()
    result["overdue"] = [task_row(t, TaskStatus.OVERDUE) for t in overdue_tasks(tasks, vs.viewer, now)]
    result["stations"] = [s.to_dict() for s in accessible_stations(vs.viewer)]
    return jsonify(result), 200


@dashboard_bp.route("/stations/<code>/tasks", methods=["GET"])
def station_tasks(code):
    vs = current_viewer_session()
    station = get_station(code)
    if station is None or not can_access(vs.viewer, station.code):
        raise NotFoundError(resource="Station", resource_id=code)

    tasks = session_data.load_tasks(vs, gateway(), refresh=wants_refresh())
    rows = station_history(tasks, vs.viewer, station.code, session_data.now())
    return jsonify({
        "station": station.to_dict(),
        "tasks": [task_row(t, s) for t, s in rows],
    }), 200
