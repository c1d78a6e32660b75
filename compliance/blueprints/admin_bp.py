"""
Admin Blueprint — audit log review for administrators and the 3D team.

  GET /api/v1/admin/logs   — system audit log (q, refresh)
"""

import logging

from flask import Blueprint, jsonify, request

from compliance.blueprints import (
    current_viewer_session,
    gateway,
    register_error_handlers,
    wants_refresh,
)
from compliance.services import session_data
from compliance.services.audit_log_service import newest_first, search_logs
from compliance.services.permission import Capability, check_permission

logger = logging.getLogger(__name__)

admin_bp = Blueprint("admin", __name__, url_prefix="/api/v1/admin")
register_error_handlers(admin_bp)


@admin_bp.route("/logs", methods=["GET"])
def list_logs():
    vs = current_viewer_session()
    check_permission(vs.viewer, Capability.ADMIN_PANEL)

    logs = session_data.load_logs(vs, gateway(), refresh=wants_refresh())
    rows = newest_first(search_logs(logs, request.args.get("q", "")))
    return jsonify({"items": [log.to_dict() for log in rows], "total": len(rows)}), 200
