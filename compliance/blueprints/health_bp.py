"""
Health check blueprint.

Endpoints:
    GET /api/v1/health/ready  — simple 200 for load balancers
    GET /api/v1/health/live   — configuration and gateway circuit state
"""

import logging

from flask import Blueprint, current_app, jsonify

logger = logging.getLogger(__name__)

health_bp = Blueprint("health", __name__, url_prefix="/api/v1/health")


@health_bp.route("/ready", methods=["GET"])
def ready():
    """Simple readiness check — always 200 if app is running."""
    return jsonify({"status": "ok"}), 200


@health_bp.route("/live", methods=["GET"])
def live():
    """Liveness detail. The remote API is not called; only local state is read."""
    gateway = current_app.extensions["backend_gateway"]
    checks = {
        "backend": {
            "configured": bool(gateway.base_url),
            "circuit_open": gateway.circuit_open,
        },
        "sessions": {"active": len(current_app.extensions["viewer_sessions"])},
        "app": {
            "name": "Facility Compliance Dashboard",
            "timezone": current_app.config.get("APP_TIMEZONE"),
            "testing": current_app.testing,
        },
    }
    healthy = checks["backend"]["configured"] and not checks["backend"]["circuit_open"]
    return jsonify({"status": "ok" if healthy else "degraded", "checks": checks}), 200 if healthy else 503
