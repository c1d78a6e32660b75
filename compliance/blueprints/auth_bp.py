"""
Auth Blueprint — viewer session lifecycle.

  POST   /api/v1/session   — email + password → fresh viewer session
  GET    /api/v1/session   — current viewer and capabilities
  DELETE /api/v1/session   — log out
  POST   /api/v1/session/password — set a new password

The password is hashed here and compared by the remote API; the hash then
serves as the bearer token on every later backend call. Each login starts a
new viewer session, so the due-soon reminder is armed again.
"""

import logging
from dataclasses import replace

from flask import Blueprint, jsonify, request, session

from compliance.blueprints import (
    SESSION_KEY,
    current_viewer_session,
    gateway,
    register_error_handlers,
    require_write,
    session_store,
)
from compliance.core.exceptions import BackendUnavailable, ValidationError
from compliance.integrations.backend_gateway import BackendIdentity, hash_password
from compliance.models.user import UserRole
from compliance.services.backend_writes import new_password
from compliance.services.due_soon import DueSoonGate
from compliance.services.ingest import viewer_from_wire
from compliance.services.permission import capabilities
from compliance.utils.errors import E, api_error

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth", __name__, url_prefix="/api/v1/session")
register_error_handlers(auth_bp)


def _session_payload(vs):
    return {
        "viewer": vs.viewer.to_dict(),
        "capabilities": capabilities(vs.viewer),
        "due_soon_pending": vs.due_soon_gate == DueSoonGate.PENDING,
    }


@auth_bp.route("", methods=["POST"])
def login():
    """
    Authenticate against the remote API and open a viewer session.

    Body: { "email": "...", "password": "..." }
    """
    data = request.get_json(silent=True) or {}
    email = str(data.get("email", "")).strip().lower()
    password = str(data.get("password", ""))

    if not email or not password:
        return api_error(E.VALIDATION_REQUIRED, "Email and password are required")

    token = hash_password(password)
    result = gateway().check_user_auth(email, token)
    if result.rejected:
        logger.info("Login rejected for %s", email, extra={"viewer_email": email})
        return api_error(E.UNAUTHENTICATED, result.error or "Invalid email or password")
    if not result.ok:
        raise BackendUnavailable("checkUserAuth", result.error)

    user = (result.data or {}).get("user") or {}
    user.setdefault("email", email)
    viewer = viewer_from_wire(user)
    if viewer.role == UserRole.PENDING:
        return api_error(E.FORBIDDEN, "Account is awaiting approval")

    store = session_store()
    store.drop(session.get(SESSION_KEY))
    session.clear()
    sid = store.create(viewer, BackendIdentity(email=viewer.email, token=token))
    session[SESSION_KEY] = sid

    return jsonify(_session_payload(store.get(sid))), 200


@auth_bp.route("", methods=["GET"])
def me():
    return jsonify(_session_payload(current_viewer_session())), 200


@auth_bp.route("", methods=["DELETE"])
def logout():
    session_store().drop(session.get(SESSION_KEY))
    session.clear()
    return jsonify({"status": "logged_out"}), 200


@auth_bp.route("/password", methods=["POST"])
def change_password():
    """
    Change the logged-in viewer's password.

    Body: { "new_password": "..." }

    The new hash replaces the session's backend token, and the
    force-change flag is cleared, so later calls keep authenticating.
    """
    vs = current_viewer_session()
    data = request.get_json(silent=True) or {}
    if not data.get("new_password"):
        return api_error(E.VALIDATION_REQUIRED, "new_password is required")

    token = hash_password(new_password(data))
    if token == vs.identity.token:
        raise ValidationError("New password must differ from the current one",
                              details={"new_password": "unchanged"})

    require_write(gateway().change_password(vs.identity, token), "changePassword")
    with vs.lock:
        vs.identity = replace(vs.identity, token=token)
        vs.viewer = replace(vs.viewer, force_change_password=False)

    logger.info("Password changed for %s", vs.viewer.email, extra={"viewer_email": vs.viewer.email})
    return jsonify(_session_payload(vs)), 200
