"""
Facility Compliance Dashboard
Blueprint registry and shared request helpers.
"""

import logging

from flask import current_app, g, jsonify, request, session
from werkzeug.exceptions import HTTPException

from compliance.core.exceptions import (
    AuthenticationRequired,
    BackendUnavailable,
    NotFoundError,
    PermissionDenied,
    ValidationError,
)
from compliance.integrations.backend_gateway import BackendGateway
from compliance.services.viewer_session import SessionStore, ViewerSession
from compliance.utils.errors import E, api_error

logger = logging.getLogger(__name__)

SESSION_KEY = "sid"


def gateway() -> BackendGateway:
    return current_app.extensions["backend_gateway"]


def session_store() -> SessionStore:
    return current_app.extensions["viewer_sessions"]


def current_viewer_session() -> ViewerSession:
    """The logged-in viewer's session; raises AuthenticationRequired otherwise."""
    vs = session_store().get(session.get(SESSION_KEY))
    if vs is None:
        raise AuthenticationRequired()
    g.viewer = vs.viewer
    return vs


def wants_refresh() -> bool:
    return request.args.get("refresh", "").lower() in ("1", "true", "yes")


def require_write(result, action: str):
    """A rejected write is the viewer's error (422); a failed one is the backend's (502)."""
    if result.rejected:
        raise ValidationError(result.error or f"{action} was rejected", details={"action": action})
    if not result.ok:
        raise BackendUnavailable(action, result.error)
    return result


def register_error_handlers(bp):
    """Map the application exceptions to JSON error responses on ``bp``."""

    @bp.errorhandler(NotFoundError)
    def _handle_not_found(error: NotFoundError):
        return api_error(E.NOT_FOUND, str(error))

    @bp.errorhandler(ValidationError)
    def _handle_validation(error: ValidationError):
        return api_error(E.VALIDATION_INVALID, str(error), details=error.details)

    @bp.errorhandler(AuthenticationRequired)
    def _handle_unauthenticated(error: AuthenticationRequired):
        return api_error(E.UNAUTHENTICATED, str(error))

    @bp.errorhandler(PermissionDenied)
    def _handle_forbidden(error: PermissionDenied):
        logger.info("Permission denied: %s", error, extra={"viewer_email": error.email})
        return api_error(E.FORBIDDEN, "You do not have permission for this action",
                         details={"capability": error.capability})

    @bp.errorhandler(BackendUnavailable)
    def _handle_backend(error: BackendUnavailable):
        logger.warning("Backend unavailable: %s", error, extra={"backend_action": error.action})
        return api_error(E.BACKEND, error.message or "Remote API unavailable",
                         details={"action": error.action})

    @bp.errorhandler(HTTPException)
    def _handle_http(error: HTTPException):
        return jsonify({"error": error.description or error.name}), error.code

    @bp.errorhandler(Exception)
    def _handle_unexpected(error: Exception):
        logger.exception("Unexpected error in %s endpoint=%s", bp.name, request.endpoint)
        return jsonify({"error": "Internal server error", "code": E.INTERNAL}), 500

    return bp
