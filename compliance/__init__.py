"""
Facility Compliance Dashboard
Flask Application Factory.

Usage:
    from compliance import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

from flask import Flask, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

from compliance.config import config
from compliance.integrations.backend_gateway import BackendGateway
from compliance.middleware.logging_config import configure_logging
from compliance.middleware.rate_limiter import init_rate_limits
from compliance.middleware.security_headers import init_security_headers
from compliance.middleware.timing import init_request_timing
from compliance.services.status_resolver import configure_timezone
from compliance.services.viewer_session import SessionStore

logger = logging.getLogger(__name__)

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],  # limits are applied per blueprint
)


def create_app(config_name=None, *, gateway_session=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: Configuration environment name.
                     One of: "development", "testing", "production".
                     Defaults to APP_ENV env var, or "development" if unset.
        gateway_session: Optional ``requests.Session`` for the backend
                     gateway (tests pass a mock here).

    Returns:
        Configured Flask application instance.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__)
    app.config.from_object(config[config_name]())

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    # Redis in production, memory for dev
    app.config.setdefault("RATELIMIT_STORAGE_URI", app.config["REDIS_URL"])
    limiter.init_app(app)
    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()],
             supports_credentials=True)
    else:
        CORS(app)

    # ── Security headers ─────────────────────────────────────────────────
    init_security_headers(app)

    # ── Request timing middleware ────────────────────────────────────────
    init_request_timing(app)

    # ── Core services ────────────────────────────────────────────────────
    configure_timezone(app.config["APP_TIMEZONE"])
    app.extensions["backend_gateway"] = BackendGateway.from_config(app.config, session=gateway_session)
    app.extensions["viewer_sessions"] = SessionStore(app.config["SESSION_TTL_SECONDS"])
    app.config.setdefault("MAX_CONTENT_LENGTH", 10 * 1024 * 1024)  # 10 MB attachments

    # ── Blueprints ───────────────────────────────────────────────────────
    from compliance.blueprints.admin_bp import admin_bp
    from compliance.blueprints.auth_bp import auth_bp
    from compliance.blueprints.checklist_bp import checklist_bp
    from compliance.blueprints.dashboard_bp import dashboard_bp
    from compliance.blueprints.health_bp import health_bp
    from compliance.blueprints.tasks_bp import tasks_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(dashboard_bp)
    app.register_blueprint(tasks_bp)
    app.register_blueprint(checklist_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(health_bp)

    # ── Error handlers ───────────────────────────────────────────────────
    @app.errorhandler(404)
    def not_found(e):
        return {"error": "Not found", "path": request.path}, 404

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return {"error": "Internal server error"}, 500

    @app.errorhandler(405)
    def method_not_allowed(e):
        return {"error": "Method not allowed"}, 405

    @app.errorhandler(413)
    def too_large(e):
        return {"error": "Attachment too large"}, 413

    @app.errorhandler(429)
    def rate_limited(e):
        return {"error": "Too many requests", "retry_after": e.description}, 429

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    logger.info("Facility Compliance Dashboard started (config=%s, tz=%s)",
                config_name, app.config["APP_TIMEZONE"])
    return app
