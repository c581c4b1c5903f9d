"""
Change Order Workflow Service
Flask Application Factory.

Usage:
    from app import create_app
    app = create_app()           # APP_ENV, or "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

from flask import Flask, abort, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

from app.config import config
from app.middleware.logging_config import configure_logging
from app.middleware.rate_limiter import init_rate_limits
from app.middleware.security_headers import init_security_headers
from app.middleware.timing import init_request_timing
from app.models import db
from app.services.change_order_lifecycle import ChangeOrderLifecycle
from app.services.change_order_store import build_store
from app.utils.errors import E, api_error

logger = logging.getLogger(__name__)

# Limits are attached to the change order blueprint in init_rate_limits
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],
    storage_uri=os.getenv("RATELIMIT_STORAGE_URI", "memory://"),
)

# Photo references may be inline data URIs
MAX_BODY_BYTES = 20 * 1024 * 1024


def create_app(config_name=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: "development", "testing" or "production".
                     Defaults to APP_ENV, or "development" if unset.

    Returns:
        Configured Flask app. The lifecycle service (and its store) is
        available as ``app.extensions["change_order_lifecycle"]``.
    """
    config_name = config_name or os.getenv("APP_ENV", "development")

    app = Flask(__name__)
    app.config.from_object(config[config_name]())
    app.config.setdefault("MAX_CONTENT_LENGTH", MAX_BODY_BYTES)

    configure_logging(app)

    db.init_app(app)
    limiter.init_app(app)
    origins = app.config.get("CORS_ORIGINS", "*")
    if origins and origins != "*":
        CORS(app, origins=[o.strip() for o in origins.split(",") if o.strip()])
    else:
        CORS(app)

    init_security_headers(app)
    init_request_timing(app)
    _init_json_guard(app)
    _init_change_orders(app)
    _register_error_handlers(app)

    @app.route("/api/v1/health")
    def health():
        return {
            "status": "ok",
            "app": "Change Order Workflow",
            "store": app.config["CHANGE_ORDER_STORE"],
        }

    init_rate_limits(app, limiter)
    return app


def _init_json_guard(app):
    """Mutating /api/ requests with a body must declare a JSON content type."""

    @app.before_request
    def _require_json_body():
        if request.method in ("POST", "PUT", "PATCH") and request.path.startswith("/api/"):
            if request.data and "json" not in (request.content_type or ""):
                abort(415, description="Content-Type must be application/json")


def _init_change_orders(app):
    """Build the configured store, the lifecycle service and the blueprint."""
    from app.blueprints.change_order_bp import change_order_bp

    backend = app.config.get("CHANGE_ORDER_STORE", "memory")
    if backend == "sql":
        # ChangeOrderDocument is registered on db.metadata by the store import above
        with app.app_context():
            db.create_all()

    app.extensions["change_order_lifecycle"] = ChangeOrderLifecycle(build_store(backend))
    app.register_blueprint(change_order_bp)


def _register_error_handlers(app):

    @app.errorhandler(404)
    def not_found(e):
        return api_error(E.NOT_FOUND, "Not found", details={"path": request.path})

    @app.errorhandler(405)
    def method_not_allowed(e):
        return api_error(E.VALIDATION_INVALID, "Method not allowed", status=405)

    @app.errorhandler(413)
    def too_large(e):
        return api_error(E.VALIDATION_INVALID, "Request body too large", status=413)

    @app.errorhandler(415)
    def unsupported_media_type(e):
        return api_error(E.VALIDATION_INVALID, e.description, status=415)

    @app.errorhandler(429)
    def rate_limited(e):
        return api_error(E.CONFLICT_STATE, "Too many requests", status=429,
                         details={"limit": str(e.description)})

    @app.errorhandler(500)
    def server_error(e):
        logger.error("Unhandled error: %s", e, exc_info=True)
        return api_error(E.INTERNAL, "Internal server error")
