"""
Rate limiting configuration.

The Limiter instance is created in app/__init__.py with no default limits;
this module applies limits to the change order routes.

Usage:
    from app.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)

# Write routes: intake, queue patch, decisions, email test
WRITE_LIMIT = "30/minute"
READ_LIMIT = "200/minute"


def _is_write_request():
    from flask import request
    return request.method in ("POST", "PUT", "PATCH", "DELETE")


def _is_read_request():
    return not _is_write_request()


def init_rate_limits(app, limiter):
    """
    Apply rate limits to the change order blueprint.

    Limits (per remote IP):
        - Write endpoints:  30/minute
        - Read endpoints:   200/minute

    Rate limiting is disabled in testing mode.
    """

    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    bp = app.blueprints.get("change_orders")
    if bp:
        limiter.limit(WRITE_LIMIT, exempt_when=_is_read_request)(bp)
        limiter.limit(READ_LIMIT, exempt_when=_is_write_request)(bp)

    app.logger.info("Rate limiter configured: write: %s, read: %s", WRITE_LIMIT, READ_LIMIT)
