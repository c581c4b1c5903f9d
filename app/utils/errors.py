"""JSON error envelope shared by every change order endpoint.

    {"status": "error", "error": <message>, "code": <E.*>, "details"?: {field: problem}}

Usage
-----
    from app.utils.errors import api_error, E

    return api_error(E.NOT_FOUND, "Submission not found.")
    return api_error(E.CONFLICT_STATE, "Only submitted change orders can be reviewed.")
"""

from __future__ import annotations

from flask import jsonify


class E:
    """Stable error codes clients may branch on."""

    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"   # malformed payload, 400
    NOT_FOUND = "ERR_NOT_FOUND"                     # unknown change order id, 404
    CONFLICT_STATE = "ERR_CONFLICT_STATE"           # well-formed but not allowed now, 422
    INTERNAL = "ERR_INTERNAL"                       # unexpected failure, 500


STATUS_BY_CODE: dict[str, int] = {
    E.VALIDATION_INVALID: 400,
    E.NOT_FOUND: 404,
    E.CONFLICT_STATE: 422,
    E.INTERNAL: 500,
}


def api_error(code: str, message: str, *, status: int | None = None, details: dict | None = None):
    """Build ``(response, status)`` for a Flask view or error handler.

    ``status`` overrides the code's default; unknown codes fall back to 400.
    ``details`` is omitted from the body when empty.
    """
    body: dict = {"status": "error", "error": message, "code": code}
    if details:
        body["details"] = details
    return jsonify(body), status or STATUS_BY_CODE.get(code, 400)
