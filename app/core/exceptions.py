"""
Service-layer exception hierarchy.

Services raise these types; blueprints register handlers against them once
and get consistent HTTP status codes everywhere.

Expected business outcomes are NOT exceptions: a submission that fails the
checklist is a BLOCKED record, and a decision on a finalized change order is
a silent no-op returning the current record.

Usage:
    from app.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="ChangeOrder", resource_id="co_1a2b3c")
    raise ValidationError("Invalid decision payload.", details={"action": "..."})
"""


class NotFoundError(Exception):
    """Raised when an identifier does not resolve to a record.

    Args:
        resource: Human-readable entity name (e.g. "ChangeOrder").
        resource_id: The identifier that was looked up.
    """

    def __init__(self, resource: str, resource_id: str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input is malformed or violates a business precondition.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
                 Keys are field names; values are error descriptions.
        status: HTTP status the boundary should use. 400 for malformed
                payloads, 422 for well-formed input that breaks a rule
                (e.g. approving a BLOCKED change order).
    """

    def __init__(self, message: str, details: dict | None = None, status: int = 400) -> None:
        self.details = details or {}
        self.status = status
        super().__init__(message)
