"""
Change Order Blueprint: contractor intake, team queue, decisions.

Routes:
  GET    /api/v1/change-orders                          - queue, newest first
  GET    /api/v1/change-orders/<id>                     - single change order
  POST   /api/v1/change-orders/draft                    - save a partial draft
  POST   /api/v1/change-orders/submit                   - final submit (SUBMITTED | BLOCKED)
  PATCH  /api/v1/change-orders/<id>                     - team_status / reviewer_notes
  POST   /api/v1/change-orders/<id>/decision            - NEEDS_INFO | APPROVE | DENY
  GET    /api/v1/change-orders/<id>/decision-email      - HTML preview of the decision email
  POST   /api/v1/email-test                             - send a delivery test message

Layer contract:
    - Blueprint: parse payloads, call the lifecycle service, deliver email,
      report delivery back, serialise.
    - All record writes go through ChangeOrderLifecycle.
"""

import logging

from flask import Blueprint, Response, current_app, jsonify, request, url_for
from werkzeug.exceptions import BadRequest

from app.core.exceptions import NotFoundError, ValidationError
from app.models.change_order import DecisionEmailMode, DecisionEmailStatus
from app.services.change_order_lifecycle import (
    ChangeOrderLifecycle,
    ensure_decision_allowed,
    has_valid_contractor_email,
)
from app.services.change_order_notifications import (
    build_submission_notification,
    build_test_email,
)
from app.services.change_order_schema import (
    is_valid_email,
    parse_change_order_input,
    parse_draft_input,
    parse_queue_update,
    parse_team_decision,
)
from app.services.email_service import EmailService
from app.utils.errors import E, api_error

logger = logging.getLogger(__name__)

change_order_bp = Blueprint("change_orders", __name__, url_prefix="/api/v1")

INVALID_EMAIL_ERROR = "Invalid contractor email address."


def _lifecycle() -> ChangeOrderLifecycle:
    return current_app.extensions["change_order_lifecycle"]


def _json_body():
    """Parsed JSON body; ``{}`` when the request has none.

    Raises:
        ValidationError: the body is present but is not valid JSON.
    """
    if not request.get_data():
        return {}
    try:
        return request.get_json()
    except BadRequest:
        raise ValidationError(
            "Request body is not valid JSON.", details={"body": "Malformed JSON"},
        ) from None


# ── Error handlers ────────────────────────────────────────────────────────────


@change_order_bp.errorhandler(NotFoundError)
def _handle_not_found(error: NotFoundError):
    return api_error(E.NOT_FOUND, "Submission not found.")


@change_order_bp.errorhandler(ValidationError)
def _handle_validation(error: ValidationError):
    code = E.VALIDATION_INVALID if error.status == 400 else E.CONFLICT_STATE
    return api_error(code, str(error), status=error.status, details=error.details or None)


# ── Delivery helpers ──────────────────────────────────────────────────────────


def _preview_url(change_order_id: str) -> str:
    return url_for("change_orders.decision_email_preview", change_order_id=change_order_id)


def _deliver_decision_email(record):
    """Send the prepared decision email and record the outcome on the change order."""
    lifecycle = _lifecycle()
    if not has_valid_contractor_email(record):
        return lifecycle.update_decision_email_delivery(
            record.id,
            status=DecisionEmailStatus.FAILED,
            error=INVALID_EMAIL_ERROR,
        )

    result = EmailService.send(
        to=record.input.contractor_email.strip(),
        to_name=record.input.contractor_name or None,
        subject=record.decision_email_subject or "Change order decision",
        text=record.decision_email_body or "A decision has been made on your change order.",
        html=record.decision_email_html,
    )
    preview_url = result.preview_url
    if result.mode == DecisionEmailMode.PREVIEW and not preview_url:
        preview_url = _preview_url(record.id)

    return lifecycle.update_decision_email_delivery(
        record.id,
        status=DecisionEmailStatus.SENT if result.sent else DecisionEmailStatus.FAILED,
        error=result.error,
        preview_url=preview_url,
        mode=result.mode,
    )


def _notify_team(record) -> dict:
    """Team alert for a new submission; SKIPPED when no recipient is configured."""
    recipient = (current_app.config.get("CHANGE_ORDER_NOTIFY_TO") or "").strip()
    if not recipient:
        return {"status": "SKIPPED"}

    content = build_submission_notification(record)
    result = EmailService.send(to=recipient, subject=content.subject, text=content.body, html=content.html)
    if not result.sent:
        logger.warning("Team notification failed: change_order=%s to=%s error=%s", record.id, recipient, result.error)
    return {
        "status": "SENT" if result.sent else "FAILED",
        "to": recipient,
        "mode": result.mode.value,
        "preview_url": result.preview_url,
        "error": result.error,
    }


# ═════════════════════════════════════════════════════════════════════════════
# QUEUE
# ═════════════════════════════════════════════════════════════════════════════


@change_order_bp.route("/change-orders", methods=["GET"])
def list_change_orders():
    """List every change order, newest first."""
    records = _lifecycle().list_change_orders()
    return jsonify({"change_orders": [r.to_dict() for r in records]})


@change_order_bp.route("/change-orders/<change_order_id>", methods=["GET"])
def get_change_order(change_order_id):
    record = _lifecycle().get_or_raise(change_order_id)
    return jsonify({"change_order": record.to_dict()})


@change_order_bp.route("/change-orders/<change_order_id>", methods=["PATCH"])
def update_change_order(change_order_id):
    """Update queue fields.

    Body: { team_status?: NEW|IN_REVIEW|NEEDS_INFO, reviewer_notes?: str }
    Finalized change orders are returned unchanged.
    """
    updates = parse_queue_update(_json_body())
    record = _lifecycle().update_team_queue_item(change_order_id, **updates)
    return jsonify({"status": "ok", "change_order": record.to_dict()})


# ═════════════════════════════════════════════════════════════════════════════
# INTAKE
# ═════════════════════════════════════════════════════════════════════════════


@change_order_bp.route("/change-orders/draft", methods=["POST"])
def save_draft():
    """Save a draft; every field optional."""
    change_order = parse_draft_input(
        _json_body(),
        default_project_id=current_app.config.get("DEFAULT_PROJECT_ID", ""),
    )
    record = _lifecycle().save_draft(change_order)
    return jsonify({"status": "ok", "change_order": record.to_dict()}), 201


@change_order_bp.route("/change-orders/submit", methods=["POST"])
def submit_change_order():
    """Final submit.

    Returns 201 with the SUBMITTED change order (and team notification outcome),
    or 422 with the BLOCKED change order and its reasons.
    """
    change_order = parse_change_order_input(_json_body())
    record = _lifecycle().submit(change_order)

    if record.blocking_reasons:
        return jsonify({
            "status": "blocked",
            "change_order": record.to_dict(),
            "reasons": record.blocking_reasons,
        }), 422

    return jsonify({
        "status": "ok",
        "change_order": record.to_dict(),
        "message": "Change order submitted successfully.",
        "submission_notification": _notify_team(record),
    }), 201


# ═════════════════════════════════════════════════════════════════════════════
# DECISIONS
# ═════════════════════════════════════════════════════════════════════════════


@change_order_bp.route("/change-orders/<change_order_id>/decision", methods=["POST"])
def decide_change_order(change_order_id):
    """Apply a team decision and deliver the decision email.

    Body (by action):
        NEEDS_INFO: decided_by, decision_explanation, needs_info_checklist[],
                    contractor_facing_message?
        APPROVE:    decided_by, approved_amount, decision_explanation,
                    contractor_facing_message?, is_late?, acknowledge_late_submission?
        DENY:       decided_by, denial_reason_code, decision_explanation,
                    contractor_facing_message?
    """
    lifecycle = _lifecycle()
    existing = lifecycle.get_or_raise(change_order_id)
    decision = parse_team_decision(_json_body())

    if existing.is_finalized:
        # One-way latch: no new decision, no second email.
        return jsonify({
            "status": "ok",
            "change_order": existing.to_dict(),
            "email_status": existing.decision_email_status.value,
        })

    ensure_decision_allowed(existing, decision)
    updated = lifecycle.apply_team_decision(change_order_id, decision)
    delivered = _deliver_decision_email(updated)

    return jsonify({
        "status": "ok",
        "change_order": delivered.to_dict(),
        "email_status": delivered.decision_email_status.value,
        "email_preview_url": delivered.decision_email_preview_url,
    })


@change_order_bp.route("/change-orders/<change_order_id>/decision-email", methods=["GET"])
def decision_email_preview(change_order_id):
    """Rendered HTML of the current decision email (404 before any decision)."""
    record = _lifecycle().get_or_raise(change_order_id)
    if not record.decision_email_html:
        return api_error(E.NOT_FOUND, "No decision email has been prepared for this change order.")
    return Response(record.decision_email_html, mimetype="text/html")


# ═════════════════════════════════════════════════════════════════════════════
# EMAIL TEST
# ═════════════════════════════════════════════════════════════════════════════


@change_order_bp.route("/email-test", methods=["POST"])
def email_test():
    """Send a delivery smoke-test message. Body: { to }"""
    body = _json_body()
    to = body.get("to") if isinstance(body, dict) else None
    if not isinstance(to, str) or not is_valid_email(to):
        return api_error(E.VALIDATION_INVALID, "Valid email required.")

    content = build_test_email()
    result = EmailService.send(to=to.strip(), subject=content.subject, text=content.body, html=content.html)
    return jsonify({"status": "ok" if result.sent else "error", **result.to_dict()})
