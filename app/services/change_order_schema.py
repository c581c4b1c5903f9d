"""
Change Order payload validation.

Turns raw JSON bodies into typed inputs for the lifecycle service:

    parse_change_order_input   full submission (field rules enforced)
    parse_draft_input          partial draft (types only, defaults filled in)
    parse_team_decision        NEEDS_INFO | APPROVE | DENY variants
    parse_queue_update         reviewer queue patch

Malformed payloads raise ValidationError with a field -> problem map in
``details``. Field-level validation is separate from the checklist: a payload
can be well-formed yet still be BLOCKED at submit.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from typing import ClassVar, Union

from email_validator import EmailNotValidError, validate_email

from app.core.exceptions import ValidationError
from app.models.change_order import (
    ChangeOrderInput,
    DenialReasonCode,
    LineItem,
    TeamStatus,
)

DEFAULT_UNIT_LABEL = "sq ft"

# Dot-atom local part without consecutive dots; RFC 1035 labels, two or more.
_STRICT_EMAIL_RE = re.compile(
    r"(?!.*\.\.)"
    r"([A-Za-z0-9!#$%&'*+/=?^_`{|}~-]+(?:\.[A-Za-z0-9!#$%&'*+/=?^_`{|}~-]+)*)"
    r"@"
    r"([A-Za-z0-9](?:[A-Za-z0-9-]{0,61}[A-Za-z0-9])?"
    r"(?:\.[A-Za-z0-9](?:[A-Za-z0-9-]{0,61}[A-Za-z0-9])?)+)"
)

_REQUIRED_TEXT_FIELDS = {
    "project_id": "Project is required",
    "contractor_name": "Contractor name is required",
    "work_performed_at": "Work performed timestamp is required",
    "scope": "Scope of change is required",
    "unit_label": "Unit label is required",
    "why_needed": "Explain why this change order is needed",
    "why_not_in_turnkey": "Explain why this was not included in turn-key pricing",
}

_COST_FIELDS = {
    "material_cost": "Material cost must be 0 or greater",
    "labor_cost": "Labor cost must be 0 or greater",
    "additional_charges": "Additional charges must be 0 or greater",
}


def is_valid_email(value: str | None) -> bool:
    """Strict address check: conservative grammar plus email_validator syntax rules."""
    candidate = (value or "").strip()
    if not candidate or not _STRICT_EMAIL_RE.fullmatch(candidate):
        return False
    try:
        validate_email(candidate, check_deliverability=False)
    except EmailNotValidError:
        return False
    return True


# ── Field coercion helpers ───────────────────────────────────────────────────


def _coerce_number(value, name: str, errors: dict, *, strict: bool = False) -> float | None:
    """Accept ints/floats and (unless strict) numeric strings. Records an error on failure."""
    if isinstance(value, bool):
        errors[name] = "Must be a number"
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str) and not strict:
        text = value.strip()
        try:
            number = float(text) if text else 0.0
        except ValueError:
            errors[name] = "Must be a number"
            return None
    else:
        errors[name] = "Must be a number"
        return None
    if math.isnan(number) or math.isinf(number):
        errors[name] = "Must be a finite number"
        return None
    return number


def _coerce_text(value, name: str, errors: dict) -> str | None:
    if value is None:
        return ""
    if not isinstance(value, str):
        errors[name] = "Must be a string"
        return None
    return value


def _coerce_photos(value, errors: dict) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(p, str) for p in value):
        errors["photos"] = "Must be a list of photo references"
        return []
    return list(value)


def _coerce_line_items(value, errors: dict) -> list[LineItem]:
    if value is None:
        return []
    if not isinstance(value, list):
        errors["line_items"] = "Must be a list of line items"
        return []
    items = []
    for position, raw in enumerate(value, 1):
        prefix = f"line_items.{position}"
        if not isinstance(raw, dict):
            errors[prefix] = "Must be an object"
            continue
        description = _coerce_text(raw.get("description"), f"{prefix}.description", errors)
        quantity = _coerce_number(raw.get("quantity", 0), f"{prefix}.quantity", errors)
        unit_price = _coerce_number(raw.get("unit_price", 0), f"{prefix}.unit_price", errors)
        if quantity is not None and quantity < 0:
            errors[f"{prefix}.quantity"] = "Line item quantity must be 0 or greater"
        if unit_price is not None and unit_price < 0:
            errors[f"{prefix}.unit_price"] = "Line item unit price must be 0 or greater"
        items.append(LineItem(
            description=description or "",
            quantity=quantity or 0.0,
            unit_price=unit_price or 0.0,
        ))
    return items


def _coerce_flag(value, name: str, errors: dict, default: bool = False) -> bool:
    if value is None:
        return default
    if not isinstance(value, bool):
        errors[name] = "Must be true or false"
        return default
    return value


def _as_mapping(data) -> dict:
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object.", details={"body": "Expected an object"})
    return data


# ═════════════════════════════════════════════════════════════════════════════
# Contractor input
# ═════════════════════════════════════════════════════════════════════════════


def parse_change_order_input(data: dict) -> ChangeOrderInput:
    """Validate a full submission payload.

    Raises:
        ValidationError: with field details when any field rule fails.
    """
    data = _as_mapping(data)
    errors: dict[str, str] = {}
    values: dict = {}

    for name, message in _REQUIRED_TEXT_FIELDS.items():
        text = _coerce_text(data.get(name), name, errors)
        if text is not None and not text:
            errors[name] = message
        values[name] = text or ""

    values["additional_charges_reason"] = _coerce_text(
        data.get("additional_charges_reason"), "additional_charges_reason", errors,
    ) or ""

    email = _coerce_text(data.get("contractor_email"), "contractor_email", errors)
    if email is not None and not is_valid_email(email):
        errors["contractor_email"] = "Valid contractor email is required"
    values["contractor_email"] = (email or "").strip()

    quantity = _coerce_number(data.get("quantity"), "quantity", errors)
    if quantity is not None and quantity <= 0:
        errors["quantity"] = "Quantity/area/amount must be greater than 0"
    values["quantity"] = quantity or 0.0

    for name, message in _COST_FIELDS.items():
        amount = _coerce_number(data.get(name), name, errors)
        if amount is not None and amount < 0:
            errors[name] = message
        values[name] = amount or 0.0

    values["photos"] = _coerce_photos(data.get("photos"), errors)
    values["is_multi_item"] = _coerce_flag(data.get("is_multi_item"), "is_multi_item", errors)
    values["line_items"] = _coerce_line_items(data.get("line_items"), errors)

    if errors:
        raise ValidationError(
            "Submission payload is invalid. Please review required fields.",
            details=errors,
        )
    return ChangeOrderInput(**values)


def parse_draft_input(data: dict, *, default_project_id: str = "") -> ChangeOrderInput:
    """Validate a draft payload: every field optional, only types are checked.

    Missing fields take draft defaults (``default_project_id``, unit label
    "sq ft", zero amounts, empty text).
    """
    data = _as_mapping(data)
    errors: dict[str, str] = {}
    values: dict = {}

    for name in (*_REQUIRED_TEXT_FIELDS, "additional_charges_reason"):
        values[name] = _coerce_text(data.get(name), name, errors) or ""
    values["project_id"] = values["project_id"] or default_project_id
    values["unit_label"] = values["unit_label"] or DEFAULT_UNIT_LABEL

    email = (_coerce_text(data.get("contractor_email"), "contractor_email", errors) or "").strip()
    if email and not is_valid_email(email):
        errors["contractor_email"] = "Valid contractor email is required"
    values["contractor_email"] = email

    for name in ("quantity", *_COST_FIELDS):
        values[name] = _coerce_number(data.get(name, 0), name, errors) or 0.0

    values["photos"] = _coerce_photos(data.get("photos"), errors)
    values["is_multi_item"] = _coerce_flag(data.get("is_multi_item"), "is_multi_item", errors)
    values["line_items"] = _coerce_line_items(data.get("line_items"), errors)

    if errors:
        raise ValidationError("Invalid draft payload.", details=errors)
    return ChangeOrderInput(**values)


# ═════════════════════════════════════════════════════════════════════════════
# Team decisions
# ═════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class NeedsInfoDecision:
    """Ask the contractor for more information; the record stays open."""
    action: ClassVar[str] = "NEEDS_INFO"
    decided_by: str
    decision_explanation: str
    needs_info_checklist: list[str] = field(default_factory=list)
    contractor_facing_message: str = ""


@dataclass(frozen=True)
class ApproveDecision:
    """Approve and finalize.

    ``is_late`` / ``acknowledge_late_submission`` are checked at the boundary
    (see ensure_decision_allowed); the lifecycle never recomputes lateness.
    """
    action: ClassVar[str] = "APPROVE"
    decided_by: str
    approved_amount: float
    decision_explanation: str
    contractor_facing_message: str = ""
    is_late: bool = False
    acknowledge_late_submission: bool = False


@dataclass(frozen=True)
class DenyDecision:
    """Deny and finalize with one of the fixed reason codes."""
    action: ClassVar[str] = "DENY"
    decided_by: str
    denial_reason_code: DenialReasonCode
    decision_explanation: str
    contractor_facing_message: str = ""


TeamDecision = Union[NeedsInfoDecision, ApproveDecision, DenyDecision]

DECISION_ACTIONS = ("NEEDS_INFO", "APPROVE", "DENY")


def parse_team_decision(data: dict) -> TeamDecision:
    """Validate a decision payload and return the matching variant.

    Raises:
        ValidationError: "Invalid decision payload." with field details.
    """
    data = _as_mapping(data)
    errors: dict[str, str] = {}

    action = data.get("action")
    if action not in DECISION_ACTIONS:
        raise ValidationError(
            "Invalid decision payload.",
            details={"action": f"action must be one of {list(DECISION_ACTIONS)}"},
        )

    decided_by = _coerce_text(data.get("decided_by"), "decided_by", errors)
    if decided_by is not None and not decided_by.strip():
        errors["decided_by"] = "decided_by is required"
    explanation = _coerce_text(data.get("decision_explanation"), "decision_explanation", errors)
    if explanation is not None and not explanation.strip():
        errors["decision_explanation"] = "decision_explanation is required"
    message = _coerce_text(data.get("contractor_facing_message"), "contractor_facing_message", errors) or ""

    if action == "NEEDS_INFO":
        checklist = data.get("needs_info_checklist")
        if (
            not isinstance(checklist, list)
            or not checklist
            or not all(isinstance(line, str) and line for line in checklist)
        ):
            errors["needs_info_checklist"] = "Provide at least one requested item"
        if errors:
            raise ValidationError("Invalid decision payload.", details=errors)
        return NeedsInfoDecision(
            decided_by=decided_by,
            decision_explanation=explanation,
            needs_info_checklist=list(checklist),
            contractor_facing_message=message,
        )

    if action == "APPROVE":
        amount = _coerce_number(data.get("approved_amount"), "approved_amount", errors, strict=True)
        if amount is not None and amount <= 0:
            errors["approved_amount"] = "approved_amount must be greater than 0"
        is_late = _coerce_flag(data.get("is_late"), "is_late", errors)
        acknowledged = _coerce_flag(
            data.get("acknowledge_late_submission"), "acknowledge_late_submission", errors,
        )
        if errors:
            raise ValidationError("Invalid decision payload.", details=errors)
        return ApproveDecision(
            decided_by=decided_by,
            approved_amount=amount,
            decision_explanation=explanation,
            contractor_facing_message=message,
            is_late=is_late,
            acknowledge_late_submission=acknowledged,
        )

    code = data.get("denial_reason_code")
    try:
        reason = DenialReasonCode(code)
    except ValueError:
        errors["denial_reason_code"] = (
            f"denial_reason_code must be one of {[c.value for c in DenialReasonCode]}"
        )
        reason = None
    if errors:
        raise ValidationError("Invalid decision payload.", details=errors)
    return DenyDecision(
        decided_by=decided_by,
        denial_reason_code=reason,
        decision_explanation=explanation,
        contractor_facing_message=message,
    )


def parse_queue_update(data: dict) -> dict:
    """Validate a reviewer queue patch -> {"team_status": TeamStatus|None, "reviewer_notes": str|None}."""
    data = _as_mapping(data)
    errors: dict[str, str] = {}

    team_status = None
    if data.get("team_status") is not None:
        try:
            team_status = TeamStatus(data["team_status"])
        except ValueError:
            errors["team_status"] = f"team_status must be one of {[s.value for s in TeamStatus]}"

    reviewer_notes = None
    if data.get("reviewer_notes") is not None:
        reviewer_notes = _coerce_text(data["reviewer_notes"], "reviewer_notes", errors)

    if errors:
        raise ValidationError("Invalid update payload.", details=errors)
    return {"team_status": team_status, "reviewer_notes": reviewer_notes}
