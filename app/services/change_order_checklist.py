"""
Change Order Checklist: completeness rules for final submission.

Every rule is evaluated independently; one input may produce several
violations. Order is evaluation order, not significance.

    scope_missing                       scope blank
    quantity_missing                    quantity <= 0
    pricing_invalid                     material or labor cost < 0
    additional_charges_reason_missing   additional charges > 0 without a reason
    unit_price_unclear                  quantity > 0 and total / quantity <= 0
    justification_missing               "why needed" blank
    turnkey_justification_missing       "why not in turn-key" blank
    photos_missing                      no photos
    line_items_missing                  multi-item with fewer than two lines
    line_item_<n>_invalid               multi-item line n (1-based) incomplete

Usage:
    from app.services.change_order_checklist import evaluate_checklist, is_past_24_hours

    violations = evaluate_checklist(change_order_input)
    late = is_past_24_hours(change_order_input.work_performed_at)
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

from app.models.change_order import ChangeOrderInput, ChecklistViolation

LATE_SUBMISSION_WINDOW = timedelta(hours=24)


def evaluate_checklist(change_order: ChangeOrderInput) -> list[ChecklistViolation]:
    """Return every checklist violation for a final submission (empty list = complete)."""
    violations: list[ChecklistViolation] = []
    total_cost = change_order.total_cost

    if not change_order.scope.strip():
        violations.append(ChecklistViolation("scope_missing", "Scope of change order is required."))

    if change_order.quantity <= 0:
        violations.append(ChecklistViolation(
            "quantity_missing", "Quantity/area/amount must be greater than 0.",
        ))

    if change_order.material_cost < 0 or change_order.labor_cost < 0:
        violations.append(ChecklistViolation(
            "pricing_invalid", "Labor and material pricing must be included and non-negative.",
        ))

    if change_order.additional_charges > 0 and not change_order.additional_charges_reason.strip():
        violations.append(ChecklistViolation(
            "additional_charges_reason_missing", "Additional charges must include a clear explanation.",
        ))

    if change_order.quantity > 0 and total_cost / change_order.quantity <= 0:
        violations.append(ChecklistViolation(
            "unit_price_unclear", "Price per unit must be determinable and greater than 0.",
        ))

    if not change_order.why_needed.strip():
        violations.append(ChecklistViolation(
            "justification_missing", "Include why this change order is needed.",
        ))

    if not change_order.why_not_in_turnkey.strip():
        violations.append(ChecklistViolation(
            "turnkey_justification_missing", "Include why this charge was not in turn-key pricing.",
        ))

    if not change_order.photos:
        violations.append(ChecklistViolation(
            "photos_missing", "At least one supporting photo is required.",
        ))

    if change_order.is_multi_item:
        if len(change_order.line_items) < 2:
            violations.append(ChecklistViolation(
                "line_items_missing", "Multiple-item change orders require at least two line items.",
            ))

        for position, item in enumerate(change_order.line_items, 1):
            if not item.description.strip() or item.quantity <= 0 or item.unit_price < 0:
                violations.append(ChecklistViolation(
                    f"line_item_{position}_invalid",
                    f"Line item {position} needs description, quantity, and unit price.",
                ))

    return violations


def parse_work_timestamp(value: str) -> datetime | None:
    """Parse an ISO-8601 timestamp (or bare date) as an aware datetime.

    Naive values are taken as UTC. Returns None for anything unparseable.
    """
    if not value or not isinstance(value, str):
        return None
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        try:
            day = date.fromisoformat(text)
        except ValueError:
            return None
        parsed = datetime(day.year, day.month, day.day)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def is_past_24_hours(work_performed_at: str, now: datetime | None = None) -> bool:
    """True when the work happened more than 24 hours before ``now``.

    Exactly 24h00m00s is not late. An unparseable timestamp counts as late.
    """
    performed = parse_work_timestamp(work_performed_at)
    if performed is None:
        return True
    now = now or datetime.now(timezone.utc)
    return now - performed > LATE_SUBMISSION_WINDOW
