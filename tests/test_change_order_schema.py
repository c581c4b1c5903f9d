"""
Payload validation tests: submissions, drafts, team decisions, queue patches.
"""

import pytest

from app.core.exceptions import ValidationError
from app.models.change_order import DenialReasonCode, TeamStatus
from app.services.change_order_schema import (
    ApproveDecision,
    DenyDecision,
    NeedsInfoDecision,
    is_valid_email,
    parse_change_order_input,
    parse_draft_input,
    parse_queue_update,
    parse_team_decision,
)


class TestEmailValidation:

    @pytest.mark.parametrize("address", [
        "dana@acme-builders.com",
        "dana.ortiz+co@mail.acme-builders.com",
        "  ops@northside-roofing.net  ",
    ])
    def test_valid_addresses(self, address):
        assert is_valid_email(address) is True

    @pytest.mark.parametrize("address", [
        "",
        None,
        "not-an-email",
        "dana@acme",
        "dana..ortiz@acme-builders.com",
        "dana@-acme-builders.com",
        "dana ortiz@acme-builders.com",
        "dana@acme_builders.com",
    ])
    def test_invalid_addresses(self, address):
        assert is_valid_email(address) is False


class TestSubmissionPayload:

    def test_valid_payload_parses(self, valid_payload):
        change_order = parse_change_order_input(valid_payload)
        assert change_order.project_id == "PRJ-1042"
        assert change_order.quantity == 120.0
        assert change_order.total_cost == 1120.0
        assert change_order.photos == ["photo-hallway-1.jpg"]

    def test_numeric_strings_are_accepted(self, valid_payload):
        valid_payload["material_cost"] = "640.50"
        assert parse_change_order_input(valid_payload).material_cost == 640.5

    def test_missing_fields_are_listed(self, valid_payload):
        valid_payload.update(scope="", contractor_email="dana@acme", quantity=0, labor_cost=-1)
        with pytest.raises(ValidationError) as exc:
            parse_change_order_input(valid_payload)
        assert str(exc.value) == "Submission payload is invalid. Please review required fields."
        assert exc.value.status == 400
        assert set(exc.value.details) == {"scope", "contractor_email", "quantity", "labor_cost"}

    def test_bad_line_item_is_reported_by_position(self, valid_payload):
        valid_payload["is_multi_item"] = True
        valid_payload["line_items"] = [
            {"description": "Panels", "quantity": 2, "unit_price": 40},
            {"description": "Screws", "quantity": "lots", "unit_price": 5},
        ]
        with pytest.raises(ValidationError) as exc:
            parse_change_order_input(valid_payload)
        assert "line_items.2.quantity" in exc.value.details

    def test_non_object_body_is_rejected(self):
        with pytest.raises(ValidationError):
            parse_change_order_input(["not", "an", "object"])


class TestDraftPayload:

    def test_empty_draft_takes_defaults(self):
        draft = parse_draft_input({}, default_project_id="POC-DEMO-001")
        assert draft.project_id == "POC-DEMO-001"
        assert draft.unit_label == "sq ft"
        assert draft.quantity == 0.0
        assert draft.photos == []

    def test_draft_checks_types_only(self):
        draft = parse_draft_input({"scope": "", "quantity": 0, "contractor_email": ""})
        assert draft.scope == ""

    def test_draft_rejects_wrong_types(self):
        with pytest.raises(ValidationError) as exc:
            parse_draft_input({"photos": "photo.jpg", "is_multi_item": "yes"})
        assert str(exc.value) == "Invalid draft payload."
        assert set(exc.value.details) == {"photos", "is_multi_item"}


class TestTeamDecisionPayload:

    def test_needs_info(self):
        decision = parse_team_decision({
            "action": "NEEDS_INFO",
            "decided_by": "reviewer@acme-builders.com",
            "decision_explanation": "Missing photos of the damage",
            "needs_info_checklist": ["Close-up photo of subfloor"],
        })
        assert isinstance(decision, NeedsInfoDecision)
        assert decision.needs_info_checklist == ["Close-up photo of subfloor"]
        assert decision.contractor_facing_message == ""

    def test_needs_info_requires_checklist(self):
        with pytest.raises(ValidationError) as exc:
            parse_team_decision({
                "action": "NEEDS_INFO",
                "decided_by": "Sam",
                "decision_explanation": "More detail",
                "needs_info_checklist": [],
            })
        assert "needs_info_checklist" in exc.value.details

    def test_approve(self):
        decision = parse_team_decision({
            "action": "APPROVE",
            "decided_by": "Sam",
            "approved_amount": 1120,
            "decision_explanation": "Pricing in line with estimate",
            "is_late": True,
            "acknowledge_late_submission": True,
        })
        assert isinstance(decision, ApproveDecision)
        assert decision.approved_amount == 1120.0
        assert decision.is_late is True

    @pytest.mark.parametrize("amount", [0, -10, "1120", None, True])
    def test_approve_rejects_bad_amount(self, amount):
        with pytest.raises(ValidationError) as exc:
            parse_team_decision({
                "action": "APPROVE",
                "decided_by": "Sam",
                "approved_amount": amount,
                "decision_explanation": "ok",
            })
        assert "approved_amount" in exc.value.details

    def test_deny(self):
        decision = parse_team_decision({
            "action": "DENY",
            "decided_by": "Sam",
            "denial_reason_code": "IN_SCOPE_OF_TURNKEY",
            "decision_explanation": "Covered by the base contract",
        })
        assert isinstance(decision, DenyDecision)
        assert decision.denial_reason_code == DenialReasonCode.IN_SCOPE_OF_TURNKEY

    def test_deny_rejects_unknown_reason(self):
        with pytest.raises(ValidationError) as exc:
            parse_team_decision({
                "action": "DENY",
                "decided_by": "Sam",
                "denial_reason_code": "TOO_EXPENSIVE",
                "decision_explanation": "no",
            })
        assert "denial_reason_code" in exc.value.details

    def test_unknown_action(self):
        with pytest.raises(ValidationError) as exc:
            parse_team_decision({"action": "ESCALATE"})
        assert str(exc.value) == "Invalid decision payload."

    def test_blank_reviewer_and_explanation(self):
        with pytest.raises(ValidationError) as exc:
            parse_team_decision({
                "action": "DENY",
                "decided_by": "  ",
                "denial_reason_code": "OTHER",
                "decision_explanation": "",
            })
        assert set(exc.value.details) == {"decided_by", "decision_explanation"}


class TestQueueUpdatePayload:

    def test_parses_status_and_notes(self):
        updates = parse_queue_update({"team_status": "IN_REVIEW", "reviewer_notes": "Checking invoice"})
        assert updates == {"team_status": TeamStatus.IN_REVIEW, "reviewer_notes": "Checking invoice"}

    def test_absent_fields_are_none(self):
        assert parse_queue_update({}) == {"team_status": None, "reviewer_notes": None}

    def test_unknown_status(self):
        with pytest.raises(ValidationError):
            parse_queue_update({"team_status": "ARCHIVED"})
