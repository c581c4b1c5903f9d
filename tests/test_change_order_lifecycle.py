"""
State-machine tests for ChangeOrderLifecycle.

Transitions (team_status, decision_status, is_finalized):

    (NEW, PENDING, False)
        NEEDS_INFO -> (NEEDS_INFO, NEEDS_INFO, False)
        APPROVE    -> (APPROVED, APPROVED, True)    terminal
        DENY       -> (DENIED, DENIED, True)        terminal

Also covers intake (draft / submit / blocked), the reviewer queue, delivery
reconciliation and the decision preconditions.
"""

from datetime import timedelta

import pytest

from app.core.exceptions import NotFoundError, ValidationError
from app.models.change_order import (
    DecisionEmailMode,
    DecisionEmailStatus,
    DecisionStatus,
    DenialReasonCode,
    SubmissionStatus,
    TeamStatus,
)
from app.services.change_order_lifecycle import (
    LATE_SUBMISSION_REASON,
    ChangeOrderLifecycle,
    ensure_decision_allowed,
    has_valid_contractor_email,
)
from app.services.change_order_schema import ApproveDecision, DenyDecision, NeedsInfoDecision
from app.services.change_order_store import InMemoryChangeOrderStore


def _approve(amount=1120.0, **kw):
    return ApproveDecision(
        decided_by="Sam Reviewer",
        approved_amount=amount,
        decision_explanation="Pricing matches estimate",
        **kw,
    )


def _deny(code=DenialReasonCode.PRICING_NOT_JUSTIFIED):
    return DenyDecision(
        decided_by="Sam Reviewer",
        denial_reason_code=code,
        decision_explanation="Rates above agreed schedule",
        contractor_facing_message="Please resubmit with the agreed rates.",
    )


def _needs_info(items=("Close-up photo of subfloor",)):
    return NeedsInfoDecision(
        decided_by="Sam Reviewer",
        decision_explanation="Photo evidence incomplete",
        needs_info_checklist=list(items),
    )


@pytest.fixture()
def submitted(lifecycle, make_input):
    record = lifecycle.submit(make_input())
    assert record.submission_status == SubmissionStatus.SUBMITTED
    return record


# ═════════════════════════════════════════════════════════════════════════════
# Intake
# ═════════════════════════════════════════════════════════════════════════════


class TestIntake:

    def test_submit_complete_input(self, lifecycle, make_input, fixed_now):
        record = lifecycle.submit(make_input())
        assert record.id.startswith("co_")
        assert record.submission_status == SubmissionStatus.SUBMITTED
        assert record.submitted_at == fixed_now
        assert record.blocking_reasons is None
        assert record.team_status == TeamStatus.NEW
        assert record.decision_status == DecisionStatus.PENDING
        assert record.is_finalized is False
        assert record.decision_email_status == DecisionEmailStatus.PENDING
        assert lifecycle.get(record.id) == record

    def test_incomplete_input_is_blocked_and_stored(self, lifecycle, make_input):
        record = lifecycle.submit(make_input(scope="", photos=[]))
        assert record.submission_status == SubmissionStatus.BLOCKED
        assert record.submitted_at is None
        assert record.blocking_reasons == [
            "Scope of change order is required.",
            "At least one supporting photo is required.",
        ]
        assert lifecycle.get(record.id) is not None

    def test_late_submission_is_blocked(self, lifecycle, make_input, fixed_now):
        late = (fixed_now - timedelta(hours=30)).isoformat()
        record = lifecycle.submit(make_input(work_performed_at=late))
        assert record.submission_status == SubmissionStatus.BLOCKED
        assert record.blocking_reasons == [LATE_SUBMISSION_REASON]

    def test_lateness_is_listed_after_checklist(self, lifecycle, make_input):
        reasons = lifecycle.evaluate_submission(make_input(why_needed="", work_performed_at="not a date"))
        assert reasons == ["Include why this change order is needed.", LATE_SUBMISSION_REASON]

    def test_save_draft_skips_checklist(self, lifecycle, make_input):
        record = lifecycle.save_draft(make_input(scope="", quantity=0))
        assert record.submission_status == SubmissionStatus.DRAFT
        assert record.blocking_reasons is None

    def test_every_submit_creates_new_record(self, lifecycle, make_input):
        first = lifecycle.submit(make_input())
        second = lifecycle.submit(make_input())
        assert first.id != second.id
        assert len(lifecycle.list_change_orders()) == 2

    def test_list_is_newest_first(self, make_input, fixed_now):
        ticks = iter([fixed_now + timedelta(minutes=i) for i in range(10)])
        lifecycle = ChangeOrderLifecycle(InMemoryChangeOrderStore(), clock=lambda: next(ticks))
        older = lifecycle.save_draft(make_input())
        newer = lifecycle.save_draft(make_input())
        assert [r.id for r in lifecycle.list_change_orders()] == [newer.id, older.id]

    def test_list_breaks_timestamp_ties_newest_first(self, lifecycle, make_input):
        first = lifecycle.save_draft(make_input())
        second = lifecycle.save_draft(make_input())
        third = lifecycle.save_draft(make_input())
        assert first.created_at == third.created_at
        assert [r.id for r in lifecycle.list_change_orders()] == [third.id, second.id, first.id]


# ═════════════════════════════════════════════════════════════════════════════
# Decisions
# ═════════════════════════════════════════════════════════════════════════════


class TestDecisions:

    def test_approve_finalizes(self, lifecycle, submitted, fixed_now):
        record = lifecycle.apply_team_decision(submitted.id, _approve())
        assert record.team_status == TeamStatus.APPROVED
        assert record.decision_status == DecisionStatus.APPROVED
        assert record.is_finalized is True
        assert record.approved_amount == 1120.0
        assert record.denial_reason_code is None
        assert record.decision_at == fixed_now
        assert record.decision_by == "Sam Reviewer"
        assert record.decision_email_status == DecisionEmailStatus.PENDING
        assert record.decision_email_to == "dana@acme-builders.com"
        assert "approved" in record.decision_email_subject.lower()
        assert "Approved amount: $1120.00" in record.decision_email_body

    def test_deny_finalizes_with_reason(self, lifecycle, submitted):
        record = lifecycle.apply_team_decision(submitted.id, _deny())
        assert record.team_status == TeamStatus.DENIED
        assert record.decision_status == DecisionStatus.DENIED
        assert record.is_finalized is True
        assert record.denial_reason_code == DenialReasonCode.PRICING_NOT_JUSTIFIED
        assert record.approved_amount is None
        assert "Reason: PRICING_NOT_JUSTIFIED" in record.decision_email_body
        assert record.contractor_facing_message == "Please resubmit with the agreed rates."

    def test_needs_info_stays_open(self, lifecycle, submitted):
        record = lifecycle.apply_team_decision(submitted.id, _needs_info())
        assert record.team_status == TeamStatus.NEEDS_INFO
        assert record.decision_status == DecisionStatus.NEEDS_INFO
        assert record.is_finalized is False
        assert record.needs_info_checklist == ["Close-up photo of subfloor"]
        assert record.decision_email_subject == "More information needed - PRJ-1042"

    def test_needs_info_then_approve(self, lifecycle, submitted):
        lifecycle.apply_team_decision(submitted.id, _needs_info())
        record = lifecycle.apply_team_decision(submitted.id, _approve())
        assert record.is_finalized is True
        assert record.needs_info_checklist == []

    def test_repeated_needs_info_replaces_checklist(self, lifecycle, submitted):
        lifecycle.apply_team_decision(submitted.id, _needs_info(["Invoice"]))
        record = lifecycle.apply_team_decision(submitted.id, _needs_info(["Receipt", "Photo"]))
        assert record.needs_info_checklist == ["Receipt", "Photo"]
        assert "- Receipt\n- Photo" in record.decision_email_body

    def test_decision_on_unknown_id(self, lifecycle):
        with pytest.raises(NotFoundError):
            lifecycle.apply_team_decision("co_missing", _approve())

    def test_unsupported_decision_type(self, lifecycle, submitted):
        with pytest.raises(TypeError):
            lifecycle.apply_team_decision(submitted.id, object())


class TestFinalizedLatch:

    def test_approve_after_approve_is_noop(self, lifecycle, submitted):
        first = lifecycle.apply_team_decision(submitted.id, _approve(1000.0))
        second = lifecycle.apply_team_decision(submitted.id, _approve(5000.0))
        assert second == first
        assert second.approved_amount == 1000.0

    def test_deny_after_approve_is_noop(self, lifecycle, submitted):
        approved = lifecycle.apply_team_decision(submitted.id, _approve())
        record = lifecycle.apply_team_decision(submitted.id, _deny())
        assert record == approved
        assert record.team_status == TeamStatus.APPROVED

    def test_needs_info_after_deny_is_noop(self, lifecycle, submitted):
        denied = lifecycle.apply_team_decision(submitted.id, _deny())
        record = lifecycle.apply_team_decision(submitted.id, _needs_info())
        assert record == denied
        assert record.decision_status == DecisionStatus.DENIED

    def test_queue_update_after_finalize_is_noop(self, lifecycle, submitted):
        approved = lifecycle.apply_team_decision(submitted.id, _approve())
        record = lifecycle.update_team_queue_item(
            submitted.id, team_status=TeamStatus.IN_REVIEW, reviewer_notes="late note",
        )
        assert record == approved
        assert lifecycle.get(submitted.id).reviewer_notes == ""

    def test_delivery_update_allowed_after_finalize(self, lifecycle, submitted):
        lifecycle.apply_team_decision(submitted.id, _approve())
        record = lifecycle.update_decision_email_delivery(
            submitted.id, status=DecisionEmailStatus.SENT, mode=DecisionEmailMode.SMTP,
        )
        assert record.decision_email_status == DecisionEmailStatus.SENT
        assert record.is_finalized is True
        assert record.team_status == TeamStatus.APPROVED


# ═════════════════════════════════════════════════════════════════════════════
# Reviewer queue
# ═════════════════════════════════════════════════════════════════════════════


class TestQueue:

    def test_update_status_and_notes(self, lifecycle, submitted):
        record = lifecycle.update_team_queue_item(
            submitted.id, team_status=TeamStatus.IN_REVIEW, reviewer_notes="Checking invoice",
        )
        assert record.team_status == TeamStatus.IN_REVIEW
        assert record.reviewer_notes == "Checking invoice"
        assert record.decision_status == DecisionStatus.PENDING

    def test_omitted_fields_keep_values(self, lifecycle, submitted):
        lifecycle.update_team_queue_item(submitted.id, reviewer_notes="first")
        record = lifecycle.update_team_queue_item(submitted.id, team_status=TeamStatus.IN_REVIEW)
        assert record.reviewer_notes == "first"

    @pytest.mark.parametrize("status", [TeamStatus.APPROVED, TeamStatus.DENIED])
    def test_final_status_requires_decision(self, lifecycle, submitted, status):
        with pytest.raises(ValidationError) as exc:
            lifecycle.update_team_queue_item(submitted.id, team_status=status)
        assert exc.value.status == 422
        assert lifecycle.get(submitted.id).is_finalized is False

    def test_unknown_id(self, lifecycle):
        with pytest.raises(NotFoundError):
            lifecycle.update_team_queue_item("co_missing", reviewer_notes="x")


# ═════════════════════════════════════════════════════════════════════════════
# Delivery reconciliation
# ═════════════════════════════════════════════════════════════════════════════


class TestDelivery:

    def test_last_write_wins(self, lifecycle, submitted):
        lifecycle.apply_team_decision(submitted.id, _needs_info())
        lifecycle.update_decision_email_delivery(
            submitted.id, status=DecisionEmailStatus.FAILED, error="SMTP timeout", mode=DecisionEmailMode.SMTP,
        )
        record = lifecycle.update_decision_email_delivery(
            submitted.id, status=DecisionEmailStatus.SENT, mode=DecisionEmailMode.SMTP,
        )
        assert record.decision_email_status == DecisionEmailStatus.SENT
        assert record.decision_email_error is None

    def test_sent_at_defaults_to_now(self, lifecycle, submitted, fixed_now):
        record = lifecycle.update_decision_email_delivery(
            submitted.id, status=DecisionEmailStatus.SENT, preview_url="/preview",
            mode=DecisionEmailMode.PREVIEW,
        )
        assert record.decision_email_sent_at == fixed_now
        assert record.decision_email_preview_url == "/preview"
        assert record.decision_email_mode == DecisionEmailMode.PREVIEW

    def test_new_decision_resets_delivery(self, lifecycle, submitted):
        lifecycle.apply_team_decision(submitted.id, _needs_info())
        lifecycle.update_decision_email_delivery(
            submitted.id, status=DecisionEmailStatus.FAILED, error="bounced",
        )
        record = lifecycle.apply_team_decision(submitted.id, _approve())
        assert record.decision_email_status == DecisionEmailStatus.PENDING
        assert record.decision_email_error is None
        assert record.decision_email_sent_at is None

    def test_unknown_id(self, lifecycle):
        with pytest.raises(NotFoundError):
            lifecycle.update_decision_email_delivery("co_missing", status=DecisionEmailStatus.SENT)


# ═════════════════════════════════════════════════════════════════════════════
# Preconditions
# ═════════════════════════════════════════════════════════════════════════════


class TestDecisionPreconditions:

    def test_approve_blocked_record_rejected(self, lifecycle, make_input):
        blocked = lifecycle.submit(make_input(photos=[]))
        with pytest.raises(ValidationError) as exc:
            ensure_decision_allowed(blocked, _approve())
        assert exc.value.status == 422
        assert str(exc.value) == "Only submitted change orders can be reviewed."

    def test_deny_draft_rejected(self, lifecycle, make_input):
        draft = lifecycle.save_draft(make_input())
        with pytest.raises(ValidationError):
            ensure_decision_allowed(draft, _deny())

    def test_needs_info_allowed_on_draft(self, lifecycle, make_input):
        draft = lifecycle.save_draft(make_input())
        ensure_decision_allowed(draft, _needs_info())

    def test_late_approval_needs_acknowledgment(self, submitted):
        with pytest.raises(ValidationError) as exc:
            ensure_decision_allowed(submitted, _approve(is_late=True))
        assert str(exc.value) == "Late submissions require explicit acknowledgment before approval."
        ensure_decision_allowed(submitted, _approve(is_late=True, acknowledge_late_submission=True))

    def test_contractor_email_check(self, lifecycle, make_input):
        good = lifecycle.save_draft(make_input())
        bad = lifecycle.save_draft(make_input(contractor_email="dana@acme"))
        assert has_valid_contractor_email(good) is True
        assert has_valid_contractor_email(bad) is False
