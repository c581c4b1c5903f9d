"""
Change Order Lifecycle Service

Sole writer of StoredChangeOrder records. Owns:
  - Intake: save_draft / submit (SUBMITTED or BLOCKED after the checklist)
  - Reviewer queue maintenance: team_status + reviewer_notes
  - Team decisions: NEEDS_INFO / APPROVE / DENY, with decision-email content
    regenerated on every applied transition
  - Decision-email delivery reconciliation

State machine (team_status, decision_status, is_finalized):

    (NEW, PENDING, False)
        ── NEEDS_INFO ──▶ (NEEDS_INFO, NEEDS_INFO, False)   revisitable
        ── APPROVE ─────▶ (APPROVED, APPROVED, True)        terminal
        ── DENY ────────▶ (DENIED, DENIED, True)            terminal

Finalization is a one-way latch: any mutation of a finalized record (other
than delivery metadata) is a silent no-op returning the current record.

Usage:
    from app.services.change_order_lifecycle import ChangeOrderLifecycle
    from app.services.change_order_store import InMemoryChangeOrderStore

    lifecycle = ChangeOrderLifecycle(InMemoryChangeOrderStore())
    record = lifecycle.submit(change_order_input)
    record = lifecycle.apply_team_decision(record.id, ApproveDecision(...))
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable

from app.core.exceptions import NotFoundError, ValidationError
from app.models.change_order import (
    QUEUE_TEAM_STATUSES,
    ChangeOrderInput,
    DecisionEmailMode,
    DecisionEmailStatus,
    DecisionStatus,
    StoredChangeOrder,
    SubmissionStatus,
    TeamStatus,
)
from app.services.change_order_checklist import evaluate_checklist, is_past_24_hours
from app.services.change_order_notifications import build_decision_email
from app.services.change_order_schema import (
    ApproveDecision,
    DenyDecision,
    NeedsInfoDecision,
    TeamDecision,
    is_valid_email,
)
from app.services.change_order_store import ChangeOrderStore

logger = logging.getLogger(__name__)

LATE_SUBMISSION_REASON = "This change order was submitted after 24 hours and cannot be finalized."


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_change_order_id() -> str:
    return f"co_{uuid.uuid4().hex[:12]}"


def has_valid_contractor_email(record: StoredChangeOrder) -> bool:
    """Strict check used before attempting delivery of the decision email."""
    return is_valid_email(record.input.contractor_email)


def prepare_decision_email(record: StoredChangeOrder) -> StoredChangeOrder:
    """Regenerate decision-email content and reset delivery state to PENDING."""
    content = build_decision_email(record)
    return replace(
        record,
        decision_email_status=DecisionEmailStatus.PENDING,
        decision_email_to=(record.input.contractor_email or "").strip(),
        decision_email_subject=content.subject,
        decision_email_body=content.body,
        decision_email_html=content.html,
        decision_email_error=None,
        decision_email_preview_url=None,
        decision_email_mode=None,
        decision_email_sent_at=None,
    )


def ensure_decision_allowed(record: StoredChangeOrder, decision: TeamDecision) -> None:
    """Boundary preconditions for a team decision.

    - APPROVE / DENY only on SUBMITTED change orders (DRAFT and BLOCKED
      records never reach final review).
    - APPROVE of a late submission needs an explicit acknowledgment.
    - NEEDS_INFO is allowed from any state.

    Finalized records are not rejected here; applying a decision to them is a
    no-op.

    Raises:
        ValidationError (status 422)
    """
    if isinstance(decision, (ApproveDecision, DenyDecision)):
        if record.submission_status != SubmissionStatus.SUBMITTED:
            raise ValidationError(
                "Only submitted change orders can be reviewed.",
                details={"submission_status": record.submission_status.value},
                status=422,
            )
    if isinstance(decision, ApproveDecision):
        if decision.is_late and not decision.acknowledge_late_submission:
            raise ValidationError(
                "Late submissions require explicit acknowledgment before approval.",
                details={"acknowledge_late_submission": "required when is_late is true"},
                status=422,
            )


class ChangeOrderLifecycle:
    """
    Change order state machine over an injected store.

    Args:
        store: ChangeOrderStore implementation (memory or SQL).
        clock: Callable returning the current aware datetime; injectable
               so lateness and timestamps are deterministic in tests.
    """

    def __init__(self, store: ChangeOrderStore, clock: Callable[[], datetime] | None = None):
        self.store = store
        self._clock = clock or _utcnow

    def now(self) -> datetime:
        return self._clock()

    # ── Reads ────────────────────────────────────────────────────────────

    def get(self, change_order_id: str) -> StoredChangeOrder | None:
        return self.store.find_by_id(change_order_id)

    def get_or_raise(self, change_order_id: str) -> StoredChangeOrder:
        record = self.store.find_by_id(change_order_id)
        if record is None:
            raise NotFoundError(resource="ChangeOrder", resource_id=change_order_id)
        return record

    def list_change_orders(self) -> list[StoredChangeOrder]:
        """All change orders, newest first; equal timestamps keep the later-created record first."""
        records = self.store.list_all()
        records.reverse()
        return sorted(records, key=lambda r: r.created_at, reverse=True)

    # ── Intake ───────────────────────────────────────────────────────────

    def _new_record(self, change_order: ChangeOrderInput, status: SubmissionStatus, **extra) -> StoredChangeOrder:
        now = self.now()
        record = StoredChangeOrder(
            id=new_change_order_id(),
            input=change_order,
            submission_status=status,
            created_at=now,
            updated_at=now,
            **extra,
        )
        return self.store.create(record)

    def save_draft(self, change_order: ChangeOrderInput) -> StoredChangeOrder:
        """Store an incomplete change order as DRAFT. No checklist is applied."""
        record = self._new_record(change_order, SubmissionStatus.DRAFT)
        logger.info("Change order draft saved: id=%s project=%s", record.id, change_order.project_id)
        return record

    def evaluate_submission(self, change_order: ChangeOrderInput) -> list[str]:
        """Blocking reasons for a final submit: checklist messages, then lateness."""
        reasons = [v.message for v in evaluate_checklist(change_order)]
        if is_past_24_hours(change_order.work_performed_at, now=self.now()):
            reasons.append(LATE_SUBMISSION_REASON)
        return reasons

    def submit(self, change_order: ChangeOrderInput) -> StoredChangeOrder:
        """Final submit. Always creates a new record: BLOCKED with reasons, or SUBMITTED."""
        reasons = self.evaluate_submission(change_order)
        if reasons:
            record = self._new_record(change_order, SubmissionStatus.BLOCKED, blocking_reasons=reasons)
            logger.info(
                "Change order blocked: id=%s project=%s reasons=%d",
                record.id, change_order.project_id, len(reasons),
            )
            return record

        record = self._new_record(change_order, SubmissionStatus.SUBMITTED, submitted_at=self.now())
        logger.info("Change order submitted: id=%s project=%s", record.id, change_order.project_id)
        return record

    # ── Reviewer queue ───────────────────────────────────────────────────

    def update_team_queue_item(
        self,
        change_order_id: str,
        *,
        team_status: TeamStatus | None = None,
        reviewer_notes: str | None = None,
    ) -> StoredChangeOrder:
        """Update queue status and/or notes. No-op once finalized.

        APPROVED / DENIED are reached only through apply_team_decision so
        is_finalized always matches team_status.

        Raises:
            NotFoundError, ValidationError (status 422)
        """
        current = self.get_or_raise(change_order_id)
        if current.is_finalized:
            logger.info("Queue update ignored, change order finalized: id=%s", change_order_id)
            return current

        if team_status is not None and team_status not in QUEUE_TEAM_STATUSES:
            raise ValidationError(
                "Use a team decision to approve or deny a change order.",
                details={"team_status": f"{team_status.value} requires a decision"},
                status=422,
            )

        updated = replace(
            current,
            team_status=team_status if team_status is not None else current.team_status,
            reviewer_notes=reviewer_notes if reviewer_notes is not None else current.reviewer_notes,
            updated_at=self.now(),
        )
        return self.store.update(change_order_id, updated)

    # ── Decisions ────────────────────────────────────────────────────────

    def apply_team_decision(self, change_order_id: str, decision: TeamDecision) -> StoredChangeOrder:
        """
        Apply a NEEDS_INFO / APPROVE / DENY decision.

        Returns the updated record, or the unchanged record when it is
        already finalized. Callers enforce ensure_decision_allowed first.

        Raises:
            NotFoundError, TypeError (unknown decision variant)
        """
        if not isinstance(decision, (NeedsInfoDecision, ApproveDecision, DenyDecision)):
            raise TypeError(f"Unsupported team decision: {type(decision).__name__}")

        current = self.get_or_raise(change_order_id)
        if current.is_finalized:
            logger.info(
                "Decision %s ignored, change order already finalized: id=%s status=%s",
                decision.action, change_order_id, current.decision_status.value,
            )
            return current

        now = self.now()
        base = replace(
            current,
            updated_at=now,
            decision_at=now,
            decision_by=decision.decided_by,
            decision_explanation=decision.decision_explanation,
            contractor_facing_message=decision.contractor_facing_message or "",
        )

        if isinstance(decision, NeedsInfoDecision):
            updated = replace(
                base,
                team_status=TeamStatus.NEEDS_INFO,
                decision_status=DecisionStatus.NEEDS_INFO,
                needs_info_checklist=list(decision.needs_info_checklist),
                approved_amount=None,
                denial_reason_code=None,
                is_finalized=False,
            )
        elif isinstance(decision, ApproveDecision):
            updated = replace(
                base,
                team_status=TeamStatus.APPROVED,
                decision_status=DecisionStatus.APPROVED,
                approved_amount=decision.approved_amount,
                denial_reason_code=None,
                needs_info_checklist=[],
                is_finalized=True,
            )
        else:
            updated = replace(
                base,
                team_status=TeamStatus.DENIED,
                decision_status=DecisionStatus.DENIED,
                denial_reason_code=decision.denial_reason_code,
                approved_amount=None,
                needs_info_checklist=[],
                is_finalized=True,
            )

        updated = prepare_decision_email(updated)
        logger.info(
            "Change order decision applied: id=%s action=%s by=%s finalized=%s",
            change_order_id, decision.action, decision.decided_by, updated.is_finalized,
        )
        return self.store.update(change_order_id, updated)

    # ── Delivery reconciliation ──────────────────────────────────────────

    def update_decision_email_delivery(
        self,
        change_order_id: str,
        *,
        status: DecisionEmailStatus,
        error: str | None = None,
        preview_url: str | None = None,
        mode: DecisionEmailMode | None = None,
        sent_at: datetime | None = None,
    ) -> StoredChangeOrder:
        """Overwrite decision-email delivery fields, finalized or not. Last write wins.

        Raises:
            NotFoundError
        """
        current = self.get_or_raise(change_order_id)
        now = self.now()
        updated = replace(
            current,
            decision_email_status=DecisionEmailStatus(status),
            decision_email_sent_at=sent_at or now,
            decision_email_error=error,
            decision_email_preview_url=preview_url,
            decision_email_mode=DecisionEmailMode(mode) if mode else None,
            updated_at=now,
        )
        if updated.decision_email_status == DecisionEmailStatus.FAILED:
            logger.warning("Decision email failed: id=%s error=%s", change_order_id, error)
        return self.store.update(change_order_id, updated)
