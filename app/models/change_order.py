"""
Change Order models.

Domain types (plain dataclasses, no session required):
    - LineItem / ChangeOrderInput: contractor-supplied facts
    - ChecklistViolation: one failed completeness rule
    - StoredChangeOrder: the persisted record with workflow and decision-email state

Persistence:
    - ChangeOrderDocument: JSON document row used by SqlChangeOrderStore

Lifecycle invariants:
    - submission_status is fixed at creation (DRAFT | SUBMITTED | BLOCKED).
    - is_finalized is True exactly when team_status is APPROVED or DENIED;
      after that only the decision_email_* delivery fields may change.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from app.models import db


# ── Enums ────────────────────────────────────────────────────────────────────


class SubmissionStatus(str, Enum):
    DRAFT = "DRAFT"
    SUBMITTED = "SUBMITTED"
    BLOCKED = "BLOCKED"


class TeamStatus(str, Enum):
    NEW = "NEW"
    IN_REVIEW = "IN_REVIEW"
    NEEDS_INFO = "NEEDS_INFO"
    APPROVED = "APPROVED"
    DENIED = "DENIED"


class DecisionStatus(str, Enum):
    PENDING = "PENDING"
    NEEDS_INFO = "NEEDS_INFO"
    APPROVED = "APPROVED"
    DENIED = "DENIED"


class DenialReasonCode(str, Enum):
    MISSING_REQUIRED_INFO = "MISSING_REQUIRED_INFO"
    INSUFFICIENT_PHOTO_EVIDENCE = "INSUFFICIENT_PHOTO_EVIDENCE"
    OUTSIDE_24_HOUR_WINDOW = "OUTSIDE_24_HOUR_WINDOW"
    DUPLICATE_REQUEST = "DUPLICATE_REQUEST"
    PRICING_NOT_JUSTIFIED = "PRICING_NOT_JUSTIFIED"
    IN_SCOPE_OF_TURNKEY = "IN_SCOPE_OF_TURNKEY"
    OTHER = "OTHER"


class DecisionEmailStatus(str, Enum):
    PENDING = "PENDING"
    SENT = "SENT"
    FAILED = "FAILED"


class DecisionEmailMode(str, Enum):
    SMTP = "smtp"
    PREVIEW = "preview"


# ── Constants ────────────────────────────────────────────────────────────────

# Statuses a reviewer may set directly on the queue; final ones go through a decision.
QUEUE_TEAM_STATUSES = frozenset({TeamStatus.NEW, TeamStatus.IN_REVIEW, TeamStatus.NEEDS_INFO})


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _parse_dt(value) -> datetime | None:
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    parsed = datetime.fromisoformat(str(value))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


# ═════════════════════════════════════════════════════════════════════════════
# Contractor input
# ═════════════════════════════════════════════════════════════════════════════


@dataclass
class LineItem:
    """Single priced line of a multi-item change order."""
    description: str = ""
    quantity: float = 0.0
    unit_price: float = 0.0

    def to_dict(self) -> dict:
        return {
            "description": self.description,
            "quantity": self.quantity,
            "unit_price": self.unit_price,
        }

    @classmethod
    def from_dict(cls, data: dict) -> LineItem:
        return cls(
            description=data.get("description", ""),
            quantity=data.get("quantity", 0.0),
            unit_price=data.get("unit_price", 0.0),
        )


@dataclass
class ChangeOrderInput:
    """Facts supplied by the contractor.

    Defaults describe an empty draft; completeness is enforced by the
    checklist at final submit, not here.
    """
    project_id: str = ""
    contractor_name: str = ""
    contractor_email: str = ""
    work_performed_at: str = ""
    scope: str = ""
    quantity: float = 0.0
    unit_label: str = ""
    material_cost: float = 0.0
    labor_cost: float = 0.0
    additional_charges: float = 0.0
    additional_charges_reason: str = ""
    why_needed: str = ""
    why_not_in_turnkey: str = ""
    photos: list[str] = field(default_factory=list)
    is_multi_item: bool = False
    line_items: list[LineItem] = field(default_factory=list)

    @property
    def total_cost(self) -> float:
        return self.material_cost + self.labor_cost + self.additional_charges

    def to_dict(self) -> dict:
        return {
            "project_id": self.project_id,
            "contractor_name": self.contractor_name,
            "contractor_email": self.contractor_email,
            "work_performed_at": self.work_performed_at,
            "scope": self.scope,
            "quantity": self.quantity,
            "unit_label": self.unit_label,
            "material_cost": self.material_cost,
            "labor_cost": self.labor_cost,
            "additional_charges": self.additional_charges,
            "additional_charges_reason": self.additional_charges_reason,
            "why_needed": self.why_needed,
            "why_not_in_turnkey": self.why_not_in_turnkey,
            "photos": list(self.photos),
            "is_multi_item": self.is_multi_item,
            "line_items": [item.to_dict() for item in self.line_items],
        }

    @classmethod
    def from_dict(cls, data: dict) -> ChangeOrderInput:
        values = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        values["photos"] = list(data.get("photos") or [])
        values["line_items"] = [LineItem.from_dict(item) for item in data.get("line_items") or []]
        return cls(**values)


@dataclass(frozen=True)
class ChecklistViolation:
    """Single failed completeness rule (code is stable, message is for humans)."""
    code: str
    message: str

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message}


# ═════════════════════════════════════════════════════════════════════════════
# Stored record
# ═════════════════════════════════════════════════════════════════════════════


@dataclass
class StoredChangeOrder:
    """
    Persisted change order: contractor input plus review workflow state.

    Only ChangeOrderLifecycle writes these; every mutation produces a new
    instance (dataclasses.replace) that replaces the stored one.
    """
    id: str
    input: ChangeOrderInput
    submission_status: SubmissionStatus
    created_at: datetime
    updated_at: datetime
    submitted_at: datetime | None = None
    blocking_reasons: list[str] | None = None

    # Team queue
    team_status: TeamStatus = TeamStatus.NEW
    reviewer_notes: str = ""

    # Decision
    decision_status: DecisionStatus = DecisionStatus.PENDING
    decision_at: datetime | None = None
    decision_by: str | None = None
    decision_explanation: str | None = None
    contractor_facing_message: str | None = None
    approved_amount: float | None = None
    denial_reason_code: DenialReasonCode | None = None
    needs_info_checklist: list[str] = field(default_factory=list)
    is_finalized: bool = False

    # Decision email (delivery metadata may change after finalization)
    decision_email_status: DecisionEmailStatus = DecisionEmailStatus.PENDING
    decision_email_to: str | None = None
    decision_email_subject: str | None = None
    decision_email_body: str | None = None
    decision_email_html: str | None = None
    decision_email_error: str | None = None
    decision_email_preview_url: str | None = None
    decision_email_mode: DecisionEmailMode | None = None
    decision_email_sent_at: datetime | None = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
            "submitted_at": _iso(self.submitted_at),
            "submission_status": self.submission_status.value,
            "input": self.input.to_dict(),
            "blocking_reasons": list(self.blocking_reasons) if self.blocking_reasons is not None else None,
            "team_status": self.team_status.value,
            "reviewer_notes": self.reviewer_notes,
            "decision_status": self.decision_status.value,
            "decision_at": _iso(self.decision_at),
            "decision_by": self.decision_by,
            "decision_explanation": self.decision_explanation,
            "contractor_facing_message": self.contractor_facing_message,
            "approved_amount": self.approved_amount,
            "denial_reason_code": self.denial_reason_code.value if self.denial_reason_code else None,
            "needs_info_checklist": list(self.needs_info_checklist),
            "is_finalized": self.is_finalized,
            "decision_email_status": self.decision_email_status.value,
            "decision_email_to": self.decision_email_to,
            "decision_email_subject": self.decision_email_subject,
            "decision_email_body": self.decision_email_body,
            "decision_email_html": self.decision_email_html,
            "decision_email_error": self.decision_email_error,
            "decision_email_preview_url": self.decision_email_preview_url,
            "decision_email_mode": self.decision_email_mode.value if self.decision_email_mode else None,
            "decision_email_sent_at": _iso(self.decision_email_sent_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> StoredChangeOrder:
        """Rebuild a record from to_dict() output, filling defaults for absent keys."""
        denial = data.get("denial_reason_code")
        mode = data.get("decision_email_mode")
        return cls(
            id=data["id"],
            input=ChangeOrderInput.from_dict(data.get("input") or {}),
            submission_status=SubmissionStatus(data["submission_status"]),
            created_at=_parse_dt(data.get("created_at")),
            updated_at=_parse_dt(data.get("updated_at") or data.get("created_at")),
            submitted_at=_parse_dt(data.get("submitted_at")),
            blocking_reasons=data.get("blocking_reasons"),
            team_status=TeamStatus(data.get("team_status") or TeamStatus.NEW.value),
            reviewer_notes=data.get("reviewer_notes") or "",
            decision_status=DecisionStatus(data.get("decision_status") or DecisionStatus.PENDING.value),
            decision_at=_parse_dt(data.get("decision_at")),
            decision_by=data.get("decision_by"),
            decision_explanation=data.get("decision_explanation"),
            contractor_facing_message=data.get("contractor_facing_message"),
            approved_amount=data.get("approved_amount"),
            denial_reason_code=DenialReasonCode(denial) if denial else None,
            needs_info_checklist=list(data.get("needs_info_checklist") or []),
            is_finalized=bool(data.get("is_finalized", False)),
            decision_email_status=DecisionEmailStatus(
                data.get("decision_email_status") or DecisionEmailStatus.PENDING.value
            ),
            decision_email_to=data.get("decision_email_to"),
            decision_email_subject=data.get("decision_email_subject"),
            decision_email_body=data.get("decision_email_body"),
            decision_email_html=data.get("decision_email_html"),
            decision_email_error=data.get("decision_email_error"),
            decision_email_preview_url=data.get("decision_email_preview_url"),
            decision_email_mode=DecisionEmailMode(mode) if mode else None,
            decision_email_sent_at=_parse_dt(data.get("decision_email_sent_at")),
        )


# ═════════════════════════════════════════════════════════════════════════════
# SQL persistence
# ═════════════════════════════════════════════════════════════════════════════


class ChangeOrderDocument(db.Model):
    """
    One row per change order; the full record lives in ``document``.

    The scalar columns duplicate a few fields of the document for
    inspection and filtering only; the document is authoritative.
    """

    __tablename__ = "change_orders"

    id = db.Column(db.String(40), primary_key=True)
    # creation order; ties on created_at are broken by it
    seq = db.Column(db.Integer, nullable=False, index=True)
    submission_status = db.Column(db.String(20), nullable=False, index=True)
    team_status = db.Column(db.String(20), nullable=False, default=TeamStatus.NEW.value)
    is_finalized = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    document = db.Column(db.JSON, nullable=False)

    def apply(self, record: StoredChangeOrder) -> None:
        """Copy a domain record onto this row."""
        self.submission_status = record.submission_status.value
        self.team_status = record.team_status.value
        self.is_finalized = record.is_finalized
        self.created_at = record.created_at
        self.updated_at = record.updated_at
        self.document = record.to_dict()

    def to_record(self) -> StoredChangeOrder:
        return StoredChangeOrder.from_dict(self.document)

    def __repr__(self):
        return f"<ChangeOrderDocument {self.id} {self.submission_status}/{self.team_status}>"
