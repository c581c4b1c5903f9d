"""
Change Order notification content.

Pure builders with no I/O and no clock. The same record state always renders the
same subject/body/html, so content can be regenerated on every decision and
compared against golden output in tests.

    build_decision_email(record)         contractor-facing decision email
    build_submission_notification(rec)  team alert for a new submission
    build_test_email()                   delivery smoke-test message
"""

from __future__ import annotations

from dataclasses import dataclass
from html import escape

from app.models.change_order import DecisionStatus, StoredChangeOrder

TEAM_NAME = "Change Orders Team"
NEEDS_INFO_FALLBACK = "Additional details requested."

_ACCENT_COLORS = {
    DecisionStatus.APPROVED: "#166534",
    DecisionStatus.DENIED: "#be123c",
}
_DEFAULT_ACCENT = "#0f4f8b"


@dataclass(frozen=True)
class EmailContent:
    subject: str
    body: str
    html: str


# ═══════════════════════════════════════════════════════════════════════════
#  HTML layout
# ═══════════════════════════════════════════════════════════════════════════

_LAYOUT = """
<div style="background:#f2f7ff;padding:20px;font-family:Inter,Segoe UI,Arial,sans-serif;">
  <div style="max-width:640px;margin:0 auto;border:1px solid #dbeafe;border-radius:12px;overflow:hidden;background:#ffffff;">
    <div style="padding:16px 20px;background:#ffffff;border-bottom:1px solid #dbeafe;">
      <h2 style="margin:0;font-size:18px;color:#0f172a;">{team}</h2>
    </div>
    <div style="padding:20px;">
      {inner}
    </div>
    <div style="padding:14px 20px;border-top:1px solid #dbeafe;background:#f8fbff;color:#64748b;font-size:12px;line-height:1.5;">
      {team}<br/>
      This message was sent for project {project}.
    </div>
  </div>
</div>
"""

_GREETING = '<p style="margin:0 0 12px;color:#0f172a;font-size:16px;">Hello {name},</p>'

_MESSAGE_BLOCK = (
    '<p style="margin:0;color:#0f172a;font-size:14px;white-space:pre-wrap;">'
    "<strong>Message from {team}:</strong><br/>{message}</p>"
)

_SUMMARY_BOX = (
    '<div style="border:1px solid {border};background:{background};border-radius:8px;'
    'padding:12px 14px;margin:0 0 14px;">{rows}</div>'
)

_SUMMARY_ROW = '<p style="margin:{margin};color:{color};font-size:14px;"><strong>{label}:</strong> {value}</p>'


def _wrap(inner: str, project: str) -> str:
    return _LAYOUT.format(team=escape(TEAM_NAME), inner=inner, project=escape(project))


def _summary(rows: list[tuple[str, str]], *, border: str, background: str, color: str) -> str:
    rendered = "".join(
        _SUMMARY_ROW.format(
            margin="0" if i == 0 else "8px 0 0",
            color=color,
            label=label,
            value=value,
        )
        for i, (label, value) in enumerate(rows)
    )
    return _SUMMARY_BOX.format(border=border, background=background, rows=rendered)


def _headline(text: str, emphasis: str, accent: str, suffix: str = "") -> str:
    return (
        f'<p style="margin:0 0 14px;color:#0f172a;font-size:15px;">'
        f'{text} <strong style="color:{accent};">{emphasis}</strong>{suffix}</p>'
    )


# ═══════════════════════════════════════════════════════════════════════════
#  Decision email
# ═══════════════════════════════════════════════════════════════════════════


def format_amount(amount: float | None) -> str:
    return f"${(amount or 0):.2f}"


def build_decision_email(record: StoredChangeOrder) -> EmailContent:
    """Render the contractor notification for the record's current decision_status."""
    project = record.input.project_id or "your project"
    name = record.input.contractor_name or "Contractor"
    message = record.contractor_facing_message or ""
    accent = _ACCENT_COLORS.get(record.decision_status, _DEFAULT_ACCENT)

    text_message = f"\n\nMessage from {TEAM_NAME}:\n{message}" if message else ""
    html_message = _MESSAGE_BLOCK.format(team=escape(TEAM_NAME), message=escape(message)) if message else ""
    sign_off = f"\n\nThank you,\n{TEAM_NAME}"
    greeting = _GREETING.format(name=escape(name))

    if record.decision_status == DecisionStatus.APPROVED:
        amount = format_amount(record.approved_amount)
        body = (
            f"Hello {name},"
            f"\n\nYour change order has been approved."
            f"\nProject: {project}"
            f"\nApproved amount: {amount}"
            f"{text_message}{sign_off}"
        )
        html = _wrap(
            greeting
            + _headline("Your change order has been", "approved", accent, ".")
            + _summary(
                [("Project", escape(project)), ("Approved amount", amount)],
                border="#dcfce7", background="#f0fdf4", color="#14532d",
            )
            + html_message,
            project,
        )
        return EmailContent(f"Change order approved - {project}", body, html)

    if record.decision_status == DecisionStatus.DENIED:
        reason = record.denial_reason_code.value if record.denial_reason_code else "N/A"
        body = (
            f"Hello {name},"
            f"\n\nYour change order has been denied."
            f"\nProject: {project}"
            f"\nReason: {reason}"
            f"{text_message}{sign_off}"
        )
        html = _wrap(
            greeting
            + _headline("Your change order has been", "denied", accent, ".")
            + _summary(
                [("Project", escape(project)), ("Reason code", escape(reason))],
                border="#fecdd3", background="#fff1f2", color="#9f1239",
            )
            + html_message,
            project,
        )
        return EmailContent(f"Change order denied - {project}", body, html)

    requested = record.needs_info_checklist
    requested_text = "\n".join(f"- {line}" for line in requested) if requested else f"- {NEEDS_INFO_FALLBACK}"
    if requested:
        items = "".join(f'<li style="margin:0 0 6px;">{escape(line)}</li>' for line in requested)
        requested_html = f'<ul style="margin:8px 0 0 18px;padding:0;color:#0f4f8b;font-size:14px;">{items}</ul>'
    else:
        requested_html = f'<p style="margin:8px 0 0;color:#0f4f8b;font-size:14px;">{NEEDS_INFO_FALLBACK}</p>'

    body = (
        f"Hello {name},"
        f"\n\nWe need more information to review your change order."
        f"\nProject: {project}"
        f"\n\nRequested items:\n{requested_text}"
        f"{text_message}{sign_off}"
    )
    html = _wrap(
        greeting
        + _headline("We need", "more information", accent, " to review your change order.")
        + _SUMMARY_BOX.format(
            border="#bfdbfe",
            background="#eff6ff",
            rows=(
                _SUMMARY_ROW.format(margin="0", color="#0f4f8b", label="Project", value=escape(project))
                + '<p style="margin:8px 0 0;color:#0f4f8b;font-size:14px;"><strong>Requested items:</strong></p>'
                + requested_html
            ),
        )
        + html_message,
        project,
    )
    return EmailContent(f"More information needed - {project}", body, html)


# ═══════════════════════════════════════════════════════════════════════════
#  Team + test notifications
# ═══════════════════════════════════════════════════════════════════════════


def build_submission_notification(record: StoredChangeOrder) -> EmailContent:
    """Alert for the review team when a change order is submitted."""
    data = record.input
    total = format_amount(data.total_cost)
    rows = [
        ("Project", data.project_id),
        ("Contractor", data.contractor_name),
        ("Contractor email", data.contractor_email),
        ("Work performed", data.work_performed_at),
        ("Scope", data.scope),
        ("Total requested", total),
        ("Photos attached", str(len(data.photos))),
    ]
    body = "A contractor submitted a new change order.\n\n"
    body += "\n".join(f"{label}: {value}" for label, value in rows)
    body += "\n\nOpen the team queue to review this submission."

    html = _wrap(
        '<p style="margin:0 0 12px;color:#0f172a;font-size:16px;">A new change order was submitted.</p>'
        + _summary(
            [(label, escape(value)) for label, value in rows],
            border="#bfdbfe", background="#eff6ff", color="#0f4f8b",
        )
        + '<p style="margin:14px 0 0;color:#0f172a;font-size:14px;">Open the team queue to review and decide.</p>',
        data.project_id,
    )
    return EmailContent(f"New change order submitted - {data.project_id}", body, html)


def build_test_email() -> EmailContent:
    body = (
        "This is a test decision notification from Change Order Submission.\n\n"
        "If you received this, email delivery is configured correctly."
    )
    html = _wrap(
        '<p style="margin:0;color:#0f172a;font-size:15px;">'
        "This is a test decision notification. If you received this, "
        "email delivery is configured correctly.</p>",
        "email test",
    )
    return EmailContent(f"{TEAM_NAME} email test", body, html)
