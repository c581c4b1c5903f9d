"""
Change Order Workflow Service
Email Service: outbound transport for decision and team notifications.

Two modes:
    smtp     MAIL_SERVER configured → multipart (text + html) message over SMTP
    preview  no MAIL_SERVER → message is logged, not delivered; the caller may
             attach its own preview URL for the rendered HTML

The service never raises for delivery problems: the outcome comes back as an
EmailDeliveryResult and the caller records it on the change order.

Configuration (env vars, see app.config):
    MAIL_SERVER     SMTP host (default: None → preview mode)
    MAIL_PORT       SMTP port (default: 587)
    MAIL_USE_TLS    Use STARTTLS (default: true)
    MAIL_USERNAME   SMTP username
    MAIL_PASSWORD   SMTP password
    MAIL_DEFAULT_SENDER  Default from address
"""

from __future__ import annotations

import logging
import smtplib
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr

from flask import current_app

from app.models.change_order import DecisionEmailMode

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EmailDeliveryResult:
    sent: bool
    mode: DecisionEmailMode
    preview_url: str | None = None
    error: str | None = None

    def to_dict(self) -> dict:
        return {
            "sent": self.sent,
            "mode": self.mode.value,
            "preview_url": self.preview_url,
            "error": self.error,
        }


class EmailService:
    """
    Email sending service.

    In development/test mode (no MAIL_SERVER configured), emails are logged
    and reported as sent in preview mode.
    """

    @staticmethod
    def is_configured() -> bool:
        """Check if SMTP is configured."""
        return bool(current_app.config.get("MAIL_SERVER"))

    @classmethod
    def send(
        cls,
        *,
        to: str,
        subject: str,
        text: str,
        html: str | None = None,
        to_name: str | None = None,
    ) -> EmailDeliveryResult:
        """Send one message and report the outcome."""
        if not cls.is_configured():
            logger.info("Email (preview mode): to=%s subject='%s'", to, subject)
            return EmailDeliveryResult(sent=True, mode=DecisionEmailMode.PREVIEW)

        try:
            cls._send_smtp(cls.build_message(to=to, to_name=to_name, subject=subject, text=text, html=html))
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("Email failed: to=%s error=%s", to, exc)
            return EmailDeliveryResult(
                sent=False,
                mode=DecisionEmailMode.SMTP,
                error=str(exc)[:1000] or type(exc).__name__,
            )

        logger.info("Email sent: to=%s subject='%s'", to, subject)
        return EmailDeliveryResult(sent=True, mode=DecisionEmailMode.SMTP)

    @staticmethod
    def build_message(*, to: str, to_name: str | None, subject: str,
                      text: str, html: str | None) -> MIMEMultipart:
        """multipart/alternative with the plain body first, then HTML when given."""
        server = current_app.config.get("MAIL_SERVER")
        message = MIMEMultipart("alternative")
        message["Subject"] = subject
        message["From"] = current_app.config.get("MAIL_DEFAULT_SENDER") or f"change-orders@{server}"
        message["To"] = formataddr((to_name, to)) if to_name else to
        message.attach(MIMEText(text, "plain", "utf-8"))
        if html:
            message.attach(MIMEText(html, "html", "utf-8"))
        return message

    @staticmethod
    def _send_smtp(message: MIMEMultipart) -> None:
        cfg = current_app.config
        with smtplib.SMTP(cfg["MAIL_SERVER"], cfg.get("MAIL_PORT", 587), timeout=30) as smtp:
            if cfg.get("MAIL_USE_TLS", True):
                smtp.starttls()
            if cfg.get("MAIL_USERNAME") and cfg.get("MAIL_PASSWORD"):
                smtp.login(cfg["MAIL_USERNAME"], cfg["MAIL_PASSWORD"])
            smtp.send_message(message)
