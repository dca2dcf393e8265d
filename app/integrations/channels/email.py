"""Email report transport for low-stock notifications."""

from __future__ import annotations

import asyncio
import logging
import re
import smtplib
from email.message import EmailMessage
from email.utils import formataddr
from typing import Iterable, List, Optional, Sequence, Union

from app.core.config import Settings
from app.core.enums import AlertChannel
from app.core.exceptions import ValidationFailedError
from app.core.templates import templates
from app.integrations.base import ChannelTransport
from app.schemas.notifications import EmailReportPayload
from app.services.reports import build_global_report

logger = logging.getLogger(__name__)

RECIPIENT_SEPARATORS = re.compile(r"[;,]")
EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

REPORT_TEMPLATE = "email/low_stock_report.html"


def parse_recipients(value: Union[str, Iterable[str], None]) -> List[str]:
    """
    Normalise recipients and validate each address.

    Accepts a list or a single string delimited by ',' or ';'.

    Raises:
        ValidationFailedError: no recipients, or any address that does not
            look like local@domain.tld (all offenders are listed).
    """
    if value is None:
        candidates: List[str] = []
    elif isinstance(value, str):
        candidates = RECIPIENT_SEPARATORS.split(value)
    else:
        candidates = [str(item) for item in value]

    recipients = [email.strip() for email in candidates if email and email.strip()]
    if not recipients:
        raise ValidationFailedError("At least one recipient email is required")

    invalid = [email for email in recipients if not EMAIL_PATTERN.match(email)]
    if invalid:
        raise ValidationFailedError(f"Invalid recipient email(s): {', '.join(invalid)}", invalid=invalid)
    return recipients


class EmailReportTransport(ChannelTransport):
    """Lightweight SMTP helper for low-stock report emails."""

    channel = AlertChannel.EMAIL

    def __init__(self, settings: Settings):
        super().__init__(settings.SMTP_TIMEOUT)
        self._settings = settings

    @property
    def configured(self) -> bool:
        settings = self._settings
        return bool(settings.SMTP_HOST and settings.SMTP_USERNAME and settings.SMTP_PASSWORD)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    async def send(self, payload: EmailReportPayload, *, timeout: Optional[float] = None) -> bool:
        if not self.configured:
            logger.warning("SMTP configuration incomplete; report email skipped")
            return False

        if not payload.recipients:
            logger.warning("No recipients on report email; skipping")
            return False

        message = self.build_message(payload)
        return await self._dispatch(message, timeout or self.timeout)

    def build_message(self, payload: EmailReportPayload) -> EmailMessage:
        body_text = self.render_text(payload)
        body_html = self.render_html(payload)

        message = EmailMessage()
        message["Subject"] = payload.subject
        message["From"] = self._formatted_from_address
        message["To"] = ", ".join(sorted(set(payload.recipients)))
        message.set_content(body_text)
        message.add_alternative(body_html, subtype="html")
        return message

    @staticmethod
    def render_text(payload: EmailReportPayload) -> str:
        data = payload.data
        report = build_global_report(data.items)

        lines: List[str] = [
            f"Inventory Report - {data.report_date}",
            "",
            f"Total items needing attention: {data.total_items}",
            f"Critical (out of stock): {data.critical_items}",
            f"Low stock: {data.low_stock_items}",
        ]

        if report.critical:
            lines.append("\nCritical items:")
            lines.extend(
                f"- {item.name} ({item.sku}): 0 units (threshold: {item.threshold})"
                for item in report.critical
            )

        if report.low_stock:
            lines.append("\nLow stock items:")
            lines.extend(
                f"- {item.name} ({item.sku}): {item.stock} units (threshold: {item.threshold})"
                for item in report.low_stock
            )

        lines.append("\nSent automatically by Inventory Management System")
        return "\n".join(lines)

    @staticmethod
    def render_html(payload: EmailReportPayload) -> str:
        report = build_global_report(payload.data.items)
        template = templates.env.get_template(REPORT_TEMPLATE)
        return template.render(
            subject=payload.subject,
            data=payload.data,
            critical=report.critical,
            low_stock=report.low_stock,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    @property
    def _formatted_from_address(self) -> str:
        from_email = self._settings.SMTP_FROM_EMAIL or self._settings.SMTP_USERNAME
        from_name = self._settings.SMTP_FROM_NAME or "Inventory Alerts"
        return formataddr((from_name, from_email))

    async def _dispatch(self, message: EmailMessage, timeout: float) -> bool:
        try:
            await asyncio.to_thread(self._send_sync, message, timeout)
            logger.info("Report email sent to %s", message["To"])
            return True
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("Failed to send report email: %s", exc, exc_info=True)
            return False

    def _send_sync(self, message: EmailMessage, timeout: float) -> None:
        settings = self._settings
        host = settings.SMTP_HOST
        port = settings.SMTP_PORT or (465 if settings.SMTP_USE_SSL else 587)

        if settings.SMTP_USE_SSL:
            smtp = smtplib.SMTP_SSL(host=host, port=port, timeout=timeout)
        else:
            smtp = smtplib.SMTP(host=host, port=port, timeout=timeout)
        try:
            if settings.SMTP_USE_TLS and not settings.SMTP_USE_SSL:
                smtp.starttls()

            smtp.login(settings.SMTP_USERNAME, settings.SMTP_PASSWORD)
            smtp.send_message(message)
        finally:
            try:
                smtp.quit()
            except smtplib.SMTPException:
                smtp.close()


def recipients_or_default(value: Union[str, Sequence[str], None], settings: Settings) -> List[str]:
    """Parse explicit recipients, falling back to NOTIFICATION_EMAILS."""
    if value:
        return parse_recipients(value)
    return parse_recipients(settings.notification_emails)
