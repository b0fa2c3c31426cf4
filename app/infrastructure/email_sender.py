"""
SMTP email delivery for reminders and booking notices.
"""

import asyncio
import logging
import smtplib
from dataclasses import dataclass
from email.message import EmailMessage
from email.utils import formataddr
from typing import Iterable, Optional, Union

from jinja2 import TemplateError

from app.config.settings import get_settings
from app.infrastructure.email_templates import render_email
from app.utils.time import format_slot_date

logger = logging.getLogger(__name__)


@dataclass
class SendResult:
    """Outcome of a single email send."""
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None


def appointment_fields(appointment) -> dict:
    """Template fields describing an appointment."""
    return {
        "name": appointment.name,
        "email": appointment.email,
        "date": format_slot_date(appointment.slot_date),
        "time": appointment.slot_start_time,
        "service": appointment.service,
        "meeting_link": appointment.meeting_link,
    }


class EmailSender:
    """Sends templated HTML email over SMTP."""

    def __init__(self, settings=None):
        self.settings = settings or get_settings()

    @property
    def sender(self) -> str:
        return formataddr((self.settings.email_from_name, self.settings.smtp_username))

    def _deliver(self, message: EmailMessage) -> None:
        """Blocking SMTP delivery; run in a worker thread."""
        smtp_class = smtplib.SMTP_SSL if self.settings.smtp_use_ssl else smtplib.SMTP
        with smtp_class(
            self.settings.smtp_host,
            self.settings.smtp_port,
            timeout=self.settings.smtp_timeout_seconds,
        ) as server:
            if not self.settings.smtp_use_ssl:
                server.starttls()
            if self.settings.smtp_username:
                server.login(self.settings.smtp_username, self.settings.smtp_password)
            server.send_message(message)

    async def send(
        self,
        recipient: Union[str, Iterable[str]],
        subject: str,
        template: str,
        fields: dict,
    ) -> SendResult:
        """
        Render and send an email.

        Args:
            recipient: Address or addresses to send to
            subject: Subject line
            template: Name of the template in ``email_templates``
            fields: Template fields

        Returns:
            SendResult; failures are reported, never raised
        """
        recipients = [recipient] if isinstance(recipient, str) else list(recipient)
        if not recipients:
            return SendResult(success=False, error="No recipients")

        try:
            html = render_email(template, reschedule_url=self.settings.reschedule_url, **fields)
        except TemplateError as e:
            logger.error(f"Failed to render email template {template}: {e}")
            return SendResult(success=False, error=str(e))

        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = ", ".join(recipients)
        message["Subject"] = subject
        message.set_content(subject)
        message.add_alternative(html, subtype="html")

        try:
            await asyncio.to_thread(self._deliver, message)
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Failed to send email '{subject}' to {recipients}: {e}")
            return SendResult(success=False, error=str(e))

        logger.info(f"Email '{subject}' sent to {recipients}")
        return SendResult(success=True, message_id=message.get("Message-ID"))

    async def send_internal_alert(self, title: str, fields: dict) -> SendResult:
        """Notify staff about an appointment event."""
        if not self.settings.internal_notification_emails:
            return SendResult(success=False, error="No internal recipients configured")
        return await self.send(
            self.settings.internal_notification_emails,
            title,
            "internal_alert.html",
            {"title": title, **fields},
        )
