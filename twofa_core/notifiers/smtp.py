"""
Email Notifier
==============
Delivers codes by email over SMTP.
"""

import asyncio
import smtplib
from datetime import datetime
from email.message import EmailMessage
from typing import Optional
import structlog

from ..config import NotifierConfig
from ..exceptions import NotificationError
from ..models import DeliveryChannel
from .base import Notifier, RecipientLookup, render_message

logger = structlog.get_logger(__name__)


class EmailNotifier(Notifier):
    """SMTP email notifier. The blocking send runs in a worker thread."""

    channel = DeliveryChannel.EMAIL
    subject = "Your verification code"

    def __init__(
        self,
        config: Optional[NotifierConfig] = None,
        recipient_lookup: Optional[RecipientLookup] = None,
    ):
        super().__init__(recipient_lookup)
        self.config = config or NotifierConfig()

    def build_message(self, recipient: str, code: str, expires_at: datetime) -> EmailMessage:
        msg = EmailMessage()
        msg["Subject"] = self.subject
        msg["From"] = self.config.email_from
        msg["To"] = recipient
        msg.set_content(render_message(code, expires_at))
        return msg

    def _send(self, msg: EmailMessage) -> None:
        with smtplib.SMTP(
            self.config.smtp_host, self.config.smtp_port, timeout=self.config.timeout
        ) as server:
            if self.config.smtp_starttls:
                server.starttls()
            if self.config.smtp_username:
                server.login(self.config.smtp_username, self.config.smtp_password or "")
            server.send_message(msg)

    async def notify(self, principal_id: str, code: str, expires_at: datetime) -> None:
        recipient = await self.resolve_recipient(principal_id)
        msg = self.build_message(recipient, code, expires_at)

        try:
            await asyncio.to_thread(self._send, msg)
        except (smtplib.SMTPException, OSError) as e:
            logger.error("Email delivery failed", principal_id=principal_id, error=str(e))
            raise NotificationError(str(e), channel=self.channel.value) from e

        logger.info("Verification email sent", principal_id=principal_id)
