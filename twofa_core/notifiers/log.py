"""
Log Notifier
============
Development notifier that keeps codes in an in-process outbox.
"""

from collections import deque
from dataclasses import dataclass
from datetime import datetime
from typing import Deque, Optional
import structlog

from ..models import DeliveryChannel
from .base import Notifier, RecipientLookup

logger = structlog.get_logger(__name__)


@dataclass
class OutboxEntry:
    recipient: str
    code: str
    expires_at: datetime


class LogNotifier(Notifier):
    """For development and testing only. Codes never reach the log output."""

    channel = DeliveryChannel.LOG

    def __init__(
        self,
        recipient_lookup: Optional[RecipientLookup] = None,
        max_outbox: int = 1000,
    ):
        super().__init__(recipient_lookup)
        self.outbox: Deque[OutboxEntry] = deque(maxlen=max_outbox)

    async def notify(self, principal_id: str, code: str, expires_at: datetime) -> None:
        recipient = await self.resolve_recipient(principal_id)
        self.outbox.append(OutboxEntry(recipient=recipient, code=code, expires_at=expires_at))
        logger.info("Verification code queued", principal_id=principal_id, recipient=recipient)

    def last_code(self, recipient: str) -> Optional[str]:
        for entry in reversed(self.outbox):
            if entry.recipient == recipient:
                return entry.code
        return None
