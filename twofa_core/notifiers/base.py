"""
Notifier Interface
==================
Out-of-band delivery of one-time codes.
"""

import inspect
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional, Union

from ..exceptions import NotificationError
from ..models import DeliveryChannel

RecipientLookup = Callable[[str], Union[Optional[str], Awaitable[Optional[str]]]]


def render_message(code: str, expires_at: datetime) -> str:
    return (
        f"Your verification code is {code}. "
        f"It expires at {expires_at.astimezone(timezone.utc).strftime('%H:%M')} UTC."
    )


class Notifier(ABC):
    """
    Base class for code notifiers.

    Notifiers map a principal to an address through ``recipient_lookup``
    (sync or async callable) and raise ``NotificationError`` on failure.
    """

    channel: DeliveryChannel

    def __init__(self, recipient_lookup: Optional[RecipientLookup] = None):
        self.recipient_lookup = recipient_lookup

    async def resolve_recipient(self, principal_id: str) -> str:
        if self.recipient_lookup is None:
            return principal_id

        recipient = self.recipient_lookup(principal_id)
        if inspect.isawaitable(recipient):
            recipient = await recipient
        if not recipient:
            raise NotificationError(
                f"No {self.channel.value} address for principal {principal_id}",
                channel=self.channel.value,
            )
        return recipient

    @abstractmethod
    async def notify(self, principal_id: str, code: str, expires_at: datetime) -> None:
        """Deliver ``code`` to the principal."""
        ...

    async def close(self) -> None:
        pass
