"""
SMS Notifier
============
Delivers codes by SMS through a Twilio-compatible Messages API.
"""

from datetime import datetime
from typing import Optional
import httpx
import structlog

from ..config import NotifierConfig
from ..exceptions import NotificationError
from ..models import DeliveryChannel
from .base import Notifier, RecipientLookup, render_message

logger = structlog.get_logger(__name__)


class SmsNotifier(Notifier):
    """
    SMS notifier.

    Posts to ``{base_url}/Accounts/{sid}/Messages.json`` with basic auth.
    """

    channel = DeliveryChannel.SMS

    def __init__(
        self,
        config: Optional[NotifierConfig] = None,
        recipient_lookup: Optional[RecipientLookup] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__(recipient_lookup)
        self.config = config or NotifierConfig()
        self.base_url = f"{self.config.sms_base_url.rstrip('/')}/Accounts/{self.config.sms_account_sid}"
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                auth=(self.config.sms_account_sid, self.config.sms_auth_token),
                timeout=self.config.timeout,
            )
        return self._client

    async def notify(self, principal_id: str, code: str, expires_at: datetime) -> None:
        recipient = await self.resolve_recipient(principal_id)
        payload = {
            "To": recipient,
            "From": self.config.sms_from_number,
            "Body": render_message(code, expires_at),
        }

        try:
            response = await self._get_client().post(f"{self.base_url}/Messages.json", data=payload)
        except httpx.HTTPError as e:
            logger.error("SMS delivery failed", principal_id=principal_id, error=str(e))
            raise NotificationError(str(e), channel=self.channel.value) from e

        if response.status_code != 201:
            try:
                message = response.json().get("message", "Unknown error")
            except ValueError:
                message = response.text or "Unknown error"
            logger.error(
                "SMS provider rejected message",
                principal_id=principal_id,
                status_code=response.status_code,
            )
            raise NotificationError(
                message, channel=self.channel.value, status_code=response.status_code
            )

        try:
            message_id = response.json().get("sid")
        except ValueError:
            message_id = None

        logger.info("Verification SMS sent", principal_id=principal_id, message_id=message_id)

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
