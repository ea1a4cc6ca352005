"""
Two-Factor Service
==================
Caller-side orchestration: issue a challenge, deliver it, verify it.

The engine never talks to notifiers. This service does. Any delivery
failure comes back as an undelivered DeliveryReport and leaves the
issued code valid so the caller can resend.
"""

import math
from typing import Optional
import structlog

from .engine import CodeVerificationEngine
from .exceptions import ResendCooldownError
from .metrics import MetricNames
from .models import Challenge, DeliveryReport, VerifyResult
from .notifiers.base import Notifier

logger = structlog.get_logger(__name__)


class TwoFactorService:
    """Entry point for an authentication layer adding a second factor."""

    def __init__(
        self,
        engine: CodeVerificationEngine,
        notifier: Notifier,
        resend_cooldown_seconds: Optional[int] = None,
    ):
        self.engine = engine
        self.notifier = notifier
        if resend_cooldown_seconds is None:
            resend_cooldown_seconds = engine.config.resend_cooldown_seconds
        self.resend_cooldown_seconds = resend_cooldown_seconds

    async def start(self, principal_id: str) -> DeliveryReport:
        """Challenge a principal after their first factor succeeded."""
        challenge = await self.engine.issue(principal_id)
        return await self._deliver(challenge)

    async def resend(self, principal_id: str) -> DeliveryReport:
        """
        Replace and redeliver the principal's code.

        Raises:
            ResendCooldownError: Called again before the cooldown elapsed
        """
        retry_after = await self.retry_after(principal_id)
        if retry_after > 0:
            logger.warning("Resend throttled", principal_id=principal_id, retry_after=retry_after)
            raise ResendCooldownError(principal_id, retry_after)

        challenge = await self.engine.resend(principal_id)
        return await self._deliver(challenge)

    async def retry_after(self, principal_id: str) -> int:
        """Seconds until a resend is allowed; 0 when allowed now."""
        issued_at = await self.engine.issued_at(principal_id)
        if issued_at is None:
            return 0

        elapsed = (self.engine.clock.now() - issued_at).total_seconds()
        remaining = self.resend_cooldown_seconds - elapsed
        return max(math.ceil(remaining), 0)

    async def verify(self, principal_id: str, code: Optional[str]) -> VerifyResult:
        return await self.engine.verify(principal_id, code)

    async def cancel(self, principal_id: str) -> bool:
        """Invalidate an outstanding challenge, e.g. on logout."""
        return await self.engine.invalidate(principal_id)

    async def _deliver(self, challenge: Challenge) -> DeliveryReport:
        channel = self.notifier.channel
        try:
            await self.notifier.notify(challenge.principal_id, challenge.code, challenge.expires_at)
        except Exception as e:
            self.engine.metrics.increment(
                MetricNames.NOTIFICATIONS, labels={"channel": channel.value, "delivered": "false"}
            )
            logger.warning(
                "Challenge issued but not delivered",
                principal_id=challenge.principal_id,
                channel=channel.value,
                error=str(e),
                error_type=type(e).__name__,
            )
            return DeliveryReport(
                principal_id=challenge.principal_id,
                channel=channel,
                issued_at=challenge.issued_at,
                expires_at=challenge.expires_at,
                delivered=False,
                error=str(e),
            )

        self.engine.metrics.increment(
            MetricNames.NOTIFICATIONS, labels={"channel": channel.value, "delivered": "true"}
        )
        return DeliveryReport(
            principal_id=challenge.principal_id,
            channel=channel,
            issued_at=challenge.issued_at,
            expires_at=challenge.expires_at,
            delivered=True,
        )
