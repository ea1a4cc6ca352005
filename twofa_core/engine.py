"""
Code Verification Engine
========================
Issues one-time codes and verifies them with single-use semantics.

Every state change goes through the store's compare-and-swap on the
record version, so concurrent verifications for one principal can
succeed at most once even when several service instances share the
store.
"""

from datetime import datetime, timedelta
from typing import Optional
import structlog

from .config import VerificationConfig
from .exceptions import StoreUnavailableError
from .hashing import generate_code, generate_salt, hash_code, normalize_code, verify_code_hash
from .metrics import MetricNames, SimpleMetrics
from .models import Challenge, VerificationRecord, VerificationStatus, VerifyResult
from .sources import Clock, RandomSource, SecretsRandomSource, SystemClock
from .stores.base import RecordStore

logger = structlog.get_logger(__name__)


class CodeVerificationEngine:
    """One-time code issuance and verification."""

    def __init__(
        self,
        store: RecordStore,
        config: Optional[VerificationConfig] = None,
        clock: Optional[Clock] = None,
        random: Optional[RandomSource] = None,
        metrics: Optional[SimpleMetrics] = None,
    ):
        self.store = store
        self.config = config or VerificationConfig()
        self.clock = clock or SystemClock()
        self.random = random or SecretsRandomSource()
        self.metrics = metrics or SimpleMetrics()

    async def issue(self, principal_id: str) -> Challenge:
        """
        Issue a fresh code for a principal, superseding any previous one.

        Args:
            principal_id: Principal being challenged

        Returns:
            Challenge carrying the plain code for out-of-band delivery
        """
        now = self.clock.now()
        code = generate_code(self.config.code_digits, self.random)
        salt = generate_salt(self.random)

        record = VerificationRecord(
            principal_id=principal_id,
            code_hash=hash_code(code, salt, self.config.secret_key),
            salt=salt,
            issued_at=now,
            expires_at=now + timedelta(seconds=self.config.ttl_seconds),
        )
        stored = await self.store.put(record)

        self.metrics.increment(MetricNames.CHALLENGES_ISSUED)
        logger.info(
            "Challenge issued",
            principal_id=principal_id,
            version=stored.version,
            expires_in=self.config.ttl_seconds,
        )

        return Challenge(
            principal_id=principal_id,
            code=code,
            issued_at=stored.issued_at,
            expires_at=stored.expires_at,
        )

    async def resend(self, principal_id: str) -> Challenge:
        """Issue a replacement code; the previous code stops verifying."""
        logger.info("Challenge resend requested", principal_id=principal_id)
        return await self.issue(principal_id)

    async def issued_at(self, principal_id: str) -> Optional[datetime]:
        """Issuance time of the principal's latest challenge, for cooldowns."""
        record = await self.store.get(principal_id)
        return record.issued_at if record is not None else None

    async def verify(self, principal_id: str, submitted_code: Optional[str]) -> VerifyResult:
        """
        Verify a submitted code.

        Args:
            principal_id: Principal being verified
            submitted_code: Code as entered by the user

        Returns:
            VerifyResult with the outcome

        Raises:
            StoreUnavailableError: The store failed or kept conflicting
        """
        code = normalize_code(submitted_code)

        for _ in range(self.config.cas_retries):
            record = await self.store.get(principal_id)
            now = self.clock.now()

            if record is None:
                return self._result(VerificationStatus.NOT_FOUND, principal_id)

            if record.is_expired(now):
                if not record.consumed and not await self._swap(record, consumed=True):
                    continue
                logger.warning("Challenge expired", principal_id=principal_id)
                return self._result(
                    VerificationStatus.EXPIRED,
                    principal_id,
                    attempts_remaining=0,
                    force_reauthentication=True,
                )

            if record.consumed:
                return self._result(VerificationStatus.NOT_FOUND, principal_id)

            if record.attempts >= self.config.max_attempts:
                logger.warning("Challenge attempts exhausted", principal_id=principal_id)
                return self._result(
                    VerificationStatus.TOO_MANY_ATTEMPTS, principal_id, attempts_remaining=0
                )

            if verify_code_hash(code, record.salt, self.config.secret_key, record.code_hash):
                if not await self._swap(record, consumed=True):
                    continue
                logger.info("Challenge verified", principal_id=principal_id)
                return self._result(VerificationStatus.SUCCESS, principal_id)

            attempts = record.attempts + 1
            if not await self._swap(record, attempts=attempts):
                continue
            remaining = max(self.config.max_attempts - attempts, 0)
            logger.warning("Invalid code attempt", principal_id=principal_id, remaining=remaining)
            return self._result(
                VerificationStatus.MISMATCH, principal_id, attempts_remaining=remaining
            )

        logger.error("Verification kept conflicting", principal_id=principal_id)
        raise StoreUnavailableError(
            f"gave up after {self.config.cas_retries} conflicting updates",
            backend=self.store.name,
        )

    async def invalidate(self, principal_id: str) -> bool:
        """
        Consume the principal's outstanding challenge without verifying it.

        Returns:
            True if an unconsumed challenge was invalidated
        """
        for _ in range(self.config.cas_retries):
            record = await self.store.get(principal_id)
            if record is None or record.consumed:
                return False
            if await self._swap(record, consumed=True):
                logger.info("Challenge invalidated", principal_id=principal_id)
                return True

        raise StoreUnavailableError(
            f"gave up after {self.config.cas_retries} conflicting updates",
            backend=self.store.name,
        )

    async def purge_expired(self) -> int:
        """Remove consumed and expired records from the store."""
        removed = await self.store.purge_expired(self.clock.now())
        if removed:
            self.metrics.increment(MetricNames.RECORDS_PURGED, removed)
            logger.info("Purged stale challenges", removed=removed)
        return removed

    async def _swap(self, record: VerificationRecord, **changes) -> bool:
        swapped = await self.store.compare_and_swap(
            record.next_version(**changes), expected_version=record.version
        )
        if not swapped:
            self.metrics.increment(MetricNames.CAS_CONFLICTS)
            logger.debug("Record changed concurrently", principal_id=record.principal_id)
        return swapped

    def _result(self, status: VerificationStatus, principal_id: str, **kwargs) -> VerifyResult:
        self.metrics.increment(MetricNames.VERIFICATIONS, labels={"status": status.value})
        return VerifyResult(status=status, principal_id=principal_id, **kwargs)
