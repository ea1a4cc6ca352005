"""
Verification Models
===================
Data models and enums for one-time code challenges.
"""

from datetime import datetime
from typing import Optional
from dataclasses import dataclass, replace
from enum import Enum


class VerificationStatus(str, Enum):
    """Outcome of a verification attempt."""
    SUCCESS = "success"
    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    TOO_MANY_ATTEMPTS = "too_many_attempts"
    MISMATCH = "mismatch"


class RecordState(str, Enum):
    """Lifecycle state of a verification record."""
    ACTIVE = "active"
    CONSUMED = "consumed"
    EXPIRED = "expired"
    LOCKED_OUT = "locked_out"


class DeliveryChannel(str, Enum):
    """Out-of-band delivery channels."""
    EMAIL = "email"
    SMS = "sms"
    LOG = "log"


@dataclass(frozen=True)
class VerificationRecord:
    """Stored challenge state for a principal. Never holds the plain code."""
    principal_id: str
    code_hash: str
    salt: str
    issued_at: datetime
    expires_at: datetime
    attempts: int = 0
    consumed: bool = False
    version: int = 1

    def __post_init__(self):
        if self.expires_at <= self.issued_at:
            raise ValueError("expires_at must be after issued_at")

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at

    def state(self, now: datetime, max_attempts: int) -> RecordState:
        if self.consumed:
            return RecordState.CONSUMED
        if self.is_expired(now):
            return RecordState.EXPIRED
        if self.attempts >= max_attempts:
            return RecordState.LOCKED_OUT
        return RecordState.ACTIVE

    def next_version(self, **changes) -> "VerificationRecord":
        """Copy with ``changes`` applied and the version bumped."""
        return replace(self, version=self.version + 1, **changes)


@dataclass(frozen=True)
class Challenge:
    """A freshly issued code, handed to the caller for delivery."""
    principal_id: str
    code: str
    issued_at: datetime
    expires_at: datetime

    @property
    def expires_in(self) -> int:
        return int((self.expires_at - self.issued_at).total_seconds())

    def __repr__(self) -> str:
        return (
            f"Challenge(principal_id={self.principal_id!r}, code='******', "
            f"expires_at={self.expires_at.isoformat()})"
        )


@dataclass(frozen=True)
class VerifyResult:
    """Result of ``verify``."""
    status: VerificationStatus
    principal_id: str
    attempts_remaining: Optional[int] = None
    force_reauthentication: bool = False

    @property
    def ok(self) -> bool:
        return self.status == VerificationStatus.SUCCESS

    def raise_for_status(self) -> "VerifyResult":
        """Raise the matching ``VerificationFailed`` subclass unless successful."""
        if self.ok:
            return self

        from .exceptions import exception_for_result
        raise exception_for_result(self)


@dataclass(frozen=True)
class DeliveryReport:
    """Outcome of issuing a challenge and handing it to a notifier."""
    principal_id: str
    channel: DeliveryChannel
    issued_at: datetime
    expires_at: datetime
    delivered: bool
    error: Optional[str] = None
