"""
Two-Factor Exceptions
=====================
Exception classes for challenge verification, storage and delivery.
"""

from typing import Optional

from .models import VerificationStatus, VerifyResult


class TwoFactorError(Exception):
    """Base exception for all twofa_core errors."""
    pass


class ConfigurationError(TwoFactorError):
    """Raised when configuration values are invalid."""
    pass


class StoreUnavailableError(TwoFactorError):
    """Raised when the record store cannot be reached or fails an operation."""

    def __init__(self, message: str, backend: str = "unknown", cause: Optional[Exception] = None):
        self.message = message
        self.backend = backend
        self.cause = cause
        super().__init__(f"[{backend}] {message}")


class NotificationError(TwoFactorError):
    """Raised when a notifier fails to deliver a code."""

    def __init__(self, message: str, channel: str = "unknown", status_code: Optional[int] = None):
        self.message = message
        self.channel = channel
        self.status_code = status_code
        super().__init__(f"[{channel}] {message} (Status: {status_code})")


class ResendCooldownError(TwoFactorError):
    """Raised when a resend is requested before the cooldown has elapsed."""

    def __init__(self, principal_id: str, retry_after: int):
        self.principal_id = principal_id
        self.retry_after = retry_after
        super().__init__(f"Resend not allowed for {retry_after}s")


class VerificationFailed(TwoFactorError):
    """Base class for non-successful verification outcomes."""

    def __init__(self, result: VerifyResult, message: str):
        self.result = result
        super().__init__(message)

    @property
    def status(self) -> VerificationStatus:
        return self.result.status


class ChallengeNotFound(VerificationFailed):
    """No active challenge exists for the principal."""
    pass


class ChallengeExpired(VerificationFailed):
    """The challenge expired; the principal must re-authenticate."""
    pass


class TooManyAttempts(VerificationFailed):
    """The attempt ceiling was reached; a new challenge is required."""
    pass


class CodeMismatch(VerificationFailed):
    """The submitted code did not match."""
    pass


_STATUS_EXCEPTIONS = {
    VerificationStatus.NOT_FOUND: (ChallengeNotFound, "No active challenge"),
    VerificationStatus.EXPIRED: (ChallengeExpired, "Challenge expired"),
    VerificationStatus.TOO_MANY_ATTEMPTS: (TooManyAttempts, "Too many attempts"),
    VerificationStatus.MISMATCH: (CodeMismatch, "Invalid code"),
}


def exception_for_result(result: VerifyResult) -> VerificationFailed:
    """Build the exception matching a failed ``VerifyResult``."""
    exc_class, message = _STATUS_EXCEPTIONS[result.status]
    if result.status == VerificationStatus.MISMATCH and result.attempts_remaining is not None:
        message = f"{message}. {result.attempts_remaining} attempts remaining"
    return exc_class(result, message)
