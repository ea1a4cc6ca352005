"""
Clock and Random Sources
========================
Time and randomness used by the verification engine.
"""

import secrets
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Optional


class Clock(ABC):
    """Source of the current time."""

    @abstractmethod
    def now(self) -> datetime:
        """Return the current time as a timezone-aware UTC datetime."""
        ...


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FrozenClock(Clock):
    """
    Manually advanced clock for tests and simulations.

    Usage:
        clock = FrozenClock()
        clock.advance(minutes=11)
    """

    def __init__(self, start: Optional[datetime] = None):
        self._now = start or datetime(2026, 1, 1, tzinfo=timezone.utc)
        self._lock = threading.Lock()

    def now(self) -> datetime:
        with self._lock:
            return self._now

    def advance(self, **kwargs) -> datetime:
        """Move the clock forward by ``timedelta(**kwargs)``."""
        with self._lock:
            self._now += timedelta(**kwargs)
            return self._now


class RandomSource(ABC):
    """Cryptographically secure random source."""

    @abstractmethod
    def randbelow(self, n: int) -> int:
        ...

    @abstractmethod
    def token_hex(self, nbytes: int) -> str:
        ...


class SecretsRandomSource(RandomSource):
    """Random source backed by the ``secrets`` module."""

    def randbelow(self, n: int) -> int:
        return secrets.randbelow(n)

    def token_hex(self, nbytes: int) -> str:
        return secrets.token_hex(nbytes)
