"""
Shared fixtures for twofa-core tests.
"""

import asyncio
import secrets

import pytest

from twofa_core.config import VerificationConfig
from twofa_core.engine import CodeVerificationEngine
from twofa_core.exceptions import StoreUnavailableError
from twofa_core.sources import FrozenClock, RandomSource
from twofa_core.stores.in_memory import InMemoryRecordStore


class CountingRandom(RandomSource):
    """Predictable codes: each call to randbelow returns the next integer."""

    def __init__(self, start: int = 0):
        self.next_value = start

    def randbelow(self, n: int) -> int:
        value = self.next_value % n
        self.next_value += 1
        return value

    def token_hex(self, nbytes: int) -> str:
        return secrets.token_hex(nbytes)


class YieldingStore(InMemoryRecordStore):
    """In-memory store that yields to the event loop around every call."""

    async def get(self, principal_id):
        await asyncio.sleep(0)
        return await super().get(principal_id)

    async def compare_and_swap(self, record, expected_version):
        await asyncio.sleep(0)
        return await super().compare_and_swap(record, expected_version)


class BrokenStore(InMemoryRecordStore):
    """Store whose selected operations fail as if the backend were down."""

    def __init__(self, fail_on=("get",)):
        super().__init__()
        self.fail_on = set(fail_on)

    def _check(self, operation):
        if operation in self.fail_on:
            raise StoreUnavailableError(f"{operation} failed", backend="broken")

    async def get(self, principal_id):
        self._check("get")
        return await super().get(principal_id)

    async def put(self, record):
        self._check("put")
        return await super().put(record)

    async def compare_and_swap(self, record, expected_version):
        self._check("compare_and_swap")
        return await super().compare_and_swap(record, expected_version)

    async def purge_expired(self, now):
        self._check("purge_expired")
        return await super().purge_expired(now)


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def config():
    return VerificationConfig(secret_key="test-secret", ttl_seconds=600, max_attempts=5)


@pytest.fixture
def store():
    return InMemoryRecordStore()


@pytest.fixture
def engine(store, config, clock):
    return CodeVerificationEngine(store, config=config, clock=clock)
