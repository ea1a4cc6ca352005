"""
In-Memory Record Store
======================
Process-local record store for development and testing.
"""

import threading
from dataclasses import replace
from datetime import datetime
from typing import Dict, Optional

from ..models import VerificationRecord
from .base import RecordStore


class InMemoryRecordStore(RecordStore):
    """
    Dict-backed record store.

    For development and testing only.
    Use RedisRecordStore or SQLRecordStore when several service
    instances share verification state.
    """

    name = "memory"

    def __init__(self):
        self._records: Dict[str, VerificationRecord] = {}
        self._lock = threading.Lock()

    async def get(self, principal_id: str) -> Optional[VerificationRecord]:
        with self._lock:
            return self._records.get(principal_id)

    async def put(self, record: VerificationRecord) -> VerificationRecord:
        with self._lock:
            previous = self._records.get(record.principal_id)
            stored = replace(record, version=previous.version + 1 if previous else 1)
            self._records[record.principal_id] = stored
            return stored

    async def compare_and_swap(
        self,
        record: VerificationRecord,
        expected_version: int,
    ) -> bool:
        with self._lock:
            current = self._records.get(record.principal_id)
            if current is None or current.version != expected_version:
                return False
            self._records[record.principal_id] = record
            return True

    async def delete(self, principal_id: str) -> bool:
        with self._lock:
            return self._records.pop(principal_id, None) is not None

    async def purge_expired(self, now: datetime) -> int:
        with self._lock:
            stale = [
                principal_id for principal_id, record in self._records.items()
                if record.consumed or record.is_expired(now)
            ]
            for principal_id in stale:
                del self._records[principal_id]
            return len(stale)

    def __len__(self) -> int:
        return len(self._records)
