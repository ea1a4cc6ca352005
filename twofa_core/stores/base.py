"""
Record Store Interface
======================
Storage contract for verification records.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional

from ..models import VerificationRecord


class RecordStore(ABC):
    """
    Keyed storage for verification records, one per principal.

    Every backend failure must surface as ``StoreUnavailableError``.
    Implementations must make ``put`` and ``compare_and_swap`` atomic
    with respect to each other for a given principal.
    """

    name = "base"

    @abstractmethod
    async def get(self, principal_id: str) -> Optional[VerificationRecord]:
        """Return the record for ``principal_id`` or ``None``."""
        ...

    @abstractmethod
    async def put(self, record: VerificationRecord) -> VerificationRecord:
        """
        Unconditionally replace the record for ``record.principal_id``.

        The store assigns the version (previous version + 1, or 1) so a
        writer holding a superseded record can never swap over the new one.

        Returns:
            The record as stored
        """
        ...

    @abstractmethod
    async def compare_and_swap(
        self,
        record: VerificationRecord,
        expected_version: int,
    ) -> bool:
        """
        Replace the stored record only if its version equals ``expected_version``.

        Only ``attempts``, ``consumed`` and ``version`` may differ from the
        stored record; ``put`` is the only way to change the code itself.

        Returns:
            True if the write happened
        """
        ...

    @abstractmethod
    async def delete(self, principal_id: str) -> bool:
        """Delete the record. Returns True if one existed."""
        ...

    @abstractmethod
    async def purge_expired(self, now: datetime) -> int:
        """Delete consumed and expired records. Returns the number removed."""
        ...

    async def close(self) -> None:
        """Release backend resources."""
        pass
