"""
Record Stores
=============
Interchangeable backends for verification records.
"""

from .base import RecordStore
from .in_memory import InMemoryRecordStore
from .redis_store import RedisRecordStore
from .sql_store import SQLRecordStore, VerificationRecordRow, create_schema

__all__ = [
    "RecordStore",
    "InMemoryRecordStore",
    "RedisRecordStore",
    "SQLRecordStore",
    "VerificationRecordRow",
    "create_schema",
]
