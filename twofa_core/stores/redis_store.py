"""
Redis Record Store
==================
Redis-backed record store using Lua scripts for atomic operations.
"""

from dataclasses import replace
from datetime import datetime
from typing import Dict, Optional
import structlog
from redis.exceptions import NoScriptError, RedisError

from ..exceptions import StoreUnavailableError
from ..models import VerificationRecord
from .base import RecordStore

logger = structlog.get_logger(__name__)

_FIELDS = (
    "principal_id", "code_hash", "salt", "issued_at",
    "expires_at", "attempts", "consumed",
)

# Replace the hash and bump the version atomically
PUT_SCRIPT = """
local key = KEYS[1]
local current = tonumber(redis.call('HGET', key, 'version') or '0')
local version = current + 1

redis.call('DEL', key)
redis.call('HSET', key,
    'principal_id', ARGV[1],
    'code_hash', ARGV[2],
    'salt', ARGV[3],
    'issued_at', ARGV[4],
    'expires_at', ARGV[5],
    'attempts', ARGV[6],
    'consumed', ARGV[7],
    'version', version)
redis.call('EXPIRE', key, tonumber(ARGV[8]))

return version
"""

# Write only if the stored version matches; keeps the key's TTL
CAS_SCRIPT = """
local key = KEYS[1]
local current = redis.call('HGET', key, 'version')

if not current or tonumber(current) ~= tonumber(ARGV[1]) then
    return 0
end

redis.call('HSET', key,
    'attempts', ARGV[2],
    'consumed', ARGV[3],
    'version', ARGV[4])

return 1
"""

DELETE_IF_VERSION_SCRIPT = """
local key = KEYS[1]
local current = redis.call('HGET', key, 'version')

if current and tonumber(current) == tonumber(ARGV[1]) then
    return redis.call('DEL', key)
end

return 0
"""


def _decode(raw: Dict) -> Dict[str, str]:
    return {
        k.decode("utf-8") if isinstance(k, bytes) else k:
        v.decode("utf-8") if isinstance(v, bytes) else v
        for k, v in raw.items()
    }


def record_to_mapping(record: VerificationRecord) -> Dict[str, str]:
    return {
        "principal_id": record.principal_id,
        "code_hash": record.code_hash,
        "salt": record.salt,
        "issued_at": record.issued_at.isoformat(),
        "expires_at": record.expires_at.isoformat(),
        "attempts": str(record.attempts),
        "consumed": "1" if record.consumed else "0",
        "version": str(record.version),
    }


def mapping_to_record(data: Dict[str, str]) -> VerificationRecord:
    return VerificationRecord(
        principal_id=data["principal_id"],
        code_hash=data["code_hash"],
        salt=data["salt"],
        issued_at=datetime.fromisoformat(data["issued_at"]),
        expires_at=datetime.fromisoformat(data["expires_at"]),
        attempts=int(data["attempts"]),
        consumed=data["consumed"] == "1",
        version=int(data["version"]),
    )


class RedisRecordStore(RecordStore):
    """
    Redis-backed record store, safe to share across service instances.

    Each principal maps to one hash. Conditional writes run as Lua
    scripts so the version check and the write are a single step.
    """

    name = "redis"

    def __init__(
        self,
        redis_client,
        key_prefix: str = "twofa:challenge",
        retention_seconds: int = 86400,
    ):
        """
        Args:
            redis_client: Async Redis client
            key_prefix: Prefix for record keys
            retention_seconds: How long a record outlives its expiry before
                Redis evicts it
        """
        self.redis = redis_client
        self.key_prefix = key_prefix
        self.retention_seconds = retention_seconds
        self._script_shas: Dict[str, str] = {}

    def get_key(self, principal_id: str) -> str:
        return f"{self.key_prefix}:{principal_id}"

    async def _eval(self, script: str, key: str, *args):
        """Run a Lua script by SHA, reloading it if Redis lost its cache."""
        sha = self._script_shas.get(script)
        if sha is None:
            sha = await self.redis.script_load(script)
            self._script_shas[script] = sha
        try:
            return await self.redis.evalsha(sha, 1, key, *args)
        except NoScriptError:
            self._script_shas.pop(script, None)
            sha = await self.redis.script_load(script)
            self._script_shas[script] = sha
            return await self.redis.evalsha(sha, 1, key, *args)

    def _unavailable(self, operation: str, exc: Exception) -> StoreUnavailableError:
        logger.error("Record store operation failed", backend=self.name, operation=operation, error=str(exc))
        return StoreUnavailableError(f"{operation} failed: {exc}", backend=self.name, cause=exc)

    async def get(self, principal_id: str) -> Optional[VerificationRecord]:
        try:
            raw = await self.redis.hgetall(self.get_key(principal_id))
        except (RedisError, OSError) as e:
            raise self._unavailable("get", e) from e

        if not raw:
            return None
        return mapping_to_record(_decode(raw))

    async def put(self, record: VerificationRecord) -> VerificationRecord:
        lifetime = int((record.expires_at - record.issued_at).total_seconds())
        mapping = record_to_mapping(record)
        try:
            version = await self._eval(
                PUT_SCRIPT,
                self.get_key(record.principal_id),
                *(mapping[f] for f in _FIELDS),
                lifetime + self.retention_seconds,
            )
        except (RedisError, OSError) as e:
            raise self._unavailable("put", e) from e

        return replace(record, version=int(version))

    async def compare_and_swap(
        self,
        record: VerificationRecord,
        expected_version: int,
    ) -> bool:
        mapping = record_to_mapping(record)
        try:
            swapped = await self._eval(
                CAS_SCRIPT,
                self.get_key(record.principal_id),
                expected_version,
                mapping["attempts"],
                mapping["consumed"],
                mapping["version"],
            )
        except (RedisError, OSError) as e:
            raise self._unavailable("compare_and_swap", e) from e

        return bool(int(swapped))

    async def delete(self, principal_id: str) -> bool:
        try:
            removed = await self.redis.delete(self.get_key(principal_id))
        except (RedisError, OSError) as e:
            raise self._unavailable("delete", e) from e
        return bool(removed)

    async def purge_expired(self, now: datetime) -> int:
        removed = 0
        try:
            async for key in self.redis.scan_iter(match=f"{self.key_prefix}:*"):
                raw = await self.redis.hgetall(key)
                if not raw:
                    continue
                record = mapping_to_record(_decode(raw))
                if not (record.consumed or record.is_expired(now)):
                    continue
                key = key.decode("utf-8") if isinstance(key, bytes) else key
                removed += int(await self._eval(DELETE_IF_VERSION_SCRIPT, key, record.version))
        except (RedisError, OSError) as e:
            raise self._unavailable("purge_expired", e) from e
        return removed

    async def close(self) -> None:
        await self.redis.aclose()

