"""
SQL Record Store
================
SQLAlchemy async record store using conditional UPDATE statements.
"""

from dataclasses import replace
from datetime import datetime, timezone
from typing import Optional
import structlog
from sqlalchemy import Boolean, DateTime, Integer, String, delete, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from ..exceptions import StoreUnavailableError
from ..models import VerificationRecord
from .base import RecordStore

logger = structlog.get_logger(__name__)


class Base(DeclarativeBase):
    """Base class for SQLAlchemy models."""
    pass


class VerificationRecordRow(Base):
    __tablename__ = "verification_records"

    principal_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    code_hash: Mapped[str] = mapped_column(String(128), nullable=False)
    salt: Mapped[str] = mapped_column(String(64), nullable=False)
    issued_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    consumed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)


_table = VerificationRecordRow.__table__


def _utc(value: datetime) -> datetime:
    # SQLite drops the offset; everything is written as UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _row_to_record(row) -> VerificationRecord:
    return VerificationRecord(
        principal_id=row.principal_id,
        code_hash=row.code_hash,
        salt=row.salt,
        issued_at=_utc(row.issued_at),
        expires_at=_utc(row.expires_at),
        attempts=row.attempts,
        consumed=bool(row.consumed),
        version=row.version,
    )


async def create_schema(engine: AsyncEngine) -> None:
    """Create the ``verification_records`` table if it does not exist."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


class SQLRecordStore(RecordStore):
    """
    Relational record store, one row per principal.

    Conditional writes are ``UPDATE ... WHERE version = :expected``;
    the row count tells whether the swap won.

    Usage:
        engine = create_async_engine("postgresql+asyncpg://...")
        store = SQLRecordStore.from_engine(engine)
    """

    name = "sql"

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], put_retries: int = 3):
        self._session_factory = session_factory
        self.put_retries = put_retries

    @classmethod
    def from_engine(cls, engine: AsyncEngine, **kwargs) -> "SQLRecordStore":
        factory = async_sessionmaker(
            engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
        return cls(factory, **kwargs)

    def _unavailable(self, operation: str, exc: Exception) -> StoreUnavailableError:
        logger.error("Record store operation failed", backend=self.name, operation=operation, error=str(exc))
        return StoreUnavailableError(f"{operation} failed: {exc}", backend=self.name, cause=exc)

    async def get(self, principal_id: str) -> Optional[VerificationRecord]:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(_table).where(_table.c.principal_id == principal_id)
                )
                row = result.first()
        except SQLAlchemyError as e:
            raise self._unavailable("get", e) from e

        return _row_to_record(row) if row is not None else None

    async def put(self, record: VerificationRecord) -> VerificationRecord:
        values = {
            "code_hash": record.code_hash,
            "salt": record.salt,
            "issued_at": _utc(record.issued_at),
            "expires_at": _utc(record.expires_at),
            "attempts": record.attempts,
            "consumed": record.consumed,
        }

        for _ in range(self.put_retries):
            try:
                async with self._session_factory() as session:
                    async with session.begin():
                        result = await session.execute(
                            update(_table)
                            .where(_table.c.principal_id == record.principal_id)
                            .values(version=_table.c.version + 1, **values)
                        )
                        if result.rowcount == 0:
                            await session.execute(
                                _table.insert().values(
                                    principal_id=record.principal_id, version=1, **values
                                )
                            )
                        version = (
                            await session.execute(
                                select(_table.c.version).where(
                                    _table.c.principal_id == record.principal_id
                                )
                            )
                        ).scalar_one()
                return replace(record, version=version)
            except IntegrityError:
                # Lost an insert race; the row exists now, so update it
                logger.debug("Concurrent insert, retrying put", principal_id=record.principal_id)
                continue
            except SQLAlchemyError as e:
                raise self._unavailable("put", e) from e

        raise StoreUnavailableError("put kept conflicting", backend=self.name)

    async def compare_and_swap(
        self,
        record: VerificationRecord,
        expected_version: int,
    ) -> bool:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    result = await session.execute(
                        update(_table)
                        .where(
                            _table.c.principal_id == record.principal_id,
                            _table.c.version == expected_version,
                        )
                        .values(
                            attempts=record.attempts,
                            consumed=record.consumed,
                            version=record.version,
                        )
                    )
                    swapped = result.rowcount == 1
        except SQLAlchemyError as e:
            raise self._unavailable("compare_and_swap", e) from e

        return swapped

    async def delete(self, principal_id: str) -> bool:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    result = await session.execute(
                        delete(_table).where(_table.c.principal_id == principal_id)
                    )
                    removed = result.rowcount
        except SQLAlchemyError as e:
            raise self._unavailable("delete", e) from e
        return removed > 0

    async def purge_expired(self, now: datetime) -> int:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    result = await session.execute(
                        delete(_table).where(
                            or_(_table.c.consumed.is_(True), _table.c.expires_at < _utc(now))
                        )
                    )
                    removed = result.rowcount
        except SQLAlchemyError as e:
            raise self._unavailable("purge_expired", e) from e
        return removed

