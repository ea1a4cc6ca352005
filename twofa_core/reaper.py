"""
Expired Record Reaper
=====================
Optional background task that purges consumed and expired records.

Expiry is enforced lazily by the engine; the reaper only keeps the store
small. Failures are logged and the loop carries on.
"""

import asyncio
from typing import Optional
import structlog

from .engine import CodeVerificationEngine
from .exceptions import StoreUnavailableError

logger = structlog.get_logger(__name__)


class ExpiredRecordReaper:
    """
    Periodically calls ``engine.purge_expired``.

    Usage:
        reaper = ExpiredRecordReaper(engine, interval_seconds=300)
        reaper.start()
        ...
        await reaper.stop()
    """

    def __init__(self, engine: CodeVerificationEngine, interval_seconds: float = 300.0):
        self.engine = engine
        self.interval_seconds = interval_seconds
        self.task: Optional[asyncio.Task] = None
        self.stats = {
            "runs": 0,
            "failures": 0,
            "purged": 0,
        }

    @property
    def is_running(self) -> bool:
        return self.task is not None and not self.task.done()

    async def run_once(self) -> int:
        """Purge once. Store failures are logged and reported as 0."""
        self.stats["runs"] += 1
        try:
            removed = await self.engine.purge_expired()
        except StoreUnavailableError as e:
            self.stats["failures"] += 1
            logger.warning("Reaper pass failed", error=str(e))
            return 0

        self.stats["purged"] += removed
        return removed

    async def run(self) -> None:
        logger.info("Reaper started", interval_seconds=self.interval_seconds)
        while True:
            await self.run_once()
            await asyncio.sleep(self.interval_seconds)

    def start(self) -> asyncio.Task:
        if not self.is_running:
            self.task = asyncio.create_task(self.run())
        return self.task

    async def stop(self) -> None:
        if self.task is None:
            return

        self.task.cancel()
        try:
            await self.task
        except asyncio.CancelledError:
            pass
        self.task = None
        logger.info("Reaper stopped", **self.stats)
