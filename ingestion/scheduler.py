import logging
import asyncio
from datetime import datetime
from typing import Optional
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from apscheduler.triggers.cron import CronTrigger
from sqlalchemy.ext.asyncio import async_sessionmaker
from core.config import Settings, settings as default_settings
from core.database import async_session_maker
from ingestion.business_hours import BusinessHours
from ingestion.sync_job import get_or_create_default_connection, run_sync
from models.base import SyncMode, SyncStatus

logger = logging.getLogger(__name__)


class SyncScheduler:
    """
    Incremental sync on a business hours cadence and a full sync once a day.

    With business hours disabled the incremental sync falls back to a
    fixed interval.

    Runs never overlap: a job that fires while another sync is still
    running is skipped.
    """

    def __init__(
        self,
        session_maker: async_sessionmaker = async_session_maker,
        settings: Settings = default_settings
    ):
        self.scheduler = AsyncIOScheduler()
        self.session_maker = session_maker
        self.settings = settings
        self.business_hours = BusinessHours.from_settings(settings)
        self._lock = asyncio.Lock()

    async def run_sync_job(self, mode: SyncMode = SyncMode.INCREMENTAL) -> bool:
        """Run one sync. Returns False when skipped because another is in progress."""
        if self._lock.locked():
            logger.warning(f"Scheduler: {mode.value} sync skipped, another sync is running")
            return False

        async with self._lock:
            logger.info(f"Scheduler: Starting {mode.value} sync")
            async with self.session_maker() as session:
                try:
                    connection = await get_or_create_default_connection(session, self.settings)
                    run = await run_sync(session, connection, mode, settings=self.settings)
                    logger.info(f"Scheduler: Sync run {run.id} finished with status {SyncStatus(run.status).value}")
                except Exception as e:
                    logger.error(f"Scheduler: {mode.value} sync job failed - {e}")
        return True

    async def run_incremental(self) -> bool:
        return await self.run_sync_job(SyncMode.INCREMENTAL)

    async def run_full(self) -> bool:
        return await self.run_sync_job(SyncMode.FULL)

    async def incremental_tick(self, now: Optional[datetime] = None) -> bool:
        """Per-minute tick. Runs an incremental sync on interval boundaries only."""
        if not self.business_hours.should_sync_now(now):
            return False
        logger.debug(f"Scheduler: {self.business_hours.describe(now)}")
        return await self.run_incremental()

    def _full_sync_trigger(self) -> CronTrigger:
        hour, _, minute = self.settings.SYNC_FULL_SYNC_TIME.partition(":")
        return CronTrigger(hour=int(hour), minute=int(minute or 0))

    def start(self):
        """Start the scheduler"""
        if self.business_hours.enabled:
            self.scheduler.add_job(
                self.incremental_tick,
                trigger=CronTrigger(minute="*"),
                id="incremental_sync",
                replace_existing=True
            )
        else:
            self.scheduler.add_job(
                self.run_incremental,
                trigger=IntervalTrigger(minutes=self.settings.SYNC_INCREMENTAL_INTERVAL_MINUTES),
                id="incremental_sync",
                replace_existing=True
            )
        self.scheduler.add_job(
            self.run_full,
            trigger=self._full_sync_trigger(),
            id="full_sync",
            replace_existing=True
        )
        self.scheduler.start()
        logger.info("Sync Scheduler started")

    def stop(self):
        self.scheduler.shutdown()
        logger.info("Sync Scheduler stopped")
