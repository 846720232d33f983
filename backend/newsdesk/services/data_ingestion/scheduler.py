"""
Ingestion Scheduler - Automated category fetching on schedule.

Runs one pass at startup and then on a cron trigger. Passes never overlap:
a trigger that fires while a pass is still running is skipped and the
in-flight pass finishes undisturbed.
"""

import asyncio
from datetime import datetime, timezone
from typing import Optional

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from newsdesk.services.data_ingestion.base import PassReport
from newsdesk.services.data_ingestion.pipeline import IngestionPipeline

logger = structlog.get_logger(__name__)

JOB_ID = "ingestion_pass"


class IngestionScheduler:
    """
    Schedules and runs ingestion passes.

    Features:
    - Immediate pass on start, then a recurring cron trigger
    - Single running slot, so passes never overlap
    - Pass failures are logged and deferred to the next trigger
    """

    def __init__(
        self,
        pipeline: IngestionPipeline,
        cron: str = "0 */2 * * *",
        timezone_name: str = "UTC",
    ):
        """
        Initialize the scheduler.

        Args:
            pipeline: Pass runner
            cron: Crontab expression for recurring passes
            timezone_name: Timezone the cron expression is evaluated in
        """
        self.pipeline = pipeline
        self.cron = cron
        self.trigger = CronTrigger.from_crontab(cron, timezone=timezone_name)

        self._scheduler: Optional[AsyncIOScheduler] = None
        self._slot = asyncio.Lock()
        self._running = False
        self._last_run: Optional[datetime] = None
        self._last_report: Optional[PassReport] = None
        self.skipped_triggers = 0

    async def start(self, run_immediately: bool = True):
        """Register the recurring job and optionally run a pass right away."""
        if self._running:
            logger.warning("Scheduler already running")
            return

        self._running = True
        self._scheduler = AsyncIOScheduler()
        self._scheduler.add_job(
            self.run_once,
            self.trigger,
            id=JOB_ID,
            name="Category ingestion pass",
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        self._scheduler.start()
        logger.info("Starting ingestion scheduler", cron=self.cron)

        if run_immediately:
            logger.info("Starting initial execution")
            await self.run_once()

    async def stop(self):
        """Stop the recurring trigger. An in-flight pass is not interrupted here."""
        self._running = False
        if self._scheduler is not None:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None
        logger.info("Ingestion scheduler stopped")

    async def run_once(self) -> Optional[PassReport]:
        """
        Execute a pass unless one is already running.

        Returns:
            The pass report, or None when skipped or failed
        """
        if self._slot.locked():
            self.skipped_triggers += 1
            logger.warning("Previous pass still running, skipping trigger")
            return None

        async with self._slot:
            started = datetime.now(timezone.utc)
            logger.info("Scheduled fetch started", at=started.isoformat())
            try:
                report = await self.pipeline.run_pass()
            except Exception as e:
                logger.error("Ingestion pass failed, will retry in next scheduled run", error=str(e), exc_info=True)
                return None
            finally:
                self._last_run = started

            self._last_report = report
            return report

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def is_busy(self) -> bool:
        return self._slot.locked()

    @property
    def last_report(self) -> Optional[PassReport]:
        return self._last_report

    def get_status(self) -> dict:
        """Get scheduler status."""
        next_run = None
        if self._scheduler is not None:
            job = self._scheduler.get_job(JOB_ID)
            if job is not None and job.next_run_time is not None:
                next_run = job.next_run_time.isoformat()

        return {
            "running": self._running,
            "busy": self.is_busy,
            "cron": self.cron,
            "last_run": self._last_run.isoformat() if self._last_run else None,
            "next_run": next_run,
            "skipped_triggers": self.skipped_triggers,
            "rate_limit": self.pipeline.client.rate_limiter.get_status(),
        }
