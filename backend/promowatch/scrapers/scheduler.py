"""APScheduler-based periodic batch scheduler.

Runs the full scraping batch every SCRAPE_INTERVAL_MINUTES. Only one
batch runs at a time; a failing batch is logged and the schedule goes on.
"""

from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

import structlog
from apscheduler.job import Job
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from promowatch.scrapers.batch_runner import BatchReport

logger = structlog.get_logger(__name__)

BATCH_JOB_ID = "scrape_competitors"


class BatchScheduler:
    """Manages the periodic scraping job."""

    def __init__(self, run_batch: Callable[[], Awaitable[BatchReport]]):
        """Initialize batch scheduler.

        Args:
            run_batch: Coroutine function running one batch end to end
        """
        self.run_batch = run_batch
        self.scheduler = AsyncIOScheduler(timezone="UTC")
        self._started = False
        self.logger = logger.bind(service="batch_scheduler")

    def start(self, interval_minutes: int) -> Optional[Job]:
        """Start the scheduler with one interval job.

        Args:
            interval_minutes: Minutes between batches; 0 or less disables scheduling

        Returns:
            The scheduled Job, or None when disabled
        """
        if interval_minutes <= 0:
            self.logger.info("scheduler_disabled")
            return None

        if not self._started:
            self.scheduler.start()
            self._started = True

        job = self.scheduler.add_job(
            func=self._run_batch_wrapper,
            trigger=IntervalTrigger(
                minutes=interval_minutes,
                start_date=datetime.now(timezone.utc),
                timezone="UTC",
            ),
            id=BATCH_JOB_ID,
            name="Scrape competitors",
            replace_existing=True,
            max_instances=1,  # Never overlap batches
            coalesce=True,
        )

        self.logger.info(
            "scheduler_started",
            interval_minutes=interval_minutes,
            next_run=job.next_run_time.isoformat() if job.next_run_time else None,
        )
        return job

    def stop(self) -> None:
        """Stop the scheduler without waiting for a running batch.

        AsyncIOScheduler finishes its shutdown on the event loop, so the
        stopped state is tracked here.
        """
        if self._started:
            self.scheduler.shutdown(wait=False)
            self._started = False
            self.logger.info("scheduler_stopped")

    async def _run_batch_wrapper(self) -> None:
        """Job entry point; exceptions are logged so the schedule survives them."""
        try:
            report = await self.run_batch()
        except Exception as e:
            self.logger.error("scheduled_batch_failed", error=str(e), exc_info=True)
            return

        self.logger.info("scheduled_batch_completed", **report.summary.to_dict())

    def is_running(self) -> bool:
        return self._started
