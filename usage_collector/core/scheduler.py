"""
Periodic collection and health checks using APScheduler.
"""

import logging
import threading
from typing import Optional

from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.interval import IntervalTrigger

from .pipeline import CollectionResult, UsageCollector
from .reconciliation import HealthChecker
from usage_collector.storage.models import HealthStatus

logger = logging.getLogger(__name__)

COLLECTION_JOB_ID = "usage_collection"
HEALTH_JOB_ID = "usage_health_check"


class CollectorScheduler:
    """Runs collection and health check jobs on fixed intervals.

    Both jobs share one guard so they never overlap. A tick that finds the
    guard held is skipped rather than queued.
    """

    def __init__(
        self,
        collector: UsageCollector,
        checker: HealthChecker,
        collection_interval_minutes: int = 60,
        health_check_interval_minutes: int = 5,
        scheduler: Optional[BlockingScheduler] = None,
    ):
        self.collector = collector
        self.checker = checker
        self.collection_interval_minutes = collection_interval_minutes
        self.health_check_interval_minutes = health_check_interval_minutes
        self.scheduler = scheduler or BlockingScheduler()
        self._guard = threading.Lock()

    def run_collection_job(self) -> Optional[CollectionResult]:
        """Automatic collection tick. Returns None when skipped."""
        if not self._guard.acquire(blocking=False):
            logger.info("Skipping scheduled collection, another job is running")
            return None
        try:
            return self.collector.collect(automatic=True)
        finally:
            self._guard.release()

    def run_health_job(self) -> Optional[HealthStatus]:
        """Health check tick, followed by a forced collection when requested.

        Returns None when skipped.
        """
        if not self._guard.acquire(blocking=False):
            logger.info("Skipping scheduled health check, another job is running")
            return None
        try:
            status = self.checker.perform_health_check()
            if status.needs_recollection:
                logger.info("Health check requested recollection, running forced collection")
                self.collector.collect(automatic=True, force_all=True)
            return status
        except Exception:
            logger.exception("Scheduled health check failed")
            return None
        finally:
            self._guard.release()

    def configure_jobs(self) -> None:
        """Register both interval jobs on the underlying scheduler."""
        self.scheduler.add_job(
            self.run_collection_job,
            trigger=IntervalTrigger(minutes=self.collection_interval_minutes),
            id=COLLECTION_JOB_ID,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self.scheduler.add_job(
            self.run_health_job,
            trigger=IntervalTrigger(minutes=self.health_check_interval_minutes),
            id=HEALTH_JOB_ID,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        logger.info(
            "Scheduled collection every %d min, health check every %d min",
            self.collection_interval_minutes,
            self.health_check_interval_minutes,
        )

    def start(self) -> None:
        """Run an initial collection, then block running the scheduled jobs."""
        self.run_collection_job()
        self.configure_jobs()
        try:
            self.scheduler.start()
        except (KeyboardInterrupt, SystemExit):
            logger.info("Scheduler stopped")

    def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")
