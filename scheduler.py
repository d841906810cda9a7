import logging
from typing import TYPE_CHECKING

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

if TYPE_CHECKING:  # pragma: no cover
    from engine import AnalyticsEngine


logger = logging.getLogger(__name__)

CLEANUP_JOB_ID = "analytics_cache_cleanup"
AUTO_REFRESH_JOB_ID = "analytics_auto_refresh"


class AnalyticsScheduler:
    def __init__(self, engine: "AnalyticsEngine") -> None:
        self.engine = engine
        self.settings = engine.settings
        self.scheduler = BackgroundScheduler(timezone=self.settings.timezone)
        engine.attach_scheduler(self)

    def _run_cleanup(self) -> None:
        purged = self.engine.run_periodic_cleanup()
        logger.info(f"scheduler_run: job={CLEANUP_JOB_ID} purged={sum(purged.values())}")

    def _run_auto_refresh(self) -> None:
        emitted = self.engine.run_auto_refresh()
        if emitted:
            logger.info(f"scheduler_run: job={AUTO_REFRESH_JOB_ID} insights={len(emitted)}")

    def register_jobs(self) -> None:
        trigger = IntervalTrigger(seconds=self.settings.cleanup_interval_secs)
        self.scheduler.add_job(
            self._run_cleanup,
            trigger,
            id=CLEANUP_JOB_ID,
            replace_existing=True,
            misfire_grace_time=60,
            coalesce=True,
        )

        trigger = IntervalTrigger(seconds=self.settings.auto_refresh_interval_secs)
        self.scheduler.add_job(
            self._run_auto_refresh,
            trigger,
            id=AUTO_REFRESH_JOB_ID,
            replace_existing=True,
            misfire_grace_time=10,
            coalesce=True,
            max_instances=1,
        )

    def start(self) -> None:
        self.register_jobs()
        self.scheduler.start()
        logger.info(
            "Scheduler started with cache cleanup every "
            f"{self.settings.cleanup_interval_secs}s and auto-refresh every "
            f"{self.settings.auto_refresh_interval_secs}s"
        )

    def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")
