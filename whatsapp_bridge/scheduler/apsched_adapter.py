"""APScheduler wrapper running periodic bridge jobs in the background."""

from __future__ import annotations

from typing import Callable

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..logging_conf import component_logger

STATS_JOB_ID = "bridge::stats"


class APSchedulerAdapter:
    """Manage APScheduler jobs that only read bridge state."""

    def __init__(self, scheduler: BackgroundScheduler | None = None) -> None:
        self.scheduler = scheduler or BackgroundScheduler()
        self.logger = component_logger("scheduler")
        self.started = False

    def start(self) -> None:
        if not self.started:
            self.scheduler.start()
            self.started = True
            self.logger.info("apscheduler_started")

    def shutdown(self) -> None:
        if self.started:
            self.scheduler.shutdown(wait=False)
            self.started = False
            self.logger.info("apscheduler_stopped")

    def schedule_stats(self, callback: Callable[[], None], interval_seconds: float) -> None:
        trigger = self._build_trigger(interval_seconds)
        self.scheduler.add_job(
            callback,
            trigger=trigger,
            id=STATS_JOB_ID,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self.logger.info("job_scheduled", job=STATS_JOB_ID, interval_seconds=interval_seconds)

    def remove_stats(self) -> None:
        if self.scheduler.get_job(STATS_JOB_ID) is None:
            return
        self.scheduler.remove_job(STATS_JOB_ID)
        self.logger.info("job_removed", job=STATS_JOB_ID)

    @staticmethod
    def _build_trigger(interval_seconds: float) -> IntervalTrigger:
        if interval_seconds <= 0:
            raise ValueError("Interval schedule requires a positive number of seconds")
        return IntervalTrigger(seconds=float(interval_seconds))

    def list_jobs(self) -> list[dict]:
        jobs = []
        for job in self.scheduler.get_jobs():
            jobs.append(
                {
                    "id": job.id,
                    "next_run_time": getattr(job, "next_run_time", None),
                    "trigger": str(job.trigger),
                }
            )
        return jobs


__all__ = ["APSchedulerAdapter", "STATS_JOB_ID"]
