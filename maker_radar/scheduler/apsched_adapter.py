"""APScheduler wrapper that triggers the pipeline on a fixed timer."""

from __future__ import annotations

from typing import Callable

import structlog
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger


class APSchedulerAdapter:
    """Manage APScheduler timer jobs; whether a tick actually runs is up to the run gate."""

    def __init__(self, scheduler: BackgroundScheduler | None = None) -> None:
        self.scheduler = scheduler or BackgroundScheduler()
        self.logger = structlog.get_logger("maker_radar.scheduler").bind(component="scheduler")
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

    def schedule_pipeline(self, job_name: str, minutes: float, callback: Callable[[str], object]) -> str:
        if minutes <= 0:
            raise ValueError("minutes must be > 0")
        job_id = f"pipeline::{job_name}"
        self.scheduler.add_job(
            callback,
            trigger=IntervalTrigger(seconds=minutes * 60),
            id=job_id,
            args=[job_name],
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self.logger.info("job_scheduled", job=job_name, minutes=minutes)
        return job_id

    def remove_pipeline(self, job_name: str) -> None:
        job_id = f"pipeline::{job_name}"
        try:
            self.scheduler.remove_job(job_id)
        except Exception:  # noqa: BLE001
            self.logger.warning("job_remove_failed", job=job_name)

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


__all__ = ["APSchedulerAdapter"]
