"""Cron scheduler owning the single job that runs the pipeline.

The :class:`Scheduler` wraps one APScheduler ``BackgroundScheduler`` holding
at most one job. Every mutation (``initialize``, ``reconfigure``,
``shutdown``) runs under one lock and replaces or removes that job, so there
is never more than one live trigger and never a stale one left under an old
schedule. Overlapping fires are coalesced and a run never starts while the
previous one is still going.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from datetime import datetime

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from news_digest.db import Database
from news_digest.errors import InvalidCronExpression
from news_digest.models import ScheduleConfig

logger = logging.getLogger(__name__)

JOB_ID = "etl"


def is_valid_cron(expression: str) -> bool:
    """Return True for a syntactically valid five-field cron expression."""
    if not isinstance(expression, str):
        return False
    try:
        CronTrigger.from_crontab(expression)
    except ValueError:
        return False
    return True


def validate_schedule(cron: str, enabled: bool) -> ScheduleConfig:
    """Build a schedule, rejecting an invalid expression.

    The expression is checked when the schedule is enabled and also when a
    non-empty expression is stored disabled, so nothing invalid is ever
    persisted.
    """
    cron = (cron or "").strip()
    if (enabled or cron) and not is_valid_cron(cron):
        raise InvalidCronExpression(cron)
    return ScheduleConfig(cron=cron, enabled=enabled)


class Scheduler:
    """Persist the schedule and keep exactly one matching job scheduled."""

    def __init__(self, db: Database, job: Callable[[], object]) -> None:
        self._db = db
        self._job = job
        self._lock = threading.Lock()
        self._scheduler = BackgroundScheduler(daemon=True)
        self._active_cron: str | None = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def initialize(self) -> ScheduleConfig:
        """Install the job for the persisted schedule (process start)."""
        logger.info("[Scheduler] Initializing...")
        schedule = self._db.get_schedule()
        with self._lock:
            self._swap_job(schedule)
        return schedule

    def get_schedule(self) -> ScheduleConfig:
        return self._db.get_schedule()

    def reconfigure(self, cron: str, enabled: bool) -> ScheduleConfig:
        """Validate, persist and apply a new schedule.

        An invalid expression raises :class:`InvalidCronExpression` before
        anything is persisted, leaving the stored schedule and the scheduled
        job untouched.
        """
        schedule = validate_schedule(cron, enabled)
        with self._lock:
            self._db.set_schedule(schedule)
            logger.info("[Scheduler] Schedule updated. Re-initializing scheduler...")
            self._swap_job(schedule)
        return schedule

    set_schedule = reconfigure

    def shutdown(self) -> None:
        """Remove the job and stop the background scheduler."""
        with self._lock:
            self._remove_job()
            if self._scheduler.running:
                self._scheduler.shutdown(wait=False)

    @property
    def active_timer_count(self) -> int:
        if not self._scheduler.running:
            return 0
        return len(self._scheduler.get_jobs())

    @property
    def next_run_at(self) -> datetime | None:
        if not self._scheduler.running:
            return None
        job = self._scheduler.get_job(JOB_ID)
        return job.next_run_time if job is not None else None

    # ------------------------------------------------------------------
    # Internals (call with _lock held, except _run_job)
    # ------------------------------------------------------------------

    def _swap_job(self, schedule: ScheduleConfig) -> None:
        if not (schedule.enabled and is_valid_cron(schedule.cron)):
            self._remove_job()
            logger.info("[Scheduler] No valid schedule found or scheduler is disabled.")
            return
        if not self._scheduler.running:
            self._scheduler.start()
        logger.info("[Scheduler] Scheduling new task with cron: %s", schedule.cron)
        self._scheduler.add_job(
            self._run_job,
            CronTrigger.from_crontab(schedule.cron),
            id=JOB_ID,
            name="news-digest-etl",
            replace_existing=True,
            coalesce=True,
            max_instances=1,
        )
        self._active_cron = schedule.cron

    def _remove_job(self) -> None:
        if self._active_cron is None:
            return
        logger.info("[Scheduler] Stopping existing task...")
        if self._scheduler.get_job(JOB_ID) is not None:
            self._scheduler.remove_job(JOB_ID)
        self._active_cron = None

    def _run_job(self) -> None:
        """Run the pipeline once, isolating any failure."""
        logger.info("[Scheduler] Running scheduled ETL process at %s", datetime.now().astimezone().isoformat())
        try:
            self._job()
        except Exception:
            logger.exception("[Scheduler] Error during scheduled ETL process")
        else:
            logger.info("[Scheduler] Scheduled ETL process completed successfully.")
