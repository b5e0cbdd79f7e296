"""
Background Job Scheduler

APScheduler ``AsyncIOScheduler`` plus a small registry of the application's
jobs. The registry is the source of truth: it survives scheduler restarts,
feeds ``/debug/jobs`` and lets any job be run on demand.

Usage:
    register_job("rate_limit_prune", prune_job, IntervalTrigger(hours=1))
    await start_scheduler()
    ...
    await stop_scheduler()
"""

import logging
from collections.abc import Callable, Coroutine
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED, JobExecutionEvent
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.base import BaseTrigger

logger = logging.getLogger(__name__)

JobFunc = Callable[[], Coroutine[Any, Any, Any]]

SCHEDULER_TIMEZONE = "UTC"
JOB_DEFAULTS = {
    "coalesce": True,
    "max_instances": 1,
    "misfire_grace_time": 300,
}


@dataclass
class RegisteredJob:
    func: JobFunc
    trigger: BaseTrigger
    last_run_at: datetime | None = None
    last_status: str | None = None
    last_error: str | None = None

    def record_run(self, error: BaseException | None = None) -> None:
        self.last_run_at = datetime.now(UTC)
        self.last_status = "error" if error else "success"
        self.last_error = str(error) if error else None


_scheduler: AsyncIOScheduler | None = None
_job_registry: dict[str, RegisteredJob] = {}


def _on_job_event(event: JobExecutionEvent) -> None:
    job = _job_registry.get(event.job_id)
    if job is not None:
        job.record_run(event.exception)

    if event.exception:
        logger.error(f"Job {event.job_id} failed: {event.exception}", exc_info=event.exception)
    else:
        logger.info(f"Job {event.job_id} finished")


def get_scheduler() -> AsyncIOScheduler | None:
    return _scheduler


def _is_running() -> bool:
    return _scheduler is not None and _scheduler.running


def _schedule(job_id: str, job: RegisteredJob) -> None:
    assert _scheduler is not None
    _scheduler.add_job(job.func, trigger=job.trigger, id=job_id, replace_existing=True)
    logger.info(f"Scheduled job: {job_id}")


async def start_scheduler() -> AsyncIOScheduler:
    """Start the scheduler (idempotent) and schedule every registered job."""
    global _scheduler

    if _is_running():
        logger.warning("Scheduler already running")
        return _scheduler

    _scheduler = AsyncIOScheduler(timezone=SCHEDULER_TIMEZONE, job_defaults=JOB_DEFAULTS)
    _scheduler.add_listener(_on_job_event, EVENT_JOB_EXECUTED | EVENT_JOB_ERROR)

    for job_id, job in _job_registry.items():
        _schedule(job_id, job)

    _scheduler.start()
    logger.info(f"Scheduler started with {len(_job_registry)} job(s)")
    return _scheduler


async def stop_scheduler() -> None:
    """Shut the scheduler down, letting running jobs finish."""
    global _scheduler

    if not _is_running():
        return

    _scheduler.shutdown(wait=True)
    _scheduler = None
    logger.info("Scheduler stopped")


def register_job(job_id: str, func: JobFunc, trigger: BaseTrigger) -> None:
    """Register a job; it is scheduled now if the scheduler runs, else on start."""
    job = RegisteredJob(func=func, trigger=trigger)
    _job_registry[job_id] = job

    if _is_running():
        _schedule(job_id, job)


def clear_registry() -> None:
    _job_registry.clear()


async def trigger_job_manually(job_id: str) -> dict[str, Any]:
    """
    Run a registered job now, outside its schedule.

    Returns:
        ``{"job_id", "status", "executed_at"}`` plus ``result`` on success or
        ``error`` on failure. Job failures are reported, not raised.

    Raises:
        ValueError: If job_id is not registered
    """
    job = _job_registry.get(job_id)
    if job is None:
        raise ValueError(f"Job {job_id} not found. Registered jobs: {sorted(_job_registry)}")

    executed_at = datetime.now(UTC)
    report: dict[str, Any] = {"job_id": job_id, "executed_at": executed_at.isoformat()}
    logger.info(f"Manually triggering job: {job_id}")

    try:
        report["result"] = await job.func()
    except Exception as e:
        logger.error(f"Manual run of job {job_id} failed: {e}", exc_info=True)
        job.record_run(e)
        report.update(status="error", error=str(e))
        return report

    job.record_run()
    report["status"] = "success"
    return report


def list_registered_jobs() -> list[dict[str, Any]]:
    """Registered jobs with last run outcome and, once started, next run and pause state."""
    jobs = []

    for job_id, job in _job_registry.items():
        info: dict[str, Any] = {
            "job_id": job_id,
            "registered": True,
            "last_run_at": job.last_run_at.isoformat() if job.last_run_at else None,
            "last_status": job.last_status,
            "last_error": job.last_error,
        }

        if _scheduler is not None:
            scheduled = _scheduler.get_job(job_id)
            next_run = scheduled.next_run_time if scheduled else None
            info["next_run_time"] = next_run.isoformat() if next_run else None
            info["is_paused"] = next_run is None

        jobs.append(info)

    return jobs


def pause_job(job_id: str) -> bool:
    if _scheduler is None or not _scheduler.get_job(job_id):
        logger.warning(f"Cannot pause unknown job: {job_id}")
        return False
    _scheduler.pause_job(job_id)
    logger.info(f"Paused job: {job_id}")
    return True


def resume_job(job_id: str) -> bool:
    if _scheduler is None or not _scheduler.get_job(job_id):
        logger.warning(f"Cannot resume unknown job: {job_id}")
        return False
    _scheduler.resume_job(job_id)
    logger.info(f"Resumed job: {job_id}")
    return True
