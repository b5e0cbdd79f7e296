"""
Core Background Jobs

- rate_limit_prune: hourly removal of expired rate limit ledger rows
"""

import logging
from typing import Any

from apscheduler.triggers.interval import IntervalTrigger

from admissions.core.rate_limit import prune_expired_records
from admissions.core.scheduler import register_job

logger = logging.getLogger(__name__)

JOB_ID_PRUNE_RATE_LIMITS = "rate_limit_prune"


async def prune_rate_limit_records() -> dict[str, Any]:
    """Delete rate limit records older than the retention period."""
    removed = await prune_expired_records()
    logger.info(f"Rate limit prune job removed {removed} record(s)")
    return {"removed": removed}


def register_core_jobs() -> None:
    logger.info("Registering core background jobs...")
    register_job(
        job_id=JOB_ID_PRUNE_RATE_LIMITS,
        func=prune_rate_limit_records,
        trigger=IntervalTrigger(hours=1),
    )
    logger.info(f"Registered job: {JOB_ID_PRUNE_RATE_LIMITS} (interval: 1 hour)")
