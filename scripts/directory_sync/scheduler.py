"""APScheduler-based interval scheduling for the sync pass."""

from __future__ import annotations

import logging
from typing import Optional

from apscheduler.events import EVENT_JOB_ERROR
from apscheduler.schedulers.blocking import BlockingScheduler

from scripts.directory_sync.config import DirectorySyncConfig

logger = logging.getLogger("directory_sync.scheduler")


def _sync_once(config: DirectorySyncConfig, selection: Optional[str] = None) -> None:
    """Bootstrap and run one full pass. Failures wait for the next interval."""
    from scripts.directory_sync.cli import bootstrap, run_pass

    boot = bootstrap(config, selection=selection)
    if not boot.ok:
        logger.error("Scheduled sync could not start: %s", boot.error)
        return
    try:
        sync_report, orphan_report = run_pass(boot)
        logger.info(
            "Scheduled sync complete: %s, %d orphan(s)",
            sync_report.summary(), orphan_report.count,
        )
    finally:
        boot.close()


def _on_job_error(event) -> None:
    """Log job execution errors."""
    logger.error(
        "Job %s raised an exception: %s",
        event.job_id,
        event.exception,
    )


def build_scheduler(
    config: DirectorySyncConfig, selection: Optional[str] = None
) -> BlockingScheduler:
    scheduler = BlockingScheduler()
    scheduler.add_listener(_on_job_error, EVENT_JOB_ERROR)
    sched = config.scheduler

    # max_instances=1: passes never overlap
    scheduler.add_job(
        _sync_once,
        "interval",
        minutes=sched.interval_min,
        args=[config, selection],
        id="directory_sync",
        max_instances=1,
        coalesce=True,
        misfire_grace_time=sched.misfire_grace_time,
    )
    return scheduler


def start_scheduler(config: DirectorySyncConfig, selection: Optional[str] = None) -> None:
    """Start the blocking scheduler with the interval sync job."""
    scheduler = build_scheduler(config, selection)
    logger.info("Starting scheduler with jobs: %s",
                [j.id for j in scheduler.get_jobs()])
    scheduler.start()
