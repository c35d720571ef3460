"""APScheduler-based interval scheduling for directory syncs."""

from __future__ import annotations

import logging
import os
import sys
import time

from apscheduler.events import EVENT_JOB_ERROR
from apscheduler.schedulers.blocking import BlockingScheduler

from scripts.directory_ingestion.config import IngestionConfig, load_config
from scripts.directory_ingestion.errors import ConfigurationError
from scripts.directory_ingestion.logging_config import configure_logging

logger = logging.getLogger("ingestion.scheduler")


def _sync(config: IngestionConfig) -> bool:
    """Run a full sync, retrying failed runs with backoff. Returns success."""
    from scripts.directory_ingestion.cli import run_once

    max_retries = config.scheduler.max_retries
    backoff_base = 30  # seconds

    for attempt in range(max_retries + 1):
        result = run_once(config)
        if result.succeeded:
            return True
        if attempt < max_retries:
            delay = backoff_base * (2 ** attempt)
            logger.warning(
                "Sync failed (attempt %d/%d), retrying in %ds: %s",
                attempt + 1, max_retries, delay, result.error,
            )
            time.sleep(delay)
        else:
            logger.error(
                "Sync failed after %d retries: %s", max_retries, result.error,
            )
    return False


def _on_job_error(event) -> None:
    """Log job execution errors."""
    logger.error(
        "Job %s raised an exception: %s",
        event.job_id,
        event.exception,
    )


def start_scheduler(config: IngestionConfig) -> None:
    """Start the blocking scheduler with one interval job."""
    scheduler = BlockingScheduler()
    scheduler.add_listener(_on_job_error, EVENT_JOB_ERROR)
    sched = config.scheduler

    scheduler.add_job(
        _sync,
        "interval",
        hours=sched.interval_hours,
        args=[config],
        id="entra_users",
        max_instances=1,
        misfire_grace_time=sched.misfire_grace_time,
    )

    logger.info("Starting scheduler with jobs: %s",
                [j.id for j in scheduler.get_jobs()])
    scheduler.start()


def main() -> None:
    configure_logging(os.environ.get("LOG_LEVEL", "INFO"))
    try:
        config = load_config()
    except ConfigurationError as exc:
        logger.error("Configuration error: %s", exc)
        sys.exit(1)
    configure_logging(
        os.environ.get("LOG_LEVEL", "INFO"), secrets=[config.log_analytics.shared_key]
    )
    start_scheduler(config)


if __name__ == "__main__":
    main()
