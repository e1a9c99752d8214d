"""STRATA — Scheduler Jobs.

APScheduler jobs for each compaction stage on its own cadence:
  raw → hourly     every hour
  hourly → daily   daily at the configured hour
  daily → weekly   weekly on the configured day
  pruning          daily, after hourly → daily

Compaction scans are blocking, so every job runs on a worker thread.
"""

import asyncio
from typing import Any, Callable, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from strata.compaction.metrics import CompressionMetrics
from strata.core.logging import get_logger
from strata.services import ProgressionServices

logger = get_logger("scheduler")

scheduler = AsyncIOScheduler()


async def run_blocking_job(
    name: str,
    fn: Callable[..., Any],
    *args: Any,
    metrics: Optional[CompressionMetrics] = None,
) -> None:
    """Run a blocking compaction call off the event loop and log its outcome.

    Failures are counted in `metrics` by exception type.
    """
    logger.info(f"Scheduled {name} starting...", extra={"stage": name})
    try:
        result = await asyncio.to_thread(fn, *args)
        logger.info(f"Scheduled {name} complete: {result}", extra={"stage": name})
    except Exception as e:
        logger.error(f"Scheduled {name} failed: {e}", extra={"stage": name})
        if metrics is not None:
            metrics.record_failure(type(e).__name__)


def _prune(services: ProgressionServices) -> dict:
    return {
        "weekly_deleted": services.compactor.prune_weekly(),
        "level_ups_deleted": services.compactor.prune_level_ups(),
    }


def register_jobs(target: AsyncIOScheduler, services: ProgressionServices) -> None:
    """Add one job per stage to `target`."""
    cfg = services.settings
    compactor = services.compactor
    job_kwargs = {"metrics": services.metrics}

    target.add_job(
        run_blocking_job,
        "interval",
        hours=1,
        args=["raw_to_hourly", compactor.compact_raw_to_hourly],
        kwargs=job_kwargs,
        id="raw_to_hourly",
        replace_existing=True,
        misfire_grace_time=900,
    )
    target.add_job(
        run_blocking_job,
        "cron",
        hour=cfg.compaction_hour,
        minute=10,
        args=["hourly_to_daily", compactor.compact_hourly_to_daily],
        kwargs=job_kwargs,
        id="hourly_to_daily",
        replace_existing=True,
        misfire_grace_time=3600,
    )
    target.add_job(
        run_blocking_job,
        "cron",
        day_of_week=cfg.weekly_compaction_day,
        hour=cfg.compaction_hour,
        minute=30,
        args=["daily_to_weekly", compactor.compact_daily_to_weekly],
        kwargs=job_kwargs,
        id="daily_to_weekly",
        replace_existing=True,
        misfire_grace_time=3600,
    )
    target.add_job(
        run_blocking_job,
        "cron",
        hour=cfg.compaction_hour,
        minute=45,
        args=["prune", _prune, services],
        kwargs=job_kwargs,
        id="prune",
        replace_existing=True,
        misfire_grace_time=3600,
    )

    if compactor.is_overdue():
        last = compactor.last_run()
        logger.info(
            f"Compression overdue (last: {last.isoformat() if last else 'never'}), "
            "running catch-up..."
        )
        # No trigger → runs once, immediately
        target.add_job(
            run_blocking_job,
            args=["catch_up_retention", compactor.run_retention, True],
            kwargs=job_kwargs,
            id="catch_up_retention",
            replace_existing=True,
        )


def start_scheduler(services: ProgressionServices) -> None:
    """Configure and start the scheduler."""
    cfg = services.settings
    if not services.is_active():
        logger.info("Progression tracking disabled, not scheduling compaction")
        return
    if not cfg.scheduler_enabled:
        logger.info("Scheduler disabled via config")
        return
    if not cfg.retention_enabled:
        logger.info("Progression retention disabled in config")
        return

    register_jobs(scheduler, services)
    scheduler.start()
    logger.info(
        f"Scheduler started. Daily compaction at {cfg.compaction_hour}:10 UTC, "
        f"weekly on {cfg.weekly_compaction_day}"
    )


def stop_scheduler() -> None:
    """Shutdown the scheduler gracefully."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")
