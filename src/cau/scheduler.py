"""
Scheduler — periodic import + export (`cau sync`).

Infrastructure layer — uses APScheduler (3.x) for lightweight in-process
scheduling driven by a standard 5-field cron expression.

Jobs never overlap (max_instances=1), and the store's advisory lock keeps
a manual `cau import` from running alongside a scheduled pass.

Graceful shutdown: handles SIGINT/SIGTERM to stop the scheduler cleanly.
"""

from __future__ import annotations

import signal
import sys
import time
from collections.abc import Callable

import structlog
from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger

from cau.domain.models import ExportReport, ReconcileReport
from cau.result import Result

log = structlog.get_logger()

type SyncFn = Callable[[], Result[tuple[ReconcileReport, ExportReport]]]


def run_sync_job(sync_fn: SyncFn) -> Result[tuple[ReconcileReport, ExportReport]]:
    """Execute one sync and log its outcome and duration."""
    log.info("scheduler.job_started")
    start = time.monotonic()
    result = sync_fn()
    elapsed = round(time.monotonic() - start, 3)
    if result.is_success():
        reconciled, exported = result.value()
        log.info(
            "scheduler.job_completed",
            elapsed_seconds=elapsed,
            inserted=reconciled.inserted,
            updated=reconciled.updated,
            deleted=reconciled.deleted,
            exported=exported.certificates,
            target=exported.target,
        )
    else:
        log.error("scheduler.job_failed", elapsed_seconds=elapsed, failure=str(result.error()))
    return result


def create_scheduler(
    sync_fn: SyncFn,
    cron: str = "0 */6 * * *",
    run_on_startup: bool = True,
) -> BlockingScheduler:
    """
    Create a configured APScheduler that runs the sync on a cron schedule.

    Args:
        sync_fn: Zero-argument callable running one import + export.
        cron: Standard 5-field cron expression (minute hour dom month dow).
        run_on_startup: If True, execute once immediately before entering the loop.

    Returns:
        A configured BlockingScheduler (call .start() to begin).
    """
    scheduler = BlockingScheduler()

    def _job() -> None:
        run_sync_job(sync_fn)

    minute, hour, dom, month, dow = cron.split()
    scheduler.add_job(
        _job,
        trigger=CronTrigger(
            minute=minute,
            hour=hour,
            day=dom,
            month=month,
            day_of_week=dow,
        ),
        id="cau_sync",
        name="CA certificate sync",
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )

    if run_on_startup:
        log.info("scheduler.startup_run", message="Running sync immediately on startup")
        _job()

    _register_shutdown_signals(scheduler)

    return scheduler


def _register_shutdown_signals(scheduler: BlockingScheduler) -> None:
    """Register SIGINT and SIGTERM handlers for graceful shutdown."""

    def _shutdown(signum: int, frame: object) -> None:
        log.info("scheduler.shutdown_requested", signal=signal.Signals(signum).name)
        scheduler.shutdown(wait=False)
        sys.exit(0)

    signal.signal(signal.SIGINT, _shutdown)
    signal.signal(signal.SIGTERM, _shutdown)
