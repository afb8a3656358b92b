"""Reconciliation worker: repairs missing or stale answer quality metrics.

The request path swallows recompute failures, so an answer can be left with
an outdated score (or none at all). Every cycle this worker recomputes a
batch of answers whose metric is missing or older than
settings.reconciliation_max_age_days, then sleeps for
settings.reconciliation_interval_minutes. A full batch is followed
immediately by another one until the backlog is drained.

Usage:
    cd api
    python -m qa_engine.worker.reconciliation_worker
"""

import asyncio

import structlog

from qa_engine.config import settings
from qa_engine.database import async_session_factory
from qa_engine.logging_config import configure_logging
from qa_engine.services.recompute import BatchResult, batch_recompute_stale

log = structlog.get_logger()


async def run_reconciliation_cycle() -> BatchResult:
    """Run batches until one comes back short. Returns the combined totals."""
    total = BatchResult()
    while True:
        async with async_session_factory() as db:
            batch = await batch_recompute_stale(
                db,
                max_age_days=settings.reconciliation_max_age_days,
                limit=settings.reconciliation_batch_size,
            )
        total.processed += batch.processed
        total.updated += batch.updated
        total.failed += batch.failed
        # Failed answers stay stale; stop rather than retry them in a tight loop
        if batch.processed < settings.reconciliation_batch_size or batch.failed:
            return total


async def run_worker() -> None:
    configure_logging()
    interval = settings.reconciliation_interval_minutes * 60
    log.info(
        "reconciliation_worker_started",
        interval_minutes=settings.reconciliation_interval_minutes,
        batch_size=settings.reconciliation_batch_size,
        max_age_days=settings.reconciliation_max_age_days,
    )

    while True:
        try:
            total = await run_reconciliation_cycle()
            log.info(
                "reconciliation_cycle_completed",
                processed=total.processed,
                updated=total.updated,
                failed=total.failed,
            )
        except Exception:
            log.error("reconciliation_worker_error", exc_info=True)
        await asyncio.sleep(interval)


if __name__ == "__main__":
    asyncio.run(run_worker())
