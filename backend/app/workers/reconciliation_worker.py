"""
Reconciliation background worker.
Runs the expired-hold sweep on a fixed interval.

Started from the application lifespan, or standalone:
    python -m app.workers.reconciliation_worker
"""

import asyncio
import time

from app.core.config import get_settings
from app.core.logging import get_logger, setup_logging
from app.core.metrics import reconciliation_duration, reconciliation_runs
from app.db.session import transaction
from app.services.cache_service import invalidate_event_cache
from app.services.reconciliation_service import run_reconciliation

logger = get_logger(__name__)


async def run_once() -> dict:
    """One sweep in its own transaction."""
    start = time.perf_counter()
    try:
        async with transaction() as session:
            summary = await run_reconciliation(session)
    except Exception:
        reconciliation_runs.labels(result="error").inc()
        raise
    reconciliation_runs.labels(result="ok").inc()
    reconciliation_duration.observe(time.perf_counter() - start)

    if summary["released"]:
        await invalidate_event_cache()
    return summary


async def run_reconciliation_worker(interval_seconds: int | None = None) -> None:
    """Main worker loop. Errors are logged and the loop keeps going."""
    interval = interval_seconds or get_settings().RECONCILIATION_INTERVAL_SECONDS
    logger.info("reconciliation_worker_started", interval_seconds=interval)

    while True:
        try:
            await run_once()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception("reconciliation_worker_error", error=str(e))
        await asyncio.sleep(interval)


if __name__ == "__main__":
    setup_logging()
    asyncio.run(run_reconciliation_worker())
