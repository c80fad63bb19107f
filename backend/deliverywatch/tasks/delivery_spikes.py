import asyncio
import logging
from datetime import date
from typing import Optional

from deliverywatch.core.database import close_db
from deliverywatch.core.metrics import metrics
from deliverywatch.core.redis import StreamNames, close_async_redis, get_async_redis, get_redis
from deliverywatch.scheduler.celery_app import app
from deliverywatch.services.spike_count_service import BatchRunSummary, DeliverySpikeCountService

logger = logging.getLogger(__name__)


async def _compute_spike_counts_async(
    target_date: Optional[date],
    symbols: Optional[list[str]],
) -> BatchRunSummary:
    service = DeliverySpikeCountService()
    metrics.set_async_redis(await get_async_redis())
    try:
        return await service.recompute_all(as_of_date=target_date, symbols=symbols)
    finally:
        # Pooled connections are bound to this event loop.
        metrics.set_async_redis(None)
        await close_async_redis()
        await close_db()


def _publish_run(summary: BatchRunSummary) -> None:
    try:
        r = get_redis()
        r.xadd(StreamNames.SPIKE_COUNTS, {
            "event_type": "batch_complete",
            "date": str(summary.as_of_date),
            "updated_at": summary.started_at.isoformat(),
            "count": str(summary.succeeded),
        })
        if summary.failed:
            r.xadd(StreamNames.ALERTS, {
                "level": "WARNING",
                "title": "Delivery spike recompute",
                "message": f"{len(summary.failed)} symbols failed: {','.join(summary.failed[:20])}",
            })
    except Exception as e:
        logger.error(f"Failed to publish stream event: {e}")


@app.task(name="deliverywatch.tasks.delivery_spikes.compute_delivery_spike_counts")
def compute_delivery_spike_counts(
    as_of_date: str | None = None,
    symbols: list[str] | None = None,
) -> dict[str, object]:
    """
    Scheduled task to recompute delivery spike counts for active symbols.
    Runs after the day's bhavcopy has been ingested.
    """
    target_date = date.fromisoformat(as_of_date) if as_of_date else None
    summary = asyncio.run(_compute_spike_counts_async(target_date, symbols))
    _publish_run(summary)

    if summary.failed:
        logger.error(f"Delivery spike counts failed for {len(summary.failed)} symbols")
    logger.info(f"Delivery spike counts computed for {summary.succeeded} symbols as of {summary.as_of_date}")

    return {
        "status": "completed",
        "processed": summary.succeeded,
        "failed": len(summary.failed),
        "date": str(summary.as_of_date),
    }
