from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Optional

from deliverywatch.core.config import settings
from deliverywatch.core.metrics import metrics
from deliverywatch.services.delivery_series_source import DeliverySeriesSource
from deliverywatch.services.master_stock_service import MasterStockService
from deliverywatch.services.spike_count_store import SpikeCountStore
from deliverywatch.strategy.delivery_spike_engine import DeliverySpikeEngine, SpikeCountResult

logger = logging.getLogger(__name__)


@dataclass
class BatchRunSummary:
    as_of_date: date
    started_at: datetime
    finished_at: Optional[datetime] = None
    total: int = 0
    succeeded: int = 0
    failed: list[str] = field(default_factory=list)
    cancelled: bool = False
    pruned: int = 0

    def as_dict(self) -> dict[str, object]:
        return {
            "as_of_date": str(self.as_of_date),
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": list(self.failed),
            "cancelled": self.cancelled,
            "pruned": self.pruned,
        }


class DeliverySpikeCountService:
    """
    Recompute and persist delivery spike counts for the active universe.

    Every symbol is re-derived from its full history and written in its own
    transaction; a failing symbol is logged and skipped, leaving its row as
    it was. All rows written by one run share the run's start instant.
    """

    def __init__(
        self,
        source: DeliverySeriesSource | None = None,
        store: SpikeCountStore | None = None,
        stock_service: MasterStockService | None = None,
        engine: DeliverySpikeEngine | None = None,
        workers: int | None = None,
        prune_inactive: bool | None = None,
    ) -> None:
        self.source = source or DeliverySeriesSource()
        self.store = store or SpikeCountStore()
        self.stock_service = stock_service or MasterStockService()
        self.engine = engine or DeliverySpikeEngine()
        self.workers = max(1, workers or settings.SPIKE_BATCH_WORKERS)
        self.prune_inactive = (
            settings.SPIKE_PRUNE_INACTIVE if prune_inactive is None else prune_inactive
        )

    async def recompute_all(
        self,
        as_of_date: date | None = None,
        symbols: list[str] | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> BatchRunSummary:
        started_at = datetime.now(timezone.utc)
        target_date = as_of_date or date.today()
        full_universe = symbols is None
        universe = await self.stock_service.get_active_symbols() if full_universe else list(symbols)

        summary = BatchRunSummary(as_of_date=target_date, started_at=started_at, total=len(universe))
        logger.info(
            "Computing delivery spike counts for %d symbols as of %s (%d workers)",
            len(universe), target_date, self.workers,
        )
        if not universe:
            summary.finished_at = datetime.now(timezone.utc)
            return summary

        queue: asyncio.Queue[str] = asyncio.Queue()
        for symbol in universe:
            queue.put_nowait(symbol)

        timer = time.perf_counter()
        worker_count = min(self.workers, len(universe))
        await asyncio.gather(
            *(
                self._worker(queue, target_date, started_at, summary, cancel_event)
                for _ in range(worker_count)
            )
        )
        summary.cancelled = cancel_event is not None and cancel_event.is_set()

        if full_universe and self.prune_inactive and not summary.cancelled:
            summary.pruned = await self.store.delete_except(universe)
            if summary.pruned:
                logger.info("Removed %d spike count rows for inactive symbols", summary.pruned)

        summary.finished_at = datetime.now(timezone.utc)
        duration_ms = (time.perf_counter() - timer) * 1000
        await metrics.batch_processed_async(
            stage="delivery_spike_counts",
            count=summary.succeeded + len(summary.failed),
            success=summary.succeeded,
            failed=len(summary.failed),
            duration_ms=duration_ms,
        )
        logger.info(
            "Delivery spike counts done: %d ok, %d failed, cancelled=%s",
            summary.succeeded, len(summary.failed), summary.cancelled,
        )
        return summary

    async def recompute_symbol(
        self,
        symbol: str,
        as_of_date: date,
        updated_at: datetime,
    ) -> SpikeCountResult:
        frame = await self.source.load(symbol, as_of_date)
        result = self.engine.compute_for_symbol(symbol, frame, as_of_date)
        await self.store.upsert(result, updated_at)
        return result

    async def _worker(
        self,
        queue: asyncio.Queue[str],
        as_of_date: date,
        updated_at: datetime,
        summary: BatchRunSummary,
        cancel_event: asyncio.Event | None,
    ) -> None:
        while not (cancel_event is not None and cancel_event.is_set()):
            try:
                symbol = queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            try:
                result = await self.recompute_symbol(symbol, as_of_date, updated_at)
            except Exception as exc:
                logger.error("Spike count failed for %s: %s", symbol, exc, exc_info=True)
                summary.failed.append(symbol)
                await metrics.symbol_failed_async(symbol, stage="delivery_spike_counts", error=str(exc))
                continue
            summary.succeeded += 1
            if result.has_spikes:
                await metrics.spikes_counted_async(symbol, **result.as_dict())
            logger.debug("%s: %s", symbol, result.as_dict())
