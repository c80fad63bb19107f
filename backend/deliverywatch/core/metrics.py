"""
Run metrics for the delivery spike recompute.

Every event goes to the application log, to the in-memory ring buffer read
by the metrics API and, when a client is attached, to the Redis metrics
stream. Code running on the event loop uses the ``*_async`` emitters with an
async client so publishing never blocks the batch workers.
"""
import json
import logging
from collections import Counter, deque
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Deque, Dict, List, Optional

from deliverywatch.core.redis import StreamNames

logger = logging.getLogger(__name__)


@dataclass
class MetricEvent:
    timestamp: datetime
    category: str          # "pipeline" or "spikes"
    event_type: str        # "batch_processed", "symbol_failed", "counted"
    symbol: Optional[str]
    value: float
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def key(self) -> str:
        return f"{self.category}/{self.event_type}"

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp.isoformat(),
            "category": self.category,
            "event_type": self.event_type,
            "symbol": self.symbol,
            "value": self.value,
            "metadata": self.metadata,
        }


class MetricsEmitter:
    """
    Collects recompute metrics.

    Batch workers share one event loop, so the buffer needs no locking.
    """

    CATEGORY_PIPELINE = "pipeline"
    CATEGORY_SPIKES = "spikes"

    def __init__(self, redis_client=None, async_redis_client=None, buffer_size: int = 1000):
        self.redis = redis_client
        self.async_redis = async_redis_client
        self._buffer: Deque[MetricEvent] = deque(maxlen=buffer_size)
        self._enabled = True

    def set_redis(self, redis_client) -> None:
        """Attach (or detach with None) the sync Redis client used by ``emit``."""
        self.redis = redis_client

    def set_async_redis(self, redis_client) -> None:
        """Attach (or detach with None) the async Redis client used by ``emit_async``."""
        self.async_redis = redis_client

    def enable(self) -> None:
        self._enabled = True

    def disable(self) -> None:
        self._enabled = False

    def _record(
        self,
        category: str,
        event_type: str,
        value: float,
        symbol: Optional[str],
        metadata: Optional[dict],
    ) -> MetricEvent:
        event = MetricEvent(
            timestamp=datetime.now(timezone.utc),
            category=category,
            event_type=event_type,
            symbol=symbol,
            value=value,
            metadata=metadata or {},
        )
        logger.info(
            f"METRIC [{event.key}] symbol={symbol} value={value}"
            + (f" {metadata}" if metadata else "")
        )
        self._buffer.append(event)
        return event

    def emit(
        self,
        category: str,
        event_type: str,
        value: float,
        symbol: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> Optional[MetricEvent]:
        """Record one event. Returns None while the emitter is disabled."""
        if not self._enabled:
            return None

        event = self._record(category, event_type, value, symbol, metadata)
        if self.redis is not None:
            try:
                self.redis.xadd(StreamNames.METRICS, {"data": json.dumps(event.to_dict())})
            except Exception as e:
                logger.warning(f"Failed to publish metric to Redis: {e}")

        return event

    async def emit_async(
        self,
        category: str,
        event_type: str,
        value: float,
        symbol: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> Optional[MetricEvent]:
        """Async version of emit for coroutines sharing the event loop."""
        if not self._enabled:
            return None

        event = self._record(category, event_type, value, symbol, metadata)
        if self.async_redis is not None:
            try:
                await self.async_redis.xadd(StreamNames.METRICS, {"data": json.dumps(event.to_dict())})
            except Exception as e:
                logger.warning(f"Failed to publish metric to Redis: {e}")

        return event

    # -------------------------------------------------------------------------
    # Recompute events
    # -------------------------------------------------------------------------

    @classmethod
    def _batch_processed(cls, stage: str, count: int, success: int,
                         failed: int, duration_ms: float) -> dict:
        return dict(
            category=cls.CATEGORY_PIPELINE, event_type="batch_processed", value=count,
            metadata={
                "stage": stage,
                "success": success,
                "failed": failed,
                "duration_ms": round(duration_ms, 2),
            },
        )

    @classmethod
    def _symbol_failed(cls, symbol: str, stage: str, error: str) -> dict:
        return dict(
            category=cls.CATEGORY_PIPELINE, event_type="symbol_failed", value=1.0,
            symbol=symbol,
            metadata={"stage": stage, "error": error},
        )

    @classmethod
    def _spikes_counted(cls, symbol: str, spikes_1w: int, spikes_1m: int,
                        spikes_3m: int, spikes_6m: int) -> dict:
        # value is the 1W count
        return dict(
            category=cls.CATEGORY_SPIKES, event_type="counted", value=spikes_1w,
            symbol=symbol,
            metadata={"spikes_1m": spikes_1m, "spikes_3m": spikes_3m, "spikes_6m": spikes_6m},
        )

    def batch_processed(self, stage: str, count: int, success: int,
                        failed: int, duration_ms: float) -> Optional[MetricEvent]:
        return self.emit(**self._batch_processed(stage, count, success, failed, duration_ms))

    async def batch_processed_async(self, stage: str, count: int, success: int,
                                    failed: int, duration_ms: float) -> Optional[MetricEvent]:
        return await self.emit_async(**self._batch_processed(stage, count, success, failed, duration_ms))

    def symbol_failed(self, symbol: str, stage: str, error: str) -> Optional[MetricEvent]:
        """A symbol whose recompute raised and was skipped."""
        return self.emit(**self._symbol_failed(symbol, stage, error))

    async def symbol_failed_async(self, symbol: str, stage: str, error: str) -> Optional[MetricEvent]:
        return await self.emit_async(**self._symbol_failed(symbol, stage, error))

    def spikes_counted(self, symbol: str, spikes_1w: int, spikes_1m: int,
                       spikes_3m: int, spikes_6m: int) -> Optional[MetricEvent]:
        """Counts for a symbol with at least one spike."""
        return self.emit(**self._spikes_counted(symbol, spikes_1w, spikes_1m, spikes_3m, spikes_6m))

    async def spikes_counted_async(self, symbol: str, spikes_1w: int, spikes_1m: int,
                                   spikes_3m: int, spikes_6m: int) -> Optional[MetricEvent]:
        return await self.emit_async(
            **self._spikes_counted(symbol, spikes_1w, spikes_1m, spikes_3m, spikes_6m)
        )

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def get_buffer(self) -> List[MetricEvent]:
        return list(self._buffer)

    def recent(self, hours: int = 24) -> List[MetricEvent]:
        cutoff = datetime.now(timezone.utc) - timedelta(hours=hours)
        return [e for e in self._buffer if e.timestamp >= cutoff]

    def get_summary(self, hours: int = 24) -> dict:
        """Event counts over the last ``hours`` plus the latest batch outcome."""
        events = self.recent(hours)
        by_event = Counter(e.key for e in events)
        batches = [e for e in events if e.key == "pipeline/batch_processed"]

        return {
            "period_hours": hours,
            "total_events": len(events),
            "by_category": dict(Counter(e.category for e in events)),
            "by_event": dict(by_event),
            "batches_processed": by_event["pipeline/batch_processed"],
            "symbols_failed": by_event["pipeline/symbol_failed"],
            "failed_symbols": sorted({e.symbol for e in events if e.key == "pipeline/symbol_failed"}),
            "last_batch": batches[-1].to_dict() if batches else None,
        }

    def clear_buffer(self) -> int:
        """Empty the buffer; returns how many events were dropped."""
        count = len(self._buffer)
        self._buffer.clear()
        return count


metrics = MetricsEmitter()
