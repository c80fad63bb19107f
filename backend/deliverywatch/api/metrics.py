"""
Read-only view of recompute metrics held in this process's buffer.
"""
from itertools import islice
from typing import Any, List, Optional

from fastapi import APIRouter, Query
from pydantic import BaseModel

from deliverywatch.core.metrics import MetricEvent, metrics

router = APIRouter()


class MetricEventResponse(BaseModel):
    timestamp: str
    category: str
    event_type: str
    symbol: Optional[str]
    value: float
    metadata: dict[str, Any]


class MetricsSummary(BaseModel):
    period_hours: int
    total_events: int
    by_category: dict[str, int]
    by_event: dict[str, int]
    batches_processed: int
    symbols_failed: int
    failed_symbols: List[str]
    last_batch: Optional[MetricEventResponse] = None


def _matches(event: MetricEvent, category: Optional[str], event_type: Optional[str],
             symbol: Optional[str]) -> bool:
    return (
        (category is None or event.category == category)
        and (event_type is None or event.event_type == event_type)
        and (symbol is None or event.symbol == symbol.upper())
    )


@router.get("/summary", response_model=MetricsSummary)
async def get_metrics_summary(
    hours: int = Query(default=24, ge=1, le=168, description="Hours of history to include"),
) -> MetricsSummary:
    return MetricsSummary(**metrics.get_summary(hours=hours))


@router.get("/events", response_model=List[MetricEventResponse])
async def get_recent_events(
    category: Optional[str] = Query(default=None, description="pipeline or spikes"),
    event_type: Optional[str] = Query(default=None),
    symbol: Optional[str] = Query(default=None),
    limit: int = Query(default=100, ge=1, le=1000),
    hours: int = Query(default=24, ge=1, le=168),
) -> List[MetricEventResponse]:
    """Most recent events first."""
    events = (
        e for e in reversed(metrics.recent(hours))
        if _matches(e, category, event_type, symbol)
    )
    return [MetricEventResponse(**e.to_dict()) for e in islice(events, limit)]


@router.post("/clear")
async def clear_metrics_buffer() -> dict:
    return {"status": "cleared", "events_cleared": metrics.clear_buffer()}
