import logging
from datetime import date, datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from deliverywatch.services.master_stock_service import MasterStockService
from deliverywatch.services.spike_count_service import DeliverySpikeCountService
from deliverywatch.services.spike_count_store import SpikeCountStore
from deliverywatch.services.spike_evaluation_service import SpikeEvaluationService, SymbolSpikeReport

logger = logging.getLogger(__name__)

router = APIRouter()


def _round(value: Optional[float], digits: int = 2) -> Optional[float]:
    return None if value is None else round(value, digits)


class SpikeCountResponse(BaseModel):
    symbol: str
    spikes_1w: int
    spikes_1m: int
    spikes_3m: int
    spikes_6m: int

    class Config:
        from_attributes = True


class SpikeCountListResponse(BaseModel):
    status: str = "success"
    data: list[SpikeCountResponse]
    total_stocks: int


class WindowSetResponse(BaseModel):
    avg_1: Optional[float] = None
    avg_3: Optional[float] = None
    avg_7: Optional[float] = None
    avg_30: Optional[float] = None
    avg_180: Optional[float] = None


class SpikeDayResponse(WindowSetResponse):
    trade_date: date
    delivery_percentage: Optional[float] = None
    close_price: Optional[float] = None
    spike: bool
    adaptive_spike: bool


class SymbolSpikeDetailResponse(BaseModel):
    symbol: str
    as_of_date: date
    spikes_1w: int
    spikes_1m: int
    spikes_3m: int
    spikes_6m: int
    adaptive_counts: dict[str, int]
    latest: Optional[WindowSetResponse] = None
    avg_close_at_spikes: dict[str, Optional[float]]
    latest_close: Optional[float] = None
    history_rows: int
    days: list[SpikeDayResponse] = Field(default_factory=list)


class RecomputeRequest(BaseModel):
    symbols: Optional[list[str]] = None
    as_of_date: Optional[date] = None


class RecomputeResponse(BaseModel):
    as_of_date: date
    started_at: datetime
    finished_at: Optional[datetime] = None
    total: int
    succeeded: int
    failed: list[str]
    cancelled: bool
    pruned: int


def get_spike_count_store() -> SpikeCountStore:
    return SpikeCountStore()


def get_evaluation_service() -> SpikeEvaluationService:
    return SpikeEvaluationService()


def get_master_stock_service() -> MasterStockService:
    return MasterStockService()


def get_spike_count_service() -> DeliverySpikeCountService:
    return DeliverySpikeCountService()


def _detail_response(report: SymbolSpikeReport) -> SymbolSpikeDetailResponse:
    latest = None
    if report.latest_window_set is not None:
        ws = report.latest_window_set
        latest = WindowSetResponse(
            avg_1=_round(ws.avg1),
            avg_3=_round(ws.avg3),
            avg_7=_round(ws.avg7),
            avg_30=_round(ws.avg30),
            avg_180=_round(ws.avg180),
        )
    days = [
        SpikeDayResponse(
            trade_date=day.trade_date,
            delivery_percentage=day.delivery_percentage,
            close_price=day.close_price,
            spike=day.spike,
            adaptive_spike=day.adaptive_spike,
            **{f"avg_{w}": _round(v) for w, v in day.averages.items()},
        )
        for day in report.days
    ]
    return SymbolSpikeDetailResponse(
        symbol=report.symbol,
        as_of_date=report.as_of_date,
        **report.counts.as_dict(),
        adaptive_counts=report.adaptive_counts,
        latest=latest,
        avg_close_at_spikes={k: _round(v) for k, v in report.avg_close_at_spikes.items()},
        latest_close=report.latest_close,
        history_rows=report.history_rows,
        days=days,
    )


@router.get("", response_model=SpikeCountListResponse)
async def list_delivery_spikes(
    store: SpikeCountStore = Depends(get_spike_count_store),
):
    """Symbols with at least one delivery spike in any period, most 1W spikes first."""
    rows = await store.list_with_spikes()
    data = [SpikeCountResponse.model_validate(row) for row in rows]
    return SpikeCountListResponse(data=data, total_stocks=len(data))


@router.get("/{symbol}", response_model=SymbolSpikeDetailResponse)
async def get_symbol_spikes(
    symbol: str,
    as_of_date: Optional[date] = Query(default=None, description="Defaults to the latest trading date"),
    include_days: bool = Query(default=True),
    evaluator: SpikeEvaluationService = Depends(get_evaluation_service),
    stocks: MasterStockService = Depends(get_master_stock_service),
):
    symbol = symbol.strip().upper()
    report = await evaluator.evaluate(symbol, as_of_date=as_of_date, include_days=include_days)
    if report.history_rows == 0 and not await stocks.is_listed(symbol):
        raise HTTPException(status_code=404, detail=f"Unknown symbol: {symbol}")
    return _detail_response(report)


@router.post("/recompute", response_model=RecomputeResponse)
async def recompute_delivery_spikes(
    request: RecomputeRequest,
    service: DeliverySpikeCountService = Depends(get_spike_count_service),
):
    symbols = [s.strip().upper() for s in request.symbols] if request.symbols else None
    summary = await service.recompute_all(as_of_date=request.as_of_date, symbols=symbols)
    return RecomputeResponse(**summary.as_dict())
