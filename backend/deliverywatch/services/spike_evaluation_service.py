from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import date
from typing import Optional

import pandas as pd

from deliverywatch.services.delivery_series_source import DeliverySeriesSource
from deliverywatch.strategy.delivery_spike_engine import (
    CLOSE_COLUMN,
    DELIVERY_COLUMN,
    PERIOD_DAYS,
    ROLLING_WINDOWS,
    DeliverySpikeEngine,
    RollingWindowSet,
    SpikeCountResult,
    average_column,
)

logger = logging.getLogger(__name__)


@dataclass
class DaySpikeFlag:
    trade_date: date
    delivery_percentage: Optional[float]
    close_price: Optional[float]
    averages: dict[int, Optional[float]]
    spike: bool
    adaptive_spike: bool


@dataclass
class SymbolSpikeReport:
    symbol: str
    as_of_date: date
    counts: SpikeCountResult
    adaptive_counts: dict[str, int]
    latest_window_set: Optional[RollingWindowSet]
    avg_close_at_spikes: dict[str, Optional[float]]
    latest_close: Optional[float]
    history_rows: int
    days: list[DaySpikeFlag] = field(default_factory=list)


def _optional(value) -> Optional[float]:
    if value is None:
        return None
    numeric = float(value)
    return None if math.isnan(numeric) else numeric


class SpikeEvaluationService:
    """
    On-demand delivery spike evaluation for a single symbol.

    Loads history through the same source and runs the same engine as the
    batch recompute, so counts match the persisted row for the same as-of
    date. Nothing is written.
    """

    def __init__(
        self,
        source: DeliverySeriesSource | None = None,
        engine: DeliverySpikeEngine | None = None,
    ) -> None:
        self.source = source or DeliverySeriesSource()
        self.engine = engine or DeliverySpikeEngine()

    async def evaluate(
        self,
        symbol: str,
        as_of_date: date | None = None,
        include_days: bool = True,
    ) -> SymbolSpikeReport:
        # Markets may be closed today; default to the last date with data.
        target_date = as_of_date or await self.source.latest_trade_date(symbol) or date.today()
        frame = await self.source.load(symbol, target_date)

        # One classification pass feeds the counts and every per-day view.
        annotated = self.engine.annotate(frame, target_date)
        counts = SpikeCountResult(
            symbol=symbol,
            as_of_date=target_date,
            **{
                f"spikes_{label}": count
                for label, count in self.engine.period_counts(annotated, target_date, "spike").items()
            },
        )

        report = SymbolSpikeReport(
            symbol=symbol,
            as_of_date=target_date,
            counts=counts,
            adaptive_counts=self.engine.period_counts(annotated, target_date, "adaptive_spike"),
            latest_window_set=self._latest_window_set(annotated),
            avg_close_at_spikes={
                label: self.engine.average_close_at_spikes(annotated, target_date, days)
                for label, days in PERIOD_DAYS.items()
            },
            latest_close=self._latest_close(annotated),
            history_rows=len(annotated),
        )
        if include_days:
            report.days = self._day_flags(annotated)

        logger.debug("On-demand spike counts for %s as of %s: %s", symbol, target_date, counts.as_dict())
        return report

    def _latest_window_set(self, annotated: pd.DataFrame) -> Optional[RollingWindowSet]:
        if annotated.empty:
            return None
        last = annotated.iloc[-1]
        return RollingWindowSet(*(_optional(last[average_column(w)]) for w in ROLLING_WINDOWS))

    def _latest_close(self, annotated: pd.DataFrame) -> Optional[float]:
        if annotated.empty or CLOSE_COLUMN not in annotated.columns:
            return None
        return _optional(annotated[CLOSE_COLUMN].iloc[-1])

    def _day_flags(self, annotated: pd.DataFrame) -> list[DaySpikeFlag]:
        days = []
        for trade_date, row in annotated.iterrows():
            days.append(
                DaySpikeFlag(
                    trade_date=trade_date.date(),
                    delivery_percentage=_optional(row[DELIVERY_COLUMN]),
                    close_price=_optional(row.get(CLOSE_COLUMN)),
                    averages={w: _optional(row[average_column(w)]) for w in ROLLING_WINDOWS},
                    spike=bool(row["spike"]),
                    adaptive_spike=bool(row["adaptive_spike"]),
                )
            )
        return days
