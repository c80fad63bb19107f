import logging
import math
from contextlib import asynccontextmanager
from datetime import date, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Optional

import pandas as pd
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from deliverywatch.core.config import settings
from deliverywatch.core.database import AsyncSessionLocal
from deliverywatch.models.daily_record import DailyRecord
from deliverywatch.strategy.delivery_spike_engine import (
    CLOSE_COLUMN,
    DELIVERY_COLUMN,
    LONGEST_PERIOD,
    LONGEST_WINDOW,
    period_cutoff,
)

logger = logging.getLogger(__name__)

# Placeholders the exchange files use for "no value".
_BLANK_MARKERS = {"", "-", "--", "NA", "N/A", "null", "None"}


class MalformedRecordError(ValueError):
    """A bhavcopy value that is present but not usable."""


def is_blank(value: Any) -> bool:
    """True for None, NaN and the exchange's "no value" placeholders."""
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() in _BLANK_MARKERS
    if isinstance(value, float):
        return math.isnan(value)
    return False


def to_optional_float(value: Any) -> float | None:
    """Normalize Decimal / str / float / None into a finite float or None."""
    if is_blank(value):
        return None
    if isinstance(value, str):
        value = value.strip().replace(",", "")
    try:
        numeric = float(Decimal(value)) if isinstance(value, str) else float(value)
    except (TypeError, ValueError, InvalidOperation):
        return None
    if not math.isfinite(numeric):
        return None
    return numeric


def to_delivery_percentage(value: Any) -> float | None:
    """
    Delivery percentage in [0, 100], or None when the value is blank.

    Raises MalformedRecordError for anything else, so a corrupt row fails
    its symbol instead of silently thinning the averaging windows.
    """
    if is_blank(value):
        return None
    numeric = to_optional_float(value)
    if numeric is None or numeric < 0 or numeric > 100:
        raise MalformedRecordError(f"invalid delivery percentage {value!r}")
    return numeric


def build_series_frame(
    rows: Iterable[tuple[date, Any, Any]],
    symbol: str | None = None,
) -> pd.DataFrame:
    """
    Build an engine input frame from ``(trade_date, deliv_per, close_price)``
    rows. Raw values are normalized here so the engine only sees floats/NaN.
    """
    data = []
    for trade_date, deliv_per, close_price in rows:
        try:
            delivery = to_delivery_percentage(deliv_per)
        except MalformedRecordError as exc:
            raise MalformedRecordError(f"{symbol or '?'} {trade_date}: {exc}") from exc
        close = to_optional_float(close_price)
        if close is None and not is_blank(close_price):
            logger.warning("Ignoring close price %r for %s on %s", close_price, symbol, trade_date)
        data.append({"trade_date": trade_date, DELIVERY_COLUMN: delivery, CLOSE_COLUMN: close})

    if not data:
        empty = pd.DataFrame(columns=[DELIVERY_COLUMN, CLOSE_COLUMN], dtype=float)
        empty.index = pd.DatetimeIndex([], name="trade_date")
        return empty

    df = pd.DataFrame(data)
    df["trade_date"] = pd.to_datetime(df["trade_date"])
    df[DELIVERY_COLUMN] = df[DELIVERY_COLUMN].astype(float)
    df[CLOSE_COLUMN] = df[CLOSE_COLUMN].astype(float)
    return df.sort_values("trade_date").set_index("trade_date")


class DeliverySeriesSource:
    """
    Reads per-symbol delivery percentage history for one market segment.

    Without an injected session every call opens its own session, so one
    instance can serve concurrent batch workers.
    """

    def __init__(
        self,
        session: Optional[AsyncSession] = None,
        series: str | None = None,
        history_buffer_days: int | None = None,
    ):
        self.session = session
        self.series = series or settings.SPIKE_SERIES
        buffer_days = (
            history_buffer_days
            if history_buffer_days is not None
            else settings.SPIKE_HISTORY_BUFFER_DAYS
        )
        if buffer_days < LONGEST_WINDOW:
            raise ValueError(
                f"history buffer must cover the {LONGEST_WINDOW}-day window, got {buffer_days}"
            )
        self.history_buffer_days = buffer_days

    def history_start(self, as_of_date: date) -> date:
        """First date loaded for a run ending at as_of_date."""
        return period_cutoff(as_of_date, LONGEST_PERIOD) - timedelta(days=self.history_buffer_days)

    async def load(self, symbol: str, as_of_date: date) -> pd.DataFrame:
        """Ascending delivery history for symbol from history_start through as_of_date."""
        start_date = self.history_start(as_of_date)
        stmt = (
            select(DailyRecord.trade_date, DailyRecord.deliv_per, DailyRecord.close_price)
            .where(
                DailyRecord.symbol == symbol,
                DailyRecord.series == self.series,
                DailyRecord.trade_date >= start_date,
                DailyRecord.trade_date <= as_of_date,
            )
            .order_by(DailyRecord.trade_date.asc())
        )
        async with self._get_session() as session:
            result = await session.execute(stmt)
            rows = result.all()

        frame = build_series_frame(((row[0], row[1], row[2]) for row in rows), symbol=symbol)
        logger.debug(
            "Loaded %d %s rows for %s (%s..%s)",
            len(frame), self.series, symbol, start_date, as_of_date,
        )
        return frame

    async def latest_trade_date(self, symbol: str) -> Optional[date]:
        stmt = select(func.max(DailyRecord.trade_date)).where(
            DailyRecord.symbol == symbol,
            DailyRecord.series == self.series,
        )
        async with self._get_session() as session:
            result = await session.execute(stmt)
            return result.scalar_one_or_none()

    @asynccontextmanager
    async def _get_session(self):
        if self.session is not None:
            yield self.session
        else:
            async with AsyncSessionLocal() as session:
                yield session
