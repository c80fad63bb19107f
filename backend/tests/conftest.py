"""Pytest configuration and fixtures."""

from __future__ import annotations

import asyncio
from datetime import date, datetime, timedelta
from types import SimpleNamespace
from typing import Iterable, Optional

import pandas as pd
import pytest

from deliverywatch.core.metrics import metrics
from deliverywatch.services.delivery_series_source import build_series_frame
from deliverywatch.strategy.delivery_spike_engine import SpikeCountResult

SERIES_START = date(2025, 1, 1)


def make_frame(
    values: Iterable[Optional[float]],
    start: date = SERIES_START,
    dates: Optional[Iterable[date]] = None,
    closes: Optional[Iterable[Optional[float]]] = None,
) -> pd.DataFrame:
    """Engine input frame; consecutive calendar days unless dates are given."""
    values = list(values)
    if dates is None:
        dates = [start + timedelta(days=i) for i in range(len(values))]
    dates = list(dates)
    closes = list(closes) if closes is not None else [None] * len(values)
    return build_series_frame(zip(dates, values, closes))


def ramp(n: int, low: float = 10.0, high: float = 90.0) -> list[float]:
    """Strictly increasing delivery percentages from low to high."""
    step = (high - low) / (n - 1)
    return [low + step * i for i in range(n)]


def last_date(frame: pd.DataFrame) -> date:
    return frame.index[-1].date()


class FakeSeriesSource:
    """In-memory stand-in for DeliverySeriesSource."""

    def __init__(self, frames: dict[str, pd.DataFrame], failing: Iterable[str] = (), delay: float = 0.0):
        self.frames = frames
        self.failing = set(failing)
        self.delay = delay
        self.loads: list[tuple[str, date]] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def load(self, symbol: str, as_of_date: date) -> pd.DataFrame:
        self.loads.append((symbol, as_of_date))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if symbol in self.failing:
                raise RuntimeError(f"malformed record for {symbol}")
            frame = self.frames.get(symbol)
            if frame is None:
                return build_series_frame([])
            return frame.loc[frame.index <= pd.Timestamp(as_of_date)]
        finally:
            self.in_flight -= 1

    async def latest_trade_date(self, symbol: str) -> Optional[date]:
        frame = self.frames.get(symbol)
        if frame is None or frame.empty:
            return None
        return frame.index.max().date()


class FakeSpikeCountStore:
    """In-memory stand-in for SpikeCountStore."""

    def __init__(self, rows: Optional[dict[str, dict]] = None):
        self.rows: dict[str, dict] = dict(rows or {})

    async def upsert(self, result: SpikeCountResult, updated_at: datetime) -> None:
        self.rows[result.symbol] = {**result.as_dict(), "updated_at": updated_at}

    async def list_with_spikes(self) -> list[SimpleNamespace]:
        rows = [
            SimpleNamespace(symbol=symbol, **{k: v for k, v in row.items() if k != "updated_at"})
            for symbol, row in self.rows.items()
            if any(row[k] > 0 for k in ("spikes_1w", "spikes_1m", "spikes_3m", "spikes_6m"))
        ]
        return sorted(rows, key=lambda r: (-r.spikes_1w, r.symbol))

    async def get(self, symbol: str) -> Optional[SimpleNamespace]:
        row = self.rows.get(symbol)
        return SimpleNamespace(symbol=symbol, **row) if row else None

    async def delete_except(self, symbols: Iterable[str]) -> int:
        keep = set(symbols)
        doomed = [s for s in self.rows if s not in keep]
        for symbol in doomed:
            del self.rows[symbol]
        return len(doomed)


class FakeMasterStockService:
    def __init__(self, active: Iterable[str], listed: Iterable[str] = ()):
        self.active = list(active)
        self.listed = set(self.active) | set(listed)

    async def get_active_symbols(self) -> list[str]:
        return list(self.active)

    async def is_listed(self, symbol: str) -> bool:
        return symbol in self.listed


@pytest.fixture(autouse=True)
def clear_metrics():
    """Start every test with an empty metrics buffer."""
    metrics.clear_buffer()
    yield
    metrics.clear_buffer()
    metrics.set_redis(None)
    metrics.set_async_redis(None)


@pytest.fixture
def ramp_frame() -> pd.DataFrame:
    """200 consecutive days ramping 10 -> 90 with close = 100 + day index."""
    return make_frame(ramp(200), closes=[100.0 + i for i in range(200)])


@pytest.fixture
def flat_frame() -> pd.DataFrame:
    return make_frame([40.0] * 200)
