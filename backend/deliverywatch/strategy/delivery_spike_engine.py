from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Iterable, Sequence

import numpy as np
import pandas as pd
from numpy.lib.stride_tricks import sliding_window_view

# Trailing windows in trading days, shortest first.
ROLLING_WINDOWS: tuple[int, ...] = (1, 3, 7, 30, 180)
LONGEST_WINDOW = ROLLING_WINDOWS[-1]

# Reporting periods in calendar days.
PERIOD_DAYS: dict[str, int] = {"1w": 7, "1m": 30, "3m": 90, "6m": 180}
LONGEST_PERIOD = max(PERIOD_DAYS.values())

# Series-length tiers for the chart-only adaptive rule, longest first.
ADAPTIVE_TIERS: tuple[tuple[int, tuple[int, ...]], ...] = (
    (180, (1, 3, 7, 30, 180)),
    (30, (1, 3, 7, 30)),
    (7, (1, 3, 7)),
    (3, (1, 3)),
)

DELIVERY_COLUMN = "delivery_percentage"
CLOSE_COLUMN = "close_price"


def _as_array(values) -> np.ndarray:
    if isinstance(values, (np.ndarray, pd.Series, list, tuple)):
        return np.asarray(values, dtype=float)
    return np.asarray(list(values), dtype=float)


def average_column(window: int) -> str:
    return f"avg_{window}"


def period_cutoff(as_of_date: date, period_days: int) -> date:
    """Inclusive first calendar day of a trailing period ending at as_of_date."""
    return as_of_date - timedelta(days=period_days - 1)


@dataclass(frozen=True)
class RollingWindowSet:
    avg1: float | None
    avg3: float | None
    avg7: float | None
    avg30: float | None
    avg180: float | None

    def as_tuple(self) -> tuple[float | None, ...]:
        return (self.avg1, self.avg3, self.avg7, self.avg30, self.avg180)

    @property
    def is_complete(self) -> bool:
        return all(value is not None for value in self.as_tuple())


@dataclass
class SpikeCountResult:
    symbol: str
    as_of_date: date
    spikes_1w: int = 0
    spikes_1m: int = 0
    spikes_3m: int = 0
    spikes_6m: int = 0

    def as_dict(self) -> dict[str, int]:
        return {
            "spikes_1w": self.spikes_1w,
            "spikes_1m": self.spikes_1m,
            "spikes_3m": self.spikes_3m,
            "spikes_6m": self.spikes_6m,
        }

    @property
    def has_spikes(self) -> bool:
        return any(self.as_dict().values())


class DeliverySpikeEngine:
    """
    Pure computation engine for delivery percentage spikes.

    Input frames are indexed by trade date with a float ``delivery_percentage``
    column (NaN for absent values) and optionally ``close_price``. Nothing here
    reads a clock or touches storage; the as-of date is always passed in.
    """

    # ------------------------------------------------------------------
    # Window averages
    # ------------------------------------------------------------------

    def rolling_averages(self, values: Iterable[float | None], window: int) -> np.ndarray:
        """
        Trailing mean over ``window`` positions for every index.

        Absent values are skipped, the window is clipped at the start of the
        series, and positions with no valid observation come back as NaN.
        """
        if window < 1:
            raise ValueError(f"window must be >= 1, got {window}")
        arr = _as_array(values)
        if arr.size == 0:
            return np.array([], dtype=float)

        padded = np.concatenate([np.full(window - 1, np.nan), arr])
        windows = sliding_window_view(padded, window)
        valid = ~np.isnan(windows)
        counts = valid.sum(axis=1)
        sums = np.where(valid, windows, 0.0).sum(axis=1)

        averages = np.full(arr.shape, np.nan)
        np.divide(sums, counts, out=averages, where=counts > 0)
        return averages

    def window_average(
        self,
        values: Sequence[float | None],
        index: int,
        window: int,
    ) -> float | None:
        """Trailing mean ending at ``index``; None when the window holds no values."""
        arr = _as_array(values)
        if index < 0 or index >= arr.size:
            raise IndexError(f"index {index} out of range for series of length {arr.size}")
        start = max(0, index - window + 1)
        value = self.rolling_averages(arr[start:index + 1], window)[-1]
        return None if np.isnan(value) else float(value)

    def window_set_at(self, values: Sequence[float | None], index: int) -> RollingWindowSet:
        return RollingWindowSet(*(self.window_average(values, index, w) for w in ROLLING_WINDOWS))

    # ------------------------------------------------------------------
    # Classification
    # ------------------------------------------------------------------

    def is_spike_day(self, window_set: RollingWindowSet) -> bool:
        """Strict avg1 > avg3 > avg7 > avg30 > avg180 with every average present."""
        chain = [np.array([np.nan if v is None else v], dtype=float) for v in window_set.as_tuple()]
        return bool(self._strictly_decreasing(chain)[0])

    def classify(self, values: Iterable[float | None]) -> np.ndarray:
        """
        Canonical per-day spike flags.

        A day qualifies only when the series holds at least LONGEST_WINDOW
        rows up to and including it and all five averages are strictly
        decreasing from shortest to longest window.
        """
        arr = _as_array(values)
        if arr.size == 0:
            return np.zeros(0, dtype=bool)
        chain = [self.rolling_averages(arr, window) for window in ROLLING_WINDOWS]
        flags = self._strictly_decreasing(chain)
        return flags & (np.arange(arr.size) >= LONGEST_WINDOW - 1)

    def classify_adaptive(self, values: Iterable[float | None]) -> np.ndarray:
        """
        Chart-only variant that drops the longer windows when the series is
        short. Never feeds persisted counts.
        """
        arr = _as_array(values)
        for min_rows, windows in ADAPTIVE_TIERS:
            if arr.size >= min_rows:
                chain = [self.rolling_averages(arr, window) for window in windows]
                return self._strictly_decreasing(chain)
        return np.zeros(arr.size, dtype=bool)

    def _strictly_decreasing(self, chain: list[np.ndarray]) -> np.ndarray:
        # NaN compares False, so a missing average disqualifies the day.
        flags = np.ones(chain[0].shape, dtype=bool)
        for shorter, longer in zip(chain, chain[1:]):
            flags &= shorter > longer
        return flags

    # ------------------------------------------------------------------
    # Period aggregation
    # ------------------------------------------------------------------

    def count_in_period(self, frame: pd.DataFrame, as_of_date: date, period_days: int) -> int:
        """Number of canonical spike days within the trailing period."""
        if period_days not in PERIOD_DAYS.values():
            raise ValueError(f"Unsupported period: {period_days} days")
        frame = self.prepare(frame, as_of_date)
        if frame.empty:
            return 0
        flags = self.classify(frame[DELIVERY_COLUMN].to_numpy())
        return self._count(flags, frame.index, as_of_date, period_days)

    def compute_for_symbol(
        self,
        symbol: str,
        frame: pd.DataFrame,
        as_of_date: date,
    ) -> SpikeCountResult:
        """All four period counts for one symbol from a single classification pass."""
        frame = self.prepare(frame, as_of_date)
        result = SpikeCountResult(symbol=symbol, as_of_date=as_of_date)
        if frame.empty:
            return result

        flags = self.classify(frame[DELIVERY_COLUMN].to_numpy())
        for label, days in PERIOD_DAYS.items():
            setattr(result, f"spikes_{label}", self._count(flags, frame.index, as_of_date, days))
        return result

    def _count(
        self,
        flags: np.ndarray,
        index: pd.DatetimeIndex,
        as_of_date: date,
        period_days: int,
    ) -> int:
        in_period = index >= pd.Timestamp(period_cutoff(as_of_date, period_days))
        return int(np.count_nonzero(flags & in_period))

    # ------------------------------------------------------------------
    # Detail view
    # ------------------------------------------------------------------

    def annotate(self, frame: pd.DataFrame, as_of_date: date) -> pd.DataFrame:
        """
        Per-day rolling averages plus canonical and adaptive spike flags.

        Uses the same averages and classification as compute_for_symbol.
        """
        frame = self.prepare(frame, as_of_date).copy()
        values = frame[DELIVERY_COLUMN].to_numpy()
        for window in ROLLING_WINDOWS:
            frame[average_column(window)] = self.rolling_averages(values, window)
        frame["spike"] = self.classify(values)
        frame["adaptive_spike"] = self.classify_adaptive(values)
        return frame

    def period_counts(self, annotated: pd.DataFrame, as_of_date: date, flag_column: str) -> dict[str, int]:
        flags = annotated[flag_column].to_numpy(dtype=bool)
        return {
            label: self._count(flags, annotated.index, as_of_date, days)
            for label, days in PERIOD_DAYS.items()
        }

    def average_close_at_spikes(
        self,
        annotated: pd.DataFrame,
        as_of_date: date,
        period_days: int,
    ) -> float | None:
        """Mean close price over canonical spike days in the period."""
        if CLOSE_COLUMN not in annotated.columns or annotated.empty:
            return None
        in_period = annotated.index >= pd.Timestamp(period_cutoff(as_of_date, period_days))
        prices = annotated.loc[in_period & annotated["spike"].to_numpy(dtype=bool), CLOSE_COLUMN].dropna()
        if prices.empty:
            return None
        return float(prices.mean())

    # ------------------------------------------------------------------

    def prepare(self, frame: pd.DataFrame, as_of_date: date) -> pd.DataFrame:
        """Ascending, de-duplicated, and truncated at the as-of date."""
        if frame.empty:
            return frame
        frame = frame.sort_index(kind="mergesort")
        frame = frame[~frame.index.duplicated(keep="last")]
        return frame.loc[frame.index <= pd.Timestamp(as_of_date)]
