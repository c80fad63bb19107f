"""
Tests for the delivery spike engine.

Covers window averaging, the strict spike rule, period aggregation and the
chart-only adaptive rule.
"""

from __future__ import annotations

from datetime import date, timedelta

import numpy as np
import pandas as pd
import pytest

from deliverywatch.strategy.delivery_spike_engine import (
    PERIOD_DAYS,
    DeliverySpikeEngine,
    RollingWindowSet,
    period_cutoff,
)
from tests.conftest import last_date, make_frame, ramp


@pytest.fixture
def engine() -> DeliverySpikeEngine:
    return DeliverySpikeEngine()


class TestWindowAverage:
    """Trailing window means."""

    def test_window_never_reads_future_values(self, engine):
        values = [1.0, 2.0, 3.0, 100.0]
        assert engine.window_average(values, 2, 2) == pytest.approx(2.5)

    def test_window_is_clipped_at_series_start(self, engine):
        assert engine.window_average([1.0, 2.0, 3.0], 1, 5) == pytest.approx(1.5)

    def test_absent_values_are_skipped(self, engine):
        assert engine.window_average([None, 5.0, None], 2, 3) == pytest.approx(5.0)

    def test_all_absent_is_none(self, engine):
        assert engine.window_average([None, None, None], 2, 3) is None

    def test_index_out_of_range(self, engine):
        with pytest.raises(IndexError):
            engine.window_average([1.0, 2.0], 2, 1)

    def test_rolling_averages_rejects_zero_window(self, engine):
        with pytest.raises(ValueError):
            engine.rolling_averages([1.0, 2.0], 0)

    def test_rolling_matches_scalar_averages(self, engine):
        rng = np.random.default_rng(7)
        values = list(rng.uniform(5, 95, size=60))
        values[10] = None
        values[11] = None
        rolling = engine.rolling_averages(values, 7)
        for i in range(len(values)):
            assert engine.window_average(values, i, 7) == rolling[i]

    def test_window_set_at(self, engine):
        ws = engine.window_set_at([10.0, 20.0, 30.0], 2)
        assert ws.avg1 == pytest.approx(30.0)
        assert ws.avg3 == pytest.approx(20.0)
        assert ws.avg180 == pytest.approx(20.0)
        assert ws.is_complete


class TestSpikeRule:
    """The strict five-window ordering."""

    def test_strict_ordering_is_spike(self, engine):
        assert engine.is_spike_day(RollingWindowSet(51.0, 50.0, 40.0, 30.0, 20.0))

    def test_equal_neighbours_are_not_spike(self, engine):
        assert not engine.is_spike_day(RollingWindowSet(50.0, 50.0, 40.0, 30.0, 20.0))
        assert not engine.is_spike_day(RollingWindowSet(60.0, 50.0, 40.0, 20.0, 20.0))

    def test_missing_average_is_not_spike(self, engine):
        assert not engine.is_spike_day(RollingWindowSet(60.0, 50.0, None, 30.0, 20.0))

    def test_short_history_never_spikes(self, engine):
        flags = engine.classify(ramp(179))
        assert not flags.any()

    def test_first_eligible_day_is_index_179(self, engine):
        flags = engine.classify(ramp(200))
        assert list(np.flatnonzero(flags)) == list(range(179, 200))

    def test_absent_value_on_day_blocks_that_day_only(self, engine):
        values = ramp(200)
        values[199] = None
        flags = engine.classify(values)
        assert not flags[199]
        assert flags[179:199].all()

    def test_one_day_anomaly_below_long_average_is_not_spike(self, engine):
        values = [80.0] * 150 + [30.0] * 49 + [60.0]
        ws = engine.window_set_at(values, 199)
        assert ws.avg1 > ws.avg3 > ws.avg7 > ws.avg30
        assert ws.avg30 < ws.avg180
        assert not engine.classify(values)[199]


class TestPeriodCounts:
    """Aggregation into 1W / 1M / 3M / 6M counts."""

    def test_period_cutoff_is_inclusive(self):
        assert period_cutoff(date(2025, 7, 31), 7) == date(2025, 7, 25)
        assert period_cutoff(date(2025, 7, 31), 1) == date(2025, 7, 31)

    def test_flat_series_has_no_spikes(self, engine, flat_frame):
        result = engine.compute_for_symbol("FLAT", flat_frame, last_date(flat_frame))
        assert result.as_dict() == {"spikes_1w": 0, "spikes_1m": 0, "spikes_3m": 0, "spikes_6m": 0}
        assert not result.has_spikes

    def test_rising_series(self, engine, ramp_frame):
        result = engine.compute_for_symbol("RAMP", ramp_frame, last_date(ramp_frame))
        assert result.spikes_1w == 7
        assert result.spikes_1m == 21
        assert result.spikes_3m == 21
        assert result.spikes_6m == 21

    def test_insufficient_history_counts_zero(self, engine):
        frame = make_frame(ramp(50))
        result = engine.compute_for_symbol("NEW", frame, last_date(frame))
        assert not result.has_spikes

    def test_single_day_surge(self, engine):
        values = [40.0] * 200
        values[189] = 99.0
        frame = make_frame(values)
        result = engine.compute_for_symbol("SURGE", frame, last_date(frame))
        assert result.spikes_1w == 0
        assert result.spikes_1m == 1
        assert result.spikes_3m == 1
        assert result.spikes_6m == 1

    def test_counts_are_monotonic_across_periods(self, engine):
        rng = np.random.default_rng(42)
        dates = pd.bdate_range("2023-01-02", periods=400).date
        values = np.clip(np.cumsum(rng.normal(0.2, 4.0, size=400)) + 40, 0, 100)
        frame = make_frame(values, dates=dates)
        for offset in (0, 30, 100):
            as_of = dates[-1 - offset]
            r = engine.compute_for_symbol("RND", frame, as_of)
            assert r.spikes_1w <= r.spikes_1m <= r.spikes_3m <= r.spikes_6m

    def test_count_in_period_matches_compute_for_symbol(self, engine, ramp_frame):
        as_of = last_date(ramp_frame)
        result = engine.compute_for_symbol("RAMP", ramp_frame, as_of)
        for label, days in PERIOD_DAYS.items():
            assert engine.count_in_period(ramp_frame, as_of, days) == getattr(result, f"spikes_{label}")

    def test_count_in_period_rejects_unknown_period(self, engine, ramp_frame):
        with pytest.raises(ValueError):
            engine.count_in_period(ramp_frame, last_date(ramp_frame), 14)

    def test_rows_after_as_of_are_ignored(self, engine, ramp_frame):
        as_of = ramp_frame.index[189].date()
        result = engine.compute_for_symbol("RAMP", ramp_frame, as_of)
        assert result.spikes_1w == 7
        assert result.spikes_6m == 11

    def test_trading_day_gaps(self, engine):
        dates = pd.bdate_range("2024-01-01", periods=220).date
        frame = make_frame(ramp(220), dates=dates)
        as_of = dates[-1]
        result = engine.compute_for_symbol("BDAYS", frame, as_of)
        assert result.spikes_1w == 5
        for label, days in PERIOD_DAYS.items():
            cutoff = period_cutoff(as_of, days)
            expected = sum(1 for i, d in enumerate(dates) if i >= 179 and d >= cutoff)
            assert getattr(result, f"spikes_{label}") == expected

    def test_duplicate_dates_keep_last_row(self, engine, ramp_frame):
        duplicated = pd.concat([ramp_frame.iloc[[-1]].assign(delivery_percentage=1.0), ramp_frame])
        result = engine.compute_for_symbol("RAMP", duplicated, last_date(ramp_frame))
        assert result.spikes_1w == 7

    def test_empty_frame(self, engine):
        empty = make_frame([])
        assert not engine.compute_for_symbol("NONE", empty, date(2025, 7, 4)).has_spikes
        assert engine.count_in_period(empty, date(2025, 7, 4), 7) == 0


class TestAdaptiveRule:
    """Chart-only classification for short series."""

    def test_short_ramp_flags_under_adaptive_rule(self, engine):
        flags = engine.classify_adaptive(ramp(50))
        assert list(np.flatnonzero(flags)) == list(range(7, 50))

    def test_tiny_series_never_flags(self, engine):
        assert not engine.classify_adaptive([10.0, 20.0]).any()

    def test_full_length_matches_canonical_after_warmup(self, engine):
        values = ramp(200)
        assert (engine.classify_adaptive(values)[179:] == engine.classify(values)[179:]).all()


class TestAnnotate:
    """Per-day detail frame."""

    def test_annotate_columns_and_flags(self, engine, ramp_frame):
        as_of = last_date(ramp_frame)
        annotated = engine.annotate(ramp_frame, as_of)
        for column in ("avg_1", "avg_3", "avg_7", "avg_30", "avg_180", "spike", "adaptive_spike"):
            assert column in annotated.columns
        assert int(annotated["spike"].sum()) == 21
        assert engine.period_counts(annotated, as_of, "spike") == {"1w": 7, "1m": 21, "3m": 21, "6m": 21}

    def test_average_close_at_spikes(self, engine, ramp_frame):
        as_of = last_date(ramp_frame)
        annotated = engine.annotate(ramp_frame, as_of)
        # Spike days 193..199 in the last week, close = 100 + index.
        assert engine.average_close_at_spikes(annotated, as_of, 7) == pytest.approx(296.0)

    def test_average_close_without_spikes(self, engine, flat_frame):
        as_of = last_date(flat_frame)
        annotated = engine.annotate(flat_frame, as_of)
        assert engine.average_close_at_spikes(annotated, as_of, 180) is None

    def test_as_of_is_never_read_from_clock(self, engine, ramp_frame):
        as_of = last_date(ramp_frame) + timedelta(days=400)
        assert not engine.compute_for_symbol("RAMP", ramp_frame, as_of).has_spikes
