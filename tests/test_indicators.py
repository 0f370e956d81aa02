"""Tests for EMA/MACD calculations and the MACD engine."""

from datetime import datetime, timedelta, timezone

import pandas as pd
import pytest

from ordergate.features.indicators import calculate_ema, calculate_macd, calculate_volume_sma
from ordergate.features.momentum import MacdEngine, crossover_direction, volume_above_average
from ordergate.models import Bar, MacdSnapshot


def _bars(closes: list[float], volumes: list[int] | None = None) -> list[Bar]:
    start = datetime(2024, 1, 1, tzinfo=timezone.utc)
    volumes = volumes or [100] * len(closes)
    return [
        Bar(
            timestamp=start + timedelta(minutes=i),
            open=close,
            high=close + 0.5,
            low=close - 0.5,
            close=close,
            volume=volumes[i],
        )
        for i, close in enumerate(closes)
    ]


def _snapshot(macd: float, signal: float) -> MacdSnapshot:
    return MacdSnapshot(macd, signal, macd - signal, 12, 26, 9)


class TestEma:
    def test_seeded_with_simple_mean(self) -> None:
        ema = calculate_ema(pd.Series([1.0, 2.0, 3.0, 4.0, 5.0]), period=3)

        assert ema.iloc[:2].isna().all()
        # seed = mean(1, 2, 3); then (x - prev) * 2/(3+1) + prev
        assert ema.iloc[2] == pytest.approx(2.0)
        assert ema.iloc[3] == pytest.approx(3.0)
        assert ema.iloc[4] == pytest.approx(4.0)

    def test_too_short_is_all_nan(self) -> None:
        ema = calculate_ema(pd.Series([1.0, 2.0]), period=3)
        assert ema.isna().all()

    def test_skips_leading_nans(self) -> None:
        series = pd.Series([float("nan"), float("nan"), 2.0, 4.0, 6.0])
        ema = calculate_ema(series, period=2)

        assert ema.iloc[:3].isna().all()
        assert ema.iloc[3] == pytest.approx(3.0)
        assert ema.iloc[4] == pytest.approx(5.0)


def test_macd_columns_and_histogram() -> None:
    close = pd.Series([float(i) for i in range(1, 41)])
    frame = calculate_macd(close, 3, 6, 4)

    assert list(frame.columns) == ["macd", "signal", "histogram"]
    valid = frame.dropna()
    assert not valid.empty
    assert (valid["histogram"] - (valid["macd"] - valid["signal"])).abs().max() < 1e-12


def test_volume_sma_requires_full_window() -> None:
    sma = calculate_volume_sma(pd.Series([100, 200, 300]), period=3)
    assert pd.isna(sma.iloc[1])
    assert sma.iloc[2] == 200.0


class TestMacdEngine:
    def test_absent_below_minimum_history(self) -> None:
        engine = MacdEngine(12, 26, 9)
        closes = [100.0 + i * 0.1 for i in range(34)]

        assert engine.min_history == 35
        assert engine.compute(_bars(closes)) is None

    def test_snapshot_at_minimum_history(self) -> None:
        engine = MacdEngine(12, 26, 9)
        closes = [100.0 + i * 0.1 for i in range(35)]

        snapshot = engine.compute(_bars(closes))

        assert snapshot is not None
        assert snapshot.macd_line > 0
        assert snapshot.histogram == pytest.approx(snapshot.macd_line - snapshot.signal_line)
        assert (snapshot.fast_period, snapshot.slow_period, snapshot.signal_period) == (12, 26, 9)

    def test_series_has_no_look_ahead(self) -> None:
        engine = MacdEngine(3, 6, 4)
        closes = [100.0, 101.0, 99.0, 102.0, 104.0, 103.0, 105.0, 107.0, 106.0, 108.0, 107.5, 109.0]
        bars = _bars(closes)

        series = engine.compute_series(bars)

        assert len(series) == len(bars)
        assert all(s is None for s in series[: engine.min_history - 1])
        for i in range(engine.min_history - 1, len(bars)):
            expected = engine.compute(bars[: i + 1])
            assert series[i] is not None and expected is not None
            assert series[i].macd_line == pytest.approx(expected.macd_line)
            assert series[i].signal_line == pytest.approx(expected.signal_line)

    def test_crossover_direction(self) -> None:
        below = _snapshot(-0.1, 0.0)
        above = _snapshot(0.1, 0.0)

        assert crossover_direction(below, above) == "bullish"
        assert crossover_direction(above, below) == "bearish"
        assert crossover_direction(above, above) is None
        assert crossover_direction(None, above) is None


class TestVolumeAboveAverage:
    def test_needs_full_period(self) -> None:
        bars = _bars([100.0] * 19, [100] * 18 + [10_000])
        assert not volume_above_average(bars, period=20)

    def test_current_bar_included_in_average(self) -> None:
        bars = _bars([100.0] * 20, [100] * 19 + [1000])
        assert volume_above_average(bars, period=20)

    def test_flat_volume_is_not_above(self) -> None:
        bars = _bars([100.0] * 25)
        assert not volume_above_average(bars, period=20)
