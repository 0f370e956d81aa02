"""Tests for trend confirmation and market structure checks."""

from datetime import datetime, timedelta, timezone

import pytest

from ordergate.config.settings import TrendConfig
from ordergate.models import Bar, MacdSnapshot, TrendVerdict
from ordergate.strategy.trend import (
    TrendAnalyzer,
    has_higher_highs_and_lows,
    has_lower_highs_and_lows,
    has_volatility_expansion,
    structure_bias,
    trend_strength,
)

START = datetime(2024, 1, 1, tzinfo=timezone.utc)
BULLISH_MACD = MacdSnapshot(0.5, 0.2, 0.3, 12, 26, 9)
BEARISH_MACD = MacdSnapshot(-0.5, -0.2, -0.3, 12, 26, 9)


def _bar(open: float, high: float, low: float, close: float, minute: int = 0) -> Bar:
    return Bar(START + timedelta(minutes=minute), open, high, low, close, 100)


def _window(points: list[tuple[float, float]]) -> list[Bar]:
    """Bars from (high, low) pairs."""
    return [
        _bar(low + 0.1, high, low, high - 0.1, minute=i) for i, (high, low) in enumerate(points)
    ]


@pytest.fixture
def analyzer() -> TrendAnalyzer:
    return TrendAnalyzer(TrendConfig(strict_confirmation=True, macd_confirmation=False))


class TestConfirm:
    def test_strict_requires_open_above_previous_high(self, analyzer: TrendAnalyzer) -> None:
        previous = _bar(100, 110, 95, 105)

        assert analyzer.confirm(previous, _bar(110, 112, 108, 111, 1)) == TrendVerdict.NONE
        assert analyzer.confirm(previous, _bar(110.0001, 112, 108, 111, 1)) == TrendVerdict.UPTREND

    def test_moderate_compares_against_previous_close(self) -> None:
        analyzer = TrendAnalyzer(TrendConfig(strict_confirmation=False, macd_confirmation=False))
        previous = _bar(100, 110, 95, 105)

        assert analyzer.confirm(previous, _bar(106, 108, 104, 107, 1)) == TrendVerdict.UPTREND
        assert analyzer.confirm(previous, _bar(105, 108, 104, 107, 1)) == TrendVerdict.NONE
        # Strict mode rejects the same pair
        assert (
            analyzer.confirm(previous, _bar(106, 108, 104, 107, 1), strict=True)
            == TrendVerdict.NONE
        )

    def test_bearish_mirror(self, analyzer: TrendAnalyzer) -> None:
        previous = _bar(105, 110, 95, 100)

        assert analyzer.confirm(previous, _bar(95, 96, 90, 92, 1)) == TrendVerdict.NONE
        assert analyzer.confirm(previous, _bar(94.9, 96, 90, 92, 1)) == TrendVerdict.DOWNTREND

    def test_doji_previous_is_none(self, analyzer: TrendAnalyzer) -> None:
        previous = _bar(100, 110, 95, 100)
        assert analyzer.confirm(previous, _bar(120, 125, 115, 121, 1)) == TrendVerdict.NONE

    def test_missing_bar_is_none(self, analyzer: TrendAnalyzer) -> None:
        assert analyzer.confirm(None, _bar(100, 101, 99, 100)) == TrendVerdict.NONE
        assert analyzer.confirm(_bar(100, 101, 99, 100), None) == TrendVerdict.NONE

    def test_indicator_required(self, analyzer: TrendAnalyzer) -> None:
        previous = _bar(100, 110, 95, 105)
        current = _bar(111, 115, 109, 113, 1)

        assert (
            analyzer.confirm(previous, current, None, require_indicator=True) == TrendVerdict.NONE
        )
        assert (
            analyzer.confirm(previous, current, BEARISH_MACD, require_indicator=True)
            == TrendVerdict.NONE
        )
        assert (
            analyzer.confirm(previous, current, BULLISH_MACD, require_indicator=True)
            == TrendVerdict.UPTREND
        )

    def test_structure_window_must_agree(self, analyzer: TrendAnalyzer) -> None:
        previous = _bar(100, 110, 95, 105)
        current = _bar(111, 115, 109, 113, 1)
        rising = _window([(100, 90), (101, 91), (102, 92), (103, 93)])
        broken = _window([(100, 90), (101, 91), (100.5, 92), (103, 93)])

        assert analyzer.confirm(previous, current, structure_window=rising) == TrendVerdict.UPTREND
        assert analyzer.confirm(previous, current, structure_window=broken) == TrendVerdict.NONE


class TestStructure:
    def test_single_non_monotonic_pair_rejects(self) -> None:
        assert has_higher_highs_and_lows(_window([(100, 90), (101, 91), (102, 92), (103, 93)]))
        assert not has_higher_highs_and_lows(
            _window([(100, 90), (101, 91), (102, 90.5), (103, 93)])
        )
        # Equal highs are not higher highs
        assert not has_higher_highs_and_lows(_window([(100, 90), (100, 91), (102, 92)]))

    def test_newest_bar_is_excluded(self) -> None:
        assert has_higher_highs_and_lows(_window([(100, 90), (101, 91), (50, 40)]))

    def test_short_windows_fail(self) -> None:
        assert not has_higher_highs_and_lows(_window([(100, 90), (101, 91)]))
        assert not has_lower_highs_and_lows(_window([(101, 91), (100, 90)]))

    def test_lower_highs_and_lows(self) -> None:
        assert has_lower_highs_and_lows(_window([(103, 93), (102, 92), (101, 91), (100, 90)]))
        assert not has_lower_highs_and_lows(_window([(103, 93), (102, 92), (102.5, 91), (100, 90)]))

    def test_structure_bias(self) -> None:
        rising = _window([(100 + i, 90 + i) for i in range(6)])
        falling = _window([(100 - i, 90 - i) for i in range(6)])
        flat_step = _window([(100, 90), (101, 91), (101, 91), (102, 92), (103, 93)])
        mixed = _window([(100, 90), (101, 91), (100, 92), (102, 93), (103, 94)])

        assert structure_bias(rising) == TrendVerdict.UPTREND
        assert structure_bias(falling) == TrendVerdict.DOWNTREND
        assert structure_bias(flat_step) == TrendVerdict.UPTREND
        assert structure_bias(mixed) == TrendVerdict.NONE
        assert structure_bias(rising[:4]) == TrendVerdict.NONE


def test_trend_strength() -> None:
    bullish = [_bar(100, 102, 99, 101, i) for i in range(20)]
    bearish = [_bar(101, 102, 99, 100, i) for i in range(20)]

    assert trend_strength(bullish[:9]) == 0.0
    assert trend_strength(bullish) == pytest.approx(1.0)
    assert trend_strength(bearish) == pytest.approx(-1.0)
    assert trend_strength(bullish[:10] + bearish[:10]) == pytest.approx(0.0)


def test_volatility_expansion() -> None:
    previous = _bar(100, 102, 100, 101)
    assert has_volatility_expansion(previous, _bar(101, 104, 100.9, 103, 1))
    assert not has_volatility_expansion(previous, _bar(101, 103, 100, 102, 1))
    assert not has_volatility_expansion(None, previous)
