"""Trend confirmation from candle pattern, MACD and market structure."""

from __future__ import annotations

from typing import Sequence

import numpy as np
import structlog

from ordergate.config.settings import TrendConfig
from ordergate.models import Bar, MacdSnapshot, TrendVerdict


log = structlog.get_logger(__name__)


def has_higher_highs_and_lows(window: Sequence[Bar]) -> bool:
    """Strictly rising highs and lows, oldest to newest, excluding the newest bar."""
    if len(window) < 3:
        return False
    for i in range(1, len(window) - 1):
        if window[i].high <= window[i - 1].high or window[i].low <= window[i - 1].low:
            return False
    return True


def has_lower_highs_and_lows(window: Sequence[Bar]) -> bool:
    """Strictly falling highs and lows, oldest to newest, excluding the newest bar."""
    if len(window) < 3:
        return False
    for i in range(1, len(window) - 1):
        if window[i].high >= window[i - 1].high or window[i].low >= window[i - 1].low:
            return False
    return True


def structure_bias(bars: Sequence[Bar], lookback: int = 5) -> TrendVerdict:
    """Direction the last ``lookback`` high/low pairs lean, including the newest bar.

    Equal highs or lows do not break the bias. Fewer than five bars is no opinion.
    """
    if len(bars) < 5:
        return TrendVerdict.NONE
    recent = bars[-(min(len(bars) - 1, lookback) + 1) :]
    high_steps = np.diff([bar.high for bar in recent])
    low_steps = np.diff([bar.low for bar in recent])
    if (high_steps >= 0).all() and (low_steps >= 0).all():
        return TrendVerdict.UPTREND
    if (high_steps <= 0).all() and (low_steps <= 0).all():
        return TrendVerdict.DOWNTREND
    return TrendVerdict.NONE


def trend_strength(bars: Sequence[Bar], window: int = 20) -> float:
    """Share of bullish bars over the last ``window`` mapped onto [-1, 1]."""
    if len(bars) < 10:
        return 0.0
    recent = bars[-window:]
    bullish_ratio = float(np.mean([bar.is_bullish for bar in recent]))
    return (bullish_ratio - 0.5) * 2


def has_volatility_expansion(previous: Bar | None, current: Bar | None, factor: float = 1.5) -> bool:
    if previous is None or current is None:
        return False
    return current.range > previous.range * factor


class TrendAnalyzer:
    """Confirm a trend from two consecutive bars."""

    def __init__(self, config: TrendConfig | None = None) -> None:
        self.config = config or TrendConfig()

    def confirm(
        self,
        previous: Bar | None,
        current: Bar | None,
        indicator: MacdSnapshot | None = None,
        structure_window: Sequence[Bar] | None = None,
        strict: bool | None = None,
        require_indicator: bool | None = None,
    ) -> TrendVerdict:
        if previous is None or current is None:
            return TrendVerdict.NONE
        strict = self.config.strict_confirmation if strict is None else strict
        if require_indicator is None:
            require_indicator = self.config.macd_confirmation

        verdict = TrendVerdict.NONE
        if previous.is_bullish:
            candle_ok = (
                current.open > previous.high if strict else current.open > previous.close
            )
            indicator_ok = not require_indicator or (
                indicator is not None and indicator.is_bullish
            )
            if candle_ok and indicator_ok:
                verdict = TrendVerdict.UPTREND
        elif previous.is_bearish:
            candle_ok = current.open < previous.low if strict else current.open < previous.close
            indicator_ok = not require_indicator or (
                indicator is not None and indicator.is_bearish
            )
            if candle_ok and indicator_ok:
                verdict = TrendVerdict.DOWNTREND

        if verdict == TrendVerdict.NONE or structure_window is None:
            return verdict

        if verdict == TrendVerdict.UPTREND:
            structure_ok = has_higher_highs_and_lows(structure_window)
        else:
            structure_ok = has_lower_highs_and_lows(structure_window)
        if not structure_ok:
            log.debug(
                "trend_structure_rejected",
                verdict=verdict.value,
                window=len(structure_window),
            )
            return TrendVerdict.NONE
        return verdict
