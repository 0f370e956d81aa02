"""MACD snapshots over a bar history."""

from __future__ import annotations

from typing import Literal, Sequence

import pandas as pd

from ordergate.config.settings import IndicatorConfig
from ordergate.features.indicators import calculate_macd, calculate_volume_sma
from ordergate.models import Bar, MacdSnapshot


CrossoverDirection = Literal["bullish", "bearish"]


class MacdEngine:
    """Compute MACD snapshots; absent (None) until enough history exists."""

    def __init__(self, fast_period: int = 12, slow_period: int = 26, signal_period: int = 9) -> None:
        self.fast_period = fast_period
        self.slow_period = slow_period
        self.signal_period = signal_period

    @classmethod
    def from_config(cls, config: IndicatorConfig) -> "MacdEngine":
        return cls(config.fast_period, config.slow_period, config.signal_period)

    @property
    def min_history(self) -> int:
        return self.slow_period + self.signal_period

    def compute(self, history: Sequence[Bar]) -> MacdSnapshot | None:
        """Return the snapshot at the newest bar."""
        if len(history) < self.min_history:
            return None
        frame = self._frame(history)
        latest = frame.iloc[-1]
        if pd.isna(latest["signal"]):
            return None
        return self._snapshot(latest)

    def compute_series(self, history: Sequence[Bar]) -> list[MacdSnapshot | None]:
        """Snapshot at every index, each using only bars up to that index."""
        if not history:
            return []
        frame = self._frame(history)
        snapshots: list[MacdSnapshot | None] = []
        for position in range(len(frame)):
            row = frame.iloc[position]
            if position + 1 < self.min_history or pd.isna(row["signal"]):
                snapshots.append(None)
            else:
                snapshots.append(self._snapshot(row))
        return snapshots

    def _frame(self, history: Sequence[Bar]) -> pd.DataFrame:
        close = pd.Series([b.close for b in history], dtype=float)
        return calculate_macd(close, self.fast_period, self.slow_period, self.signal_period)

    def _snapshot(self, row: pd.Series) -> MacdSnapshot:
        return MacdSnapshot(
            macd_line=float(row["macd"]),
            signal_line=float(row["signal"]),
            histogram=float(row["histogram"]),
            fast_period=self.fast_period,
            slow_period=self.slow_period,
            signal_period=self.signal_period,
        )


def crossover_direction(
    previous: MacdSnapshot | None, current: MacdSnapshot | None
) -> CrossoverDirection | None:
    """Direction of a MACD/signal cross between two consecutive snapshots."""
    if previous is None or current is None:
        return None
    if previous.is_bearish and current.is_bullish:
        return "bullish"
    if previous.is_bullish and current.is_bearish:
        return "bearish"
    return None


def volume_above_average(history: Sequence[Bar], period: int = 20) -> bool:
    """True when the newest bar's volume exceeds the trailing ``period``-bar average.

    The average includes the newest bar; fewer than ``period`` bars never qualify.
    """
    if len(history) < period:
        return False
    volume = pd.Series([float(b.volume) for b in history[-period:]])
    average = calculate_volume_sma(volume, period).iloc[-1]
    if pd.isna(average):
        return False
    return float(history[-1].volume) > float(average)
