"""Momentum indicators over bar history."""

from ordergate.features.indicators import calculate_ema, calculate_macd, calculate_volume_sma
from ordergate.features.momentum import MacdEngine, crossover_direction, volume_above_average

__all__ = [
    "calculate_ema",
    "calculate_macd",
    "calculate_volume_sma",
    "MacdEngine",
    "crossover_direction",
    "volume_above_average",
]
