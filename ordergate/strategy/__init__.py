"""Trend confirmation and short-horizon prediction."""

from ordergate.strategy.prediction import (
    average_price,
    classify_percent_change,
    percent_change,
    predict_trend,
    should_approve,
)
from ordergate.strategy.trend import (
    TrendAnalyzer,
    has_higher_highs_and_lows,
    has_lower_highs_and_lows,
    has_volatility_expansion,
    structure_bias,
    trend_strength,
)

__all__ = [
    "TrendAnalyzer",
    "has_higher_highs_and_lows",
    "has_lower_highs_and_lows",
    "has_volatility_expansion",
    "structure_bias",
    "trend_strength",
    "average_price",
    "classify_percent_change",
    "percent_change",
    "predict_trend",
    "should_approve",
]
