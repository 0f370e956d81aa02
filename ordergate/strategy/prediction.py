"""Short-horizon trend prediction used to approve pending user orders."""

from __future__ import annotations

from typing import Sequence

from ordergate.config.settings import ApprovalConfig
from ordergate.models import OrderInfo, TrendClassification


def average_price(opens: Sequence[float], fallback: float) -> float:
    """Mean of the recorded opening prices, or ``fallback`` when none exist."""
    if not opens:
        return fallback
    return sum(opens) / len(opens)


def percent_change(current_price: float, reference: float) -> float:
    if reference == 0:
        return 0.0
    return (current_price - reference) / reference * 100.0


def classify_percent_change(change: float, config: ApprovalConfig) -> TrendClassification:
    """Classify a signed percentage, most extreme threshold first."""
    if change > config.strong_bullish_threshold:
        return TrendClassification.STRONG_BULLISH
    if change > config.bullish_threshold:
        return TrendClassification.BULLISH
    if change < config.strong_bearish_threshold:
        return TrendClassification.STRONG_BEARISH
    if change < config.bearish_threshold:
        return TrendClassification.BEARISH
    return TrendClassification.NEUTRAL


def predict_trend(
    current_price: float, opens: Sequence[float], config: ApprovalConfig
) -> TrendClassification:
    reference = average_price(opens, current_price)
    return classify_percent_change(percent_change(current_price, reference), config)


def should_approve(
    order: OrderInfo,
    classification: TrendClassification,
    current_price: float,
    config: ApprovalConfig,
) -> bool:
    """Whether a pending user order may be executed under ``classification``."""
    if classification == TrendClassification.STRONG_BULLISH:
        return order.is_buy
    if classification == TrendClassification.STRONG_BEARISH:
        return order.is_sell
    if classification == TrendClassification.BULLISH:
        return order.is_buy and current_price - order.price <= config.price_tolerance
    if classification == TrendClassification.BEARISH:
        return order.is_sell and order.price - current_price <= config.price_tolerance
    # Neutral: only orders already priced better than the market
    if order.is_buy:
        return current_price - order.price >= config.neutral_buy_advantage
    if order.is_sell:
        return order.price - current_price >= config.neutral_sell_advantage
    return False
