"""Shared data models."""

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal
from uuid import uuid4

from ordergate.errors import InvalidBar, InvalidDecisionState


OrderType = Literal["BUY", "SELL", "BUY_LIMIT", "SELL_LIMIT", "BUY_STOP", "SELL_STOP"]
ORDER_TYPES: tuple[str, ...] = ("BUY", "SELL", "BUY_LIMIT", "SELL_LIMIT", "BUY_STOP", "SELL_STOP")


@dataclass(frozen=True)
class Bar:
    """One closed candle of the traded instrument."""

    timestamp: datetime
    open: float
    high: float
    low: float
    close: float
    volume: int = 0

    @property
    def is_bullish(self) -> bool:
        return self.close > self.open

    @property
    def is_bearish(self) -> bool:
        return self.close < self.open

    @property
    def body_size(self) -> float:
        return abs(self.close - self.open)

    @property
    def range(self) -> float:
        return self.high - self.low

    @property
    def midpoint(self) -> float:
        return (self.open + self.close) / 2.0

    @property
    def upper_wick(self) -> float:
        return self.high - max(self.open, self.close)

    @property
    def lower_wick(self) -> float:
        return min(self.open, self.close) - self.low

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> "Bar":
        """Build a bar from a bridge JSON payload (epoch seconds or ISO time)."""
        raw_time = data.get("time", data.get("timestamp"))
        if isinstance(raw_time, (int, float)):
            timestamp = datetime.fromtimestamp(float(raw_time), tz=timezone.utc)
        else:
            timestamp = datetime.fromisoformat(str(raw_time).replace("Z", "+00:00"))
            if timestamp.tzinfo is None:
                timestamp = timestamp.replace(tzinfo=timezone.utc)
        return cls(
            timestamp=timestamp,
            open=float(data["open"]),
            high=float(data["high"]),
            low=float(data["low"]),
            close=float(data["close"]),
            volume=int(data.get("volume", data.get("tick_volume", 0)) or 0),
        )


def validate_bar(bar: Bar, now: datetime | None = None) -> None:
    """Raise InvalidBar when the bar breaks an OHLC invariant."""
    for name in ("open", "high", "low", "close"):
        value = getattr(bar, name)
        if not math.isfinite(value) or value <= 0:
            raise InvalidBar(f"{name} must be a positive finite price, got {value}", bar.timestamp)
    if bar.low > min(bar.open, bar.close):
        raise InvalidBar("low above open/close", bar.timestamp)
    if bar.high < max(bar.open, bar.close):
        raise InvalidBar("high below open/close", bar.timestamp)
    if bar.volume < 0:
        raise InvalidBar(f"negative volume {bar.volume}", bar.timestamp)
    now = now or datetime.now(timezone.utc)
    if bar.timestamp > now:
        raise InvalidBar("timestamp in the future", bar.timestamp)


@dataclass(frozen=True)
class MacdSnapshot:
    """MACD state at one bar."""

    macd_line: float
    signal_line: float
    histogram: float
    fast_period: int
    slow_period: int
    signal_period: int

    @property
    def is_bullish(self) -> bool:
        return self.macd_line > self.signal_line

    @property
    def is_bearish(self) -> bool:
        return self.macd_line < self.signal_line

    @property
    def crossover_value(self) -> float:
        return self.macd_line - self.signal_line


class TrendVerdict(str, Enum):
    NONE = "NONE"
    UPTREND = "UPTREND"
    DOWNTREND = "DOWNTREND"


class TrendClassification(str, Enum):
    """Short-horizon prediction used at the per-bar decision point."""

    STRONG_BULLISH = "STRONG_BULLISH"
    BULLISH = "BULLISH"
    STRONG_BEARISH = "STRONG_BEARISH"
    BEARISH = "BEARISH"
    NEUTRAL = "NEUTRAL"


class TradeAction(str, Enum):
    BUY = "BUY"
    SELL = "SELL"
    HOLD = "HOLD"
    CLOSE = "CLOSE"


@dataclass(frozen=True)
class TradeProposal:
    action: TradeAction
    symbol: str
    entry_price: float
    stop_loss: float
    take_profit: float
    position_size: float
    confidence: float
    reason: str
    created_at: datetime
    trend: TrendVerdict = TrendVerdict.NONE
    proposal_id: str = field(default_factory=lambda: uuid4().hex[:12])

    @property
    def is_entry(self) -> bool:
        return self.action in {TradeAction.BUY, TradeAction.SELL}

    @property
    def risk_reward_ratio(self) -> float:
        risk = abs(self.entry_price - self.stop_loss)
        if risk == 0:
            return 0.0
        return abs(self.take_profit - self.entry_price) / risk

    def validate(self) -> None:
        if not 0.0 <= self.confidence <= 1.0:
            raise InvalidDecisionState(f"confidence out of range: {self.confidence}")
        if not self.is_entry:
            if not self.reason:
                raise InvalidDecisionState("reason is required")
            return
        if self.position_size <= 0:
            raise InvalidDecisionState(f"invalid position size: {self.position_size}")
        if self.action == TradeAction.BUY:
            if not self.stop_loss < self.entry_price < self.take_profit:
                raise InvalidDecisionState(
                    f"BUY requires stop < entry < target, got "
                    f"{self.stop_loss} / {self.entry_price} / {self.take_profit}"
                )
        elif not self.take_profit < self.entry_price < self.stop_loss:
            raise InvalidDecisionState(
                f"SELL requires target < entry < stop, got "
                f"{self.take_profit} / {self.entry_price} / {self.stop_loss}"
            )

    def with_reason(self, suffix: str) -> "TradeProposal":
        return replace(self, reason=f"{self.reason} - {suffix}")

    def to_payload(self) -> dict[str, Any]:
        return {
            "proposal_id": self.proposal_id,
            "action": self.action.value,
            "symbol": self.symbol,
            "entry_price": self.entry_price,
            "stop_loss": self.stop_loss,
            "take_profit": self.take_profit,
            "position_size": self.position_size,
            "confidence": round(self.confidence, 4),
            "trend": self.trend.value,
            "reason": self.reason,
        }


@dataclass(frozen=True)
class OrderInfo:
    """An outstanding order as reported by the trading terminal."""

    ticket: int
    symbol: str
    order_type: str
    volume: float
    price: float
    stop_loss: float = 0.0
    take_profit: float = 0.0
    comment: str = ""
    status: str = "PENDING"

    @property
    def is_buy(self) -> bool:
        return "BUY" in self.order_type.upper()

    @property
    def is_sell(self) -> bool:
        return "SELL" in self.order_type.upper()

    def has_marker(self, markers: list[str] | tuple[str, ...]) -> bool:
        comment = (self.comment or "").upper()
        return any(marker.upper() in comment for marker in markers)

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> "OrderInfo":
        return cls(
            ticket=int(data["ticket"]),
            symbol=str(data.get("symbol") or ""),
            order_type=str(data.get("type") or data.get("order_type") or "").upper(),
            volume=float(data.get("volume") or 0.0),
            price=float(data.get("price") or 0.0),
            stop_loss=float(data.get("sl") or data.get("stop_loss") or 0.0),
            take_profit=float(data.get("tp") or data.get("take_profit") or 0.0),
            comment=str(data.get("comment") or ""),
            status=str(data.get("status") or "PENDING"),
        )


@dataclass
class PendingUserOrder:
    """A manually placed order held for the next decision point."""

    order: OrderInfo
    detected_at: datetime
    originating_bar_time: datetime | None
    approved: bool = False

    @property
    def ticket(self) -> int:
        return self.order.ticket
