"""Position sizing and bracket prices."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from ordergate.models import Bar, TradeAction


StopAnchor = Literal["entry", "previous_extreme"]


@dataclass(frozen=True)
class BracketPrices:
    stop_loss: float
    take_profit: float


def bracket_prices(
    side: TradeAction,
    entry: float,
    buffer: float,
    reward_ratio: float,
    previous: Bar | None = None,
    stop_anchor: StopAnchor = "entry",
) -> BracketPrices:
    """Stop and target for ``side``.

    With ``stop_anchor="previous_extreme"`` the stop sits ``buffer`` beyond the
    previous bar's low (BUY) or high (SELL). It falls back to the entry anchor
    when no previous bar is given or the anchored stop is on the wrong side.
    """
    if side == TradeAction.BUY:
        stop = entry - buffer
        if stop_anchor == "previous_extreme" and previous is not None:
            anchored = previous.low - buffer
            if anchored < entry:
                stop = anchored
        target = entry + (entry - stop) * reward_ratio
    elif side == TradeAction.SELL:
        stop = entry + buffer
        if stop_anchor == "previous_extreme" and previous is not None:
            anchored = previous.high + buffer
            if anchored > entry:
                stop = anchored
        target = entry - (stop - entry) * reward_ratio
    else:
        raise ValueError(f"no bracket for {side.value}")
    return BracketPrices(stop_loss=stop, take_profit=target)


class PositionSizer:
    """Fixed-fraction risk sizing with a hard size cap."""

    def __init__(self, risk_fraction: float = 0.02, max_size: float = 10.0) -> None:
        self.risk_fraction = risk_fraction
        self.max_size = max_size

    def size(
        self,
        entry: float,
        stop: float,
        balance: float,
        risk_fraction: float | None = None,
        max_size: float | None = None,
    ) -> float:
        """Units such that hitting the stop loses ``balance * risk_fraction``.

        Returns 0 when there is no stop distance to size against.
        """
        risk_fraction = self.risk_fraction if risk_fraction is None else risk_fraction
        max_size = self.max_size if max_size is None else max_size
        risk_amount = balance * risk_fraction
        per_unit = abs(entry - stop)
        if per_unit == 0 or risk_amount <= 0:
            return 0.0
        return min(risk_amount / per_unit, max_size)
