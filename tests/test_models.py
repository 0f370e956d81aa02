from datetime import datetime, timedelta, timezone

import pytest

from ordergate.errors import InvalidBar, InvalidDecisionState
from ordergate.models import (
    Bar,
    OrderInfo,
    TradeAction,
    TradeProposal,
    TrendVerdict,
    validate_bar,
)

NOW = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


def _bar(**overrides) -> Bar:
    values = dict(timestamp=NOW - timedelta(minutes=1), open=100.0, high=105.0, low=95.0, close=102.0, volume=10)
    values.update(overrides)
    return Bar(**values)


def _proposal(**overrides) -> TradeProposal:
    values = dict(
        action=TradeAction.BUY,
        symbol="EURUSD",
        entry_price=100.0,
        stop_loss=99.0,
        take_profit=102.0,
        position_size=1.0,
        confidence=0.7,
        reason="Uptrend confirmed",
        created_at=NOW,
        trend=TrendVerdict.UPTREND,
    )
    values.update(overrides)
    return TradeProposal(**values)


class TestBar:
    def test_derived_properties(self) -> None:
        bar = _bar()
        assert bar.is_bullish and not bar.is_bearish
        assert bar.body_size == 2.0
        assert bar.range == 10.0
        assert bar.midpoint == 101.0
        assert bar.upper_wick == 3.0
        assert bar.lower_wick == 5.0

    def test_valid_bar_passes(self) -> None:
        validate_bar(_bar(), NOW)

    @pytest.mark.parametrize(
        "overrides",
        [
            {"low": 101.0},
            {"high": 101.0},
            {"volume": -1},
            {"open": 0.0, "low": 0.0},
            {"close": float("nan")},
            {"timestamp": NOW + timedelta(seconds=1)},
        ],
    )
    def test_invalid_bars_rejected(self, overrides) -> None:
        with pytest.raises(InvalidBar) as exc_info:
            validate_bar(_bar(**overrides), NOW)
        assert exc_info.value.rule

    def test_from_payload_epoch_and_iso(self) -> None:
        epoch = Bar.from_payload(
            {"time": 1704067200, "open": "1.1", "high": 1.2, "low": 1.0, "close": 1.15, "tick_volume": 42}
        )
        iso = Bar.from_payload(
            {"timestamp": "2024-01-01T00:00:00Z", "open": 1.1, "high": 1.2, "low": 1.0, "close": 1.15}
        )
        assert epoch.timestamp == iso.timestamp == datetime(2024, 1, 1, tzinfo=timezone.utc)
        assert epoch.volume == 42
        assert iso.volume == 0


class TestTradeProposal:
    def test_valid_buy_and_sell(self) -> None:
        _proposal().validate()
        _proposal(action=TradeAction.SELL, stop_loss=101.0, take_profit=98.0).validate()

    @pytest.mark.parametrize(
        "overrides",
        [
            {"stop_loss": 100.0},
            {"take_profit": 99.5},
            {"position_size": 0.0},
            {"confidence": 1.5},
            {"action": TradeAction.SELL},
        ],
    )
    def test_invariant_violations(self, overrides) -> None:
        with pytest.raises(InvalidDecisionState):
            _proposal(**overrides).validate()

    def test_hold_needs_only_reason(self) -> None:
        _proposal(action=TradeAction.HOLD, position_size=0.0, stop_loss=0.0, take_profit=0.0).validate()
        with pytest.raises(InvalidDecisionState):
            _proposal(action=TradeAction.HOLD, reason="").validate()

    def test_with_reason_returns_new_instance(self) -> None:
        proposal = _proposal()
        updated = proposal.with_reason("Order executed")

        assert updated is not proposal
        assert updated.reason == "Uptrend confirmed - Order executed"
        assert updated.proposal_id == proposal.proposal_id
        assert proposal.reason == "Uptrend confirmed"

    def test_risk_reward_ratio(self) -> None:
        assert _proposal().risk_reward_ratio == pytest.approx(2.0)
        assert _proposal(stop_loss=100.0).risk_reward_ratio == 0.0


class TestOrderInfo:
    def test_from_payload(self) -> None:
        order = OrderInfo.from_payload(
            {
                "ticket": "1234",
                "symbol": "EURUSD",
                "type": "buy_limit",
                "volume": 0.2,
                "price": 1.0950,
                "sl": 1.09,
                "tp": 1.10,
                "comment": "manual",
            }
        )
        assert order.ticket == 1234
        assert order.order_type == "BUY_LIMIT"
        assert order.is_buy and not order.is_sell
        assert order.stop_loss == 1.09
        assert order.status == "PENDING"

    def test_system_markers(self) -> None:
        order = OrderInfo(1, "EURUSD", "SELL", 0.1, 1.1, comment="AUTO_abc123")
        assert order.is_sell
        assert order.has_marker(["AUTO", "SYSTEM"])
        assert not OrderInfo(2, "EURUSD", "SELL", 0.1, 1.1, comment="scalp").has_marker(["AUTO"])
