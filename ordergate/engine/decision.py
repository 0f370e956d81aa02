"""Per-bar trade decision engine."""

from __future__ import annotations

import asyncio
from collections import deque
from datetime import datetime, timezone
from enum import Enum
from typing import Any

import structlog

from ordergate.config.settings import Settings
from ordergate.connectors.base import MarketDataSource, OrderGateway, guarded_call
from ordergate.errors import (
    CollaboratorError,
    CollaboratorTimeout,
    InvalidBar,
    InvalidDecisionState,
)
from ordergate.features.momentum import MacdEngine, crossover_direction, volume_above_average
from ordergate.ledger.bus import EventBus
from ordergate.ledger.events import EventType
from ordergate.models import (
    Bar,
    MacdSnapshot,
    TradeAction,
    TradeProposal,
    TrendVerdict,
    validate_bar,
)
from ordergate.monitoring.metrics import Metrics
from ordergate.risk.sizing import PositionSizer, bracket_prices
from ordergate.strategy.trend import (
    TrendAnalyzer,
    has_volatility_expansion,
    structure_bias,
    trend_strength,
)


class StrategyKind(str, Enum):
    TREND_FOLLOWING = "trend_following"
    SIMPLE_THRESHOLD = "simple_threshold"
    # Keeps bar history only; user orders are handled by the approval engine.
    USER_ORDER_APPROVAL = "user_order_approval"


class EngineState(str, Enum):
    IDLE = "IDLE"
    ARMED = "ARMED"
    EVALUATING = "EVALUATING"


class DecisionEngine:
    """Turn confirmed trends into sized, de-duplicated trade proposals."""

    def __init__(
        self,
        settings: Settings,
        market: MarketDataSource,
        gateway: OrderGateway,
        bus: EventBus | None = None,
        metrics: Metrics | None = None,
        strategy: StrategyKind | None = None,
    ) -> None:
        self.settings = settings
        self.market = market
        self.gateway = gateway
        self.bus = bus
        self.metrics = metrics
        self.strategy = strategy or StrategyKind(settings.decision.strategy)
        self.dry_run = settings.run.dry_run
        self.symbol = settings.instrument.symbol
        self.timeout = settings.bridge.request_timeout_sec

        self.macd = MacdEngine.from_config(settings.indicators)
        self.analyzer = TrendAnalyzer(settings.trend)
        self.sizer = PositionSizer(
            settings.risk.risk_per_trade, settings.risk.max_position_size
        )

        self._history: deque[Bar] = deque(maxlen=settings.instrument.history_bars)
        self._recent: deque[TradeProposal] = deque(
            maxlen=settings.decision.recent_proposal_limit
        )
        self._lock = asyncio.Lock()
        self.state = EngineState.IDLE
        self.log = structlog.get_logger(__name__)

    @property
    def history(self) -> list[Bar]:
        return list(self._history)

    @property
    def recent_proposals(self) -> list[TradeProposal]:
        return list(self._recent)

    def seed_history(self, bars: list[Bar]) -> int:
        """Load bootstrap history without evaluating it. Returns bars accepted."""
        accepted = 0
        for bar in sorted(bars, key=lambda b: b.timestamp):
            if self._history and bar.timestamp <= self._history[-1].timestamp:
                continue
            self._history.append(bar)
            accepted += 1
        self.state = EngineState.ARMED if len(self._history) >= 2 else EngineState.IDLE
        return accepted

    async def on_bar(self, bar: Bar, now: datetime | None = None) -> TradeProposal | None:
        """Process one closed bar; return the proposal forwarded downstream, if any."""
        now = now or datetime.now(timezone.utc)
        try:
            validate_bar(bar, now)
        except InvalidBar as exc:
            self.log.warning("bar_rejected", rule=exc.rule, timestamp=str(bar.timestamp))
            self._count_rejected("invalid")
            await self._publish(
                EventType.BAR_REJECTED,
                {"symbol": self.symbol, "timestamp": bar.timestamp.isoformat(), "rule": exc.rule},
            )
            return None

        async with self._lock:
            if self._history and bar.timestamp <= self._history[-1].timestamp:
                self.log.debug(
                    "bar_duplicate_ignored",
                    timestamp=bar.timestamp.isoformat(),
                    last=self._history[-1].timestamp.isoformat(),
                )
                self._count_rejected("duplicate")
                return None
            self._history.append(bar)
            history = list(self._history)
            self.state = EngineState.ARMED if len(history) >= 2 else EngineState.IDLE

        if self.metrics:
            self.metrics.bars_received_total.inc()
            self.metrics.last_bar_timestamp.set(bar.timestamp.timestamp())
        await self._publish(
            EventType.BAR_RECEIVED,
            {
                "symbol": self.symbol,
                "timestamp": bar.timestamp.isoformat(),
                "open": bar.open,
                "high": bar.high,
                "low": bar.low,
                "close": bar.close,
                "volume": bar.volume,
            },
        )

        if len(history) < 2 or self.strategy == StrategyKind.USER_ORDER_APPROVAL:
            return None

        self.state = EngineState.EVALUATING
        try:
            return await self._evaluate(history, now)
        finally:
            self.state = EngineState.ARMED

    async def _evaluate(self, history: list[Bar], now: datetime) -> TradeProposal | None:
        previous, current = history[-2], history[-1]
        snapshots = self.macd.compute_series(history)
        indicator = snapshots[-1]
        crossover = crossover_direction(snapshots[-2], indicator)

        if self.strategy == StrategyKind.SIMPLE_THRESHOLD:
            verdict = self._threshold_verdict(current)
        else:
            window = None
            if self.settings.trend.check_market_structure:
                window = history[-self.settings.trend.structure_window :]
            verdict = self.analyzer.confirm(previous, current, indicator, window)

        if verdict == TrendVerdict.NONE:
            return None

        if self.metrics:
            self.metrics.trend_verdicts_total.labels(verdict=verdict.value).inc()
        self.log.info("trend_confirmed", symbol=self.symbol, verdict=verdict.value)
        await self._publish(
            EventType.TREND_CONFIRMED,
            {
                "symbol": self.symbol,
                "verdict": verdict.value,
                "bar_time": current.timestamp.isoformat(),
                "macd": indicator.macd_line if indicator else None,
                "signal": indicator.signal_line if indicator else None,
                "crossover": crossover,
                "trend_strength": round(trend_strength(history), 4),
                "volatility_expansion": has_volatility_expansion(previous, current),
            },
        )

        try:
            balance = await guarded_call(
                "fetch_account_balance", self.market.fetch_account_balance(), self.timeout
            )
        except CollaboratorError as exc:
            self._count_collaborator_error(exc)
            self.log.warning("balance_unavailable", error=str(exc))
            return None

        proposal = self._build_proposal(verdict, history, indicator, float(balance), now)
        try:
            proposal.validate()
        except InvalidDecisionState as exc:
            self.log.warning("proposal_invalid", error=str(exc), **proposal.to_payload())
            self._count_proposal("invalid")
            await self._publish(
                EventType.PROPOSAL_REJECTED, {**proposal.to_payload(), "error": str(exc)}
            )
            return None

        async with self._lock:
            duplicate = self._find_duplicate(proposal)
            if duplicate is None:
                self._recent.append(proposal)

        if duplicate is not None:
            self.log.info(
                "proposal_suppressed",
                proposal_id=proposal.proposal_id,
                duplicate_of=duplicate.proposal_id,
                entry_price=proposal.entry_price,
            )
            self._count_proposal("suppressed")
            await self._publish(
                EventType.PROPOSAL_SUPPRESSED,
                {**proposal.to_payload(), "duplicate_of": duplicate.proposal_id},
            )
            return None

        self._count_proposal("created")
        await self._publish(EventType.PROPOSAL_CREATED, proposal.to_payload())
        return await self._forward(proposal)

    def _threshold_verdict(self, current: Bar) -> TrendVerdict:
        buy_above = self.settings.decision.buy_above
        sell_below = self.settings.decision.sell_below
        if buy_above is not None and current.close > buy_above:
            return TrendVerdict.UPTREND
        if sell_below is not None and current.close < sell_below:
            return TrendVerdict.DOWNTREND
        return TrendVerdict.NONE

    def _build_proposal(
        self,
        verdict: TrendVerdict,
        history: list[Bar],
        indicator: MacdSnapshot | None,
        balance: float,
        now: datetime,
    ) -> TradeProposal:
        previous, current = history[-2], history[-1]
        risk = self.settings.risk
        action = TradeAction.BUY if verdict == TrendVerdict.UPTREND else TradeAction.SELL
        entry = current.open if self.settings.decision.entry_price_source == "open" else current.close
        brackets = bracket_prices(
            action,
            entry,
            risk.stop_loss_buffer,
            risk.risk_reward_ratio,
            previous=previous,
            stop_anchor=risk.stop_anchor,
        )
        size = self.sizer.size(entry, brackets.stop_loss, balance)
        confidence = self.confidence(verdict, history, indicator)
        label = "Uptrend" if verdict == TrendVerdict.UPTREND else "Downtrend"
        return TradeProposal(
            action=action,
            symbol=self.symbol,
            entry_price=entry,
            stop_loss=brackets.stop_loss,
            take_profit=brackets.take_profit,
            position_size=size,
            confidence=confidence,
            reason=f"{label} confirmed with {confidence * 100:.1f}% confidence",
            created_at=now,
            trend=verdict,
        )

    def confidence(
        self,
        verdict: TrendVerdict,
        history: list[Bar],
        indicator: MacdSnapshot | None,
    ) -> float:
        """Base 0.5 plus structure, volume and momentum bonuses, clamped to [0, 1]."""
        score = 0.5
        if structure_bias(history, self.settings.trend.structure_bias_lookback) == verdict:
            score += 0.2
        if volume_above_average(history, self.settings.indicators.volume_sma_period):
            score += 0.1
        if indicator is not None:
            score += min(
                abs(indicator.crossover_value) * self.settings.decision.macd_strength_scale, 0.2
            )
        return max(0.0, min(score, 1.0))

    def _find_duplicate(self, proposal: TradeProposal) -> TradeProposal | None:
        tolerance = self.settings.decision.duplicate_tolerance
        for recent in reversed(self._recent):
            if (
                recent.symbol == proposal.symbol
                and recent.action == proposal.action
                and abs(recent.entry_price - proposal.entry_price) < tolerance
            ):
                return recent
        return None

    async def _forward(self, proposal: TradeProposal) -> TradeProposal:
        if self.dry_run:
            proposal = proposal.with_reason("Dry run, not submitted")
            self.log.info("proposal_dry_run", **proposal.to_payload())
            self._count_proposal("dry_run")
            await self._publish(
                EventType.PROPOSAL_SUBMITTED, {**proposal.to_payload(), "dry_run": True}
            )
            return proposal

        call = self.gateway.submit_order(
            proposal.symbol,
            proposal.action.value,
            proposal.position_size,
            proposal.entry_price,
            proposal.stop_loss,
            proposal.take_profit,
            f"AUTO_{proposal.proposal_id}",
        )
        try:
            await guarded_call("submit_order", call, self.timeout)
        except CollaboratorError as exc:
            self._count_collaborator_error(exc)
            proposal = proposal.with_reason(f"Order failed: {exc.detail}")
            self.log.warning("proposal_submit_failed", error=str(exc), **proposal.to_payload())
            self._count_proposal("failed")
            await self._publish(
                EventType.PROPOSAL_REJECTED, {**proposal.to_payload(), "error": str(exc)}
            )
            return proposal

        proposal = proposal.with_reason("Order executed")
        self.log.info("proposal_submitted", **proposal.to_payload())
        self._count_proposal("submitted")
        await self._publish(EventType.PROPOSAL_SUBMITTED, proposal.to_payload())
        return proposal

    def _count_rejected(self, reason: str) -> None:
        if self.metrics:
            self.metrics.bars_rejected_total.labels(reason=reason).inc()

    def _count_proposal(self, outcome: str) -> None:
        if self.metrics:
            self.metrics.proposals_total.labels(outcome=outcome).inc()

    def _count_collaborator_error(self, exc: CollaboratorError) -> None:
        if self.metrics:
            kind = "timeout" if isinstance(exc, CollaboratorTimeout) else "failure"
            self.metrics.record_collaborator_error(exc.operation, kind)

    async def _publish(self, event_type: EventType, payload: dict[str, Any]) -> None:
        if self.bus is not None:
            await self.bus.publish(event_type, payload, {"source": "decision_engine"})
