"""Delayed-execution approval of manually placed orders.

Orders a trader places by hand are detected by a periodic scan and held as
pending. Once per bar period, at a fixed second, the engine predicts the
near-term trend from recent opening prices and either executes each pending
order, leaves it pending, or cancels it. Orders held longer than the
configured limit expire.

Collaborator calls are made outside the engine lock; only the short
bookkeeping steps before and after them run under it.
"""

from __future__ import annotations

import asyncio
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Literal

import structlog

from ordergate.config.settings import Settings
from ordergate.connectors.base import MarketDataSource, OrderGateway, guarded_call
from ordergate.errors import CollaboratorError, CollaboratorTimeout, InvalidBar
from ordergate.ledger.bus import EventBus
from ordergate.ledger.events import EventType
from ordergate.models import (
    Bar,
    OrderInfo,
    PendingUserOrder,
    TrendClassification,
    validate_bar,
)
from ordergate.monitoring.metrics import Metrics
from ordergate.strategy.prediction import (
    average_price,
    classify_percent_change,
    percent_change,
    should_approve,
)


PAUSED_COMMENT = "PAUSED_BY_SYSTEM"
APPROVED_COMMENT_PREFIX = "APPROVED_BY_SYSTEM_"
CANCELLED_COMMENT = "CANCELLED_BY_SYSTEM"
EXPIRED_COMMENT = "EXPIRED_BY_SYSTEM"

Outcome = Literal["approved", "held", "cancelled", "failed", "skipped"]


@dataclass(frozen=True)
class OrderDecision:
    ticket: int
    outcome: Outcome
    approved: bool
    detail: str = ""


@dataclass(frozen=True)
class DecisionCycle:
    period_key: int
    evaluated_at: datetime
    current_price: float
    reference_price: float
    percent_change: float
    classification: TrendClassification
    decisions: list[OrderDecision] = field(default_factory=list)

    def outcomes(self) -> dict[int, Outcome]:
        return {decision.ticket: decision.outcome for decision in self.decisions}


def period_key(now: datetime, period_seconds: int) -> int:
    """Index of the bar period containing ``now``."""
    return int(now.timestamp()) // period_seconds


def second_of_period(now: datetime, period_seconds: int) -> int:
    return int(now.timestamp()) % period_seconds


class OrderApprovalEngine:
    """Track user orders through PENDING to APPROVED, CANCELLED or EXPIRED."""

    def __init__(
        self,
        settings: Settings,
        market: MarketDataSource,
        gateway: OrderGateway,
        bus: EventBus | None = None,
        metrics: Metrics | None = None,
    ) -> None:
        self.settings = settings
        self.config = settings.approval
        self.market = market
        self.gateway = gateway
        self.bus = bus
        self.metrics = metrics
        self.symbol = settings.instrument.symbol
        self.period_seconds = settings.instrument.period_seconds
        self.dry_run = settings.run.dry_run
        self.timeout = settings.bridge.request_timeout_sec

        self._pending: dict[int, PendingUserOrder] = {}
        self._active: dict[int, OrderInfo] = {}
        self._cancelled: set[int] = set()
        self._expired: set[int] = set()
        # Tickets with an execute or cancel in flight; sweep leaves them alone.
        self._deciding: set[int] = set()
        self._opens: deque[float] = deque(maxlen=self.config.price_history_size)
        self._last_bar_time: datetime | None = None
        self._last_decision_period: int | None = None
        self._last_price: float | None = None
        self._last_classification: TrendClassification | None = None
        self._lock = asyncio.Lock()
        self.log = structlog.get_logger(__name__)

    @property
    def pending(self) -> dict[int, PendingUserOrder]:
        return dict(self._pending)

    @property
    def active(self) -> dict[int, OrderInfo]:
        return dict(self._active)

    @property
    def cancelled(self) -> set[int]:
        return set(self._cancelled)

    @property
    def expired(self) -> set[int]:
        return set(self._expired)

    @property
    def last_bar_time(self) -> datetime | None:
        return self._last_bar_time

    def is_tracked(self, ticket: int) -> bool:
        return (
            ticket in self._pending
            or ticket in self._active
            or ticket in self._cancelled
            or ticket in self._expired
        )

    def is_user_order(self, order: OrderInfo) -> bool:
        if order.has_marker(self.config.system_markers):
            return False
        return order.symbol == self.symbol

    async def on_bar(self, bar: Bar, now: datetime | None = None) -> None:
        """Record the bar time and its opening price for trend prediction."""
        try:
            validate_bar(bar, now)
        except InvalidBar as exc:
            self.log.warning("bar_rejected", rule=exc.rule, timestamp=str(bar.timestamp))
            return
        async with self._lock:
            if self._last_bar_time is not None and bar.timestamp <= self._last_bar_time:
                return
            self._last_bar_time = bar.timestamp
            self._opens.append(bar.open)

    async def scan(self, now: datetime | None = None) -> list[PendingUserOrder]:
        """Fetch outstanding orders and start tracking new user orders."""
        now = now or datetime.now(timezone.utc)
        try:
            orders = await guarded_call(
                "fetch_pending_orders",
                self.market.fetch_pending_orders(self.symbol),
                self.timeout,
            )
        except CollaboratorError as exc:
            self._collaborator_error(exc)
            self.log.warning("order_scan_failed", error=str(exc))
            return []

        detected: list[PendingUserOrder] = []
        async with self._lock:
            for order in orders:
                if self.is_tracked(order.ticket) or not self.is_user_order(order):
                    continue
                entry = PendingUserOrder(
                    order=order,
                    detected_at=now,
                    originating_bar_time=self._last_bar_time,
                )
                self._pending[order.ticket] = entry
                detected.append(entry)
            pending_count = len(self._pending)

        if self.metrics:
            self.metrics.pending_orders.set(pending_count)
        for entry in detected:
            order = entry.order
            self.log.info(
                "user_order_detected",
                ticket=order.ticket,
                symbol=order.symbol,
                order_type=order.order_type,
                volume=order.volume,
                price=order.price,
                decision_second=self.config.decision_second,
            )
            if self.metrics:
                self.metrics.orders_detected_total.inc()
            await self._publish(EventType.ORDER_DETECTED, self._order_payload(order))
            if self.config.auto_pause_orders:
                await self._pause(order)
        return detected

    async def _pause(self, order: OrderInfo) -> None:
        # Advisory only: local state does not depend on the outcome.
        if self.dry_run:
            self.log.info("user_order_pause_dry_run", ticket=order.ticket)
            return
        try:
            await guarded_call(
                "modify_order",
                self.gateway.modify_order(
                    order.ticket,
                    price=order.price,
                    stop_loss=order.stop_loss,
                    take_profit=order.take_profit,
                    comment=PAUSED_COMMENT,
                ),
                self.timeout,
            )
        except CollaboratorError as exc:
            self._collaborator_error(exc)
            self.log.warning("user_order_pause_failed", ticket=order.ticket, error=str(exc))
            return
        self.log.info("user_order_paused", ticket=order.ticket)
        await self._publish(
            EventType.ORDER_PAUSED, {**self._order_payload(order), "comment": PAUSED_COMMENT}
        )

    def in_decision_window(self, now: datetime) -> bool:
        second = second_of_period(now, self.period_seconds)
        start = self.config.decision_second
        return start <= second < start + self.config.decision_window_sec

    async def decide(self, now: datetime | None = None) -> DecisionCycle | None:
        """Run the decision point for the bar period containing ``now``.

        Only fires inside ``[decision_second, decision_second + decision_window_sec)``
        and only once per period. The first call inside the window consumes the
        period even when nothing is pending, so orders detected later wait for
        the next period. Returns None when the call falls outside the window,
        the period was already consumed, nothing is pending, or the current
        price is unavailable.
        """
        now = now or datetime.now(timezone.utc)
        if not self.in_decision_window(now):
            return None
        key = period_key(now, self.period_seconds)
        async with self._lock:
            if self._last_decision_period == key:
                return None
            self._last_decision_period = key
            candidates = list(self._pending.values())
            if not candidates:
                return None
            opens = list(self._opens)

        try:
            price = float(
                await guarded_call(
                    "fetch_current_price",
                    self.market.fetch_current_price(self.symbol),
                    self.timeout,
                )
            )
        except CollaboratorError as exc:
            self._collaborator_error(exc)
            self.log.warning("decision_price_unavailable", error=str(exc), pending=len(candidates))
            return None

        reference = average_price(opens, price)
        change = percent_change(price, reference)
        classification = classify_percent_change(change, self.config)
        self._last_price = price
        self._last_classification = classification
        self.log.info(
            "decision_point",
            period=key,
            current_price=price,
            reference_price=round(reference, 6),
            percent_change=round(change, 4),
            classification=classification.value,
            pending=len(candidates),
        )

        decisions = []
        for entry in candidates:
            decisions.append(await self._decide_order(entry.order, classification, price))

        cycle = DecisionCycle(
            period_key=key,
            evaluated_at=now,
            current_price=price,
            reference_price=reference,
            percent_change=change,
            classification=classification,
            decisions=decisions,
        )
        if self.metrics:
            self.metrics.decision_cycles_total.inc()
            self.metrics.pending_orders.set(len(self._pending))
            self.metrics.active_orders.set(len(self._active))
        await self._publish(
            EventType.DECISION_CYCLE_COMPLETED,
            {
                "symbol": self.symbol,
                "period": key,
                "current_price": price,
                "percent_change": round(change, 4),
                "classification": classification.value,
                "outcomes": {str(d.ticket): d.outcome for d in decisions},
            },
        )
        return cycle

    async def _decide_order(
        self,
        order: OrderInfo,
        classification: TrendClassification,
        price: float,
    ) -> OrderDecision:
        context = {
            **self._order_payload(order),
            "current_price": price,
            "classification": classification.value,
        }
        async with self._lock:
            claimed = order.ticket in self._pending and order.ticket not in self._deciding
            if claimed:
                self._deciding.add(order.ticket)
        if not claimed:
            # Expired or otherwise resolved while the price was being fetched
            self.log.info("user_order_no_longer_pending", **context)
            return OrderDecision(order.ticket, "skipped", False)
        try:
            return await self._resolve(order, classification, price, context)
        finally:
            async with self._lock:
                self._deciding.discard(order.ticket)

    async def _resolve(
        self,
        order: OrderInfo,
        classification: TrendClassification,
        price: float,
        context: dict[str, Any],
    ) -> OrderDecision:
        if should_approve(order, classification, price, self.config):
            comment = f"{APPROVED_COMMENT_PREFIX}{classification.value}"
            try:
                await self._mutate(
                    "execute_order", self.gateway.execute_order, order.ticket, comment
                )
            except CollaboratorError as exc:
                self._collaborator_error(exc)
                self.log.warning("user_order_execute_failed", error=str(exc), **context)
                return OrderDecision(order.ticket, "failed", True, str(exc))
            async with self._lock:
                entry = self._pending.pop(order.ticket, None)
                if entry is not None:
                    entry.approved = True
                self._active[order.ticket] = order
            self.log.info("user_order_approved", comment=comment, **context)
            if self.metrics:
                self.metrics.orders_approved_total.labels(
                    classification=classification.value
                ).inc()
            await self._publish(EventType.ORDER_APPROVED, {**context, "comment": comment})
            return OrderDecision(order.ticket, "approved", True)

        if not self.config.auto_cancel_orders:
            self.log.info("user_order_held", **context)
            await self._publish(EventType.ORDER_HELD, context)
            return OrderDecision(order.ticket, "held", False)

        try:
            await self._mutate(
                "cancel_order", self.gateway.cancel_order, order.ticket, CANCELLED_COMMENT
            )
        except CollaboratorError as exc:
            self._collaborator_error(exc)
            self.log.warning("user_order_cancel_failed", error=str(exc), **context)
            return OrderDecision(order.ticket, "failed", False, str(exc))
        async with self._lock:
            self._pending.pop(order.ticket, None)
            self._cancelled.add(order.ticket)
        self.log.info("user_order_cancelled", **context)
        if self.metrics:
            self.metrics.orders_cancelled_total.inc()
        await self._publish(
            EventType.ORDER_CANCELLED, {**context, "reason": CANCELLED_COMMENT}
        )
        return OrderDecision(order.ticket, "cancelled", False)

    async def sweep(self, now: datetime | None = None) -> list[int]:
        """Expire orders pending longer than the hold limit. Returns their tickets."""
        now = now or datetime.now(timezone.utc)
        hold = timedelta(seconds=self.config.max_order_hold_sec)
        async with self._lock:
            stale = [
                entry
                for entry in self._pending.values()
                if entry.detected_at + hold < now and entry.ticket not in self._deciding
            ]
            for entry in stale:
                del self._pending[entry.ticket]
                self._expired.add(entry.ticket)
            pending_count = len(self._pending)

        if self.metrics:
            self.metrics.pending_orders.set(pending_count)
        for entry in stale:
            held_sec = (now - entry.detected_at).total_seconds()
            self.log.info("user_order_expired", ticket=entry.ticket, held_sec=round(held_sec, 1))
            if self.metrics:
                self.metrics.orders_expired_total.inc()
            await self._publish(
                EventType.ORDER_EXPIRED,
                {**self._order_payload(entry.order), "reason": EXPIRED_COMMENT},
            )
            if self.config.cancel_on_expiry:
                try:
                    await self._mutate(
                        "cancel_order", self.gateway.cancel_order, entry.ticket, EXPIRED_COMMENT
                    )
                except CollaboratorError as exc:
                    self._collaborator_error(exc)
                    self.log.warning(
                        "expired_order_cancel_failed", ticket=entry.ticket, error=str(exc)
                    )
        return [entry.ticket for entry in stale]

    def status(self) -> dict[str, Any]:
        return {
            "symbol": self.symbol,
            "mode": "dry_run" if self.dry_run else "live",
            "pending": len(self._pending),
            "active": len(self._active),
            "cancelled": len(self._cancelled),
            "expired": len(self._expired),
            "opens_recorded": len(self._opens),
            "last_price": self._last_price,
            "last_classification": (
                self._last_classification.value if self._last_classification else None
            ),
            "last_bar_time": self._last_bar_time.isoformat() if self._last_bar_time else None,
        }

    async def _mutate(self, operation: str, method: Any, ticket: int, comment: str) -> None:
        if self.dry_run:
            self.log.info("order_mutation_dry_run", operation=operation, ticket=ticket)
            return
        await guarded_call(operation, method(ticket, comment), self.timeout)

    def _collaborator_error(self, exc: CollaboratorError) -> None:
        if self.metrics:
            kind = "timeout" if isinstance(exc, CollaboratorTimeout) else "failure"
            self.metrics.record_collaborator_error(exc.operation, kind)

    def _order_payload(self, order: OrderInfo) -> dict[str, Any]:
        return {
            "ticket": order.ticket,
            "symbol": order.symbol,
            "order_type": order.order_type,
            "volume": order.volume,
            "order_price": order.price,
        }

    async def _publish(self, event_type: EventType, payload: dict[str, Any]) -> None:
        if self.bus is not None:
            await self.bus.publish(event_type, payload, {"source": "approval_engine"})
