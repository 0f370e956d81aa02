"""Prometheus metrics definitions."""

from __future__ import annotations

from prometheus_client import CollectorRegistry, Counter, Gauge, REGISTRY, start_http_server


class Metrics:
    """Counters and gauges for both engines.

    Tests pass a fresh ``CollectorRegistry`` so several instances can coexist.
    """

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self.registry = registry if registry is not None else REGISTRY
        reg = self.registry

        self.bars_received_total = Counter(
            "bars_received_total", "Bars accepted into history", registry=reg
        )
        self.bars_rejected_total = Counter(
            "bars_rejected_total",
            "Bars dropped before entering history",
            ["reason"],
            registry=reg,
        )
        self.last_bar_timestamp = Gauge(
            "last_bar_timestamp", "Epoch seconds of the newest accepted bar", registry=reg
        )

        self.trend_verdicts_total = Counter(
            "trend_verdicts_total", "Confirmed trend verdicts", ["verdict"], registry=reg
        )
        self.proposals_total = Counter(
            "proposals_total",
            "Trade proposals by outcome",
            ["outcome"],
            registry=reg,
        )

        self.pending_orders = Gauge(
            "pending_orders", "User orders awaiting a decision", registry=reg
        )
        self.active_orders = Gauge(
            "active_orders", "User orders approved and executed", registry=reg
        )
        self.orders_detected_total = Counter(
            "orders_detected_total", "User orders detected by the scan", registry=reg
        )
        self.orders_approved_total = Counter(
            "orders_approved_total",
            "User orders approved",
            ["classification"],
            registry=reg,
        )
        self.orders_cancelled_total = Counter(
            "orders_cancelled_total", "User orders cancelled", registry=reg
        )
        self.orders_expired_total = Counter(
            "orders_expired_total", "User orders expired", registry=reg
        )
        self.decision_cycles_total = Counter(
            "decision_cycles_total", "Decision points evaluated", registry=reg
        )

        self.collaborator_errors_total = Counter(
            "collaborator_errors_total",
            "Failed or timed out collaborator calls",
            ["operation", "kind"],
            registry=reg,
        )
        self.loop_last_tick_age_sec = Gauge(
            "loop_last_tick_age_sec",
            "Seconds since the loop last ticked",
            ["loop"],
            registry=reg,
        )

    def start(self, port: int) -> None:
        start_http_server(port, registry=self.registry)

    def record_collaborator_error(self, operation: str, kind: str) -> None:
        self.collaborator_errors_total.labels(operation=operation, kind=kind).inc()
