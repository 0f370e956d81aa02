"""Order decision CSV logger."""

from __future__ import annotations

import csv
from pathlib import Path
from typing import Any

from ordergate.ledger.events import Event, EventType


class DecisionLogger:
    """Append user-order lifecycle events to a CSV file."""

    SUPPORTED = (
        EventType.ORDER_DETECTED,
        EventType.ORDER_APPROVED,
        EventType.ORDER_HELD,
        EventType.ORDER_CANCELLED,
        EventType.ORDER_EXPIRED,
    )

    FIELDNAMES = [
        "timestamp",
        "event_type",
        "ticket",
        "symbol",
        "order_type",
        "order_price",
        "current_price",
        "classification",
        "comment",
        "reason",
    ]

    def __init__(self, log_path: str | Path) -> None:
        self.log_path = Path(log_path)
        self.log_path.parent.mkdir(parents=True, exist_ok=True)
        if not self.log_path.exists():
            with open(self.log_path, "w", newline="") as handle:
                csv.DictWriter(handle, fieldnames=self.FIELDNAMES).writeheader()

    def handle_event(self, event: Event) -> None:
        if event.event_type not in self.SUPPORTED:
            return
        payload = event.payload
        self._append_row(
            {
                "timestamp": event.timestamp.isoformat(),
                "event_type": event.event_type.value,
                "ticket": payload.get("ticket", ""),
                "symbol": payload.get("symbol", ""),
                "order_type": payload.get("order_type", ""),
                "order_price": payload.get("order_price", ""),
                "current_price": payload.get("current_price", ""),
                "classification": payload.get("classification", ""),
                "comment": payload.get("comment", ""),
                "reason": payload.get("reason", ""),
            }
        )

    def _append_row(self, row: dict[str, Any]) -> None:
        with open(self.log_path, "a", newline="") as handle:
            csv.DictWriter(handle, fieldnames=self.FIELDNAMES).writerow(row)
