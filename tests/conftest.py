from __future__ import annotations

import asyncio
import re
import shutil
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable
from uuid import uuid4

import pytest

from ordergate.config.settings import Settings
from ordergate.models import Bar, OrderInfo


# Exactly on a minute boundary.
BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _safe_node_name(name: str) -> str:
    name = re.sub(r"[^A-Za-z0-9._-]+", "_", name).strip("._")
    return name or "test"


@pytest.fixture
def workspace_tmp_path(request: pytest.FixtureRequest) -> Path:
    """Temp dir rooted in the workspace (not system temp)."""
    root = Path.cwd() / ".pytest_tmp_workspace" / _safe_node_name(request.node.name) / uuid4().hex
    root.mkdir(parents=True, exist_ok=True)
    try:
        yield root
    finally:
        shutil.rmtree(root, ignore_errors=True)


@dataclass
class DummyEventBus:
    events: list[tuple[Any, dict[str, Any]]] = field(default_factory=list)

    async def publish(self, event_type, payload, metadata=None):
        self.events.append((event_type, payload))
        return None

    def types(self) -> list[Any]:
        return [event_type for event_type, _ in self.events]

    def payloads(self, event_type) -> list[dict[str, Any]]:
        return [payload for kind, payload in self.events if kind == event_type]


class FakeBridge:
    """In-memory market data source and order gateway.

    ``results`` overrides the boolean answer of a mutation, ``errors`` makes an
    operation raise and ``delays`` makes it sleep first.
    """

    def __init__(
        self,
        orders: list[OrderInfo] | None = None,
        price: float = 100.0,
        balance: float = 10_000.0,
    ) -> None:
        self.orders = list(orders or [])
        self.price = price
        self.balance = balance
        self.bars: list[Bar] = []
        self.calls: list[tuple[Any, ...]] = []
        self.results: dict[str, bool] = {}
        self.errors: dict[str, Exception] = {}
        self.delays: dict[str, float] = {}

    async def _call(self, operation: str, *args: Any) -> Any:
        self.calls.append((operation, *args))
        if operation in self.delays:
            await asyncio.sleep(self.delays[operation])
        if operation in self.errors:
            raise self.errors[operation]
        return self.results.get(operation, True)

    def calls_for(self, operation: str) -> list[tuple[Any, ...]]:
        return [call[1:] for call in self.calls if call[0] == operation]

    async def fetch_pending_orders(self, symbol: str) -> list[OrderInfo]:
        await self._call("fetch_pending_orders", symbol)
        return list(self.orders)

    async def fetch_current_price(self, symbol: str) -> float:
        await self._call("fetch_current_price", symbol)
        return self.price

    async def fetch_account_balance(self) -> float:
        await self._call("fetch_account_balance")
        return self.balance

    async def fetch_bars(self, symbol: str, period_seconds: int, count: int) -> list[Bar]:
        await self._call("fetch_bars", symbol, period_seconds, count)
        return self.bars[-count:]

    async def submit_order(self, symbol, side, volume, price, stop_loss, take_profit, comment):
        return await self._call(
            "submit_order", symbol, side, volume, price, stop_loss, take_profit, comment
        )

    async def modify_order(self, ticket, price=None, stop_loss=None, take_profit=None, comment=""):
        return await self._call("modify_order", ticket, comment)

    async def execute_order(self, ticket, comment=""):
        return await self._call("execute_order", ticket, comment)

    async def cancel_order(self, ticket, reason=""):
        return await self._call("cancel_order", ticket, reason)


@pytest.fixture
def bridge() -> FakeBridge:
    return FakeBridge()


@pytest.fixture
def bus() -> DummyEventBus:
    return DummyEventBus()


@pytest.fixture
def make_settings() -> Callable[..., Settings]:
    """Live-mode settings with section overrides, isolated from .env files."""

    def _make(**sections: Any) -> Settings:
        sections.setdefault("run", {"dry_run": False})
        return Settings(_env_file=None, **sections)

    return _make


@pytest.fixture
def make_bar() -> Callable[..., Bar]:
    def _make(
        open: float,
        high: float,
        low: float,
        close: float,
        minute: int = 0,
        volume: int = 100,
    ) -> Bar:
        return Bar(
            timestamp=BASE_TIME + timedelta(minutes=minute),
            open=open,
            high=high,
            low=low,
            close=close,
            volume=volume,
        )

    return _make


@pytest.fixture
def make_order() -> Callable[..., OrderInfo]:
    def _make(
        ticket: int = 1,
        order_type: str = "BUY_LIMIT",
        price: float = 100.0,
        symbol: str = "EURUSD",
        comment: str = "",
    ) -> OrderInfo:
        return OrderInfo(
            ticket=ticket,
            symbol=symbol,
            order_type=order_type,
            volume=0.1,
            price=price,
            comment=comment,
        )

    return _make
