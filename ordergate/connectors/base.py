"""Collaborator contracts and the bounded-call guard."""

from __future__ import annotations

import asyncio
from typing import Any, AsyncIterator, Awaitable, Protocol, TypeVar, runtime_checkable

from ordergate.errors import CollaboratorFailure, CollaboratorTimeout
from ordergate.models import Bar, OrderInfo


DEFAULT_TIMEOUT_SEC = 10.0

T = TypeVar("T")


@runtime_checkable
class MarketDataSource(Protocol):
    async def fetch_pending_orders(self, symbol: str) -> list[OrderInfo]: ...

    async def fetch_current_price(self, symbol: str) -> float: ...

    async def fetch_account_balance(self) -> float: ...

    async def fetch_bars(self, symbol: str, period_seconds: int, count: int) -> list[Bar]: ...


@runtime_checkable
class OrderGateway(Protocol):
    async def submit_order(
        self,
        symbol: str,
        side: str,
        volume: float,
        price: float,
        stop_loss: float,
        take_profit: float,
        comment: str,
    ) -> bool: ...

    async def modify_order(
        self,
        ticket: int,
        price: float | None = None,
        stop_loss: float | None = None,
        take_profit: float | None = None,
        comment: str = "",
    ) -> bool: ...

    async def execute_order(self, ticket: int, comment: str = "") -> bool: ...

    async def cancel_order(self, ticket: int, reason: str = "") -> bool: ...


class BarFeed(Protocol):
    """Yields each newly closed bar exactly once, oldest first."""

    def __aiter__(self) -> AsyncIterator[Bar]: ...


async def guarded_call(
    operation: str,
    call: Awaitable[T],
    timeout: float = DEFAULT_TIMEOUT_SEC,
) -> T:
    """Await a collaborator call within ``timeout`` seconds.

    Timeouts raise CollaboratorTimeout. Exceptions and an explicit ``False``
    result raise CollaboratorFailure. Cancellation always propagates.
    """
    try:
        result: Any = await asyncio.wait_for(call, timeout=timeout)
    except asyncio.TimeoutError as exc:
        raise CollaboratorTimeout(operation, timeout) from exc
    except asyncio.CancelledError:
        raise
    except Exception as exc:
        raise CollaboratorFailure(operation, str(exc) or type(exc).__name__) from exc
    if result is False:
        raise CollaboratorFailure(operation, "collaborator reported failure")
    return result
