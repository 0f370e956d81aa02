"""Async REST client for the MT5 terminal bridge."""

from __future__ import annotations

import asyncio
import time
from datetime import datetime
from typing import Any, AsyncIterator

import httpx
import structlog

from ordergate.config.settings import Settings
from ordergate.models import Bar, OrderInfo


class BridgeRestClient:
    """MT5 bridge client implementing MarketDataSource and OrderGateway.

    The bridge only ever reports closed bars. Order mutations answer with
    ``{"success": bool, ...}``; anything other than an explicit ``false`` counts
    as accepted.
    """

    def __init__(self, settings: Settings, http: httpx.AsyncClient | None = None) -> None:
        self.settings = settings
        headers = {}
        if settings.bridge_api_token:
            headers["Authorization"] = f"Bearer {settings.bridge_api_token}"
        self.http = http or httpx.AsyncClient(
            base_url=settings.bridge.base_url,
            timeout=settings.bridge.request_timeout_sec,
            headers=headers,
        )
        self.log = structlog.get_logger(__name__)

    async def close(self) -> None:
        await self.http.aclose()

    async def fetch_bars(self, symbol: str, period_seconds: int, count: int) -> list[Bar]:
        data = await self._request(
            "GET",
            "/bars",
            params={"symbol": symbol, "period": period_seconds, "count": count},
        )
        rows = data.get("bars", []) if isinstance(data, dict) else data
        bars = [Bar.from_payload(row) for row in rows]
        bars.sort(key=lambda bar: bar.timestamp)
        return bars

    async def fetch_pending_orders(self, symbol: str) -> list[OrderInfo]:
        data = await self._request("GET", "/orders/pending", params={"symbol": symbol})
        rows = data.get("orders", []) if isinstance(data, dict) else data
        return [OrderInfo.from_payload(row) for row in rows]

    async def fetch_current_price(self, symbol: str) -> float:
        data = await self._request("GET", "/price", params={"symbol": symbol})
        if data.get("price") is not None:
            return float(data["price"])
        return (float(data["bid"]) + float(data["ask"])) / 2.0

    async def fetch_account_balance(self) -> float:
        data = await self._request("GET", "/account")
        return float(data["balance"])

    async def submit_order(
        self,
        symbol: str,
        side: str,
        volume: float,
        price: float,
        stop_loss: float,
        take_profit: float,
        comment: str,
    ) -> bool:
        data = await self._request(
            "POST",
            "/orders",
            json={
                "symbol": symbol,
                "type": side,
                "volume": volume,
                "price": price,
                "sl": stop_loss,
                "tp": take_profit,
                "comment": comment,
            },
        )
        return self._accepted(data)

    async def modify_order(
        self,
        ticket: int,
        price: float | None = None,
        stop_loss: float | None = None,
        take_profit: float | None = None,
        comment: str = "",
    ) -> bool:
        body: dict[str, Any] = {"comment": comment}
        if price is not None:
            body["price"] = price
        if stop_loss is not None:
            body["sl"] = stop_loss
        if take_profit is not None:
            body["tp"] = take_profit
        data = await self._request("POST", f"/orders/{ticket}/modify", json=body)
        return self._accepted(data)

    async def execute_order(self, ticket: int, comment: str = "") -> bool:
        data = await self._request("POST", f"/orders/{ticket}/execute", json={"comment": comment})
        return self._accepted(data)

    async def cancel_order(self, ticket: int, reason: str = "") -> bool:
        data = await self._request("POST", f"/orders/{ticket}/cancel", json={"reason": reason})
        return self._accepted(data)

    @staticmethod
    def _accepted(data: Any) -> bool:
        if isinstance(data, dict):
            return data.get("success", True) is not False
        return data is not False

    async def _request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> Any:
        # No retry here: a failed call is retried by the next scheduled tick.
        start = time.perf_counter()
        self.log.debug("bridge_request", method=method, path=path, params=params)
        try:
            response = await self.http.request(method, path, params=params, json=json)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self.log.warning(
                "bridge_http_error",
                method=method,
                path=path,
                status_code=exc.response.status_code,
                error=exc.response.text[:200],
            )
            raise
        except httpx.RequestError as exc:
            self.log.warning("bridge_request_error", method=method, path=path, error=str(exc))
            raise
        latency_ms = (time.perf_counter() - start) * 1000
        self.log.debug(
            "bridge_response",
            method=method,
            path=path,
            status_code=response.status_code,
            latency_ms=round(latency_ms, 2),
        )
        return response.json()


class BridgeBarFeed:
    """Poll the bridge and yield each newly closed bar once, oldest first."""

    def __init__(
        self,
        client: BridgeRestClient,
        symbol: str,
        period_seconds: int,
        poll_interval_sec: float = 1.0,
        since: datetime | None = None,
        batch_size: int = 5,
    ) -> None:
        self.client = client
        self.symbol = symbol
        self.period_seconds = period_seconds
        self.poll_interval_sec = poll_interval_sec
        self.last_timestamp = since
        self.batch_size = batch_size
        self.log = structlog.get_logger(__name__)

    async def poll(self) -> list[Bar]:
        """Bars newer than the last one returned; empty when nothing closed."""
        bars = await self.client.fetch_bars(self.symbol, self.period_seconds, self.batch_size)
        fresh = [
            bar
            for bar in bars
            if self.last_timestamp is None or bar.timestamp > self.last_timestamp
        ]
        if fresh:
            self.last_timestamp = fresh[-1].timestamp
        return fresh

    async def __aiter__(self) -> AsyncIterator[Bar]:
        while True:
            try:
                fresh = await self.poll()
            except (httpx.HTTPError, KeyError, ValueError) as exc:
                self.log.warning("bar_poll_failed", symbol=self.symbol, error=str(exc))
                fresh = []
            for bar in fresh:
                yield bar
            await asyncio.sleep(self.poll_interval_sec)
