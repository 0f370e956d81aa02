"""Timer-driven loops for the approval engine and the bar feed."""

from __future__ import annotations

import asyncio
import contextlib
import time
from datetime import datetime, timezone
from typing import Awaitable, Callable

import structlog

from ordergate.config.settings import Settings
from ordergate.connectors.base import BarFeed
from ordergate.engine.approval import OrderApprovalEngine
from ordergate.engine.decision import DecisionEngine
from ordergate.monitoring.metrics import Metrics


Clock = Callable[[], datetime]


def utc_clock() -> datetime:
    return datetime.now(timezone.utc)


class EngineScheduler:
    """Own the scan, decision, sweep, status and bar tasks.

    ``stop()`` lets in-flight work finish for up to the request timeout
    before cancelling what is left.
    """

    def __init__(
        self,
        settings: Settings,
        approval: OrderApprovalEngine,
        decision: DecisionEngine | None = None,
        feed: BarFeed | None = None,
        metrics: Metrics | None = None,
        clock: Clock = utc_clock,
    ) -> None:
        self.settings = settings
        self.approval = approval
        self.decision = decision
        self.feed = feed
        self.metrics = metrics
        self.clock = clock
        self._stopping = asyncio.Event()
        self._tasks: list[asyncio.Task] = []
        self.log = structlog.get_logger(__name__)

    @property
    def running(self) -> bool:
        return any(not task.done() for task in self._tasks)

    def start(self) -> None:
        if self.running:
            return
        self._stopping.clear()
        cfg = self.settings.approval
        self._tasks = [
            asyncio.create_task(self._every("scan", cfg.scan_interval_sec, self._scan)),
            asyncio.create_task(
                self._every("decision", cfg.decision_tick_sec, self._decision_tick)
            ),
            asyncio.create_task(
                self._every("sweep", cfg.cleanup_interval_sec, self._sweep, initial_delay=1.0)
            ),
            asyncio.create_task(
                self._every(
                    "status",
                    cfg.status_interval_sec,
                    self._status,
                    initial_delay=cfg.status_interval_sec,
                )
            ),
        ]
        if self.feed is not None:
            self._tasks.append(asyncio.create_task(self._bar_loop()))
        self.log.info("scheduler_started", tasks=len(self._tasks))

    async def stop(self, grace_sec: float | None = None) -> None:
        if not self._tasks:
            return
        grace = self.settings.bridge.request_timeout_sec if grace_sec is None else grace_sec
        self._stopping.set()
        _, still_running = await asyncio.wait(self._tasks, timeout=grace)
        for task in still_running:
            task.cancel()
        for task in self._tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._tasks = []
        self.log.info("scheduler_stopped", cancelled=len(still_running))

    async def run_forever(self) -> None:
        self.start()
        await self._stopping.wait()

    async def _every(
        self,
        name: str,
        interval: float,
        body: Callable[[], Awaitable[None]],
        initial_delay: float = 0.0,
    ) -> None:
        if initial_delay and await self._wait_stop(initial_delay):
            return
        last_tick = time.time()
        while not self._stopping.is_set():
            now = time.time()
            if self.metrics:
                self.metrics.loop_last_tick_age_sec.labels(loop=name).set(now - last_tick)
            last_tick = now
            try:
                await body()
            except Exception as exc:
                self.log.warning("scheduler_loop_error", loop=name, error=str(exc))
            if await self._wait_stop(interval):
                return

    async def _wait_stop(self, delay: float) -> bool:
        """Sleep ``delay`` seconds; True if stop was requested meanwhile."""
        with contextlib.suppress(asyncio.TimeoutError):
            await asyncio.wait_for(self._stopping.wait(), timeout=delay)
        return self._stopping.is_set()

    async def _scan(self) -> None:
        await self.approval.scan(self.clock())

    async def _decision_tick(self) -> None:
        # The engine ignores ticks outside its decision window.
        await self.approval.decide(self.clock())

    async def _sweep(self) -> None:
        await self.approval.sweep(self.clock())

    async def _status(self) -> None:
        self.log.info("engine_status", **self.approval.status())

    async def _bar_loop(self) -> None:
        async for bar in self.feed:
            if self._stopping.is_set():
                return
            try:
                if self.decision is not None:
                    await self.decision.on_bar(bar, self.clock())
                await self.approval.on_bar(bar, self.clock())
            except Exception as exc:
                self.log.warning(
                    "bar_processing_failed", timestamp=bar.timestamp.isoformat(), error=str(exc)
                )
