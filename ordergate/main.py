"""Runtime entrypoint: wire the engines to the MT5 bridge and run the loops."""

from __future__ import annotations

import asyncio
import contextlib
import signal

import structlog

from ordergate.config.settings import Settings, load_settings
from ordergate.connectors import BridgeBarFeed, BridgeRestClient, guarded_call
from ordergate.engine import DecisionEngine, EngineScheduler, OrderApprovalEngine
from ordergate.errors import CollaboratorError
from ordergate.ledger import EventBus, EventLedger, EventType
from ordergate.monitoring import DecisionLogger, Metrics, configure_logging

log = structlog.get_logger(__name__)


async def bootstrap_history(
    settings: Settings,
    client: BridgeRestClient,
    decision: DecisionEngine,
    approval: OrderApprovalEngine,
) -> None:
    """Seed both engines with recent closed bars so indicators start warm."""
    instrument = settings.instrument
    try:
        bars = await guarded_call(
            "fetch_bars",
            client.fetch_bars(instrument.symbol, instrument.period_seconds, instrument.history_bars),
            settings.bridge.request_timeout_sec,
        )
    except CollaboratorError as exc:
        log.warning("history_bootstrap_failed", error=str(exc))
        return
    accepted = decision.seed_history(bars)
    for bar in bars[-settings.approval.price_history_size :]:
        await approval.on_bar(bar)
    log.info("history_bootstrapped", symbol=instrument.symbol, bars=accepted)


async def main_async(settings: Settings | None = None) -> None:
    settings = settings or load_settings()
    configure_logging(
        settings.monitoring.log_level,
        settings.storage.logs_path,
        settings.monitoring,
        symbol=settings.instrument.symbol,
        mode="dry_run" if settings.run.dry_run else "live",
    )
    errors = settings.validate_for_trading()
    if errors:
        log.error("settings_validation_failed", errors=errors, dry_run=settings.run.dry_run)
        return

    ledger = EventLedger(settings.storage.ledger_path)
    event_bus = EventBus(ledger)
    decision_logger = DecisionLogger(f"{settings.storage.logs_path}/decisions.csv")
    event_bus.register_many(list(DecisionLogger.SUPPORTED), decision_logger.handle_event)

    metrics = Metrics()
    if settings.monitoring.metrics_enabled:
        metrics.start(settings.monitoring.metrics_port)

    client = BridgeRestClient(settings)
    decision = DecisionEngine(settings, client, client, bus=event_bus, metrics=metrics)
    approval = OrderApprovalEngine(settings, client, client, bus=event_bus, metrics=metrics)
    await bootstrap_history(settings, client, decision, approval)

    history = decision.history
    feed = BridgeBarFeed(
        client,
        settings.instrument.symbol,
        settings.instrument.period_seconds,
        poll_interval_sec=settings.bridge.bar_poll_interval_sec,
        since=history[-1].timestamp if history else None,
    )
    scheduler = EngineScheduler(settings, approval, decision=decision, feed=feed, metrics=metrics)

    loop = asyncio.get_running_loop()
    stop_requested = asyncio.Event()
    for sig in (signal.SIGINT, signal.SIGTERM):
        # Not available on every platform (e.g. Windows event loops).
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, stop_requested.set)

    await event_bus.publish(
        EventType.SYSTEM_STARTED,
        {
            "symbol": settings.instrument.symbol,
            "strategy": decision.strategy.value,
            "dry_run": settings.run.dry_run,
        },
        {"source": "main"},
    )
    log.info(
        "system_started",
        symbol=settings.instrument.symbol,
        strategy=decision.strategy.value,
        dry_run=settings.run.dry_run,
    )
    scheduler.start()
    try:
        await stop_requested.wait()
    finally:
        await scheduler.stop()
        await event_bus.publish(EventType.SYSTEM_STOPPED, approval.status(), {"source": "main"})
        await client.close()
        log.info("system_stopped")


def main() -> None:
    asyncio.run(main_async())


if __name__ == "__main__":
    main()
