"""Event bus that appends to the ledger before dispatching."""

from __future__ import annotations

import asyncio
from collections import defaultdict
from typing import Any, Awaitable, Callable, Iterable

import structlog

from ordergate.ledger.events import Event, EventType
from ordergate.ledger.store import EventLedger

EventHandler = Callable[[Event], Awaitable[None] | None]


class EventBus:
    """Persist engine events, then fan them out to subscribers.

    Handlers run in registration order. A failing handler is logged and
    reported once as HANDLER_FAILED; the remaining handlers still run and
    the publisher never sees the exception.
    """

    def __init__(self, ledger: EventLedger) -> None:
        self._ledger = ledger
        self._subscribers: dict[EventType, list[EventHandler]] = defaultdict(list)
        self._log = structlog.get_logger(__name__)

    def register(self, event_type: EventType, handler: EventHandler) -> None:
        self._subscribers[event_type].append(handler)

    def register_many(self, event_types: Iterable[EventType], handler: EventHandler) -> None:
        for event_type in event_types:
            self.register(event_type, handler)

    async def publish(
        self,
        event_type: EventType,
        payload: dict[str, Any],
        metadata: dict[str, Any] | None = None,
    ) -> Event:
        event = self._ledger.append(event_type, payload, metadata)
        await self._dispatch(event)
        return event

    async def _dispatch(self, event: Event) -> None:
        for handler in list(self._subscribers.get(event.event_type, [])):
            try:
                outcome = handler(event)
                if asyncio.iscoroutine(outcome):
                    await outcome
            except asyncio.CancelledError:
                raise
            except Exception:
                await self._report_failure(event, getattr(handler, "__name__", repr(handler)))

    async def _report_failure(self, event: Event, handler_name: str) -> None:
        self._log.exception(
            "event_handler_failed",
            event_id=event.event_id,
            event_type=event.event_type.value,
            source=event.metadata.get("source"),
            handler=handler_name,
        )
        # A failure while handling a failure report is only logged
        if event.event_type == EventType.HANDLER_FAILED:
            return
        try:
            await self.publish(
                EventType.HANDLER_FAILED,
                {
                    "event_id": event.event_id,
                    "event_type": event.event_type.value,
                    "sequence_num": event.sequence_num,
                    "handler": handler_name,
                },
                {"source": "event_bus"},
            )
        except Exception:
            self._log.exception(
                "handler_failure_publish_failed",
                event_id=event.event_id,
                event_type=event.event_type.value,
                handler=handler_name,
            )
