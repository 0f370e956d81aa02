"""Event ledger and bus."""

from ordergate.ledger.bus import EventBus
from ordergate.ledger.events import Event, EventType
from ordergate.ledger.store import EventLedger

__all__ = ["Event", "EventType", "EventLedger", "EventBus"]
