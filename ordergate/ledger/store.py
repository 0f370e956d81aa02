"""Append-only JSONL record of engine activity."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Iterable, Iterator

import orjson

from ordergate.ledger.events import Event, EventType, new_event


class EventLedger:
    """Append-only event store; sequence numbers resume from the file tail."""

    def __init__(self, ledger_path: str | Path) -> None:
        self.ledger_path = Path(ledger_path)
        self.ledger_path.mkdir(parents=True, exist_ok=True)
        self.events_file = self.ledger_path / "events.jsonl"
        self._sequence = self._read_last_sequence()

    def _read_last_sequence(self) -> int:
        if not self.events_file.exists():
            return 0
        with open(self.events_file, "rb") as handle:
            handle.seek(0, os.SEEK_END)
            size = handle.tell()
            if size == 0:
                return 0
            offset = min(size, 4096)
            handle.seek(-offset, os.SEEK_END)
            lines = [line for line in handle.read(offset).splitlines() if line.strip()]
        if not lines:
            return 0
        try:
            return int(orjson.loads(lines[-1]).get("sequence_num", 0))
        except orjson.JSONDecodeError:
            # Torn final line from a crash mid-write
            return 0

    def last_sequence(self) -> int:
        return self._sequence

    def append(
        self,
        event_type: EventType,
        payload: dict[str, Any],
        metadata: dict[str, Any] | None = None,
    ) -> Event:
        self._sequence += 1
        event = new_event(event_type, payload, self._sequence, metadata)
        with open(self.events_file, "ab") as handle:
            handle.write(orjson.dumps(event.to_dict()) + b"\n")
        return event

    def iter_events(self, event_type: EventType | None = None) -> Iterable[Event]:
        """Iterate recorded events, optionally of one type only."""
        if not self.events_file.exists():
            return iter(())

        def _iter() -> Iterator[Event]:
            with open(self.events_file, "rb") as handle:
                for line in handle:
                    if not line.strip():
                        continue
                    event = Event.from_dict(orjson.loads(line))
                    if event_type is None or event.event_type == event_type:
                        yield event

        return _iter()

    def load_all(self) -> list[Event]:
        return list(self.iter_events())
