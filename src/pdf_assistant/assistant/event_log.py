"""Bounded, observational record of realtime protocol traffic."""

from __future__ import annotations

import uuid
from collections import deque
from collections.abc import Iterator
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from pdf_assistant.config import EVENT_LOG_CAPACITY


class EventDirection(str, Enum):
    INCOMING = "incoming"
    OUTGOING = "outgoing"


@dataclass(frozen=True)
class EventLogEntry:
    id: str
    timestamp: str
    type: str
    direction: EventDirection
    payload: Any


class EventLog:
    """Keeps the most recent protocol events; the oldest entry is evicted first."""

    def __init__(self, capacity: int = EVENT_LOG_CAPACITY):
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self._entries: deque[EventLogEntry] = deque(maxlen=capacity)

    @property
    def capacity(self) -> int:
        return self._entries.maxlen or 0

    def append(self, event_type: str, direction: EventDirection, payload: Any) -> EventLogEntry:
        entry = EventLogEntry(
            id=uuid.uuid4().hex,
            timestamp=datetime.now().isoformat(timespec="milliseconds"),
            type=event_type,
            direction=EventDirection(direction),
            payload=payload,
        )
        self._entries.append(entry)
        return entry

    def entries(self) -> list[EventLogEntry]:
        return list(self._entries)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[EventLogEntry]:
        return iter(list(self._entries))


__all__ = ["EventDirection", "EventLog", "EventLogEntry"]
