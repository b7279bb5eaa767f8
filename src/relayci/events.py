# events.py
from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol


@dataclass(frozen=True)
class Event:
    """
    One lifecycle transition.

    kind is dotted ("job.started", "artifact.saved", ...). Rendering is the
    sink's business; the runtime only fills in the fields.
    """
    kind: str
    message: str
    job: Optional[str] = None
    action: Optional[str] = None
    fields: Dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)


class EventSink(Protocol):
    def emit(self, event: Event) -> None: ...


class NullSink:
    def emit(self, event: Event) -> None:
        pass


class RecordingSink:
    """Keeps every event in memory. Safe to share between job threads."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._events: List[Event] = []

    def emit(self, event: Event) -> None:
        with self._lock:
            self._events.append(event)

    @property
    def events(self) -> List[Event]:
        with self._lock:
            return list(self._events)

    def kinds(self, job: Optional[str] = None) -> List[str]:
        return [e.kind for e in self.events if job is None or e.job == job]

    def of_kind(self, kind: str) -> List[Event]:
        return [e for e in self.events if e.kind == kind]

