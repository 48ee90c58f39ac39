"""Audit sinks receiving lifecycle transition events."""

from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import List, Protocol, runtime_checkable

from abcatalog.state.errors import StateError
from abcatalog.state.models import AuditEvent


@runtime_checkable
class AuditSink(Protocol):
    """Destination for audit events emitted on every transition."""

    def record(self, event: AuditEvent) -> None: ...


class InMemoryAuditSink:
    """Keep audit events in a list; useful for tests and embedding."""

    def __init__(self) -> None:
        self._events: List[AuditEvent] = []
        self._lock = threading.Lock()

    def record(self, event: AuditEvent) -> None:
        with self._lock:
            self._events.append(event)

    @property
    def events(self) -> List[AuditEvent]:
        with self._lock:
            return list(self._events)


class JsonlAuditSink:
    """Append audit events to a JSON-lines file."""

    def __init__(self, path: Path) -> None:
        self._path = path
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def record(self, event: AuditEvent) -> None:
        line = event.model_dump_json()
        with self._lock:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with self._path.open("a", encoding="utf-8") as handle:
                handle.write(line + "\n")

    def read(self) -> List[AuditEvent]:
        """Return every event stored in the log.

        Raises:
            StateError: If a line cannot be parsed.
        """
        if not self._path.exists():
            return []
        events: List[AuditEvent] = []
        for number, line in enumerate(self._path.read_text(encoding="utf-8").splitlines(), 1):
            if not line.strip():
                continue
            try:
                events.append(AuditEvent.model_validate(json.loads(line)))
            except (json.JSONDecodeError, ValueError) as exc:
                raise StateError(
                    f"Invalid audit entry on line {number} of {self._path}: {exc}"
                ) from exc
        return events


__all__ = ["AuditSink", "InMemoryAuditSink", "JsonlAuditSink"]
