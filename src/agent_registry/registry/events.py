"""EventLog — append-only JSONL sink for registry events.

Every committed registry event (``agent_registered``,
``service_endpoint_updated``) is appended as a single JSON line to the
configured file, giving external indexers and UIs a replayable feed.
:meth:`EventLog.replay` reads the feed back as event objects.

If no file path is configured the log keeps lines in an in-memory buffer
that can be drained via :meth:`EventLog.drain_buffer`.
"""
from __future__ import annotations

import datetime
import json
import logging
import threading
from pathlib import Path

from agent_registry.registry.records import RegistryEvent, event_from_dict

logger = logging.getLogger(__name__)


class EventLog:
    """Append-only JSONL log of registry events.

    Thread-safe. Each call to :meth:`record` appends one JSON line.

    Parameters
    ----------
    log_path:
        Path to the JSONL file. Parent directories are created
        automatically. If None, events are buffered in memory only.
    """

    def __init__(self, log_path: Path | None = None) -> None:
        self._log_path = log_path
        self._buffer: list[str] = []
        self._lock = threading.Lock()

        if log_path is not None:
            log_path.parent.mkdir(parents=True, exist_ok=True)

    def record(self, event: RegistryEvent) -> None:
        """Append *event* to the log."""
        entry: dict[str, object] = {
            "timestamp": datetime.datetime.now(datetime.timezone.utc).isoformat(),
            "event_type": event.event_type,
        }
        entry.update(event.to_dict())
        line = json.dumps(entry, separators=(",", ":"))
        with self._lock:
            if self._log_path is not None:
                with self._log_path.open("a", encoding="utf-8") as fh:
                    fh.write(line + "\n")
            else:
                self._buffer.append(line)

    def __call__(self, event: RegistryEvent) -> None:
        self.record(event)

    def drain_buffer(self) -> list[str]:
        """Return and clear the in-memory buffer, oldest first."""
        with self._lock:
            events = list(self._buffer)
            self._buffer.clear()
        return events

    def replay(
        self, agent_id: int | None = None, tail: int | None = None
    ) -> list[RegistryEvent]:
        """Rebuild logged events, oldest first.

        Lines that are not a recognisable event are skipped with a warning.

        Parameters
        ----------
        agent_id:
            If provided, keep only events about this agent.
        tail:
            If provided, return only the last *tail* matching events.
        """
        with self._lock:
            if self._log_path is None:
                lines = list(self._buffer)
            elif self._log_path.exists():
                lines = self._log_path.read_text(encoding="utf-8").splitlines()
            else:
                lines = []

        events: list[RegistryEvent] = []
        for number, line in enumerate(lines, start=1):
            if not line.strip():
                continue
            try:
                event = event_from_dict(json.loads(line))
            except (AttributeError, KeyError, TypeError, ValueError) as exc:
                logger.warning("Skipping event log line %d: %s", number, exc)
                continue
            if agent_id is None or event.agent_id == agent_id:
                events.append(event)

        if tail is not None:
            return events[-tail:] if tail > 0 else []
        return events


__all__ = ["EventLog"]
