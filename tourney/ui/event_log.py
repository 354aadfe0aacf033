"""Bounded, append-only event log shared by every dashboard component.

All producers go through :meth:`EventLog.append`, the single insertion point.
Once the log holds more than ``max_events`` entries the oldest ones are
discarded. Entries are frozen dataclasses and are never edited in place.
"""

import logging
import threading
from collections import deque
from typing import Deque, Optional, Tuple

from tourney.ui.events import DashboardEvent, EventKind, Severity

logger = logging.getLogger(__name__)

DEFAULT_MAX_EVENTS = 100


class EventLog:
    """
    Thread-safe event log with oldest-first trimming

    Example:
        log = EventLog(max_events=50)
        log.info("Starting download...")
        log.warning("Download already in progress")
        for event in log.recent(10):
            print(event.timestamp, event.kind, event.message)
    """

    def __init__(self, max_events: int = DEFAULT_MAX_EVENTS):
        """
        Initialize event log

        Args:
            max_events: Maximum number of retained events (must be >= 1)
        """
        if max_events < 1:
            raise ValueError(f"max_events must be at least 1, got {max_events}")
        self.max_events = max_events
        self._events: Deque[DashboardEvent] = deque(maxlen=max_events)
        self._lock = threading.Lock()
        self._total_appended = 0

    def append(self, event: DashboardEvent) -> DashboardEvent:
        """
        Append an event, trimming the oldest entry when full

        Args:
            event: Event to record

        Returns:
            The appended event
        """
        with self._lock:
            self._events.append(event)
            self._total_appended += 1
        return event

    def add(
        self,
        kind: EventKind,
        message: str,
        severity: Optional[Severity] = None,
        category: Optional[str] = None
    ) -> DashboardEvent:
        """Build an event and append it."""
        return self.append(DashboardEvent(
            kind=kind,
            message=message,
            severity=severity,
            category=category
        ))

    def info(self, message: str, category: Optional[str] = None) -> DashboardEvent:
        return self.add('info', message, category=category)

    def success(self, message: str, category: Optional[str] = None) -> DashboardEvent:
        return self.add('success', message, category=category)

    def warning(self, message: str, category: Optional[str] = None) -> DashboardEvent:
        return self.add('warning', message, category=category)

    def error(
        self,
        message: str,
        severity: Optional[Severity] = None,
        category: Optional[str] = None
    ) -> DashboardEvent:
        return self.add('error', message, severity=severity, category=category)

    def recent(self, limit: Optional[int] = None) -> Tuple[DashboardEvent, ...]:
        """
        Get the newest events in insertion order (oldest first, newest last)

        Args:
            limit: Maximum number of events to return (None for all retained)

        Returns:
            Tuple of events
        """
        with self._lock:
            events = tuple(self._events)
        if limit is None or limit >= len(events):
            return events
        if limit <= 0:
            return ()
        return events[-limit:]

    def all(self) -> Tuple[DashboardEvent, ...]:
        """Get every retained event."""
        return self.recent()

    @property
    def total_appended(self) -> int:
        """Number of events ever appended, including trimmed ones."""
        with self._lock:
            return self._total_appended

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)
