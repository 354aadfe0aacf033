"""
Headless logger for CI/automation environments.

Provides minimal text output without interactive UI elements. Implements the
ConsoleUI renderer interface (start/render/stop) for drop-in compatibility.
"""

import logging
from typing import Dict, Optional

from tourney.dashboard.kinds import OperationKind, OperationStatus
from tourney.dashboard.state import DashboardSnapshot

logger = logging.getLogger(__name__)

_EVENT_LEVELS = {
    'info': logging.INFO,
    'success': logging.INFO,
    'warning': logging.WARNING,
    'error': logging.ERROR,
}


class HeadlessLogger:
    """
    Minimal renderer for headless/CI environments.

    Output includes:
    - Operation status transitions
    - Dashboard events, each logged once

    Does NOT output:
    - Per-frame redraws
    - Progress bars
    """

    def __init__(self, config: Optional[dict] = None):
        """
        Initialize headless logger.

        Args:
            config: Configuration dictionary (for consistency with ConsoleUI)
        """
        self.config = config or {}
        self._last_status: Dict[OperationKind, OperationStatus] = {}
        self._events_seen = 0

    def start(self) -> None:
        logger.info("Running in headless mode (minimal output)")

    def stop(self) -> None:
        """Stop headless logger (no-op)."""
        pass

    def render(self, snapshot: DashboardSnapshot) -> None:
        """Log status changes and events that arrived since the last frame."""
        for kind, operation in snapshot.operations.items():
            previous = self._last_status.get(kind, OperationStatus.IDLE)
            if operation.status is not previous:
                logger.info(f"{kind.label}: {previous.value} -> {operation.status.value}")
                self._last_status[kind] = operation.status

        new_events = snapshot.total_events - self._events_seen
        if new_events > 0:
            # Only the displayed tail is available; older ones were trimmed from the snapshot
            for event in snapshot.events[-new_events:]:
                logger.log(_EVENT_LEVELS.get(event.kind, logging.INFO), event.message)
            self._events_seen = snapshot.total_events
