"""Logging handler that forwards log records into the dashboard event log.

Service code logs through the standard ``logging`` module. While the
interactive dashboard owns the terminal, console logging would corrupt the
display, so warnings and errors from services are routed into the
EventLog instead and shown in the events panel.
"""

import logging
from typing import Optional

from tourney.ui.event_log import EventLog

# Logging level -> dashboard event kind
_LEVEL_KINDS = (
    (logging.ERROR, 'error'),
    (logging.WARNING, 'warning'),
)


def kind_for_level(levelno: int) -> str:
    """Map a logging level to a dashboard event kind."""
    for threshold, kind in _LEVEL_KINDS:
        if levelno >= threshold:
            return kind
    return 'info'


class EventLogHandler(logging.Handler):
    """Log handler that appends records to an EventLog.

    Thread-safe: EventLog guards its own buffer, so this handler can be
    called from the keyboard thread, worker threads or the event loop.

    Example:
        >>> handler = EventLogHandler(state.events, level=logging.WARNING)
        >>> handler.setFormatter(logging.Formatter('%(message)s'))
        >>> logging.getLogger('tourney.services').addHandler(handler)
    """

    def __init__(self, event_log: EventLog, level: int = logging.NOTSET):
        """Initialize the handler.

        Args:
            event_log: Event log receiving formatted records
            level: Minimum logging level to handle
        """
        super().__init__(level)
        self.event_log = event_log
        self._event_count = 0

    def emit(self, record: logging.LogRecord) -> None:
        try:
            message = self.format(record)
            kind = kind_for_level(record.levelno)
            severity = 'high' if record.levelno >= logging.CRITICAL else None
            self.event_log.add(kind, message, severity=severity, category='log')
            self._event_count += 1
        except Exception:
            self.handleError(record)

    def get_event_count(self) -> int:
        """Number of records forwarded so far."""
        return self._event_count


def setup_event_logging(
    event_log: EventLog,
    level: int = logging.WARNING,
    logger_name: str = 'tourney.services',
    format_string: Optional[str] = None
) -> EventLogHandler:
    """Attach an EventLogHandler to a logger.

    Args:
        event_log: Event log receiving records
        level: Minimum logging level (default: WARNING)
        logger_name: Logger whose records are forwarded
        format_string: Optional custom format string

    Returns:
        The configured EventLogHandler instance
    """
    handler = EventLogHandler(event_log, level=level)
    handler.setFormatter(logging.Formatter(format_string or '%(message)s'))
    logging.getLogger(logger_name).addHandler(handler)
    return handler
