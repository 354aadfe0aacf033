"""Error taxonomy for the dashboard core.

Failures are caught at the boundary of the loop or task that produced them
and converted into events; none of these exceptions is fatal to the process.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from tourney.dashboard.kinds import OperationKind

logger = logging.getLogger(__name__)


class DashboardError(Exception):
    """Base exception for dashboard errors."""
    pass


class AlreadyRunning(DashboardError):
    """Attempted to start an operation whose status is already Running."""

    def __init__(self, kind: OperationKind):
        self.kind = kind
        super().__init__(f"{kind.label} already in progress")


@dataclass(frozen=True)
class ErrorInfo:
    """Description of a failed operation.

    Attributes:
        message: Error message shown to the operator
        severity: 'critical', 'high', 'medium' or 'low'
        category: Error family ('system', 'auth', 'filesystem', 'network', 'data', 'unknown')
        error_type: Name of the originating exception class
    """
    message: str
    severity: str = 'low'
    category: str = 'unknown'
    error_type: Optional[str] = None


class OperationFailure(DashboardError):
    """An operation service reported failure."""

    def __init__(self, kind: OperationKind, error_info: ErrorInfo):
        self.kind = kind
        self.error_info = error_info
        super().__init__(f"{kind.label} failed: {error_info.message}")


class RenderFailure(DashboardError):
    """The renderer raised while drawing a frame."""
    pass


class InputSetupFailure(DashboardError):
    """Raw terminal input could not be enabled."""
    pass


def classify_error(error: BaseException) -> ErrorInfo:
    """
    Map an exception to the severity and category used by enhanced error events

    Args:
        error: Exception raised or reported by an operation service

    Returns:
        ErrorInfo with message, severity and category
    """
    message = str(error) or type(error).__name__
    error_type = type(error).__name__

    if isinstance(error, (MemoryError, SystemError)):
        severity, category = 'critical', 'system'
    elif isinstance(error, PermissionError):
        severity, category = 'high', 'auth'
    elif isinstance(error, (ConnectionError, TimeoutError, asyncio.TimeoutError)):
        # ConnectionError and TimeoutError are OSError subclasses, check them first
        severity, category = 'medium', 'network'
    elif isinstance(error, OSError):
        severity, category = 'high', 'filesystem'
    elif isinstance(error, (ValueError, KeyError)):
        severity, category = 'medium', 'data'
    else:
        severity, category = 'low', 'unknown'

    return ErrorInfo(
        message=message,
        severity=severity,
        category=category,
        error_type=error_type
    )


def to_error_info(error) -> ErrorInfo:
    """Normalize an exception, ErrorInfo or plain message into ErrorInfo."""
    if isinstance(error, ErrorInfo):
        return error
    if isinstance(error, OperationFailure):
        return error.error_info
    if isinstance(error, BaseException):
        return classify_error(error)
    return ErrorInfo(message=str(error) if error is not None else "Unknown error")
