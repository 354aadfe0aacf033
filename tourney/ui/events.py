"""Event types for dashboard updates.

This module defines the records that flow between the operation services, the
shared dashboard state and the renderers. Events are immutable dataclasses;
once appended to the event log they are never edited.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Literal, Any, Mapping

from tourney.dashboard.kinds import OperationKind


EventKind = Literal['info', 'warning', 'error', 'success']
Severity = Literal['critical', 'high', 'medium', 'low']
Phase = Literal['start', 'progress', 'artifact', 'complete', 'fail']


@dataclass(frozen=True)
class DashboardEvent:
    """A notable occurrence shown in the dashboard event panel.

    Attributes:
        kind: Display category ('info', 'warning', 'error', 'success')
        message: Human readable message
        timestamp: When the event was produced
        severity: Finer grained level, only set on enhanced error events
        category: Optional tag (e.g. 'network', 'filesystem', 'input')
    """
    kind: EventKind
    message: str
    timestamp: datetime = field(default_factory=datetime.now)
    severity: Optional[Severity] = None
    category: Optional[str] = None


@dataclass(frozen=True)
class PhaseEvent:
    """Emitted by an operation service through its phase callbacks.

    Attributes:
        kind: Operation the update belongs to
        phase: Phase name ('start', 'progress', 'artifact', 'complete', 'fail')
        run_id: Run counter of the operation when the service was launched
        progress: Progress percentage for 'progress' phases
        metadata: Extra values (file, speed, epoch, loss, model, rows)
        artifact: Artifact identifier for 'artifact' phases
        error: OperationFailure for 'fail' phases
    """
    kind: OperationKind
    phase: Phase
    run_id: int = 0
    progress: Optional[float] = None
    metadata: Mapping[str, Any] = field(default_factory=dict)
    artifact: Optional[str] = None
    error: Optional[BaseException] = None
