"""
Operation tracker

Per-operation-kind state machine: Idle -> Running -> Complete | Failed.
Every transition goes through this class so that idempotence, clamping and
event logging live in one place regardless of who drives the operation.
"""

import logging
import math
import time
from dataclasses import replace
from typing import Optional, Dict, Any, Callable, List

from tourney.dashboard.errors import AlreadyRunning, ErrorInfo, to_error_info
from tourney.dashboard.kinds import OperationKind, OperationStatus
from tourney.dashboard.state import DashboardState, OperationState

logger = logging.getLogger(__name__)

START_MESSAGES = {
    OperationKind.DOWNLOAD: "Starting data download...",
    OperationKind.UPLOAD: "Starting prediction upload...",
    OperationKind.TRAINING: "Starting model training...",
    OperationKind.PREDICTION: "Starting predictions...",
}

# Progress percentages that emit a milestone event when first crossed
PROGRESS_MILESTONES = (25.0, 50.0, 75.0)

# Metadata keys used to describe a finished run, in order of preference
_DETAIL_KEYS = ('file', 'model')

ArtifactListener = Callable[[OperationKind, str], None]


def clamp_progress(value: float) -> float:
    """Clamp a progress value into [0, 100]."""
    return min(100.0, max(0.0, float(value)))


class OperationTracker:
    """
    State machine for the four operation kinds

    Rules:
    - start() refuses a kind that is already Running (AlreadyRunning, warning event)
    - update_progress() clamps to [0, 100] and never lets progress go backwards
    - update_progress(), complete() and fail() are no-ops unless Running
    - updates tagged with a stale run_id are discarded

    Example:
        tracker = OperationTracker(state)
        run = tracker.start(OperationKind.DOWNLOAD, {'file': 'train.parquet'})
        tracker.update_progress(OperationKind.DOWNLOAD, 40.0)
        tracker.complete(OperationKind.DOWNLOAD)
    """

    def __init__(self, state: DashboardState):
        """
        Initialize tracker

        Args:
            state: Shared dashboard state
        """
        self.state = state
        self._artifact_listeners: List[ArtifactListener] = []

    def add_artifact_listener(self, listener: ArtifactListener) -> None:
        """Register a callback invoked with (kind, artifact) on artifact completion."""
        self._artifact_listeners.append(listener)

    # ========================================================================
    # Transitions
    # ========================================================================

    def start(self, kind: OperationKind, metadata: Optional[Dict[str, Any]] = None) -> OperationState:
        """
        Begin a new run of an operation

        Args:
            kind: Operation to start
            metadata: Initial metadata for the run

        Returns:
            The new Running OperationState

        Raises:
            AlreadyRunning: If the operation is already Running
        """
        with self.state.operations_lock:
            current = self.state._get_operation_locked(kind)
            if current.is_running:
                started = None
            else:
                started = OperationState(
                    status=OperationStatus.RUNNING,
                    progress=0.0,
                    metadata=dict(metadata or {}),
                    last_error=None,
                    run_id=current.run_id + 1,
                    started_at=time.monotonic()
                )
                self.state._set_operation_locked(kind, started)

        if started is None:
            logger.warning(f"{kind.label} already in progress, start ignored")
            self.state.events.warning(f"{kind.label} already in progress")
            raise AlreadyRunning(kind)

        logger.info(f"{kind.label} started (run {started.run_id})")
        self.state.events.info(START_MESSAGES[kind])
        self.state.request_render()
        return started

    def update_progress(
        self,
        kind: OperationKind,
        progress: Optional[float],
        metadata: Optional[Dict[str, Any]] = None,
        run_id: Optional[int] = None
    ) -> float:
        """
        Record a progress update for a running operation

        Values are clamped to [0, 100]; a value below the stored progress is
        discarded while its metadata is still merged.

        Args:
            kind: Operation being updated
            progress: New progress percentage (None merges metadata only)
            metadata: Metadata to merge into the run
            run_id: Run the update belongs to (None accepts the current run)

        Returns:
            The stored progress after the update
        """
        crossed = None
        with self.state.operations_lock:
            current = self.state._get_operation_locked(kind)
            if not current.is_running or (run_id is not None and run_id != current.run_id):
                return current.progress

            stored = current.progress
            if progress is not None and not math.isnan(float(progress)):
                stored = max(current.progress, clamp_progress(progress))

            merged = current.metadata
            if metadata:
                merged = {**current.metadata, **metadata}

            if stored != current.progress or merged is not current.metadata:
                self.state._set_operation_locked(
                    kind, replace(current, progress=stored, metadata=merged)
                )

            for milestone in PROGRESS_MILESTONES:
                if current.progress < milestone <= stored:
                    crossed = milestone

        if crossed is not None:
            self.state.events.info(f"{kind.label} {crossed:.0f}%")
        return stored

    def complete(
        self,
        kind: OperationKind,
        metadata: Optional[Dict[str, Any]] = None,
        run_id: Optional[int] = None
    ) -> bool:
        """
        Mark a running operation Complete with progress 100

        Args:
            kind: Operation that finished
            metadata: Final metadata to merge
            run_id: Run the completion belongs to

        Returns:
            True if the transition happened
        """
        with self.state.operations_lock:
            current = self.state._get_operation_locked(kind)
            if not current.is_running or (run_id is not None and run_id != current.run_id):
                logger.debug(f"Ignoring completion of {kind.label}: not running")
                return False
            merged = {**current.metadata, **(metadata or {})}
            self.state._set_operation_locked(kind, replace(
                current,
                status=OperationStatus.COMPLETE,
                progress=100.0,
                metadata=merged,
                finished_at=time.monotonic()
            ))

        artifacts = merged.get('artifacts')
        if artifacts:
            detail = f"{len(artifacts)} file{'s' if len(artifacts) != 1 else ''}"
        else:
            detail = next((merged[key] for key in _DETAIL_KEYS if merged.get(key)), None)
        message = f"{kind.label} complete" + (f": {detail}" if detail else "")
        logger.info(message)
        self.state.events.success(message)
        self.state.request_render()
        return True

    def fail(self, kind: OperationKind, error: Any, run_id: Optional[int] = None) -> Optional[ErrorInfo]:
        """
        Mark a running operation Failed and record the error

        Args:
            kind: Operation that failed
            error: Exception, ErrorInfo or message describing the failure
            run_id: Run the failure belongs to

        Returns:
            The recorded ErrorInfo, or None if the operation was not running
        """
        info = to_error_info(error)
        with self.state.operations_lock:
            current = self.state._get_operation_locked(kind)
            if not current.is_running or (run_id is not None and run_id != current.run_id):
                logger.debug(f"Ignoring failure of {kind.label}: not running ({info.message})")
                return None
            self.state._set_operation_locked(kind, replace(
                current,
                status=OperationStatus.FAILED,
                last_error=info,
                finished_at=time.monotonic()
            ))

        logger.error(f"{kind.label} failed [{info.severity}/{info.category}]: {info.message}")
        self.state.events.error(
            f"{kind.label} failed: {info.message}",
            severity=info.severity,
            category=info.category
        )
        self.state.request_render()
        return info

    def reset(self, kind: OperationKind) -> bool:
        """
        Return a Complete or Failed operation to Idle

        Args:
            kind: Operation to reset

        Returns:
            True if the operation was reset
        """
        with self.state.operations_lock:
            current = self.state._get_operation_locked(kind)
            if current.status not in (OperationStatus.COMPLETE, OperationStatus.FAILED):
                return False
            self.state._set_operation_locked(kind, OperationState(run_id=current.run_id))

        self.state.events.info(f"{kind.label} reset")
        self.state.request_render()
        return True

    def record_artifact(self, kind: OperationKind, artifact: str, run_id: Optional[int] = None) -> bool:
        """
        Record that a run produced an artifact (e.g. a downloaded dataset file)

        Args:
            kind: Operation that produced the artifact
            artifact: Artifact identifier, e.g. 'train.parquet'
            run_id: Run the artifact belongs to

        Returns:
            True if the artifact was recorded
        """
        with self.state.operations_lock:
            current = self.state._get_operation_locked(kind)
            if run_id is not None and run_id != current.run_id:
                return False
            artifacts = list(current.metadata.get('artifacts', [])) + [artifact]
            self.state._set_operation_locked(kind, replace(
                current, metadata={**current.metadata, 'artifacts': artifacts}
            ))

        self.state.events.success(f"{kind.label} complete: {artifact}")

        for listener in list(self._artifact_listeners):
            try:
                listener(kind, artifact)
            except Exception as e:
                logger.error(f"Artifact listener failed for {artifact}: {e}", exc_info=True)
                self.state.events.error(f"Artifact handling failed: {e}", category='internal')
        return True

    # ========================================================================
    # Queries
    # ========================================================================

    def get(self, kind: OperationKind) -> OperationState:
        return self.state.get_operation(kind)

    def is_running(self, kind: OperationKind) -> bool:
        return self.state.get_operation(kind).is_running

    def any_running(self) -> bool:
        return self.state.any_running()
