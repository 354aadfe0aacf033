"""
Shared dashboard state

The single source of truth read and written by the input thread, the monitor
loop, the render loop and the operation tasks. Each logical field group has
its own lock and every critical section is short: no blocking calls, no
rendering and no service calls happen while a lock is held.

The state object is created once by the application and passed by handle to
every collaborator; nothing looks it up through a module-level global.
"""

import logging
import threading
import time
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Dict, Optional, Any, Tuple, FrozenSet, Iterable, Set

from tourney.dashboard.errors import ErrorInfo
from tourney.dashboard.kinds import OperationKind, OperationStatus, ACTIVITY_LABELS
from tourney.dashboard.system_info import SystemInfo, SystemMonitor
from tourney.ui.event_log import EventLog, DEFAULT_MAX_EVENTS
from tourney.ui.events import DashboardEvent

logger = logging.getLogger(__name__)

DEFAULT_FAST_INTERVAL = 0.2
DEFAULT_SLOW_INTERVAL = 1.0
DEFAULT_EVENTS_DISPLAYED = 10


@dataclass(frozen=True)
class OperationState:
    """State of one operation kind.

    Instances are immutable; the tracker swaps in a new instance for every
    transition so readers never observe a half-applied update.

    Attributes:
        status: Lifecycle status of the current (or last) run
        progress: Percentage in [0, 100], non-decreasing within a run
        metadata: File name, transfer speed, epoch, loss, model name, row count
        last_error: Failure description of the last failed run
        run_id: Incremented on every start, used to discard stale updates
        started_at: Monotonic start time of the current run
        finished_at: Monotonic completion/failure time of the current run
    """
    status: OperationStatus = OperationStatus.IDLE
    progress: float = 0.0
    metadata: Dict[str, Any] = field(default_factory=dict)
    last_error: Optional[ErrorInfo] = None
    run_id: int = 0
    started_at: Optional[float] = None
    finished_at: Optional[float] = None

    @property
    def is_running(self) -> bool:
        return self.status is OperationStatus.RUNNING

    @property
    def elapsed(self) -> float:
        """Seconds since the run started (0.0 when never started)."""
        if self.started_at is None:
            return 0.0
        end = self.finished_at if self.finished_at is not None else time.monotonic()
        return max(0.0, end - self.started_at)


@dataclass(frozen=True)
class ModalState:
    """Sub-mode flags that suppress normal single-key commands."""
    command_mode: bool = False
    wizard_active: bool = False
    command_buffer: str = ""


@dataclass
class AutoTrainConfig:
    """Auto-train cycle bookkeeping, guarded by ``DashboardState.auto_train_lock``."""
    enabled: bool = True
    required_artifacts: FrozenSet[str] = frozenset()
    completed_artifacts: Set[str] = field(default_factory=set)


@dataclass(frozen=True)
class DashboardSnapshot:
    """Read-only view of the dashboard handed to renderers."""
    operations: Dict[OperationKind, OperationState]
    events: Tuple[DashboardEvent, ...]
    running: bool
    modal: ModalState
    refresh_interval: float
    system_status: str
    auto_train_enabled: bool
    required_artifacts: FrozenSet[str]
    completed_artifacts: FrozenSet[str]
    total_events: int
    taken_at: datetime
    system: Optional[SystemInfo] = None


class DashboardState:
    """
    Lock-guarded shared state for the dashboard

    Lock groups:
        operations_lock: per-kind OperationState (mutated by OperationTracker)
        auto_train_lock: AutoTrainConfig (mutated by AutoTrainCoordinator)
        modal lock: command/wizard mode flags and command buffer
        event log: guarded internally by EventLog

    Example:
        state = DashboardState(max_events=100)
        state.events.info("Dashboard started")
        snapshot = state.snapshot()
        state.stop()
        assert not state.running
    """

    def __init__(
        self,
        max_events: int = DEFAULT_MAX_EVENTS,
        events_displayed: int = DEFAULT_EVENTS_DISPLAYED,
        refresh_interval: float = DEFAULT_SLOW_INTERVAL,
        required_artifacts: Iterable[str] = (),
        auto_train_enabled: bool = True,
        system_monitor: Optional[SystemMonitor] = None
    ):
        """
        Initialize dashboard state

        Args:
            max_events: Maximum number of retained events
            events_displayed: Number of events included in snapshots
            refresh_interval: Initial render interval in seconds
            required_artifacts: Artifacts that must complete before auto-training
            auto_train_enabled: Whether auto-training fires
            system_monitor: Optional host resource sampler for snapshots
        """
        self.events = EventLog(max_events=max_events)
        self.events_displayed = events_displayed

        self.operations_lock = threading.Lock()
        self._operations: Dict[OperationKind, OperationState] = {
            kind: OperationState() for kind in OperationKind
        }

        self.auto_train_lock = threading.Lock()
        self.auto_train = AutoTrainConfig(
            enabled=auto_train_enabled,
            required_artifacts=frozenset(required_artifacts)
        )

        self._modal_lock = threading.Lock()
        self._modal = ModalState()

        # Set once on quit; the single cooperative cancellation signal
        self._stopped = threading.Event()

        self._render_lock = threading.Lock()
        self._refresh_interval = refresh_interval
        self._render_requested = False

        self.system_monitor = system_monitor

    @classmethod
    def from_config(cls, config: dict) -> 'DashboardState':
        """
        Create state from a loaded configuration dictionary

        Args:
            config: Configuration with 'dashboard' and 'auto_train' sections

        Returns:
            New DashboardState
        """
        dashboard = config.get('dashboard', {})
        auto_train = config.get('auto_train', {})
        system_monitor = None
        if dashboard.get('system_info', True):
            models = config.get('simulation', {}).get('models', [])
            system_monitor = SystemMonitor(active_models=len(models))
        return cls(
            max_events=dashboard.get('max_events', DEFAULT_MAX_EVENTS),
            events_displayed=dashboard.get('events_displayed', DEFAULT_EVENTS_DISPLAYED),
            refresh_interval=dashboard.get('slow_refresh_interval', DEFAULT_SLOW_INTERVAL),
            required_artifacts=auto_train.get('required_artifacts', []),
            auto_train_enabled=auto_train.get('enabled', True),
            system_monitor=system_monitor
        )

    # ========================================================================
    # Running flag
    # ========================================================================

    @property
    def running(self) -> bool:
        """True until stop() is called."""
        return not self._stopped.is_set()

    def stop(self) -> None:
        """Clear the running flag; every loop exits within one poll interval."""
        if not self._stopped.is_set():
            logger.debug("Running flag cleared")
        self._stopped.set()

    def wait_stopped(self, timeout: Optional[float] = None) -> bool:
        """
        Block the calling thread until stop() is called

        Args:
            timeout: Maximum seconds to wait (None waits forever)

        Returns:
            True if stopped, False on timeout
        """
        return self._stopped.wait(timeout)

    # ========================================================================
    # Operations (callers mutating must hold operations_lock)
    # ========================================================================

    def get_operation(self, kind: OperationKind) -> OperationState:
        """Get the current state of one operation kind."""
        with self.operations_lock:
            return self._operations[kind]

    def operations(self) -> Dict[OperationKind, OperationState]:
        """Get a copy of every operation state."""
        with self.operations_lock:
            return dict(self._operations)

    def _get_operation_locked(self, kind: OperationKind) -> OperationState:
        return self._operations[kind]

    def _set_operation_locked(self, kind: OperationKind, operation: OperationState) -> None:
        self._operations[kind] = operation

    def any_running(self) -> bool:
        """Check whether any operation is Running."""
        with self.operations_lock:
            return any(op.is_running for op in self._operations.values())

    @property
    def system_status(self) -> str:
        """Activity label of the first running operation, or 'Idle'."""
        operations = self.operations()
        for kind in OperationKind:
            if operations[kind].is_running:
                return ACTIVITY_LABELS[kind]
        return "Idle"

    # ========================================================================
    # Modal flags
    # ========================================================================

    @property
    def modal(self) -> ModalState:
        with self._modal_lock:
            return self._modal

    def update_modal(self, **changes) -> ModalState:
        """
        Replace modal fields atomically

        Args:
            **changes: command_mode, wizard_active and/or command_buffer

        Returns:
            The new ModalState
        """
        with self._modal_lock:
            self._modal = replace(self._modal, **changes)
            modal = self._modal
        self.request_render()
        return modal

    # ========================================================================
    # Render cadence
    # ========================================================================

    @property
    def refresh_interval(self) -> float:
        with self._render_lock:
            return self._refresh_interval

    @refresh_interval.setter
    def refresh_interval(self, value: float) -> None:
        with self._render_lock:
            self._refresh_interval = value

    def request_render(self) -> None:
        """Ask the render loop to draw on its next tick regardless of cadence."""
        with self._render_lock:
            self._render_requested = True

    def consume_render_request(self) -> bool:
        """Return and clear the pending forced-render flag."""
        with self._render_lock:
            requested = self._render_requested
            self._render_requested = False
            return requested

    # ========================================================================
    # Snapshots
    # ========================================================================

    def snapshot(self) -> DashboardSnapshot:
        """
        Take a consistent read-only copy of the state for rendering

        Each lock group is read under its own lock; no two locks are held at once.
        """
        operations = self.operations()
        with self.auto_train_lock:
            auto_enabled = self.auto_train.enabled
            required = self.auto_train.required_artifacts
            completed = frozenset(self.auto_train.completed_artifacts)

        system_status = "Idle"
        for kind in OperationKind:
            if operations[kind].is_running:
                system_status = ACTIVITY_LABELS[kind]
                break

        return DashboardSnapshot(
            operations=operations,
            events=self.events.recent(self.events_displayed),
            running=self.running,
            modal=self.modal,
            refresh_interval=self.refresh_interval,
            system_status=system_status,
            auto_train_enabled=auto_enabled,
            required_artifacts=required,
            completed_artifacts=completed,
            total_events=self.events.total_appended,
            taken_at=datetime.now(),
            system=self.system_monitor.current() if self.system_monitor is not None else None
        )
