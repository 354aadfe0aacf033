"""
Operation launch and phase-callback plumbing

The OperationController is the programmatic trigger surface used by both the
command dispatcher and the auto-train coordinator. A trigger starts the run in
the tracker synchronously (so idempotence is decided on the caller's thread)
and then launches the service coroutine as a fire-and-forget task on the
dashboard event loop.

Services report back through PhaseCallbacks. Callbacks never touch the state
directly; they publish PhaseEvents on the EventBus and the monitor loop applies
them to the tracker in arrival order.
"""

import asyncio
import logging
import threading
from typing import Awaitable, Callable, Dict, Optional, Any, Set

from tourney.dashboard.errors import AlreadyRunning, OperationFailure, to_error_info
from tourney.dashboard.kinds import OperationKind, ACTIVITY_LABELS
from tourney.dashboard.state import DashboardState
from tourney.dashboard.tracker import OperationTracker
from tourney.ui.event_bus import EventBus
from tourney.ui.events import PhaseEvent

logger = logging.getLogger(__name__)


class PhaseCallbacks:
    """
    Phase callbacks handed to an operation service for one run

    Safe to call from the event loop or from worker threads.

    Example:
        async def download(callbacks):
            callbacks.start({'file': 'train.parquet'})
            callbacks.progress(50.0, {'speed_mb': 12.5})
            callbacks.artifact('train.parquet')
            callbacks.complete()
    """

    def __init__(self, kind: OperationKind, run_id: int, publish: Callable[[PhaseEvent], None]):
        self.kind = kind
        self.run_id = run_id
        self._publish = publish
        self._finished = False

    def start(self, metadata: Optional[Dict[str, Any]] = None) -> None:
        self._emit('start', metadata=metadata)

    def progress(self, value: float, metadata: Optional[Dict[str, Any]] = None) -> None:
        self._emit('progress', progress=value, metadata=metadata)

    def artifact(self, name: str) -> None:
        """Report a finished artifact (e.g. one downloaded dataset file)."""
        self._emit('artifact', artifact=name)

    def complete(self, metadata: Optional[Dict[str, Any]] = None) -> None:
        self._finished = True
        self._emit('complete', metadata=metadata)

    def fail(self, error: Any) -> None:
        """Report failure; the error is classified on the reporting side."""
        self._finished = True
        if not isinstance(error, OperationFailure):
            error = OperationFailure(self.kind, to_error_info(error))
        self._emit('fail', error=error)

    @property
    def finished(self) -> bool:
        """True once complete() or fail() has been reported."""
        return self._finished

    def _emit(self, phase: str, **fields) -> None:
        if fields.get('metadata') is None:
            fields['metadata'] = {}
        self._publish(PhaseEvent(kind=self.kind, phase=phase, run_id=self.run_id, **fields))


OperationService = Callable[[PhaseCallbacks], Awaitable[None]]
PerformanceRefresher = Callable[[], Awaitable[Optional[str]]]


class OperationController:
    """
    Triggers operations and applies their phase reports

    Example:
        controller = OperationController(state, tracker, bus, services)
        controller.attach(asyncio.get_running_loop())
        controller.trigger(OperationKind.DOWNLOAD)
    """

    def __init__(
        self,
        state: DashboardState,
        tracker: OperationTracker,
        event_bus: EventBus,
        services: Dict[OperationKind, OperationService],
        refresher: Optional[PerformanceRefresher] = None
    ):
        """
        Initialize controller

        Args:
            state: Shared dashboard state
            tracker: Operation tracker
            event_bus: Bus carrying PhaseEvents to the monitor loop
            services: Service coroutine per operation kind
            refresher: Optional model performance refresher
        """
        self.state = state
        self.tracker = tracker
        self.event_bus = event_bus
        self.services = dict(services)
        self.refresher = refresher

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._loop_thread_id: Optional[int] = None
        self._tasks: Set[asyncio.Future] = set()
        self._tasks_lock = threading.Lock()
        self._refresh_lock = threading.Lock()
        self._refresh_in_flight = False

        self.event_bus.subscribe(PhaseEvent, self.apply_phase)

    def attach(self, loop: asyncio.AbstractEventLoop) -> None:
        """Bind to the dashboard event loop; call from the loop's thread."""
        self._loop = loop
        self._loop_thread_id = threading.get_ident()
        self.event_bus.bind_loop(loop)

    # ========================================================================
    # Trigger surface
    # ========================================================================

    def trigger(self, kind: OperationKind, metadata: Optional[Dict[str, Any]] = None) -> bool:
        """
        Start an operation and launch its service

        Args:
            kind: Operation to start
            metadata: Initial run metadata

        Returns:
            True if a new run was started, False if ignored
        """
        service = self.services.get(kind)
        if service is None:
            logger.warning(f"No service configured for {kind.label}")
            self.state.events.warning(f"No {kind.label.lower()} service configured")
            return False

        try:
            run = self.tracker.start(kind, metadata)
        except AlreadyRunning:
            return False

        callbacks = PhaseCallbacks(kind, run.run_id, self.event_bus.publish_sync)
        if not self._launch(self._run_service(kind, service, callbacks)):
            self.tracker.fail(kind, RuntimeError("Dashboard event loop is not running"), run_id=run.run_id)
            return False
        return True

    def trigger_training(self) -> bool:
        return self.trigger(OperationKind.TRAINING)

    def refresh(self) -> bool:
        """
        Refresh model performance data in the background

        Returns:
            True if a refresh was launched
        """
        if self.refresher is None:
            self.state.events.warning("No performance refresher configured")
            return False

        with self._refresh_lock:
            if self._refresh_in_flight:
                in_flight = True
            else:
                in_flight = False
                self._refresh_in_flight = True
        if in_flight:
            self.state.events.warning("Refresh already in progress")
            return False

        self.state.events.info("Refreshing model performances...")
        if not self._launch(self._run_refresh()):
            with self._refresh_lock:
                self._refresh_in_flight = False
            self.state.events.error("Failed to refresh: event loop is not running")
            return False
        return True

    # ========================================================================
    # Task management
    # ========================================================================

    def _launch(self, coro) -> bool:
        loop = self._loop
        if loop is None or loop.is_closed():
            coro.close()
            return False

        if threading.get_ident() == self._loop_thread_id:
            future = loop.create_task(coro)
        else:
            future = asyncio.run_coroutine_threadsafe(coro, loop)

        with self._tasks_lock:
            self._tasks.add(future)
        future.add_done_callback(self._forget)
        return True

    def _forget(self, future) -> None:
        with self._tasks_lock:
            self._tasks.discard(future)

    @property
    def active_tasks(self) -> int:
        with self._tasks_lock:
            return len(self._tasks)

    async def wait_for_operations(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for launched services to finish (used at shutdown)

        Args:
            timeout: Maximum seconds to wait

        Returns:
            True if every task finished in time
        """
        with self._tasks_lock:
            pending = [asyncio.wrap_future(f) if not isinstance(f, asyncio.Future) else f
                       for f in self._tasks]
        if not pending:
            return True
        done, still_pending = await asyncio.wait(pending, timeout=timeout)
        if still_pending:
            logger.warning(f"{len(still_pending)} operation(s) still running at shutdown")
        return not still_pending

    async def _run_service(self, kind: OperationKind, service: OperationService, callbacks: PhaseCallbacks) -> None:
        try:
            await service(callbacks)
        except asyncio.CancelledError:
            callbacks.fail(RuntimeError(f"{kind.label} cancelled"))
            raise
        except Exception as e:
            logger.error(f"{kind.label} service raised: {e}", exc_info=True)
            callbacks.fail(e)
        else:
            if not callbacks.finished:
                callbacks.complete()

    async def _run_refresh(self) -> None:
        try:
            summary = await self.refresher()
            message = "Model performances refreshed"
            if summary:
                message += f": {summary}"
            self.state.events.success(message)
        except Exception as e:
            logger.error(f"Performance refresh failed: {e}", exc_info=True)
            self.state.events.error(f"Failed to refresh: {e}", category='refresh')
        finally:
            with self._refresh_lock:
                self._refresh_in_flight = False

    # ========================================================================
    # Monitor loop handler
    # ========================================================================

    def apply_phase(self, event: PhaseEvent) -> None:
        """
        Apply one phase report to the tracker (runs on the monitor loop)

        Args:
            event: PhaseEvent published by a service's callbacks
        """
        kind = event.kind
        metadata = dict(event.metadata or {})

        if event.phase == 'start':
            self.tracker.update_progress(kind, None, metadata, run_id=event.run_id)
            detail = metadata.get('file') or metadata.get('model')
            if detail:
                self.state.events.info(f"{ACTIVITY_LABELS[kind]}: {detail}")
        elif event.phase == 'progress':
            self.tracker.update_progress(kind, event.progress, metadata, run_id=event.run_id)
        elif event.phase == 'artifact':
            self.tracker.record_artifact(kind, event.artifact, run_id=event.run_id)
        elif event.phase == 'complete':
            self.tracker.complete(kind, metadata, run_id=event.run_id)
        elif event.phase == 'fail':
            self.tracker.fail(kind, event.error, run_id=event.run_id)
        else:
            logger.warning(f"Unknown phase '{event.phase}' for {kind.label}")

        self.state.request_render()
