"""
Dashboard application wiring

Builds every component once, passes each one the handles it needs and runs
the three loops: the keyboard listener thread, the monitor task that applies
phase reports and the render task.
"""

import asyncio
import logging
from typing import Optional, Dict

from tourney.dashboard.auto_train import AutoTrainCoordinator
from tourney.dashboard.commands import CommandDispatcher, WizardHandler
from tourney.dashboard.kinds import OperationKind
from tourney.dashboard.operations import OperationController, OperationService, PerformanceRefresher
from tourney.dashboard.scheduler import AdaptiveRenderScheduler, DEFAULT_RENDER_TICK
from tourney.dashboard.state import DashboardState, DEFAULT_FAST_INTERVAL, DEFAULT_SLOW_INTERVAL
from tourney.dashboard.tracker import OperationTracker
from tourney.ui.event_bus import EventBus
from tourney.ui.keyboard_listener import KeyboardListener, InputStrategy, DEFAULT_POLL_INTERVAL

logger = logging.getLogger(__name__)

DEFAULT_MONITOR_POLL = 0.1
DEFAULT_SHUTDOWN_TIMEOUT = 1.0


class DashboardApp:
    """
    Owns the dashboard components and their lifetimes

    Example:
        services, refresher = build_simulated_services(config)
        app = DashboardApp(config, ConsoleUI(config), services, refresher)
        await app.run()
    """

    def __init__(
        self,
        config: dict,
        renderer,
        services: Dict[OperationKind, OperationService],
        refresher: Optional[PerformanceRefresher] = None,
        state: Optional[DashboardState] = None,
        wizard_handler: Optional[WizardHandler] = None,
        input_stream=None,
        input_strategy: Optional[InputStrategy] = None,
        enable_input: bool = True,
        shutdown_timeout: float = DEFAULT_SHUTDOWN_TIMEOUT
    ):
        """
        Initialize the application

        Args:
            config: Loaded configuration
            renderer: Object with start(), render(snapshot) and stop()
            services: Service coroutine per operation kind
            refresher: Optional model performance refresher
            state: Pre-built state (default: built from config)
            wizard_handler: Optional key handler for the model wizard
            input_stream: Keyboard input stream (default: sys.stdin)
            input_strategy: Explicit input strategy, bypassing mode selection
            enable_input: Start the keyboard listener
            shutdown_timeout: Seconds to let running operations finish on quit
        """
        self.config = config
        dashboard = config.get('dashboard', {})
        input_config = config.get('input', {})

        self.state = state or DashboardState.from_config(config)
        self.renderer = renderer
        self.event_bus = EventBus()
        self.tracker = OperationTracker(self.state)
        self.controller = OperationController(
            self.state, self.tracker, self.event_bus, services, refresher
        )
        self.auto_train = AutoTrainCoordinator(self.state, self.controller.trigger_training)
        self.tracker.add_artifact_listener(self.auto_train.on_artifact)
        self.dispatcher = CommandDispatcher(
            self.state, self.controller, self.auto_train, wizard_handler
        )
        self.listener = KeyboardListener(
            self.state,
            self.dispatcher.handle_key,
            mode=input_config.get('mode', 'auto'),
            poll_interval=input_config.get('poll_interval', DEFAULT_POLL_INTERVAL),
            stream=input_stream,
            strategy=input_strategy
        )
        self.scheduler = AdaptiveRenderScheduler(
            self.state,
            renderer.render,
            fast_interval=dashboard.get('fast_refresh_interval', DEFAULT_FAST_INTERVAL),
            slow_interval=dashboard.get('slow_refresh_interval', DEFAULT_SLOW_INTERVAL),
            tick=dashboard.get('render_tick', DEFAULT_RENDER_TICK)
        )
        self.monitor_poll = dashboard.get('monitor_poll_interval', DEFAULT_MONITOR_POLL)
        self.enable_input = enable_input
        self.shutdown_timeout = shutdown_timeout

        self._monitor_task: Optional[asyncio.Task] = None
        self._render_task: Optional[asyncio.Task] = None

    async def run(self) -> int:
        """
        Run the dashboard until quit

        Returns:
            Exit code
        """
        loop = asyncio.get_running_loop()
        self.controller.attach(loop)
        self.renderer.start()

        self._monitor_task = asyncio.create_task(
            self.event_bus.process_events(lambda: self.state.running, self.monitor_poll),
            name="dashboard-monitor"
        )
        self._render_task = asyncio.create_task(self.scheduler.run(), name="dashboard-render")

        if self.enable_input:
            self.listener.start()

        self.state.events.info("Dashboard started - press h for help")
        if self.auto_train.enabled:
            status = self.auto_train.describe()
            if status:
                self.state.events.info(status)

        try:
            await self.wait_until_stopped()
        finally:
            await self.shutdown()
        return 0

    async def wait_until_stopped(self) -> None:
        """Return once the running flag clears."""
        while self.state.running:
            await asyncio.sleep(self.monitor_poll)

    async def shutdown(self) -> None:
        """Stop loops, give operations a moment to finish, draw a final frame."""
        self.state.stop()
        logger.info("Shutting down dashboard")

        await asyncio.to_thread(self.listener.stop)

        await self.controller.wait_for_operations(timeout=self.shutdown_timeout)

        for task in (self._monitor_task, self._render_task):
            if task is None:
                continue
            try:
                await asyncio.wait_for(task, timeout=1.0)
            except asyncio.TimeoutError:
                logger.warning(f"{task.get_name()} did not stop in time")
            except Exception as e:
                logger.error(f"{task.get_name()} failed: {e}", exc_info=True)

        delivered = await self.event_bus.stop()
        if delivered:
            logger.debug(f"Applied {delivered} late phase report(s)")

        await self.scheduler.render_once()
        self.renderer.stop()

        stats = self.event_bus.get_stats()
        logger.info(
            f"Dashboard stopped: {stats['events_processed']} phase reports, "
            f"{self.scheduler.render_count} frames, {self.state.events.total_appended} events"
        )
