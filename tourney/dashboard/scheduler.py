"""
Adaptive render scheduling

Renders quickly while an operation is running and slowly when idle. The loop
sleeps in small fixed ticks so that a status change is picked up promptly
without busy-spinning.
"""

import asyncio
import inspect
import logging
import time
from typing import Callable, Optional, Any

from tourney.dashboard.errors import RenderFailure
from tourney.dashboard.state import (
    DashboardState,
    DashboardSnapshot,
    DEFAULT_FAST_INTERVAL,
    DEFAULT_SLOW_INTERVAL,
)

logger = logging.getLogger(__name__)

DEFAULT_RENDER_TICK = 0.05

Renderer = Callable[[DashboardSnapshot], Any]


class AdaptiveRenderScheduler:
    """
    Calls the renderer at a cadence that tightens when work is in flight

    Rules:
    - interval = fast_interval if any operation is Running, else slow_interval
    - a render happens when elapsed time since the last render >= interval,
      or when a component requested a forced render
    - renderer exceptions become error events; the loop keeps going

    Example:
        scheduler = AdaptiveRenderScheduler(state, console_ui.render)
        task = asyncio.create_task(scheduler.run())
    """

    def __init__(
        self,
        state: DashboardState,
        renderer: Renderer,
        fast_interval: float = DEFAULT_FAST_INTERVAL,
        slow_interval: float = DEFAULT_SLOW_INTERVAL,
        tick: float = DEFAULT_RENDER_TICK,
        clock: Callable[[], float] = time.monotonic
    ):
        """
        Initialize scheduler

        Args:
            state: Shared dashboard state
            renderer: Callable receiving a DashboardSnapshot (sync or async)
            fast_interval: Seconds between renders while an operation runs
            slow_interval: Seconds between renders while idle
            tick: Sleep between cadence checks
            clock: Monotonic clock (injectable for tests)
        """
        self.state = state
        self.renderer = renderer
        self.fast_interval = fast_interval
        self.slow_interval = slow_interval
        self.tick = tick
        self._clock = clock
        self._last_render: Optional[float] = None
        self.render_count = 0
        self.failure_count = 0

    def choose_interval(self) -> float:
        """Pick the render interval from current activity and store it in the state."""
        interval = self.fast_interval if self.state.any_running() else self.slow_interval
        if interval != self.state.refresh_interval:
            logger.debug(f"Render interval -> {interval}s")
            self.state.refresh_interval = interval
        return interval

    def due(self) -> bool:
        """Check whether a render should happen now."""
        interval = self.choose_interval()
        if self.state.consume_render_request():
            return True
        if self._last_render is None:
            return True
        return self._clock() - self._last_render >= interval

    async def render_once(self) -> bool:
        """
        Render a single frame, converting renderer errors into events

        Returns:
            True if the renderer succeeded
        """
        self._last_render = self._clock()
        snapshot = self.state.snapshot()
        try:
            result = self.renderer(snapshot)
            if inspect.isawaitable(result):
                await result
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.failure_count += 1
            failure = RenderFailure(f"Render failed: {e}")
            logger.error(str(failure), exc_info=True)
            self.state.events.error(str(failure), severity='low', category='render')
            return False
        self.render_count += 1
        return True

    async def run(self) -> None:
        """Render loop; exits within one tick of the running flag clearing."""
        logger.debug("Render loop started")
        try:
            while self.state.running:
                if self.due():
                    await self.render_once()
                await asyncio.sleep(self.tick)
        except asyncio.CancelledError:
            logger.debug("Render loop cancelled")
            raise
        logger.debug(f"Render loop stopped after {self.render_count} frames")
