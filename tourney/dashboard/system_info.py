"""
Host resource sampling for the dashboard status line

CPU and memory figures come from psutil. Samples are cached for a short
interval so that fast render cadences do not hammer the OS.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional

import psutil

logger = logging.getLogger(__name__)

BYTES_PER_GB = 1024 ** 3
DEFAULT_SAMPLE_INTERVAL = 1.0


@dataclass(frozen=True)
class SystemInfo:
    """One sample of host resources"""
    cpu_percent: float
    memory_used_gb: float
    memory_total_gb: float
    uptime_seconds: float
    active_models: int


class SystemMonitor:
    """
    Samples CPU, memory and dashboard uptime

    Example:
        monitor = SystemMonitor(active_models=2)
        info = monitor.current()
        print(f"CPU {info.cpu_percent:.0f}%")
    """

    def __init__(
        self,
        active_models: int = 0,
        min_interval: float = DEFAULT_SAMPLE_INTERVAL,
        clock: Callable[[], float] = time.monotonic
    ):
        """
        Initialize monitor

        Args:
            active_models: Number of configured models shown in the status line
            min_interval: Seconds a sample is reused before sampling again
            clock: Monotonic clock (injectable for tests)
        """
        self.active_models = active_models
        self.min_interval = min_interval
        self._clock = clock
        self.started_at = clock()

        self._lock = threading.Lock()
        self._last: Optional[SystemInfo] = None
        self._sampled_at: Optional[float] = None

        # First cpu_percent(None) call only sets the baseline and returns 0.0
        psutil.cpu_percent(interval=None)

    def sample(self) -> SystemInfo:
        """Take a fresh sample (non-blocking)."""
        memory = psutil.virtual_memory()
        return SystemInfo(
            cpu_percent=psutil.cpu_percent(interval=None),
            memory_used_gb=(memory.total - memory.available) / BYTES_PER_GB,
            memory_total_gb=memory.total / BYTES_PER_GB,
            uptime_seconds=max(0.0, self._clock() - self.started_at),
            active_models=self.active_models
        )

    def current(self) -> Optional[SystemInfo]:
        """
        Get a sample no older than min_interval

        Returns:
            Latest SystemInfo, or the previous one if sampling failed
        """
        with self._lock:
            now = self._clock()
            if self._last is not None and now - self._sampled_at < self.min_interval:
                return self._last

            try:
                self._last = self.sample()
            except (psutil.Error, OSError) as e:
                logger.debug(f"System info sample failed: {e}")
            self._sampled_at = now
            return self._last
