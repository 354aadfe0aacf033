"""Event bus feeding the dashboard monitor loop.

Operation services report phase callbacks from async tasks or worker threads.
The EventBus queues those reports and a single consumer task delivers them to
subscribers in arrival order, so all tracker updates for a given operation are
applied sequentially by one owner.
"""

import asyncio
import inspect
import logging
import threading
from collections import defaultdict
from typing import Callable, Any, Optional

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 0.1


class EventBus:
    """Thread-safe event bus for dashboard updates.

    Subscribers register per event type. Events are processed by
    :meth:`process_events`, which runs as a task on the dashboard event loop
    and checks its continue-condition at least once per poll interval.

    Example:
        >>> bus = EventBus()
        >>> bus.subscribe(PhaseEvent, tracker_handler)
        >>> task = asyncio.create_task(bus.process_events(lambda: state.running))
        >>> bus.publish_sync(PhaseEvent(OperationKind.DOWNLOAD, 'progress', progress=40.0))
    """

    def __init__(self):
        """Initialize the event bus."""
        self._subscribers: dict[type, list[Callable]] = defaultdict(list)
        self._queue: asyncio.Queue = asyncio.Queue()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._loop_thread_id: Optional[int] = None
        self._processing: bool = False
        self._event_count: int = 0
        self._error_count: int = 0
        self._dropped_count: int = 0

    def bind_loop(self, loop: asyncio.AbstractEventLoop) -> None:
        """Remember the loop that owns the queue so other threads can publish.

        Must be called from the loop's own thread.
        """
        self._loop = loop
        self._loop_thread_id = threading.get_ident()

    def subscribe(self, event_type: type, callback: Callable) -> None:
        """Subscribe to events of a specific type.

        Args:
            event_type: The event class to subscribe to
            callback: Function to call when event is published.
                     Can be sync or async.
        """
        self._subscribers[event_type].append(callback)
        logger.debug(f"Subscribed to {event_type.__name__} (total subscribers: {len(self._subscribers[event_type])})")

    def unsubscribe(self, event_type: type, callback: Callable) -> None:
        """Unsubscribe from events of a specific type.

        Args:
            event_type: The event class to unsubscribe from
            callback: The callback function to remove
        """
        if event_type in self._subscribers:
            try:
                self._subscribers[event_type].remove(callback)
                logger.debug(f"Unsubscribed from {event_type.__name__}")
            except ValueError:
                logger.warning(f"Callback not found for {event_type.__name__}")

    async def publish(self, event: Any) -> None:
        """Publish an event (async context, loop thread).

        Args:
            event: The event instance to publish
        """
        await self._queue.put(event)

    def publish_sync(self, event: Any) -> None:
        """Publish an event from synchronous code on any thread.

        On the loop thread the event is queued directly; from other threads it
        is handed to the loop with call_soon_threadsafe.

        Args:
            event: The event instance to publish
        """
        if self._loop is None or threading.get_ident() == self._loop_thread_id:
            self._queue.put_nowait(event)
            return

        try:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, event)
        except RuntimeError:
            # Loop already closed during shutdown
            self._dropped_count += 1
            logger.warning(f"Event loop closed, dropped {type(event).__name__}")

    async def process_events(
        self,
        should_continue: Optional[Callable[[], bool]] = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL
    ) -> None:
        """Process events from the queue until stopped.

        Args:
            should_continue: Checked at least once per poll interval; processing
                ends when it returns False
            poll_interval: Maximum seconds to wait for the next event
        """
        self._processing = True
        logger.info("Event bus processing started")

        try:
            while self._processing and (should_continue is None or should_continue()):
                try:
                    event = await asyncio.wait_for(self._queue.get(), timeout=poll_interval)
                except asyncio.TimeoutError:
                    continue

                try:
                    await self._dispatch(event)
                finally:
                    self._queue.task_done()

        except asyncio.CancelledError:
            logger.info("Event bus processing cancelled")
            raise
        finally:
            self._processing = False

    async def _dispatch(self, event: Any) -> None:
        event_type = type(event)
        self._event_count += 1

        callbacks = self._subscribers.get(event_type, [])
        if not callbacks:
            logger.debug(f"No subscribers for {event_type.__name__}")
            return

        for callback in list(callbacks):
            try:
                if inspect.iscoroutinefunction(callback):
                    await callback(event)
                else:
                    callback(event)
            except Exception as e:
                self._error_count += 1
                logger.error(
                    f"Error in event handler for {event_type.__name__}: {e}",
                    exc_info=True
                )
                # Continue processing other handlers

    async def stop(self) -> int:
        """Stop processing and deliver whatever is still queued.

        Used at shutdown once the monitor task has exited, so late phase
        reports still reach the tracker before the final frame.

        Returns:
            Number of queued events delivered
        """
        self._processing = False
        delivered = await self.drain()
        logger.info(
            f"Event bus stopped. Processed {self._event_count} events "
            f"with {self._error_count} errors ({delivered} delivered at stop)"
        )
        return delivered

    async def drain(self) -> int:
        """Deliver every queued event immediately (used at shutdown and in tests).

        Returns:
            Number of events delivered
        """
        delivered = 0
        while not self._queue.empty():
            event = self._queue.get_nowait()
            try:
                await self._dispatch(event)
            finally:
                self._queue.task_done()
            delivered += 1
        return delivered

    def get_stats(self) -> dict[str, int]:
        """Get event bus statistics.

        Returns:
            Dictionary with 'events_processed', 'errors', 'dropped', 'queue_size', 'subscriber_count'
        """
        return {
            'events_processed': self._event_count,
            'errors': self._error_count,
            'dropped': self._dropped_count,
            'queue_size': self._queue.qsize(),
            'subscriber_count': sum(len(callbacks) for callbacks in self._subscribers.values())
        }

    @property
    def is_processing(self) -> bool:
        """Check if event bus is currently processing events."""
        return self._processing
