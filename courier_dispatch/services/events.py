"""In-process event bus between the tracker and its subscribers."""

import asyncio
from collections import defaultdict
from typing import Awaitable, Callable

from courier_dispatch.models.tracking import TrackingEvent
from courier_dispatch.utils.logging import get_logger

logger = get_logger(__name__)

EventHandler = Callable[[TrackingEvent], Awaitable[None]]

LOCATION_UPDATED = "location_updated"


class EventBus:
    """
    Queue-backed fan-out.

    ``publish`` never waits on subscribers: events are queued and a worker task
    delivers them. A failing subscriber is logged and the next one still runs.
    """

    def __init__(self, maxsize: int = 1000):
        self._queue: asyncio.Queue[TrackingEvent] = asyncio.Queue(maxsize=maxsize)
        self._subscribers: dict[str, list[EventHandler]] = defaultdict(list)
        self._worker: asyncio.Task[None] | None = None

    def subscribe(self, event_type: str, handler: EventHandler) -> None:
        self._subscribers[event_type].append(handler)

    @property
    def is_running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def publish(self, event: TrackingEvent) -> bool:
        """Queue an event. Returns False when it was dropped."""
        if not self._subscribers.get(event.type):
            return False

        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            logger.warning(
                "event_dropped",
                event_type=event.type,
                delivery_id=str(event.delivery_id),
                queue_size=self._queue.qsize(),
            )
            return False
        return True

    async def start(self) -> None:
        if not self.is_running:
            self._worker = asyncio.create_task(self._run())
            logger.info("event_bus_started")

    async def stop(self) -> None:
        if self._worker is None:
            return
        self._worker.cancel()
        try:
            await self._worker
        except asyncio.CancelledError:
            pass
        self._worker = None
        logger.info("event_bus_stopped")

    async def join(self) -> None:
        """Wait until every queued event has been handled."""
        await self._queue.join()

    async def dispatch(self, event: TrackingEvent) -> None:
        for handler in list(self._subscribers.get(event.type, [])):
            try:
                await handler(event)
            except Exception as e:
                logger.error(
                    "event_handler_failed",
                    event_type=event.type,
                    delivery_id=str(event.delivery_id),
                    error=str(e),
                )

    async def _run(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                await self.dispatch(event)
            finally:
                self._queue.task_done()
