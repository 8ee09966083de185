"""In-process event bus: ordered, synchronous fan-out by event type"""
import asyncio
import inspect
import logging
from typing import Any, Callable

logger = logging.getLogger(__name__)

Handler = Callable[[Any], Any]


class EventBus:
    """Publish/subscribe bus decoupled from the transport lifecycle

    Handlers for one event type run in subscription order. A handler that
    raises is logged and skipped; the remaining handlers still run. A handler
    that returns an awaitable gets it scheduled on the running loop.
    """

    def __init__(self) -> None:
        self.subscriptions: dict[str, list[Handler]] = {}
        self._tasks: set[asyncio.Task] = set()

    def subscribe(self, event_type: str, handler: Handler) -> None:
        """Register a handler; subscribing the same handler twice registers it twice"""
        self.subscriptions.setdefault(event_type, []).append(handler)

    def unsubscribe(self, event_type: str, handler: Handler) -> None:
        """Remove the first registration of handler, no-op when absent"""
        handlers = self.subscriptions.get(event_type)
        if handlers and handler in handlers:
            handlers.remove(handler)

    def handler_count(self, event_type: str) -> int:
        return len(self.subscriptions.get(event_type, []))

    def publish(self, event: Any) -> int:
        """Dispatch an event to every handler of its `type`

        Returns:
            Number of handlers that ran without raising
        """
        event_type: str = getattr(event, "type", "")
        delivered = 0
        # Copy so handlers can unsubscribe themselves mid-dispatch
        for handler in list(self.subscriptions.get(event_type, [])):
            try:
                result = handler(event)
            except Exception:
                logger.exception("Error in event handler for %s", event_type)
                continue
            if inspect.isawaitable(result):
                self._schedule(event_type, result)
            delivered += 1
        return delivered

    def _schedule(self, event_type: str, awaitable) -> None:
        task = asyncio.ensure_future(awaitable)
        self._tasks.add(task)

        def _done(finished: asyncio.Task) -> None:
            self._tasks.discard(finished)
            if finished.cancelled():
                return
            exc = finished.exception()
            if exc is not None:
                logger.error("Async handler for %s failed: %s", event_type, exc, exc_info=exc)

        task.add_done_callback(_done)

    async def drain(self) -> None:
        """Wait for handler tasks scheduled so far"""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def cancel_pending(self) -> None:
        """Cancel handler tasks that have not finished yet"""
        for task in list(self._tasks):
            task.cancel()
