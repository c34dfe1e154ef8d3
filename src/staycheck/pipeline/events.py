"""Publish/subscribe fan-out of validation events.

Subscribers register an EventSink with the EventNotifier. Every
message is a dict of the form ``{"event", "data", "timestamp"}``:

- ``connected``: sent once to a sink when it subscribes
- ``validation_update``: a validation call completed
- ``validation_error``: a validation call failed inside the pipeline

Delivery is best-effort. Each send runs as a background task under a
timeout; failed sends are logged and dropped, and closed sinks are
pruned. Publishing never blocks the validation call.
"""

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any

from staycheck.core.logging import get_logger

logger = get_logger(__name__)

Message = dict[str, Any]


def make_message(event: str, data: Any) -> Message:
    return {"event": event, "data": data, "timestamp": datetime.now().isoformat()}


class EventSink(ABC):
    """Destination for notifier messages."""

    @property
    def closed(self) -> bool:
        """Closed sinks are removed on the next publish."""
        return False

    @abstractmethod
    async def send(self, message: Message) -> None:
        """Deliver one message."""
        ...


class QueueSink(EventSink):
    """Delivers messages into an asyncio queue.

    When a bounded queue is full the oldest message is dropped to make
    room for the newest.

    Example:
        >>> sink = QueueSink(maxsize=100)
        >>> await service.subscribe(sink)
        >>> message = await sink.queue.get()
    """

    def __init__(self, maxsize: int = 0) -> None:
        self.queue: asyncio.Queue[Message] = asyncio.Queue(maxsize=maxsize)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        self._closed = True

    async def send(self, message: Message) -> None:
        try:
            self.queue.put_nowait(message)
        except asyncio.QueueFull:
            try:
                self.queue.get_nowait()
            except asyncio.QueueEmpty:
                pass
            self.queue.put_nowait(message)


class CallbackSink(EventSink):
    """Delivers messages to an async callable (e.g. a websocket's send_json)."""

    def __init__(self, callback: Callable[[Message], Awaitable[Any]]) -> None:
        self.callback = callback
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        self._closed = True

    async def send(self, message: Message) -> None:
        await self.callback(message)


class EventNotifier:
    """Set of subscribed sinks plus the delivery tasks in flight."""

    def __init__(self, timeout: float = 1.0) -> None:
        """Initialize EventNotifier.

        Args:
            timeout: Seconds allowed for delivering one message to one sink
        """
        self.timeout = timeout
        self._sinks: list[EventSink] = []
        self._tasks: set[asyncio.Task] = set()

    @property
    def subscriber_count(self) -> int:
        return len(self._sinks)

    async def subscribe(self, sink: EventSink) -> None:
        """Register a sink and acknowledge it with a ``connected`` message."""
        if sink not in self._sinks:
            self._sinks.append(sink)
        await self._deliver(sink, make_message("connected", {"subscribers": len(self._sinks)}))

    def unsubscribe(self, sink: EventSink) -> bool:
        """Remove a sink. Returns False if it was not subscribed."""
        if sink in self._sinks:
            self._sinks.remove(sink)
            return True
        return False

    def notify(self, event: str, data: Any) -> None:
        """Schedule delivery of one message to every open sink."""
        self._sinks = [s for s in self._sinks if not s.closed]
        if not self._sinks:
            return
        message = make_message(event, data)
        for sink in list(self._sinks):
            task = asyncio.create_task(self._deliver(sink, message))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def _deliver(self, sink: EventSink, message: Message) -> None:
        try:
            await asyncio.wait_for(sink.send(message), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning(
                f"Subscriber did not accept {message['event']} within {self.timeout}s",
                extra={"extra_data": {"event": message["event"]}},
            )
        except Exception as e:
            logger.warning(
                f"Failed to deliver {message['event']}: {e}",
                extra={"extra_data": {"event": message["event"]}},
            )

    async def drain(self) -> None:
        """Wait for all scheduled deliveries to finish."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
