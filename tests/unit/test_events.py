"""Tests for the event notifier and sinks."""

import asyncio

import pytest

from staycheck.pipeline.events import CallbackSink, EventNotifier, QueueSink, make_message


class TestSinks:
    """Tests for QueueSink and CallbackSink."""

    @pytest.mark.asyncio
    async def test_queue_sink_drops_oldest(self):
        sink = QueueSink(maxsize=2)
        for i in range(3):
            await sink.send(make_message("validation_update", {"i": i}))

        first = sink.queue.get_nowait()
        second = sink.queue.get_nowait()
        assert [first["data"]["i"], second["data"]["i"]] == [1, 2]

    @pytest.mark.asyncio
    async def test_callback_sink(self):
        received = []

        async def callback(message):
            received.append(message)

        sink = CallbackSink(callback)
        await sink.send(make_message("validation_update", {}))
        assert received[0]["event"] == "validation_update"
        assert "timestamp" in received[0]


class TestEventNotifier:
    """Tests for the EventNotifier class."""

    @pytest.mark.asyncio
    async def test_subscribe_sends_connected(self):
        notifier = EventNotifier()
        sink = QueueSink()
        await notifier.subscribe(sink)
        await notifier.subscribe(sink)

        assert notifier.subscriber_count == 1
        message = sink.queue.get_nowait()
        assert message["event"] == "connected"
        assert message["data"] == {"subscribers": 1}

    @pytest.mark.asyncio
    async def test_notify_fans_out(self):
        notifier = EventNotifier()
        sinks = [QueueSink(), QueueSink()]
        for sink in sinks:
            await notifier.subscribe(sink)
            sink.queue.get_nowait()

        notifier.notify("validation_update", {"request_id": "r1"})
        await notifier.drain()

        for sink in sinks:
            assert sink.queue.get_nowait()["data"] == {"request_id": "r1"}

    @pytest.mark.asyncio
    async def test_closed_sinks_are_pruned(self):
        notifier = EventNotifier()
        sink = QueueSink()
        await notifier.subscribe(sink)
        sink.close()

        notifier.notify("validation_update", {})
        await notifier.drain()
        assert notifier.subscriber_count == 0

    @pytest.mark.asyncio
    async def test_unsubscribe(self):
        notifier = EventNotifier()
        sink = QueueSink()
        await notifier.subscribe(sink)
        assert notifier.unsubscribe(sink)
        assert not notifier.unsubscribe(sink)

    @pytest.mark.asyncio
    async def test_failing_sink_does_not_affect_others(self):
        """Test a raising or slow subscriber is skipped."""
        async def broken(message):
            raise ConnectionError("gone")

        async def slow(message):
            await asyncio.sleep(1.0)

        notifier = EventNotifier(timeout=0.05)
        healthy = QueueSink()
        await notifier.subscribe(CallbackSink(broken))
        await notifier.subscribe(CallbackSink(slow))
        await notifier.subscribe(healthy)
        healthy.queue.get_nowait()

        notifier.notify("validation_error", {"error": "boom"})
        await notifier.drain()

        assert healthy.queue.get_nowait()["event"] == "validation_error"
        assert notifier.subscriber_count == 3

    @pytest.mark.asyncio
    async def test_notify_without_subscribers(self):
        notifier = EventNotifier()
        notifier.notify("validation_update", {})
        await notifier.drain()
