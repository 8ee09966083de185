"""Unit tests for EventBus"""
import asyncio
from unittest.mock import MagicMock

import pytest

from domain.models import ConnectionStatusEvent, SystemMessageEvent
from events.bus import EventBus


@pytest.mark.unit
class TestEventBusSubscribe:
    """Test subscription bookkeeping"""

    def test_subscribe_registers_handler(self, event_bus):
        """Test that subscribe registers a handler for an event type"""
        handler = MagicMock()
        event_bus.subscribe("systemMessage", handler)
        assert event_bus.handler_count("systemMessage") == 1

    def test_duplicate_subscription_is_kept(self, event_bus):
        """Test that subscribing the same handler twice delivers twice"""
        handler = MagicMock()
        event_bus.subscribe("systemMessage", handler)
        event_bus.subscribe("systemMessage", handler)

        event_bus.publish(SystemMessageEvent(text="hi"))

        assert handler.call_count == 2

    def test_unsubscribe_removes_handler(self, event_bus):
        """Test that unsubscribe removes the handler"""
        handler = MagicMock()
        event_bus.subscribe("systemMessage", handler)
        event_bus.unsubscribe("systemMessage", handler)

        event_bus.publish(SystemMessageEvent(text="hi"))

        handler.assert_not_called()

    def test_unsubscribe_unknown_handler_is_noop(self, event_bus):
        """Test unsubscribing a handler that was never registered"""
        event_bus.unsubscribe("systemMessage", MagicMock())
        event_bus.subscribe("systemMessage", MagicMock())
        event_bus.unsubscribe("systemMessage", MagicMock())
        assert event_bus.handler_count("systemMessage") == 1


@pytest.mark.unit
class TestEventBusPublish:
    """Test ordered fan-out"""

    def test_publish_in_subscription_order(self, event_bus):
        """Test that handlers run in subscription order"""
        calls = []
        event_bus.subscribe("systemMessage", lambda e: calls.append("first"))
        event_bus.subscribe("systemMessage", lambda e: calls.append("second"))
        event_bus.subscribe("systemMessage", lambda e: calls.append("third"))

        event_bus.publish(SystemMessageEvent(text="hi"))

        assert calls == ["first", "second", "third"]

    def test_publish_only_reaches_matching_type(self, event_bus):
        """Test that an event only reaches handlers for its type"""
        system_handler = MagicMock()
        status_handler = MagicMock()
        event_bus.subscribe("systemMessage", system_handler)
        event_bus.subscribe("connectionStatus", status_handler)

        event_bus.publish(ConnectionStatusEvent(connected=True))

        system_handler.assert_not_called()
        status_handler.assert_called_once()

    def test_raising_handler_does_not_block_others(self, event_bus):
        """Test that one failing subscriber doesn't stop the rest"""
        after = MagicMock()

        def broken(event):
            raise KeyError("unexpected payload")

        event_bus.subscribe("systemMessage", broken)
        event_bus.subscribe("systemMessage", after)

        delivered = event_bus.publish(SystemMessageEvent(text="hi"))

        after.assert_called_once()
        assert delivered == 1

    def test_publish_with_no_subscribers(self, event_bus):
        """Test that publishing with no subscribers is a no-op"""
        assert event_bus.publish(SystemMessageEvent(text="hi")) == 0

    def test_handler_can_unsubscribe_during_dispatch(self, event_bus):
        """Test that a handler may unsubscribe while an event is dispatched"""
        calls = []

        def once(event):
            calls.append("once")
            event_bus.unsubscribe("systemMessage", once)

        event_bus.subscribe("systemMessage", once)
        event_bus.subscribe("systemMessage", lambda e: calls.append("other"))

        event_bus.publish(SystemMessageEvent(text="1"))
        event_bus.publish(SystemMessageEvent(text="2"))

        assert calls == ["once", "other", "other"]


@pytest.mark.unit
@pytest.mark.asyncio
class TestEventBusAsyncHandlers:
    """Test coroutine-returning handlers"""

    async def test_coroutine_handler_is_scheduled(self, event_bus):
        """Test that a coroutine handler runs as a task"""
        seen = []

        async def handler(event):
            await asyncio.sleep(0)
            seen.append(event.text)

        event_bus.subscribe("systemMessage", handler)
        event_bus.publish(SystemMessageEvent(text="later"))
        assert seen == []

        await event_bus.drain()

        assert seen == ["later"]

    async def test_failing_coroutine_handler_is_logged(self, event_bus, caplog):
        """Test that a failing coroutine handler is logged"""
        async def handler(event):
            raise RuntimeError("boom")

        event_bus.subscribe("systemMessage", handler)
        event_bus.publish(SystemMessageEvent(text="x"))
        await event_bus.drain()
        await asyncio.sleep(0)

        assert "boom" in caplog.text

    async def test_cancel_pending(self, event_bus):
        """Test that cancel_pending stops handler tasks still running"""
        started = asyncio.Event()

        async def handler(event):
            started.set()
            await asyncio.sleep(10)

        event_bus.subscribe("systemMessage", handler)
        event_bus.publish(SystemMessageEvent(text="x"))
        await started.wait()

        event_bus.cancel_pending()
        await event_bus.drain()
