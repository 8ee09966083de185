"""Unit tests for BrowserHub"""
import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import PHONE
from transport.browser_hub import BrowserHub, view_message


def mock_websocket():
    websocket = MagicMock()
    websocket.accept = AsyncMock()
    websocket.send_json = AsyncMock()
    websocket.send_text = AsyncMock()
    return websocket


def mock_conversation(conversation_key=PHONE):
    conversation = MagicMock()
    conversation.snapshot.return_value = {"conversation_key": conversation_key, "messages": []}
    return conversation


def last_view(websocket):
    return json.loads(websocket.send_text.call_args[0][0])["view"]


@pytest.mark.unit
@pytest.mark.asyncio
class TestBrowserHub:
    """Test pushing conversation views to browsers"""

    async def test_connect_sends_current_view(self):
        """Test that a new browser is accepted and gets the view right away"""
        hub = BrowserHub()
        websocket = mock_websocket()

        await hub.connect(websocket, mock_conversation())

        websocket.accept.assert_awaited_once()
        websocket.send_json.assert_awaited_once_with(
            {"type": "conversation", "view": {"conversation_key": PHONE, "messages": []}}
        )
        assert hub.get_connection_count() == 1

    async def test_disconnect_unknown_is_noop(self):
        """Test that forgetting a browser that never connected changes nothing"""
        hub = BrowserHub()
        hub.disconnect(mock_websocket())
        assert hub.get_connection_count() == 0

    async def test_push_view_reaches_all(self):
        """Test that every connected browser receives the same view"""
        hub = BrowserHub()
        first, second = mock_websocket(), mock_websocket()
        conversation = mock_conversation()
        await hub.connect(first, conversation)
        await hub.connect(second, conversation)

        delivered = await hub.push_view(view_message(conversation))

        assert delivered == 2
        assert last_view(first) == last_view(second) == {"conversation_key": PHONE, "messages": []}

    async def test_failed_browser_is_dropped(self):
        """Test that a dead browser is removed and the rest still receive"""
        hub = BrowserHub()
        dead, alive = mock_websocket(), mock_websocket()
        dead.send_text.side_effect = RuntimeError("closed")
        conversation = mock_conversation()
        await hub.connect(dead, conversation)
        await hub.connect(alive, conversation)

        delivered = await hub.push_view(view_message(conversation))

        assert delivered == 1
        assert hub.clients == [alive]

    async def test_view_change_snapshots_when_scheduled(self):
        """Test that the pushed view is the one current when the change happened"""
        hub = BrowserHub()
        websocket = mock_websocket()
        conversation = mock_conversation()
        await hub.connect(websocket, conversation)

        hub.on_view_changed(conversation)
        conversation.snapshot.return_value = {"conversation_key": "later", "messages": []}
        await hub.drain()

        assert last_view(websocket)["conversation_key"] == PHONE

    async def test_view_change_without_browsers_skips_snapshot(self):
        """Test that no snapshot is built when nobody is watching"""
        hub = BrowserHub()
        conversation = mock_conversation()

        hub.on_view_changed(conversation)
        await hub.drain()

        conversation.snapshot.assert_not_called()
