"""Unit tests for DashboardSession"""
import pytest

from conftest import PHONE, eventually, make_page
from api.rest_backend import RestChatBackend
from api.socket_backend import SocketChatBackend
from chat.dashboard import DashboardSession
from domain.settings import Settings
from transport.connection_manager import ConnectionManager


@pytest.fixture
def settings():
    return Settings(agent_id="1", agent_name="Admin User", settle_delay=0, reconnect_delay=0, reconnect_attempts=2)


@pytest.fixture
async def dashboard(settings, connection, backend):
    session = DashboardSession(settings, connection=connection, backend=backend)
    yield session
    await session.stop()


@pytest.mark.unit
class TestDashboardConstruction:
    """Test the default wiring"""

    async def test_rest_backend_by_default(self, settings):
        """Test that the REST backend is used by default"""
        session = DashboardSession(settings)
        assert isinstance(session.backend, RestChatBackend)
        assert isinstance(session.connection, ConnectionManager)
        assert session.connection.reconnect_attempts == 2
        await session.backend.aclose()

    def test_socket_backend_when_configured(self):
        """Test that the socket backend is used when configured"""
        session = DashboardSession(Settings(history_source="socket"))
        assert isinstance(session.backend, SocketChatBackend)
        assert session.backend.connection is session.connection


@pytest.mark.unit
@pytest.mark.asyncio
class TestDashboardLifecycle:
    """Test registration across connects and reconnects"""

    async def test_start_registers_agent_and_joins_room(self, dashboard, connector):
        """Test that start announces the agent and joins the agent room"""
        await dashboard.start()

        assert await eventually(lambda: dashboard.registrations == 1)
        assert connector.socket.sent_events("agentConnect") == [{"agentId": "1", "agentName": "Admin User"}]
        assert connector.socket.sent_events("joinAgentRoom") == [{"agentId": "1"}]

    async def test_reconnect_reregisters_once(self, dashboard, connector):
        """Test that a drop leads to exactly one fresh announce and room join"""
        await dashboard.start()
        assert await eventually(lambda: dashboard.registrations == 1)

        connector.socket.drop()

        assert await eventually(lambda: dashboard.registrations == 2)
        assert connector.calls == 2
        assert connector.socket.sent_events("agentConnect") == [{"agentId": "1", "agentName": "Admin User"}]
        assert connector.socket.sent_events("joinAgentRoom") == [{"agentId": "1"}]

    async def test_conversation_survives_reconnect(self, dashboard, connector, backend):
        """Test that push events reach the active conversation after a reconnect"""
        backend.pages = [make_page(2)]
        await dashboard.start()
        assert await eventually(lambda: dashboard.registrations == 1)
        await dashboard.conversation.select(PHONE)

        connector.socket.drop()
        assert await eventually(lambda: dashboard.registrations == 2)
        connector.socket.feed("newCustomerMessage", {
            "phone_number": PHONE, "message": {"id": 900, "message_text": "Still there?"},
        })

        assert await eventually(lambda: len(dashboard.conversation.messages) == 3)
        assert dashboard.conversation.messages[-1].text == "Still there?"

    async def test_start_is_idempotent(self, dashboard, connector):
        """Test that a second start does nothing"""
        await dashboard.start()
        await dashboard.start()
        assert await eventually(lambda: dashboard.registrations == 1)
        assert connector.calls == 1

    async def test_stop_disconnects_and_closes_backend(self, dashboard, connector, backend):
        """Test that stop disconnects and closes the backend"""
        await dashboard.start()
        assert await eventually(lambda: dashboard.online)
        socket = connector.socket

        await dashboard.stop()

        assert socket.closed
        assert backend.closed
        assert not dashboard.online
        assert dashboard.connection.bus.handler_count("connectionStatus") == 0
