"""Dashboard session: explicit owner of the connection and the active conversation"""
import asyncio
import logging

from api.backend import ChatBackend
from api.rest_backend import RestChatBackend
from api.socket_backend import SocketChatBackend
from chat.conversation import ConversationSession
from domain.constants import EVENT_CONNECTION_STATUS, HISTORY_SOURCE_SOCKET
from domain.models import ConnectionStatusEvent
from domain.settings import Settings
from transport.connection_manager import ConnectionManager
from transport.session_registrar import SessionRegistrar

logger = logging.getLogger(__name__)


class DashboardSession:
    """Creates, starts and stops everything one agent dashboard needs

    The connection does not remember identity or rooms across reconnects, so
    every `connectionStatus{connected: true}` re-announces the agent and
    re-joins its room after a short settle delay.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        connection: ConnectionManager | None = None,
        backend: ChatBackend | None = None,
    ) -> None:
        self.settings = settings or Settings()
        self.connection = connection or ConnectionManager(
            self.settings.socket_url,
            reconnect_attempts=self.settings.reconnect_attempts,
            reconnect_delay=self.settings.reconnect_delay,
            connect_timeout=self.settings.connect_timeout,
            request_timeout=self.settings.request_timeout,
        )
        self.backend = backend or self._build_backend()
        self.registrar = SessionRegistrar(self.connection)
        self.conversation = ConversationSession(
            self.connection,
            self.registrar,
            self.backend,
            agent_id=self.settings.agent_id,
            page_size=self.settings.page_size,
            scroll_threshold=self.settings.scroll_threshold,
        )
        self.started = False
        self.registrations = 0

    def _build_backend(self) -> ChatBackend:
        if self.settings.history_source == HISTORY_SOURCE_SOCKET:
            return SocketChatBackend(self.connection)
        return RestChatBackend(self.settings.api_url, timeout=self.settings.request_timeout)

    @property
    def online(self) -> bool:
        return self.connection.is_connected

    async def start(self) -> None:
        """Wire subscriptions and open the connection"""
        if self.started:
            return
        self.registrar.attach()
        self.conversation.attach()
        self.connection.subscribe(EVENT_CONNECTION_STATUS, self._on_connection_status)
        self.started = True
        logger.info("Dashboard session starting for agent %s", self.settings.agent_id)
        await self.connection.connect()

    async def stop(self) -> None:
        """Unsubscribe, disconnect and release the backend"""
        if not self.started:
            return
        self.connection.unsubscribe(EVENT_CONNECTION_STATUS, self._on_connection_status)
        self.conversation.detach()
        self.registrar.detach()
        self.connection.bus.cancel_pending()
        await self.connection.disconnect()
        await self.backend.aclose()
        self.started = False
        logger.info("Dashboard session stopped")

    def _on_connection_status(self, event: ConnectionStatusEvent):
        if event.connected:
            return self._reestablish()
        logger.info("Dashboard: socket disconnected")
        return None

    async def _reestablish(self) -> None:
        """Announce identity and re-join the agent room after the handshake settles"""
        await asyncio.sleep(self.settings.settle_delay)
        if not self.connection.is_connected:
            return
        await self.registrar.register_as_agent(self.settings.agent_id, self.settings.agent_name)
        await self.registrar.join_room(self.settings.agent_id)
        self.registrations += 1
