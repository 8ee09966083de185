"""Identity announce and room membership over the duplex connection"""
import logging

from domain.constants import EVENT_CONNECTION_STATUS
from domain.models import (
    AcknowledgeMessagesIntent, AgentConnectIntent, ConnectionStatusEvent, CustomerConnectIntent,
    FormStepCompleteIntent, InteractiveResponseIntent, JoinAgentRoomIntent, LeaveAgentRoomIntent,
)
from transport.connection_manager import ConnectionManager

logger = logging.getLogger(__name__)


class SessionRegistrar:
    """Sends identity and room intents; none of its calls raise

    Rooms joined on the current transport connection are remembered so a
    repeated join on the same connection is not re-sent. The record is reset
    when the transport drops, because the server forgets membership too.
    """

    def __init__(self, connection: ConnectionManager) -> None:
        self.connection = connection
        self.joined_rooms: set[str] = set()
        self._attached = False

    def attach(self) -> None:
        """Start tracking transport drops"""
        if not self._attached:
            self.connection.subscribe(EVENT_CONNECTION_STATUS, self._on_connection_status)
            self._attached = True

    def detach(self) -> None:
        if self._attached:
            self.connection.unsubscribe(EVENT_CONNECTION_STATUS, self._on_connection_status)
            self._attached = False

    def _on_connection_status(self, event: ConnectionStatusEvent) -> None:
        if not event.connected:
            self.joined_rooms.clear()

    async def register_as_agent(self, agent_id: str, display_name: str | None = None) -> bool:
        """Announce this connection as an agent"""
        if not self.connection.is_connected:
            logger.warning("Cannot connect as agent %s - socket not ready", agent_id)
            return False
        logger.info("Connecting as agent: %s", agent_id)
        return await self.connection.emit(AgentConnectIntent(agent_id=str(agent_id), agent_name=display_name or ""))

    async def register_as_customer(self, phone_number: str, customer_name: str | None = None) -> bool:
        """Announce this connection as a customer"""
        if not self.connection.is_connected:
            logger.warning("Cannot connect as customer %s - socket not ready", phone_number)
            return False
        return await self.connection.emit(CustomerConnectIntent(phone_number=phone_number, customer_name=customer_name))

    async def join_room(self, room_id: str) -> bool:
        """Join an agent room once per transport connection"""
        room_id = str(room_id)
        if room_id in self.joined_rooms:
            logger.debug("Room %s already joined on this connection", room_id)
            return True
        sent = await self.connection.emit(JoinAgentRoomIntent(agent_id=room_id))
        if sent:
            self.joined_rooms.add(room_id)
            logger.info("Joined agent room: %s", room_id)
        return sent

    async def leave_room(self, room_id: str) -> bool:
        room_id = str(room_id)
        self.joined_rooms.discard(room_id)
        return await self.connection.emit(LeaveAgentRoomIntent(agent_id=room_id))

    async def acknowledge_messages(self, conversation_key: str) -> bool:
        """Fire-and-forget: the agent has viewed this conversation"""
        return await self.connection.emit(AcknowledgeMessagesIntent(conversation_key=conversation_key))

    async def send_interactive_response(self, option_id: str, option_label: str) -> bool:
        return await self.connection.emit(InteractiveResponseIntent(option_id=option_id, option_label=option_label))

    async def send_form_step_complete(self, step: str, data: dict) -> bool:
        return await self.connection.emit(FormStepCompleteIntent(step=step, data=data))
