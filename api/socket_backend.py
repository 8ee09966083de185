"""Backend calls carried as request/response over the duplex connection"""
from api.backend import parse_history, parse_open_tickets, parse_send_result
from domain.constants import (
    HistoryOrder, REQUEST_HISTORY, RESPONSE_HISTORY, REQUEST_SEND_MESSAGE,
    RESPONSE_SEND_MESSAGE, REQUEST_TICKETS, RESPONSE_TICKETS,
)
from domain.errors import FetchError, ProtocolError, SendError, TransportError
from domain.models import HistoryPage, SendResult, Ticket
from transport.connection_manager import ConnectionManager


class SocketChatBackend:
    """Same contract as RestChatBackend, answered by the socket server"""

    def __init__(self, connection: ConnectionManager) -> None:
        self.connection = connection

    async def aclose(self) -> None:
        # The connection belongs to the dashboard session
        return None

    async def fetch_history(self, conversation_key: str, limit: int, offset: int, order: HistoryOrder) -> HistoryPage:
        try:
            response = await self.connection.request(
                REQUEST_HISTORY,
                {"phoneNumber": conversation_key, "limit": limit, "offset": offset, "order": order},
                RESPONSE_HISTORY,
            )
            return parse_history(response, conversation_key)
        except (TransportError, ProtocolError) as exc:
            raise FetchError(f"Failed to load messages for {conversation_key}: {exc}") from exc

    async def send_message(self, conversation_key: str, text: str, agent_id: str) -> SendResult:
        try:
            response = await self.connection.request(
                REQUEST_SEND_MESSAGE,
                {"phoneNumber": conversation_key, "messageText": text, "agentId": agent_id},
                RESPONSE_SEND_MESSAGE,
            )
            return parse_send_result(response)
        except (TransportError, ProtocolError) as exc:
            raise SendError(f"Failed to send message to {conversation_key}: {exc}") from exc

    async def fetch_open_tickets_summary(self, conversation_key: str) -> list[Ticket]:
        try:
            response = await self.connection.request(REQUEST_TICKETS, {"phoneNumber": conversation_key}, RESPONSE_TICKETS)
            return parse_open_tickets(response)
        except (TransportError, ProtocolError) as exc:
            raise FetchError(f"Failed to load tickets for {conversation_key}: {exc}") from exc
