"""REST backend client built on httpx"""
import logging
from urllib.parse import quote

import httpx

from api.backend import parse_history, parse_open_tickets, parse_send_result
from domain.constants import DEFAULT_API_URL, DEFAULT_REQUEST_TIMEOUT, HistoryOrder
from domain.errors import FetchError, ProtocolError, SendError
from domain.models import HistoryPage, SendResult, Ticket

logger = logging.getLogger(__name__)


class RestChatBackend:
    """History, send and ticket calls against the dashboard REST API

    Every response is a {"success": bool, "data": ...} envelope.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_API_URL,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
        client: httpx.AsyncClient | None = None,
        auth_token: str | None = None,
    ) -> None:
        headers = {"Content-Type": "application/json"}
        if auth_token:
            headers["Authorization"] = f"Bearer {auth_token}"
        self.client = client or httpx.AsyncClient(base_url=base_url.rstrip("/"), timeout=timeout, headers=headers)

    async def aclose(self) -> None:
        await self.client.aclose()

    async def fetch_history(self, conversation_key: str, limit: int, offset: int, order: HistoryOrder) -> HistoryPage:
        """GET /customers/{phone}/messages"""
        try:
            response = await self.client.get(
                f"/customers/{quote(conversation_key, safe='')}/messages",
                params={"limit": limit, "offset": offset, "order": order},
            )
            response.raise_for_status()
            return parse_history(response.json(), conversation_key)
        except (httpx.HTTPError, ValueError, ProtocolError) as exc:
            logger.error("API Error fetching history for %s: %s", conversation_key, exc)
            raise FetchError(f"Failed to load messages for {conversation_key}") from exc

    async def send_message(self, conversation_key: str, text: str, agent_id: str) -> SendResult:
        """POST /customers/{phone}/message"""
        try:
            response = await self.client.post(
                f"/customers/{quote(conversation_key, safe='')}/message",
                json={"message": text, "agent_id": agent_id},
            )
            response.raise_for_status()
            return parse_send_result(response.json())
        except (httpx.HTTPError, ValueError, ProtocolError) as exc:
            logger.error("API Error sending message to %s: %s", conversation_key, exc)
            raise SendError(f"Failed to send message to {conversation_key}") from exc

    async def fetch_open_tickets_summary(self, conversation_key: str) -> list[Ticket]:
        """GET /tickets/customer/{phone}, filtered to tickets that are not closed"""
        try:
            response = await self.client.get(f"/tickets/customer/{quote(conversation_key, safe='')}")
            response.raise_for_status()
            return parse_open_tickets(response.json())
        except (httpx.HTTPError, ValueError, ProtocolError) as exc:
            logger.error("API Error checking tickets for %s: %s", conversation_key, exc)
            raise FetchError(f"Failed to load tickets for {conversation_key}") from exc
