"""Backend contract and the response envelope shared by its implementations"""
from typing import Any, Protocol

from domain.constants import HistoryOrder, SEND_FAILED_TEXT
from domain.errors import ProtocolError
from domain.models import HistoryPage, Message, SendResult, Ticket


class ChatBackend(Protocol):
    """History, send and ticket-summary calls

    Implementations raise FetchError / SendError (or RequestTimeout) on
    transport failure and report server-side rejection through `success`.
    """

    async def fetch_history(self, conversation_key: str, limit: int, offset: int, order: HistoryOrder) -> HistoryPage:
        ...

    async def send_message(self, conversation_key: str, text: str, agent_id: str) -> SendResult:
        ...

    async def fetch_open_tickets_summary(self, conversation_key: str) -> list[Ticket]:
        ...

    async def aclose(self) -> None:
        ...


def envelope(body: Any) -> dict:
    """The {"success", "data", ...} object every backend response is wrapped in"""
    if not isinstance(body, dict):
        raise ProtocolError(f"Expected a response object, got {type(body).__name__}")
    return body


def _rows(body: dict) -> list[dict]:
    rows = body.get("data") or []
    if not isinstance(rows, list) or not all(isinstance(row, dict) for row in rows):
        raise ProtocolError("Response 'data' must be a list of objects")
    return rows


def parse_history(body: Any, conversation_key: str) -> HistoryPage:
    """Build a HistoryPage from a history response; ProtocolError on the wrong shape"""
    body = envelope(body)
    if not body.get("success"):
        return HistoryPage(items=[], success=False)
    return HistoryPage(items=[Message.from_row(row, conversation_key) for row in _rows(body)], success=True)


def parse_open_tickets(body: Any) -> list[Ticket]:
    """Open tickets from a ticket-summary response; closed tickets are filtered out"""
    body = envelope(body)
    if not body.get("success"):
        return []
    return [ticket for ticket in (Ticket.from_row(row) for row in _rows(body)) if ticket.is_open]


def parse_send_result(body: Any) -> SendResult:
    body = envelope(body)
    if body.get("success"):
        return SendResult(success=True)
    return SendResult(success=False, error=body.get("error") or SEND_FAILED_TEXT)
