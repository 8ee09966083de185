"""Pytest configuration and shared fixtures for all tests"""
import asyncio
import json
from datetime import datetime, timedelta, timezone

import pytest

from domain.models import HistoryPage, Message, SendResult, Ticket
from events.bus import EventBus
from store.message_store import MessageStore
from transport.connection_manager import ConnectionManager
from transport.session_registrar import SessionRegistrar

pytest_plugins = ("pytest_asyncio",)

BASE_TIME = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)
PHONE = "+15551234567"
OTHER_PHONE = "+15559876543"


def make_message(message_id: str, text: str | None = None, seconds: float = 0.0,
                 sender_kind: str = "customer", conversation_key: str = PHONE) -> Message:
    """Build a message at BASE_TIME + seconds"""
    return Message(
        id=message_id,
        conversation_key=conversation_key,
        sender_kind=sender_kind,
        text=text if text is not None else f"text {message_id}",
        timestamp=BASE_TIME + timedelta(seconds=seconds),
    )


def make_page(count: int, start: int = 0, conversation_key: str = PHONE) -> HistoryPage:
    """A descending (newest-first) history page of `count` messages"""
    items = [
        make_message(f"m{n}", seconds=n * 60, conversation_key=conversation_key)
        for n in range(start + count, start, -1)
    ]
    return HistoryPage(items=items, success=True)


async def settle(rounds: int = 10) -> None:
    """Let scheduled callbacks and tasks run"""
    for _ in range(rounds):
        await asyncio.sleep(0)


async def eventually(predicate, timeout: float = 1.0) -> bool:
    """Poll predicate until it holds or the timeout expires"""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            return False
        await asyncio.sleep(0.005)
    return True


class FakeSocket:
    """In-memory stand-in for a websockets client connection"""

    def __init__(self) -> None:
        self.sent: list[str] = []
        self.incoming: asyncio.Queue = asyncio.Queue()
        self.closed = False

    async def send(self, data: str) -> None:
        self.sent.append(data)

    async def close(self) -> None:
        self.closed = True
        self.incoming.put_nowait(None)

    def feed(self, event: str, data: dict | None = None) -> None:
        """Queue a server frame"""
        self.incoming.put_nowait(json.dumps({"event": event, "data": data or {}}))

    def feed_raw(self, raw: str) -> None:
        self.incoming.put_nowait(raw)

    def drop(self) -> None:
        """Simulate the server closing the connection"""
        self.incoming.put_nowait(None)

    def sent_frames(self) -> list[tuple[str, dict]]:
        frames = [json.loads(raw) for raw in self.sent]
        return [(frame["event"], frame["data"]) for frame in frames]

    def sent_events(self, name: str) -> list[dict]:
        return [data for event, data in self.sent_frames() if event == name]

    def __aiter__(self):
        return self

    async def __anext__(self) -> str:
        item = await self.incoming.get()
        if item is None:
            raise StopAsyncIteration
        return item


class FakeConnector:
    """Hands out FakeSockets, or raises the queued errors first"""

    def __init__(self, failures: list[Exception] | None = None) -> None:
        self.failures = list(failures or [])
        self.sockets: list[FakeSocket] = []
        self.calls = 0

    async def __call__(self, url: str) -> FakeSocket:
        self.calls += 1
        if self.failures:
            raise self.failures.pop(0)
        socket = FakeSocket()
        self.sockets.append(socket)
        return socket

    @property
    def socket(self) -> FakeSocket:
        return self.sockets[-1]


class StubBackend:
    """ChatBackend double with scripted responses and optional gating"""

    def __init__(self) -> None:
        self.pages: list = []
        self.send_results: list = []
        self.tickets: list[Ticket] | Exception = [Ticket(id="t1", status="open")]
        self.history_calls: list[dict] = []
        self.send_calls: list[dict] = []
        self.ticket_calls: list[str] = []
        self.gate: asyncio.Event | None = None
        self.closed = False

    async def fetch_history(self, conversation_key, limit, offset, order):
        self.history_calls.append({"conversation_key": conversation_key, "limit": limit, "offset": offset, "order": order})
        if self.gate is not None:
            await self.gate.wait()
        result = self.pages.pop(0) if self.pages else HistoryPage(items=[], success=True)
        if isinstance(result, Exception):
            raise result
        return result

    async def send_message(self, conversation_key, text, agent_id):
        self.send_calls.append({"conversation_key": conversation_key, "text": text, "agent_id": agent_id})
        result = self.send_results.pop(0) if self.send_results else SendResult(success=True)
        if isinstance(result, Exception):
            raise result
        return result

    async def fetch_open_tickets_summary(self, conversation_key):
        self.ticket_calls.append(conversation_key)
        if isinstance(self.tickets, Exception):
            raise self.tickets
        return [ticket for ticket in self.tickets if ticket.is_open]

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def event_bus():
    """Create a fresh event bus for each test"""
    return EventBus()


@pytest.fixture
def message_store():
    """Create an empty MessageStore"""
    return MessageStore()


@pytest.fixture
def connector():
    return FakeConnector()


@pytest.fixture
def connection(connector):
    """ConnectionManager wired to a FakeConnector with no reconnect delay"""
    return ConnectionManager("ws://test/ws", connector=connector, reconnect_attempts=2, reconnect_delay=0, request_timeout=0.5)


@pytest.fixture
async def connected(connection, connector):
    """A ConnectionManager with a live FakeSocket"""
    await connection.connect()
    assert await connection.wait_until_connected(1)
    yield connection
    await connection.disconnect()


@pytest.fixture
def registrar(connection):
    return SessionRegistrar(connection)


@pytest.fixture
def backend():
    return StubBackend()
