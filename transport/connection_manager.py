"""Duplex connection management with bounded fixed-delay reconnection"""
import asyncio
import contextlib
import logging
from typing import Any, Awaitable, Callable

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from domain.constants import (
    STATUS_DISCONNECTED, STATUS_CONNECTING, STATUS_CONNECTED, ROLE_AGENT, ROLE_CUSTOMER,
    EVENT_ERROR, DEFAULT_RECONNECT_ATTEMPTS, DEFAULT_RECONNECT_DELAY,
    DEFAULT_CONNECT_TIMEOUT, DEFAULT_REQUEST_TIMEOUT,
)
from domain.errors import ProtocolError, RequestTimeout, TransportError
from domain.models import (
    AgentConnectedEvent, ConnectionState, ConnectionStatusEvent, CustomerConnectedEvent,
    Identity, OutboundIntent,
)
from events.bus import EventBus, Handler
from events.codec import build_event, decode_frame, encode_frame, encode_intent

logger = logging.getLogger(__name__)

Connector = Callable[[str], Awaitable[Any]]


class ConnectionManager:
    """Owns the single duplex connection and the event bus in front of it

    Subscribers talk to the bus only, so reconnects are invisible to them:
    the socket underneath churns, the subscription table does not.
    """

    def __init__(
        self,
        url: str,
        bus: EventBus | None = None,
        reconnect_attempts: int = DEFAULT_RECONNECT_ATTEMPTS,
        reconnect_delay: float = DEFAULT_RECONNECT_DELAY,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
        connector: Connector | None = None,
    ) -> None:
        self.url = url
        self.bus = bus or EventBus()
        self.state = ConnectionState()
        self.reconnect_attempts = reconnect_attempts
        self.reconnect_delay = reconnect_delay
        self.connect_timeout = connect_timeout
        self.request_timeout = request_timeout
        self._connector: Connector = connector or self._open_socket
        self._socket: Any = None
        self._supervisor: asyncio.Task | None = None
        self._closing = False
        self._connected = asyncio.Event()
        self._pending: dict[int, tuple[str, asyncio.Future]] = {}
        self._request_id = 0

    @property
    def status(self) -> str:
        return self.state.status

    @property
    def identity(self) -> Identity | None:
        return self.state.identity

    @property
    def is_connected(self) -> bool:
        return self.state.connected and self._socket is not None

    # Bus facade

    def subscribe(self, event_type: str, handler: Handler) -> None:
        self.bus.subscribe(event_type, handler)

    def unsubscribe(self, event_type: str, handler: Handler) -> None:
        self.bus.unsubscribe(event_type, handler)

    def publish(self, event: Any) -> int:
        return self.bus.publish(event)

    # Lifecycle

    async def connect(self) -> None:
        """Start the connection supervisor; no-op when already connected"""
        if self.state.connected:
            logger.debug("Socket already connected, skipping duplicate connection")
            return
        if self._supervisor is not None:
            await self._teardown()
        self._closing = False
        self.state.status = STATUS_CONNECTING
        self._supervisor = asyncio.create_task(self._supervise())

    async def disconnect(self) -> None:
        """Tear down the transport; subscriptions survive"""
        was_connected = self.state.connected
        self._closing = True
        await self._teardown()
        self.state.status = STATUS_DISCONNECTED
        self.state.identity = None
        if was_connected:
            self.bus.publish(ConnectionStatusEvent(connected=False))

    async def wait_until_connected(self, timeout: float | None = None) -> bool:
        """Wait for the transport to come up; False on timeout"""
        try:
            await asyncio.wait_for(self._connected.wait(), timeout)
        except asyncio.TimeoutError:
            return False
        return True

    def get_connection_status(self) -> dict:
        """Snapshot of the connection state for status displays"""
        identity = self.state.identity
        return {
            "status": self.state.status,
            "connected": self.state.connected,
            "role": identity.role if identity else None,
            "user_id": identity.id if identity else None,
            "pending_requests": len(self._pending),
        }

    async def _open_socket(self, url: str) -> Any:
        return await websockets.connect(url, open_timeout=self.connect_timeout)

    async def _teardown(self) -> None:
        # Grab the socket first: cancelling the supervisor clears self._socket
        socket, self._socket = self._socket, None
        supervisor, self._supervisor = self._supervisor, None
        if supervisor is not None and not supervisor.done():
            supervisor.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await supervisor
        if socket is not None:
            try:
                await socket.close()
            except (OSError, WebSocketException) as exc:
                logger.debug("Error closing socket: %s", exc)
        self._connected.clear()
        self._fail_pending(TransportError("Connection closed"))

    async def _supervise(self) -> None:
        """Connect, serve, and reconnect a bounded number of times"""
        attempts_left = self.reconnect_attempts + 1
        while attempts_left > 0 and not self._closing:
            attempts_left -= 1
            try:
                socket = await self._connector(self.url)
            except (OSError, asyncio.TimeoutError, WebSocketException) as exc:
                logger.warning("Socket connection error: %s", exc)
                self._mark_disconnected(str(exc) or type(exc).__name__)
                if attempts_left > 0:
                    await asyncio.sleep(self.reconnect_delay)
                    self.state.status = STATUS_CONNECTING
                continue

            await self._serve(socket)
            if self._closing:
                return
            attempts_left = self.reconnect_attempts
            if attempts_left > 0:
                await asyncio.sleep(self.reconnect_delay)
                self.state.status = STATUS_CONNECTING

        if not self._closing:
            error = TransportError(f"Gave up connecting to {self.url} after {self.reconnect_attempts} retries")
            logger.error("%s", error)

    async def _serve(self, socket: Any) -> None:
        self._socket = socket
        self.state.status = STATUS_CONNECTED
        self._connected.set()
        logger.info("Connected to server at %s", self.url)
        self.bus.publish(ConnectionStatusEvent(connected=True))

        error: str | None = None
        try:
            async for raw in socket:
                try:
                    self._handle_frame(raw)
                except Exception:
                    logger.exception("Error handling frame from %s", self.url)
        except ConnectionClosed as exc:
            error = str(exc)
        finally:
            self._socket = None
            self._connected.clear()
            self._fail_pending(TransportError("Connection lost"))

        if not self._closing:
            logger.info("Disconnected from server")
            self._mark_disconnected(error)

    def _mark_disconnected(self, error: str | None = None) -> None:
        self.state.status = STATUS_DISCONNECTED
        self.bus.publish(ConnectionStatusEvent(connected=False, error=error))

    def _handle_frame(self, raw: str | bytes) -> None:
        try:
            name, data = decode_frame(raw)
        except ProtocolError as exc:
            logger.warning("Dropping malformed frame: %s", exc)
            return

        request_id = data.get("requestId")
        # Only ids this manager issued (ints) can match a pending request
        if isinstance(request_id, int) and request_id in self._pending:
            expected, future = self._pending[request_id]
            if name in (expected, EVENT_ERROR):
                self._pending.pop(request_id)
                if not future.done():
                    if name == EVENT_ERROR:
                        future.set_result({"success": False, "error": data.get("message")})
                    else:
                        future.set_result(data)
                return

        try:
            event = build_event(name, data)
        except ProtocolError as exc:
            logger.warning("Dropping '%s' event: %s", name, exc)
            return
        if event is None:
            logger.debug("Ignoring unhandled event %s", name)
            return

        if isinstance(event, AgentConnectedEvent):
            self.state.identity = Identity(role=ROLE_AGENT, id=event.agent_id)
        elif isinstance(event, CustomerConnectedEvent):
            self.state.identity = Identity(role=ROLE_CUSTOMER, id=event.customer_id or event.phone_number)
        self.bus.publish(event)

    def _fail_pending(self, error: Exception) -> None:
        pending, self._pending = self._pending, {}
        for _, future in pending.values():
            if not future.done():
                future.set_exception(error)

    # Outbound

    async def emit(self, intent: OutboundIntent) -> bool:
        """Send an intent; False (with a warning) when not connected"""
        if not self.is_connected:
            logger.warning("Cannot send %s - socket not ready (status=%s)", intent.type, self.state.status)
            return False
        try:
            await self._socket.send(encode_intent(intent))
        except ConnectionClosed as exc:
            logger.warning("Failed to send %s: %s", intent.type, exc)
            return False
        return True

    async def request(self, event_name: str, payload: dict, response_event: str, timeout: float | None = None) -> dict:
        """Request/response over the duplex connection, correlated by requestId

        Raises:
            TransportError: not connected, or the connection dropped mid-request
            RequestTimeout: no response within the timeout
        """
        if not self.is_connected:
            raise TransportError("Socket not connected")
        wait = self.request_timeout if timeout is None else timeout
        self._request_id += 1
        request_id = self._request_id
        future: asyncio.Future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = (response_event, future)
        try:
            await self._socket.send(encode_frame(event_name, {**payload, "requestId": request_id}))
            return await asyncio.wait_for(future, wait)
        except asyncio.TimeoutError:
            raise RequestTimeout(event_name, wait) from None
        except ConnectionClosed as exc:
            raise TransportError(f"Connection lost during '{event_name}'") from exc
        finally:
            self._pending.pop(request_id, None)
