"""Active conversation: history, live events and sends for one customer"""
import logging
from dataclasses import replace
from datetime import datetime
from typing import Callable

from api.backend import ChatBackend
from chat.pagination import PageLoadResult, PaginationController
from chat.send_pipeline import OutboundSendPipeline
from domain.constants import (
    DEFAULT_PAGE_SIZE, DEFAULT_SCROLL_THRESHOLD, FORM_PROMPT_TEXT, ID_PREFIX_LOCAL, MERGE_APPEND,
    SENDER_CUSTOMER, SENDER_ERROR, SENDER_SYSTEM,
    EVENT_NEW_CUSTOMER_MESSAGE, EVENT_NEW_AGENT_MESSAGE, EVENT_SYSTEM_MESSAGE,
    EVENT_INTERACTIVE_MESSAGE, EVENT_FORM_STEP, EVENT_TICKET_CREATED,
    EVENT_MESSAGES_ACKNOWLEDGED, EVENT_ERROR, EVENT_CONNECTION_STATUS,
)
from domain.errors import FetchError, TransportError
from domain.models import (
    ConnectionStatusEvent, ConversationCursor, ErrorEvent, FormStepEvent, InteractiveMessageEvent,
    Message, MessagesAcknowledgedEvent, NewAgentMessageEvent, NewCustomerMessageEvent,
    SystemMessageEvent, Ticket, TicketCreatedEvent, new_message_id, utc_now,
)
from store.message_store import MessageStore
from transport.connection_manager import ConnectionManager
from transport.session_registrar import SessionRegistrar

logger = logging.getLogger(__name__)

ViewListener = Callable[["ConversationSession"], None]


class ConversationSession:
    """Owns the active conversation key, its cursor and its message collection

    Only one conversation is active at a time. Push events whose conversation
    key names another customer are ignored here; events without a key belong
    to the active conversation.
    """

    def __init__(
        self,
        connection: ConnectionManager,
        registrar: SessionRegistrar,
        backend: ChatBackend,
        agent_id: str,
        page_size: int = DEFAULT_PAGE_SIZE,
        scroll_threshold: float = DEFAULT_SCROLL_THRESHOLD,
        store: MessageStore | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.connection = connection
        self.registrar = registrar
        self.backend = backend
        self.page_size = page_size
        self.clock = clock
        self.store = store or MessageStore()

        self.active_key: str | None = None
        self.cursor: ConversationCursor | None = None
        self.loading = False
        self.error: str | None = None
        self.connection_error: str | None = None
        self.open_tickets: list[Ticket] | None = None
        self.current_ticket: dict | None = None
        self.pending_interactive: InteractiveMessageEvent | None = None
        self.pending_form: FormStepEvent | None = None
        self.form_data: dict = {}

        self.pagination = PaginationController(
            backend, self.store, self.is_current, threshold=scroll_threshold, on_error=self._set_error,
        )
        self.sender = OutboundSendPipeline(
            backend, self.store, lambda: self.active_key, agent_id,
            on_error=self._set_error, on_sent=self._notify_customer_update, clock=clock,
        )

        self._view_listeners: list[ViewListener] = []
        self._customer_update_listeners: list[Callable[[str], None]] = []
        self._handlers = {
            EVENT_NEW_CUSTOMER_MESSAGE: self._on_new_message,
            EVENT_NEW_AGENT_MESSAGE: self._on_new_message,
            EVENT_SYSTEM_MESSAGE: self._on_system_message,
            EVENT_INTERACTIVE_MESSAGE: self._on_interactive_message,
            EVENT_FORM_STEP: self._on_form_step,
            EVENT_TICKET_CREATED: self._on_ticket_created,
            EVENT_MESSAGES_ACKNOWLEDGED: self._on_messages_acknowledged,
            EVENT_ERROR: self._on_error,
            EVENT_CONNECTION_STATUS: self._on_connection_status,
        }
        self._attached = False

    # Wiring

    def attach(self) -> None:
        """Subscribe to push events and store changes"""
        if self._attached:
            return
        for event_type, handler in self._handlers.items():
            self.connection.subscribe(event_type, handler)
        self.store.add_listener(self._on_store_change)
        self._attached = True

    def detach(self) -> None:
        if not self._attached:
            return
        for event_type, handler in self._handlers.items():
            self.connection.unsubscribe(event_type, handler)
        self.store.remove_listener(self._on_store_change)
        self._attached = False

    def add_view_listener(self, listener: ViewListener) -> None:
        self._view_listeners.append(listener)

    def remove_view_listener(self, listener: ViewListener) -> None:
        if listener in self._view_listeners:
            self._view_listeners.remove(listener)

    def on_customer_update(self, listener: Callable[[str], None]) -> None:
        """Called with the conversation key after a send or an acknowledgement"""
        self._customer_update_listeners.append(listener)

    def _changed(self) -> None:
        for listener in list(self._view_listeners):
            try:
                listener(self)
            except Exception:
                logger.exception("Error in conversation view listener")

    def _on_store_change(self, conversation_key: str, mode: str) -> None:
        if conversation_key == self.active_key:
            self._changed()

    def _notify_customer_update(self, conversation_key: str) -> None:
        for listener in list(self._customer_update_listeners):
            try:
                listener(conversation_key)
            except Exception:
                logger.exception("Error in customer update listener")

    def _set_error(self, message: str) -> None:
        self.error = message
        self._changed()

    # Conversation lifecycle

    def is_current(self, conversation_key: str, cursor: ConversationCursor) -> bool:
        return self.active_key == conversation_key and self.cursor is cursor

    @property
    def messages(self) -> list[Message]:
        if self.active_key is None:
            return []
        return self.store.messages(self.active_key)

    @property
    def has_open_tickets(self) -> bool | None:
        """None until the ticket summary has been fetched"""
        if self.open_tickets is None:
            return None
        return len(self.open_tickets) > 0

    @property
    def can_send(self) -> bool:
        return (
            self.connection.is_connected
            and self.active_key is not None
            and self.has_open_tickets is not False
        )

    async def select(self, conversation_key: str) -> PageLoadResult | None:
        """Make a conversation active and load its newest page

        Returns None when the conversation was already active.
        """
        if not conversation_key or conversation_key == self.active_key:
            return None
        previous = self.active_key
        if previous is not None:
            self.store.clear(previous)

        cursor = ConversationCursor(limit=self.page_size)
        self.active_key = conversation_key
        self.cursor = cursor
        self.error = None
        self.loading = True
        self.open_tickets = None
        self.current_ticket = None
        self.pending_interactive = None
        self.pending_form = None
        self.form_data = {}
        self._changed()

        await self.registrar.acknowledge_messages(conversation_key)
        result = await self.pagination.load_initial(conversation_key, cursor)
        if self.is_current(conversation_key, cursor):
            self.loading = False
            await self.refresh_open_tickets()
            self._changed()
        return result

    def deselect(self) -> None:
        """Drop the active conversation, its cursor and its collection"""
        if self.active_key is not None:
            self.store.clear(self.active_key)
        self.active_key = None
        self.cursor = None
        self.loading = False
        self.error = None
        self.open_tickets = None
        self.pending_interactive = None
        self.pending_form = None
        self._changed()

    async def load_older(self, scroll_distance_from_top: float, content_height: float | None = None) -> PageLoadResult:
        """Scroll hook: fetch an older page when near the top"""
        if self.active_key is None or self.cursor is None:
            return PageLoadResult()
        return await self.pagination.maybe_load_older(
            self.active_key, self.cursor, scroll_distance_from_top, content_height,
        )

    async def send(self, text: str) -> bool:
        if self.active_key is None:
            return False
        self.error = None
        return await self.sender.send_agent_message(self.active_key, text)

    async def refresh_open_tickets(self) -> None:
        """Update the ticket gate; failures keep the previous value"""
        key, cursor = self.active_key, self.cursor
        if key is None or cursor is None:
            return
        try:
            tickets = await self.backend.fetch_open_tickets_summary(key)
        except (FetchError, TransportError) as exc:
            logger.error("Error checking open tickets for %s: %s", key, exc)
            return
        if self.is_current(key, cursor):
            self.open_tickets = tickets

    async def choose_option(self, option_id: str, option_label: str) -> bool:
        """Answer the pending interactive prompt"""
        if self.active_key is None:
            return False
        self.pending_interactive = None
        self._append_local(SENDER_CUSTOMER, f"Selected: {option_label}")
        return await self.registrar.send_interactive_response(option_id, option_label)

    async def submit_form_step(self, step_data: dict) -> bool:
        """Submit fields for the pending form step"""
        if self.pending_form is None or self.active_key is None:
            logger.error("No form step available for submission")
            return False
        step = self.pending_form.step
        self.pending_form = None
        self.form_data.update(step_data)
        self._append_local(SENDER_CUSTOMER, ", ".join(f"{key}: {value}" for key, value in step_data.items()))
        return await self.registrar.send_form_step_complete(step, step_data)

    def snapshot(self) -> dict:
        """JSON-ready view of the conversation for the presentation layer"""
        key = self.active_key
        cursor = self.cursor
        return {
            "conversation_key": key,
            "messages": [message.to_dict() for message in self.messages],
            "cursor": None if cursor is None else {
                "limit": cursor.limit,
                "offset": cursor.offset,
                "order": cursor.order,
                "has_more": cursor.has_more,
                "is_loading_more": cursor.is_loading_more,
            },
            "last_mutation": self.store.last_mutation(key) if key else None,
            "autoscroll": self.store.should_autoscroll(key) if key else False,
            "loading": self.loading,
            "sending": self.sender.is_sending,
            "error": self.error,
            "online": self.connection.is_connected,
            "connection_error": self.connection_error,
            "can_send": self.can_send,
            "has_open_tickets": self.has_open_tickets,
            "pending_interactive": None if self.pending_interactive is None else {
                "header": self.pending_interactive.header,
                "body": self.pending_interactive.body,
                "buttons": self.pending_interactive.buttons,
            },
            "pending_form": None if self.pending_form is None else {
                "step": self.pending_form.step,
                "title": self.pending_form.title,
                "fields": self.pending_form.fields,
            },
        }

    # Push event handlers

    def _targets_active(self, conversation_key: str | None) -> bool:
        if self.active_key is None:
            return False
        return conversation_key is None or conversation_key == self.active_key

    def _append(self, message: Message) -> int:
        return self.store.merge(self.active_key, [message], MERGE_APPEND)

    def _append_local(self, sender_kind: str, text: str, **extra) -> int:
        now = self.clock()
        return self._append(Message(
            id=new_message_id(ID_PREFIX_LOCAL, now),
            conversation_key=self.active_key,
            sender_kind=sender_kind,
            text=text,
            timestamp=now,
            **extra,
        ))

    def _on_new_message(self, event: NewCustomerMessageEvent | NewAgentMessageEvent) -> None:
        if event.message is None or not self._targets_active(event.conversation_key):
            return
        self._append(replace(event.message, conversation_key=self.active_key))

    def _on_system_message(self, event: SystemMessageEvent) -> None:
        if self._targets_active(event.conversation_key):
            self._append_local(SENDER_SYSTEM, event.text)

    def _on_interactive_message(self, event: InteractiveMessageEvent) -> None:
        if not self._targets_active(event.conversation_key):
            return
        self.pending_interactive = event
        self._append_local(SENDER_SYSTEM, f"{event.header}\n\n{event.body}", interactive=True, options=event.buttons)

    def _on_form_step(self, event: FormStepEvent) -> None:
        if not self._targets_active(event.conversation_key):
            return
        self.pending_form = event
        self._append_local(SENDER_SYSTEM, f"{event.title}\n\n{FORM_PROMPT_TEXT}", form=True, fields=event.fields)

    def _on_ticket_created(self, event: TicketCreatedEvent) -> None:
        if not self._targets_active(event.conversation_key):
            return
        self.current_ticket = event.ticket
        self.pending_form = None
        self.pending_interactive = None
        if event.ticket:
            ticket = Ticket.from_row(event.ticket)
            if ticket.is_open:
                self.open_tickets = (self.open_tickets or []) + [ticket]
        self._append_local(SENDER_SYSTEM, f"✅ {event.message}")

    def _on_messages_acknowledged(self, event: MessagesAcknowledgedEvent) -> None:
        if event.success and self._targets_active(event.conversation_key):
            self._notify_customer_update(self.active_key)

    def _on_error(self, event: ErrorEvent) -> None:
        if not self._targets_active(event.conversation_key):
            return
        self.error = event.message
        if not self._append_local(SENDER_ERROR, f"Error: {event.message}"):
            self._changed()

    def _on_connection_status(self, event: ConnectionStatusEvent) -> None:
        self.connection_error = None if event.connected else event.error
        self._changed()
