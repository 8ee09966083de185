"""Domain models for the chat sync engine"""
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Union

from domain.constants import (
    SenderKind, ConnectionStatus, Role, HistoryOrder,
    SENDER_CUSTOMER, SENDER_KINDS, PLACEHOLDER_TEXT, ID_PREFIX_LOCAL,
    STATUS_DISCONNECTED, STATUS_CONNECTED, ORDER_DESC, DEFAULT_PAGE_SIZE,
    EVENT_NEW_CUSTOMER_MESSAGE, EVENT_NEW_AGENT_MESSAGE, EVENT_SYSTEM_MESSAGE,
    EVENT_INTERACTIVE_MESSAGE, EVENT_FORM_STEP, EVENT_TICKET_CREATED,
    EVENT_MESSAGES_ACKNOWLEDGED, EVENT_ERROR, EVENT_CONNECTION_STATUS,
    EVENT_AGENT_CONNECTED, EVENT_CUSTOMER_CONNECTED,
    INTENT_AGENT_CONNECT, INTENT_CUSTOMER_CONNECT, INTENT_JOIN_AGENT_ROOM,
    INTENT_LEAVE_AGENT_ROOM, INTENT_ACKNOWLEDGE_MESSAGES, INTENT_INTERACTIVE_RESPONSE,
    INTENT_FORM_STEP_COMPLETE,
)


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime"""
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> datetime | None:
    """Parse a server timestamp (ISO string or datetime); naive values are taken as UTC"""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def new_message_id(prefix: str, at: datetime | None = None) -> str:
    """Client-side temporary id: <prefix><epoch-ms>_<suffix>"""
    moment = at or utc_now()
    return f"{prefix}{int(moment.timestamp() * 1000)}_{uuid.uuid4().hex[:8]}"


@dataclass
class Message:
    """A single chat line in a conversation"""
    id: str
    conversation_key: str
    sender_kind: SenderKind
    text: str
    timestamp: datetime
    interactive: bool = False
    options: list[dict] = field(default_factory=list)
    form: bool = False
    fields: list[dict] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.text:
            self.text = PLACEHOLDER_TEXT

    @classmethod
    def from_row(cls, row: dict, conversation_key: str) -> "Message":
        """Build a message from a backend history row

        Rows look like {"id", "message_text", "sender_type", "created_at"}; the
        live-push shape uses the same keys.
        """
        sender = row.get("sender_type") or row.get("type") or SENDER_CUSTOMER
        if sender not in SENDER_KINDS:
            sender = SENDER_CUSTOMER
        timestamp = parse_timestamp(row.get("created_at") or row.get("timestamp")) or utc_now()
        raw_id = row.get("id")
        return cls(
            id=str(raw_id) if raw_id not in (None, "") else new_message_id(ID_PREFIX_LOCAL, timestamp),
            conversation_key=conversation_key,
            sender_kind=sender,
            text=row.get("message_text") or row.get("text") or PLACEHOLDER_TEXT,
            timestamp=timestamp,
        )

    def to_dict(self) -> dict:
        """JSON-ready view of the message"""
        data: dict[str, Any] = {
            "id": self.id,
            "conversation_key": self.conversation_key,
            "sender_kind": self.sender_kind,
            "text": self.text,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.interactive:
            data["interactive"] = True
            data["options"] = self.options
        if self.form:
            data["form"] = True
            data["fields"] = self.fields
        return data


@dataclass
class ConversationCursor:
    """Pagination bookkeeping for one conversation's history"""
    limit: int = DEFAULT_PAGE_SIZE
    offset: int = 0
    order: HistoryOrder = ORDER_DESC
    has_more: bool = True
    is_loading_more: bool = False


@dataclass
class Identity:
    """Who this connection announced itself as"""
    role: Role
    id: str


@dataclass
class ConnectionState:
    """Process-wide connection state owned by the ConnectionManager"""
    status: ConnectionStatus = STATUS_DISCONNECTED
    identity: Identity | None = None

    @property
    def connected(self) -> bool:
        return self.status == STATUS_CONNECTED


@dataclass
class Ticket:
    """Support ticket summary, only used to gate sending"""
    id: str
    status: str
    subject: str = ""
    priority: str = ""

    @property
    def is_open(self) -> bool:
        return self.status != "closed"

    @classmethod
    def from_row(cls, row: dict) -> "Ticket":
        return cls(
            id=str(row.get("id", "")),
            status=str(row.get("status", "open")),
            subject=str(row.get("subject") or row.get("title") or ""),
            priority=str(row.get("priority", "")),
        )


@dataclass
class HistoryPage:
    """Result of one history fetch"""
    items: list[Message] = field(default_factory=list)
    success: bool = True


@dataclass
class SendResult:
    """Result of a confirmed send"""
    success: bool
    error: str | None = None


# Inbound push events. `type` is the discriminator used by the event bus.

@dataclass
class NewCustomerMessageEvent:
    """Event: a customer message arrived"""
    type: str = EVENT_NEW_CUSTOMER_MESSAGE
    conversation_key: str | None = None
    message: Message | None = None
    customer: dict = field(default_factory=dict)


@dataclass
class NewAgentMessageEvent:
    """Event: an agent message was stored server-side"""
    type: str = EVENT_NEW_AGENT_MESSAGE
    conversation_key: str | None = None
    message: Message | None = None


@dataclass
class SystemMessageEvent:
    """Event: system notice for the conversation"""
    type: str = EVENT_SYSTEM_MESSAGE
    conversation_key: str | None = None
    text: str = ""


@dataclass
class InteractiveMessageEvent:
    """Event: interactive prompt with selectable options"""
    type: str = EVENT_INTERACTIVE_MESSAGE
    conversation_key: str | None = None
    header: str = ""
    body: str = ""
    buttons: list[dict] = field(default_factory=list)


@dataclass
class FormStepEvent:
    """Event: a form wizard step requesting fields"""
    type: str = EVENT_FORM_STEP
    conversation_key: str | None = None
    step: str = ""
    title: str = ""
    fields: list[dict] = field(default_factory=list)


@dataclass
class TicketCreatedEvent:
    """Event: a ticket was opened for the conversation"""
    type: str = EVENT_TICKET_CREATED
    conversation_key: str | None = None
    ticket: dict = field(default_factory=dict)
    message: str = ""


@dataclass
class MessagesAcknowledgedEvent:
    """Event: server confirmed an acknowledgeMessages intent"""
    type: str = EVENT_MESSAGES_ACKNOWLEDGED
    conversation_key: str | None = None
    success: bool = False


@dataclass
class ErrorEvent:
    """Event: server-side error report"""
    type: str = EVENT_ERROR
    conversation_key: str | None = None
    message: str = ""


@dataclass
class ConnectionStatusEvent:
    """Event: transport connected or disconnected"""
    type: str = EVENT_CONNECTION_STATUS
    connected: bool = False
    error: str | None = None


@dataclass
class AgentConnectedEvent:
    """Event: server accepted an agentConnect announce"""
    type: str = EVENT_AGENT_CONNECTED
    agent_id: str = ""
    agent_name: str = ""


@dataclass
class CustomerConnectedEvent:
    """Event: server accepted a customerConnect announce"""
    type: str = EVENT_CUSTOMER_CONNECTED
    customer_id: str = ""
    phone_number: str = ""
    existing_ticket: dict | None = None


InboundEvent = Union[
    NewCustomerMessageEvent, NewAgentMessageEvent, SystemMessageEvent,
    InteractiveMessageEvent, FormStepEvent, TicketCreatedEvent,
    MessagesAcknowledgedEvent, ErrorEvent, ConnectionStatusEvent,
    AgentConnectedEvent, CustomerConnectedEvent,
]


# Outbound intents sent over the duplex connection

@dataclass
class AgentConnectIntent:
    """Intent: announce this connection as an agent"""
    type: str = INTENT_AGENT_CONNECT
    agent_id: str = ""
    agent_name: str = ""


@dataclass
class CustomerConnectIntent:
    """Intent: announce this connection as a customer"""
    type: str = INTENT_CUSTOMER_CONNECT
    phone_number: str = ""
    customer_name: str | None = None


@dataclass
class JoinAgentRoomIntent:
    """Intent: join an agent fan-out room"""
    type: str = INTENT_JOIN_AGENT_ROOM
    agent_id: str = ""


@dataclass
class LeaveAgentRoomIntent:
    """Intent: leave an agent fan-out room"""
    type: str = INTENT_LEAVE_AGENT_ROOM
    agent_id: str = ""


@dataclass
class AcknowledgeMessagesIntent:
    """Intent: the agent has viewed a conversation"""
    type: str = INTENT_ACKNOWLEDGE_MESSAGES
    conversation_key: str = ""


@dataclass
class InteractiveResponseIntent:
    """Intent: an interactive option was chosen"""
    type: str = INTENT_INTERACTIVE_RESPONSE
    option_id: str = ""
    option_label: str = ""


@dataclass
class FormStepCompleteIntent:
    """Intent: a form step was submitted"""
    type: str = INTENT_FORM_STEP_COMPLETE
    step: str = ""
    data: dict = field(default_factory=dict)


OutboundIntent = Union[
    AgentConnectIntent, CustomerConnectIntent, JoinAgentRoomIntent,
    LeaveAgentRoomIntent, AcknowledgeMessagesIntent, InteractiveResponseIntent,
    FormStepCompleteIntent,
]
