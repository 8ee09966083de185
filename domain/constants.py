"""Domain constants and type aliases"""
from typing import Literal

# Type aliases for senders, merge modes and connection status
SenderKind = Literal["customer", "agent", "system", "error"]
MergeMode = Literal["replace", "prepend", "append"]
MutationKind = Literal["replace", "prepend", "append", "idle"]
ConnectionStatus = Literal["disconnected", "connecting", "connected"]
Role = Literal["agent", "customer"]
HistoryOrder = Literal["ASC", "DESC"]

# Sender kind constants
SENDER_CUSTOMER: SenderKind = "customer"
SENDER_AGENT: SenderKind = "agent"
SENDER_SYSTEM: SenderKind = "system"
SENDER_ERROR: SenderKind = "error"
SENDER_KINDS: tuple[str, ...] = (SENDER_CUSTOMER, SENDER_AGENT, SENDER_SYSTEM, SENDER_ERROR)

# Merge mode constants
MERGE_REPLACE: MergeMode = "replace"
MERGE_PREPEND: MergeMode = "prepend"
MERGE_APPEND: MergeMode = "append"
MUTATION_IDLE: MutationKind = "idle"

# Connection status constants
STATUS_DISCONNECTED: ConnectionStatus = "disconnected"
STATUS_CONNECTING: ConnectionStatus = "connecting"
STATUS_CONNECTED: ConnectionStatus = "connected"

ROLE_AGENT: Role = "agent"
ROLE_CUSTOMER: Role = "customer"

ORDER_ASC: HistoryOrder = "ASC"
ORDER_DESC: HistoryOrder = "DESC"

# Message id prefixes by origin
ID_PREFIX_TEMP = "temp_"
ID_PREFIX_SERVER = "srv_"
ID_PREFIX_ERROR = "error_"
ID_PREFIX_LOCAL = "msg_"

PLACEHOLDER_TEXT = "Message"
SEND_FAILED_TEXT = "Failed to send message"
FETCH_FAILED_TEXT = "Failed to load messages"
FORM_PROMPT_TEXT = "Please provide the following information:"

# Inbound push events
EVENT_NEW_CUSTOMER_MESSAGE = "newCustomerMessage"
EVENT_NEW_AGENT_MESSAGE = "newAgentMessage"
EVENT_SYSTEM_MESSAGE = "systemMessage"
EVENT_INTERACTIVE_MESSAGE = "interactiveMessage"
EVENT_FORM_STEP = "formStep"
EVENT_TICKET_CREATED = "ticketCreated"
EVENT_MESSAGES_ACKNOWLEDGED = "messagesAcknowledged"
EVENT_ERROR = "error"
EVENT_CONNECTION_STATUS = "connectionStatus"
EVENT_AGENT_CONNECTED = "agentConnected"
EVENT_CUSTOMER_CONNECTED = "customerConnected"

# Outbound intents
INTENT_AGENT_CONNECT = "agentConnect"
INTENT_CUSTOMER_CONNECT = "customerConnect"
INTENT_JOIN_AGENT_ROOM = "joinAgentRoom"
INTENT_LEAVE_AGENT_ROOM = "leaveAgentRoom"
INTENT_ACKNOWLEDGE_MESSAGES = "acknowledgeMessages"
INTENT_INTERACTIVE_RESPONSE = "interactiveResponse"
INTENT_FORM_STEP_COMPLETE = "formStepComplete"

# Duplex request/response pairs
REQUEST_HISTORY = "getCustomerMessages"
RESPONSE_HISTORY = "customerMessagesResponse"
REQUEST_SEND_MESSAGE = "sendMessage"
RESPONSE_SEND_MESSAGE = "messageSent"
REQUEST_TICKETS = "getTicketsByCustomer"
RESPONSE_TICKETS = "ticketsResponse"

# Defaults
DEFAULT_SOCKET_URL = "ws://localhost:4000/ws"
DEFAULT_API_URL = "http://localhost:4000/api"
DEFAULT_AGENT_ID = "1"
DEFAULT_AGENT_NAME = "Admin User"
DEFAULT_PAGE_SIZE = 30
DEFAULT_SCROLL_THRESHOLD = 100.0
DEDUP_WINDOW_SECONDS = 1.0
DEFAULT_RECONNECT_ATTEMPTS = 5
DEFAULT_RECONNECT_DELAY = 1.0
DEFAULT_CONNECT_TIMEOUT = 20.0
DEFAULT_REQUEST_TIMEOUT = 10.0
DEFAULT_SETTLE_DELAY = 0.1
HISTORY_SOURCE_REST = "rest"
HISTORY_SOURCE_SOCKET = "socket"
