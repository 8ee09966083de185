"""Wire codec: JSON frames <-> typed events and intents

Frames on the duplex connection look like {"event": "<name>", "data": {...}}.
"""
import json
from typing import Any

from domain.constants import (
    EVENT_NEW_CUSTOMER_MESSAGE, EVENT_NEW_AGENT_MESSAGE, EVENT_SYSTEM_MESSAGE,
    EVENT_INTERACTIVE_MESSAGE, EVENT_FORM_STEP, EVENT_TICKET_CREATED,
    EVENT_MESSAGES_ACKNOWLEDGED, EVENT_ERROR, EVENT_AGENT_CONNECTED,
    EVENT_CUSTOMER_CONNECTED, ID_PREFIX_SERVER, SENDER_CUSTOMER, SENDER_AGENT,
)
from domain.errors import ProtocolError
from domain.models import (
    Message, InboundEvent, OutboundIntent, new_message_id, parse_timestamp, utc_now,
    NewCustomerMessageEvent, NewAgentMessageEvent, SystemMessageEvent,
    InteractiveMessageEvent, FormStepEvent, TicketCreatedEvent,
    MessagesAcknowledgedEvent, ErrorEvent, AgentConnectedEvent, CustomerConnectedEvent,
    AgentConnectIntent, CustomerConnectIntent, JoinAgentRoomIntent, LeaveAgentRoomIntent,
    AcknowledgeMessagesIntent, InteractiveResponseIntent, FormStepCompleteIntent,
)


def decode_frame(raw: str | bytes) -> tuple[str, dict]:
    """Split a raw frame into (event name, payload)"""
    try:
        frame = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ProtocolError(f"Invalid JSON frame: {exc}") from exc
    if not isinstance(frame, dict):
        raise ProtocolError("Frame must be a JSON object")
    name = frame.get("event")
    if not isinstance(name, str) or not name:
        raise ProtocolError("Frame is missing an event name")
    data = frame.get("data", {})
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ProtocolError(f"Payload of '{name}' must be an object")
    return name, data


def encode_frame(name: str, data: dict) -> str:
    return json.dumps({"event": name, "data": data})


def conversation_key_of(data: dict) -> str | None:
    """Find the conversation key (customer phone number) a payload targets"""
    for key in ("phone_number", "phoneNumber", "conversationKey"):
        value = data.get(key)
        if value:
            return str(value)
    for nested in ("customer", "message"):
        inner = data.get(nested)
        if isinstance(inner, dict) and inner.get("phone_number"):
            return str(inner["phone_number"])
    return None


def _as_dict(data: dict, key: str, event_name: str) -> dict:
    value = data.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ProtocolError(f"'{key}' in '{event_name}' must be an object")
    return value


def _as_list(value: Any, event_name: str) -> list:
    if value is None:
        return []
    if isinstance(value, dict):
        return [value]
    if not isinstance(value, list):
        raise ProtocolError(f"Expected a list in '{event_name}'")
    return value


def _pushed_message(data: dict, event_name: str, default_sender: str) -> Message | None:
    row = _as_dict(data, "message", event_name)
    if not row:
        return None
    timestamp = parse_timestamp(row.get("created_at")) or utc_now()
    if not row.get("id"):
        row = {**row, "id": new_message_id(ID_PREFIX_SERVER, timestamp)}
    if not row.get("sender_type"):
        row = {**row, "sender_type": default_sender}
    return Message.from_row({**row, "created_at": timestamp}, conversation_key_of(data) or "")


def build_event(name: str, data: dict) -> InboundEvent | None:
    """Turn a decoded frame into its typed event

    Returns None for event names this layer does not model (e.g. dashboard
    statistics); raises ProtocolError when a modelled event has the wrong shape.
    """
    key = conversation_key_of(data)

    if name == EVENT_NEW_CUSTOMER_MESSAGE:
        return NewCustomerMessageEvent(
            conversation_key=key,
            message=_pushed_message(data, name, SENDER_CUSTOMER),
            customer=_as_dict(data, "customer", name),
        )
    elif name == EVENT_NEW_AGENT_MESSAGE:
        return NewAgentMessageEvent(
            conversation_key=key,
            message=_pushed_message(data, name, SENDER_AGENT),
        )
    elif name == EVENT_SYSTEM_MESSAGE:
        return SystemMessageEvent(conversation_key=key, text=str(data.get("message", "")))
    elif name == EVENT_INTERACTIVE_MESSAGE:
        return InteractiveMessageEvent(
            conversation_key=key,
            header=str(data.get("header", "")),
            body=str(data.get("body", "")),
            buttons=_as_list(data.get("buttons"), name),
        )
    elif name == EVENT_FORM_STEP:
        return FormStepEvent(
            conversation_key=key,
            step=str(data.get("step", "")),
            title=str(data.get("title", "")),
            fields=_as_list(data.get("fields") or data.get("field"), name),
        )
    elif name == EVENT_TICKET_CREATED:
        return TicketCreatedEvent(
            conversation_key=key,
            ticket=_as_dict(data, "ticket", name),
            message=str(data.get("message", "")),
        )
    elif name == EVENT_MESSAGES_ACKNOWLEDGED:
        return MessagesAcknowledgedEvent(conversation_key=key, success=bool(data.get("success")))
    elif name == EVENT_ERROR:
        return ErrorEvent(conversation_key=key, message=str(data.get("message", "")))
    elif name == EVENT_AGENT_CONNECTED:
        return AgentConnectedEvent(
            agent_id=str(data.get("agentId", "")),
            agent_name=str(data.get("agentName") or ""),
        )
    elif name == EVENT_CUSTOMER_CONNECTED:
        customer = _as_dict(data, "customer", name)
        return CustomerConnectedEvent(
            customer_id=str(customer.get("id", "")),
            phone_number=str(customer.get("phone_number", "")),
            existing_ticket=data.get("existingTicket"),
        )
    return None


def intent_payload(intent: OutboundIntent) -> dict:
    """Convert an intent dataclass to its wire payload"""
    # Manual conversion keeps wire key names independent of field names
    if isinstance(intent, AgentConnectIntent):
        return {"agentId": intent.agent_id, "agentName": intent.agent_name}
    elif isinstance(intent, CustomerConnectIntent):
        return {"phoneNumber": intent.phone_number, "customerName": intent.customer_name}
    elif isinstance(intent, (JoinAgentRoomIntent, LeaveAgentRoomIntent)):
        return {"agentId": intent.agent_id}
    elif isinstance(intent, AcknowledgeMessagesIntent):
        return {"phoneNumber": intent.conversation_key}
    elif isinstance(intent, InteractiveResponseIntent):
        return {"optionId": intent.option_id, "optionLabel": intent.option_label}
    elif isinstance(intent, FormStepCompleteIntent):
        return {"step": intent.step, "data": intent.data}
    raise ProtocolError(f"Unsupported intent: {type(intent).__name__}")


def encode_intent(intent: OutboundIntent) -> str:
    return encode_frame(intent.type, intent_payload(intent))
