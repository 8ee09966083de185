"""Optimistic agent sends backed by a confirmed backend round trip"""
import logging
from datetime import datetime
from typing import Callable

from api.backend import ChatBackend
from domain.constants import (
    ID_PREFIX_ERROR, ID_PREFIX_TEMP, MERGE_APPEND, SEND_FAILED_TEXT, SENDER_AGENT, SENDER_ERROR,
)
from domain.errors import SendError, TransportError
from domain.models import Message, new_message_id, utc_now
from store.message_store import MessageStore

logger = logging.getLogger(__name__)


class OutboundSendPipeline:
    """Echo the agent's message locally, then confirm it with the backend

    A failed send appends a separate error line. The optimistic echo stays
    where it is: it is neither removed nor marked failed.
    """

    def __init__(
        self,
        backend: ChatBackend,
        store: MessageStore,
        active_key: Callable[[], str | None],
        agent_id: str,
        on_error: Callable[[str], None] | None = None,
        on_sent: Callable[[str], None] | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.backend = backend
        self.store = store
        self.active_key = active_key
        self.agent_id = agent_id
        self.on_error = on_error
        self.on_sent = on_sent
        self.clock = clock
        self.in_flight = 0

    @property
    def is_sending(self) -> bool:
        return self.in_flight > 0

    async def send_agent_message(self, conversation_key: str, text: str) -> bool:
        """Send text to the active conversation

        Returns:
            True when the backend confirmed the send; False when the call was
            rejected up front or the send failed
        """
        message_text = (text or "").strip()
        active = self.active_key()
        if not message_text or active is None or active != conversation_key:
            return False

        sent_at = self.clock()
        echo = Message(
            id=new_message_id(ID_PREFIX_TEMP, sent_at),
            conversation_key=conversation_key,
            sender_kind=SENDER_AGENT,
            text=message_text,
            timestamp=sent_at,
        )
        self.store.merge(conversation_key, [echo], MERGE_APPEND)

        self.in_flight += 1
        try:
            result = await self.backend.send_message(conversation_key, message_text, self.agent_id)
            if not result.success:
                raise SendError(result.error or SEND_FAILED_TEXT)
        except (SendError, TransportError) as exc:
            logger.error("Error sending message to %s: %s", conversation_key, exc)
            self._record_failure(conversation_key)
            return False
        finally:
            self.in_flight -= 1

        logger.info("Message sent to %s", conversation_key)
        if self.on_sent is not None:
            self.on_sent(conversation_key)
        return True

    def _record_failure(self, conversation_key: str) -> None:
        if self.active_key() == conversation_key:
            failed_at = self.clock()
            marker = Message(
                id=new_message_id(ID_PREFIX_ERROR, failed_at),
                conversation_key=conversation_key,
                sender_kind=SENDER_ERROR,
                text=SEND_FAILED_TEXT,
                timestamp=failed_at,
            )
            self.store.merge(conversation_key, [marker], MERGE_APPEND)
        if self.on_error is not None:
            self.on_error(SEND_FAILED_TEXT)
