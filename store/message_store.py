"""Per-conversation ordered message collections"""
import logging
from datetime import timedelta
from typing import Callable, Iterable

from domain.constants import (
    MergeMode, MutationKind, HistoryOrder,
    MERGE_REPLACE, MERGE_PREPEND, MERGE_APPEND, MUTATION_IDLE, ORDER_DESC,
    DEDUP_WINDOW_SECONDS,
)
from domain.models import Message

logger = logging.getLogger(__name__)

ChangeListener = Callable[[str, str], None]


def normalize_history(items: Iterable[Message], order: HistoryOrder) -> list[Message]:
    """History pages come newest-first when order is DESC; display is oldest-first"""
    batch = list(items)
    if order == ORDER_DESC:
        batch.reverse()
    return batch


class MessageStore:
    """Ordered, deduplicated message collections keyed by conversation

    Merges are synchronous, so each one completes before another coroutine
    can observe the collection.
    """

    def __init__(self, dedup_window: float = DEDUP_WINDOW_SECONDS) -> None:
        self.dedup_window = timedelta(seconds=dedup_window)
        self.conversations: dict[str, list[Message]] = {}
        self.last_mutations: dict[str, MutationKind] = {}
        self._listeners: list[ChangeListener] = []

    def add_listener(self, listener: ChangeListener) -> None:
        """Call listener(conversation_key, mode) after every merge that changed something"""
        self._listeners.append(listener)

    def remove_listener(self, listener: ChangeListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def messages(self, conversation_key: str) -> list[Message]:
        """Current collection for a conversation (a copy)"""
        return list(self.conversations.get(conversation_key, []))

    def size(self, conversation_key: str) -> int:
        return len(self.conversations.get(conversation_key, []))

    def last_mutation(self, conversation_key: str) -> MutationKind:
        return self.last_mutations.get(conversation_key, MUTATION_IDLE)

    def should_autoscroll(self, conversation_key: str) -> bool:
        """Replace and append scroll to the newest message; prepend keeps the reader's place"""
        return self.last_mutation(conversation_key) in (MERGE_REPLACE, MERGE_APPEND)

    def mark_rendered(self, conversation_key: str) -> None:
        """Presentation layer has reacted to the last mutation"""
        self.last_mutations[conversation_key] = MUTATION_IDLE

    def clear(self, conversation_key: str) -> None:
        self.conversations.pop(conversation_key, None)
        self.last_mutations.pop(conversation_key, None)

    def is_duplicate(self, existing: Iterable[Message], message: Message) -> bool:
        """Same id, or same text with timestamps less than the window apart"""
        for current in existing:
            if current.id == message.id:
                return True
            if current.text == message.text and abs(current.timestamp - message.timestamp) < self.dedup_window:
                return True
        return False

    def merge(self, conversation_key: str, batch: Iterable[Message], mode: MergeMode) -> int:
        """Merge a batch into a conversation's collection

        Args:
            conversation_key: Conversation to update
            batch: Messages already in display order (oldest first)
            mode: replace (fresh load), prepend (older page) or append (live/local)

        Returns:
            Number of messages added
        """
        incoming = list(batch)
        current = self.conversations.get(conversation_key, [])

        if mode == MERGE_REPLACE:
            merged = self._unique_by_id(incoming, set())
            self.conversations[conversation_key] = merged
            added = len(merged)
        elif mode == MERGE_PREPEND:
            older = self._unique_by_id(incoming, {m.id for m in current})
            self.conversations[conversation_key] = older + current
            added = len(older)
        elif mode == MERGE_APPEND:
            collection = list(current)
            added = 0
            for message in incoming:
                if self.is_duplicate(collection, message):
                    logger.debug("Skipping duplicate message %s in %s", message.id, conversation_key)
                    continue
                collection.append(message)
                added += 1
            if not added:
                return 0
            self.conversations[conversation_key] = collection
        else:
            raise ValueError(f"Unknown merge mode: {mode}")

        self.last_mutations[conversation_key] = mode
        self._notify(conversation_key, mode)
        return added

    def _notify(self, conversation_key: str, mode: str) -> None:
        for listener in list(self._listeners):
            try:
                listener(conversation_key, mode)
            except Exception:
                logger.exception("Error in message store listener")

    @staticmethod
    def _unique_by_id(messages: list[Message], seen: set[str]) -> list[Message]:
        unique: list[Message] = []
        for message in messages:
            if message.id in seen:
                continue
            seen.add(message.id)
            unique.append(message)
        return unique
