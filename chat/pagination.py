"""History pagination driven by scroll position"""
import logging
from dataclasses import dataclass
from typing import Callable

from api.backend import ChatBackend
from domain.constants import (
    DEFAULT_SCROLL_THRESHOLD, FETCH_FAILED_TEXT, MERGE_PREPEND, MERGE_REPLACE,
)
from domain.errors import FetchError, TransportError
from domain.models import ConversationCursor, HistoryPage
from store.message_store import MessageStore, normalize_history

logger = logging.getLogger(__name__)

CurrentCheck = Callable[[str, ConversationCursor], bool]
ErrorSink = Callable[[str], None]


@dataclass
class ScrollAnchor:
    """Content height captured before older messages were prepended"""
    height_before: float

    def adjusted_offset(self, height_after: float, scroll_top: float) -> float:
        """Scroll offset that keeps the message under the reader stationary"""
        delta = height_after - self.height_before
        if delta > 0:
            return scroll_top + delta
        return scroll_top


@dataclass
class PageLoadResult:
    """Outcome of a history load, handed to the presentation layer"""
    triggered: bool = False
    applied: bool = False
    returned: int = 0
    added: int = 0
    error: str | None = None
    anchor: ScrollAnchor | None = None


class PaginationController:
    """Loads the first page and older pages into the message store

    `is_current(key, cursor)` is asked after every fetch settles; a page whose
    conversation is no longer the active one is dropped.
    """

    def __init__(
        self,
        backend: ChatBackend,
        store: MessageStore,
        is_current: CurrentCheck,
        threshold: float = DEFAULT_SCROLL_THRESHOLD,
        on_error: ErrorSink | None = None,
    ) -> None:
        self.backend = backend
        self.store = store
        self.is_current = is_current
        self.threshold = threshold
        self.on_error = on_error

    def should_load(self, cursor: ConversationCursor, scroll_distance_from_top: float) -> bool:
        return (
            scroll_distance_from_top <= self.threshold
            and cursor.has_more
            and not cursor.is_loading_more
        )

    async def load_initial(self, conversation_key: str, cursor: ConversationCursor) -> PageLoadResult:
        """Fetch the newest page and replace the visible collection with it"""
        page = await self._fetch(conversation_key, cursor.limit, cursor.offset, cursor)
        if page is None:
            return PageLoadResult(triggered=True, error=FETCH_FAILED_TEXT)
        if not self.is_current(conversation_key, cursor):
            logger.info("Dropping stale initial page for %s", conversation_key)
            return PageLoadResult(triggered=True, returned=len(page.items))

        added = self.store.merge(conversation_key, normalize_history(page.items, cursor.order), MERGE_REPLACE)
        cursor.has_more = len(page.items) == cursor.limit
        return PageLoadResult(triggered=True, applied=True, returned=len(page.items), added=added)

    async def maybe_load_older(
        self,
        conversation_key: str,
        cursor: ConversationCursor,
        scroll_distance_from_top: float,
        content_height: float | None = None,
    ) -> PageLoadResult:
        """Load the next older page when the reader is near the top

        Args:
            conversation_key: Conversation being scrolled
            cursor: That conversation's cursor
            scroll_distance_from_top: Viewport distance from the top of the content
            content_height: Content height before the load, for the scroll anchor

        Returns:
            PageLoadResult; `triggered` is False when nothing was fetched
        """
        if not self.should_load(cursor, scroll_distance_from_top):
            return PageLoadResult()

        # Set before the first await so a second scroll event sees it
        cursor.is_loading_more = True
        next_offset = cursor.offset + cursor.limit
        logger.debug("Loading older messages for %s at offset %d", conversation_key, next_offset)
        try:
            page = await self._fetch(conversation_key, cursor.limit, next_offset, cursor)
        finally:
            cursor.is_loading_more = False

        if page is None:
            return PageLoadResult(triggered=True, error=FETCH_FAILED_TEXT)
        if not self.is_current(conversation_key, cursor):
            logger.info("Dropping stale page for %s at offset %d", conversation_key, next_offset)
            return PageLoadResult(triggered=True, returned=len(page.items))

        added = self.store.merge(conversation_key, normalize_history(page.items, cursor.order), MERGE_PREPEND)
        cursor.offset = next_offset
        cursor.has_more = len(page.items) == cursor.limit
        anchor = ScrollAnchor(height_before=content_height) if content_height is not None else None
        return PageLoadResult(triggered=True, applied=True, returned=len(page.items), added=added, anchor=anchor)

    async def _fetch(self, conversation_key: str, limit: int, offset: int, cursor: ConversationCursor) -> HistoryPage | None:
        try:
            page = await self.backend.fetch_history(conversation_key, limit, offset, cursor.order)
        except (FetchError, TransportError) as exc:
            logger.error("Failed to load messages for %s: %s", conversation_key, exc)
            self._report(conversation_key, cursor)
            return None
        if not page.success:
            logger.error("Backend refused history for %s (offset %d)", conversation_key, offset)
            self._report(conversation_key, cursor)
            return None
        return page

    def _report(self, conversation_key: str, cursor: ConversationCursor) -> None:
        if self.on_error is not None and self.is_current(conversation_key, cursor):
            self.on_error(FETCH_FAILED_TEXT)
