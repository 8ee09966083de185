"""Error taxonomy for the chat sync engine"""


class ChatSyncError(Exception):
    """Base class for every error raised by the sync engine"""


class TransportError(ChatSyncError):
    """Duplex connection could not be opened, was lost, or is not available"""


class RequestTimeout(TransportError):
    """A request/response call over the duplex connection did not settle in time"""

    def __init__(self, event_name: str, timeout: float) -> None:
        super().__init__(f"Request '{event_name}' timed out after {timeout}s")
        self.event_name = event_name
        self.timeout = timeout


class FetchError(ChatSyncError):
    """A history page could not be fetched"""


class SendError(ChatSyncError):
    """An outbound message could not be delivered to the backend"""


class ProtocolError(ChatSyncError):
    """A frame or event payload had an unexpected shape"""
