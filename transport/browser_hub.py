"""Conversation view updates pushed to browser websocket clients"""
import asyncio
import json
import logging

from fastapi import WebSocket

from chat.conversation import ConversationSession

logger = logging.getLogger(__name__)

VIEW_MESSAGE_TYPE = "conversation"


def view_message(conversation: ConversationSession) -> dict:
    """Frame sent to browsers: the conversation snapshot under a type tag"""
    return {"type": VIEW_MESSAGE_TYPE, "view": conversation.snapshot()}


class BrowserHub:
    """Browsers watching the dashboard session's active conversation

    A browser gets the current view when it connects and a fresh one after
    every change. The snapshot is taken once per change, when the push is
    scheduled, so every browser receives the same view.
    """

    def __init__(self) -> None:
        self.clients: list[WebSocket] = []
        self._pushes: set[asyncio.Task] = set()

    async def connect(self, websocket: WebSocket, conversation: ConversationSession) -> None:
        """Accept a browser and send it the current view"""
        await websocket.accept()
        self.clients.append(websocket)
        await websocket.send_json(view_message(conversation))
        logger.info("Browser connected. Total browsers: %d", len(self.clients))

    def disconnect(self, websocket: WebSocket) -> None:
        if websocket in self.clients:
            self.clients.remove(websocket)
            logger.info("Browser disconnected. Total browsers: %d", len(self.clients))

    def get_connection_count(self) -> int:
        return len(self.clients)

    def on_view_changed(self, conversation: ConversationSession) -> None:
        """View listener: schedule a push of the conversation's current snapshot"""
        if not self.clients:
            return
        task = asyncio.get_running_loop().create_task(self.push_view(view_message(conversation)))
        self._pushes.add(task)
        task.add_done_callback(self._pushes.discard)

    async def push_view(self, message: dict) -> int:
        """Send one view frame to every browser; browsers that fail are dropped

        Returns:
            Number of browsers the view reached
        """
        message_text = json.dumps(message)
        delivered = 0
        for client in list(self.clients):
            try:
                await client.send_text(message_text)
                delivered += 1
            except Exception as exc:
                logger.warning("Error sending view update to browser: %s", exc)
                self.disconnect(client)
        return delivered

    async def drain(self) -> None:
        """Wait for scheduled view pushes to finish"""
        if self._pushes:
            await asyncio.gather(*list(self._pushes), return_exceptions=True)
