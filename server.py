"""FastAPI host for the agent dashboard: one dashboard session per process"""
import logging
from contextlib import asynccontextmanager
from typing import Callable

import uvicorn
from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from pydantic import BaseModel

from chat.conversation import ConversationSession
from chat.dashboard import DashboardSession
from domain.settings import Settings, configure_logging
from transport.browser_hub import BrowserHub

logger = logging.getLogger(__name__)


class SendRequest(BaseModel):
    text: str


class ScrollRequest(BaseModel):
    distance_from_top: float
    content_height: float | None = None


class OptionRequest(BaseModel):
    option_id: str
    option_label: str


class FormStepRequest(BaseModel):
    data: dict


def create_app(session_factory: Callable[[], DashboardSession] | None = None) -> FastAPI:
    """Build the app; the dashboard session lives exactly as long as the lifespan"""
    factory = session_factory or (lambda: DashboardSession(Settings.from_env()))
    hub = BrowserHub()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Start the dashboard session on startup, stop it on shutdown"""
        session = factory()
        configure_logging(session.settings.log_level)
        session.conversation.add_view_listener(hub.on_view_changed)
        app.state.session = session
        await session.start()
        logger.info("Dashboard session started")

        yield

        session.conversation.remove_view_listener(hub.on_view_changed)
        await hub.drain()
        await session.stop()
        logger.info("Application shutdown complete")

    app = FastAPI(lifespan=lifespan)
    app.state.hub = hub

    def conversation_of(app_: FastAPI) -> ConversationSession:
        return app_.state.session.conversation

    @app.get("/status")
    async def get_status() -> dict:
        session: DashboardSession = app.state.session
        return {
            "connection": session.connection.get_connection_status(),
            "conversation_key": session.conversation.active_key,
            "browsers": hub.get_connection_count(),
        }

    @app.post("/conversations/{conversation_key}/select")
    async def select_conversation(conversation_key: str) -> dict:
        conversation = conversation_of(app)
        await conversation.select(conversation_key)
        return conversation.snapshot()

    @app.get("/conversations/active")
    async def get_active_conversation() -> dict:
        return conversation_of(app).snapshot()

    @app.delete("/conversations/active")
    async def deselect_conversation() -> dict:
        conversation = conversation_of(app)
        conversation.deselect()
        return conversation.snapshot()

    @app.post("/conversations/active/messages")
    async def send_message(body: SendRequest) -> dict:
        conversation = conversation_of(app)
        if not conversation.can_send:
            raise HTTPException(status_code=409, detail="Sending is disabled")
        sent = await conversation.send(body.text)
        return {"sent": sent, "view": conversation.snapshot()}

    @app.post("/conversations/active/scroll")
    async def scroll(body: ScrollRequest) -> dict:
        conversation = conversation_of(app)
        result = await conversation.load_older(body.distance_from_top, body.content_height)
        return {
            "triggered": result.triggered,
            "applied": result.applied,
            "added": result.added,
            "error": result.error,
            "anchor_height_before": result.anchor.height_before if result.anchor else None,
            "has_more": conversation.cursor.has_more if conversation.cursor else False,
        }

    @app.post("/conversations/active/rendered")
    async def mark_rendered() -> dict:
        conversation = conversation_of(app)
        if conversation.active_key is not None:
            conversation.store.mark_rendered(conversation.active_key)
        return {"last_mutation": conversation.snapshot()["last_mutation"]}

    @app.post("/conversations/active/options")
    async def choose_option(body: OptionRequest) -> dict:
        conversation = conversation_of(app)
        sent = await conversation.choose_option(body.option_id, body.option_label)
        return {"sent": sent, "view": conversation.snapshot()}

    @app.post("/conversations/active/form")
    async def submit_form_step(body: FormStepRequest) -> dict:
        conversation = conversation_of(app)
        if conversation.pending_form is None:
            raise HTTPException(status_code=409, detail="No form step pending")
        sent = await conversation.submit_form_step(body.data)
        return {"sent": sent, "view": conversation.snapshot()}

    @app.websocket("/ws")
    async def browser_websocket(websocket: WebSocket) -> None:
        """Browser clients receive a snapshot on connect and after every change"""
        try:
            await hub.connect(websocket, conversation_of(app))
            while True:
                # Browsers only listen; inbound text is ignored
                await websocket.receive_text()
        except WebSocketDisconnect:
            logger.debug("Browser websocket closed by client")
        finally:
            hub.disconnect(websocket)

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(app, host="localhost", port=8765)
