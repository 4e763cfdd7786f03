"""Realtime socket endpoint.

Frames in both directions are JSON objects ``{"event": ..., "data": ...}``.
The first client frame must be ``join`` naming the user; after that the
client may send ``private-message`` and ``typing`` events.
"""

import json
from typing import Any, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect, status
from pydantic import BaseModel, ConfigDict, Field
from structlog import get_logger

from ..domain.errors import Unavailable, ValidationError
from ..domain.validation import coerce
from ..services.conversations import ConversationService
from ..services.realtime import Handler, RealtimeHub, Session, notify_new_message
from .dependencies import get_conversation_service, get_realtime_hub

logger = get_logger()

router = APIRouter(tags=["realtime"])


class PrivateMessage(BaseModel):
    """Inbound chat message. The sender is always the joined user."""

    model_config = ConfigDict(populate_by_name=True)

    chat_id: UUID = Field(alias="chatId")
    message: str


class Typing(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    to: str = Field(min_length=1)
    is_typing: bool = Field(alias="isTyping")


def join_user_id(data: Any) -> Optional[str]:
    """User id from a ``join`` payload: a bare string or ``{"userId": ...}``."""
    if isinstance(data, dict):
        data = data.get("userId")
    if isinstance(data, str) and data.strip():
        return data.strip()
    return None


def make_event_handler(hub: RealtimeHub, conversations: ConversationService) -> Handler:
    """Handler for events a joined client sends."""

    async def handle(session: Session, event: str, data: Any) -> None:
        if event == "private-message":
            payload = coerce(PrivateMessage, data if isinstance(data, dict) else {})
            message = await conversations.append_message(
                payload.chat_id, session.user_id, payload.message
            )
            conversation = await conversations.get_for_participant(payload.chat_id, session.user_id)
            notify_new_message(hub, conversation, message, echo_sender=True)
        elif event == "typing":
            payload = coerce(Typing, data if isinstance(data, dict) else {})
            hub.send(payload.to, "typing", {"from": session.user_id, "isTyping": payload.is_typing})
        else:
            raise ValidationError(f"Unsupported event: {event}")

    return handle


async def _receive_frame(websocket: WebSocket) -> Optional[tuple]:
    """Next ``(event, data)`` pair, or None if the frame is not a valid event."""
    text = await websocket.receive_text()
    try:
        frame = json.loads(text)
    except ValueError:
        return None
    if not isinstance(frame, dict) or not isinstance(frame.get("event"), str):
        return None
    return frame["event"], frame.get("data")


@router.websocket("/ws")
async def realtime_socket(
    websocket: WebSocket,
    hub: RealtimeHub = Depends(get_realtime_hub),
    conversations: ConversationService = Depends(get_conversation_service)
) -> None:
    await websocket.accept()
    try:
        received = await _receive_frame(websocket)
    except WebSocketDisconnect:
        return

    user_id = join_user_id(received[1]) if received and received[0] == "join" else None
    if user_id is None:
        logger.warning("realtime_join_rejected")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    try:
        session = await hub.connect(user_id, websocket)
    except Unavailable:
        await websocket.close(code=status.WS_1011_INTERNAL_ERROR)
        return
    hub.on_message(session, make_event_handler(hub, conversations))
    session.offer({"event": "joined", "data": {"userId": user_id}})

    try:
        while True:
            received = await _receive_frame(websocket)
            if received is None:
                session.offer({"event": "error", "data": {"message": "Malformed frame"}})
                continue
            await session.dispatch(*received)
    except WebSocketDisconnect:
        pass
    finally:
        await hub.disconnect(session)
