"""Chat endpoints."""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field

from ..domain.models import Conversation, ConversationSummary, Message
from ..services.conversations import ConversationService
from ..services.realtime import RealtimeHub, notify_new_chat, notify_new_message
from .dependencies import get_conversation_service, get_current_user_id, get_realtime_hub

router = APIRouter(prefix="/messages", tags=["messages"])


class MessageCreate(BaseModel):
    """Defines the structure for message creation requests"""

    model_config = ConfigDict(populate_by_name=True)

    chat_id: UUID = Field(alias="chatId")
    content: str


class ChatCreate(BaseModel):
    """Opens a chat with another user, optionally about a listing"""

    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(alias="userId", min_length=1)
    listing_id: Optional[UUID] = Field(default=None, alias="listingId")
    initial_message: Optional[str] = Field(default=None, alias="initialMessage")


class MessageEnvelope(BaseModel):
    message: Message


class MessagesEnvelope(BaseModel):
    messages: List[Message]


class ChatEnvelope(BaseModel):
    chat: Conversation


class ChatsEnvelope(BaseModel):
    chats: List[ConversationSummary]


class ReadReceipt(BaseModel):
    message: str
    updated: int


@router.post("", response_model=MessageEnvelope, status_code=201)
async def send_message(
    body: MessageCreate,
    user_id: str = Depends(get_current_user_id),
    conversations: ConversationService = Depends(get_conversation_service),
    hub: RealtimeHub = Depends(get_realtime_hub)
) -> MessageEnvelope:
    """Stores a message, then pushes it to the other participant"""
    message = await conversations.append_message(body.chat_id, user_id, body.content)
    conversation = await conversations.get_for_participant(body.chat_id, user_id)
    notify_new_message(hub, conversation, message)
    return MessageEnvelope(message=message)


@router.post("/chat", response_model=ChatEnvelope, status_code=201)
async def start_chat(
    body: ChatCreate,
    user_id: str = Depends(get_current_user_id),
    conversations: ConversationService = Depends(get_conversation_service),
    hub: RealtimeHub = Depends(get_realtime_hub)
) -> ChatEnvelope:
    conversation, message = await conversations.start_conversation(
        user_id, body.user_id, body.listing_id, body.initial_message
    )
    if message is not None:
        notify_new_chat(hub, conversation, message)
    return ChatEnvelope(chat=conversation)


@router.get("/chats", response_model=ChatsEnvelope)
async def list_chats(
    user_id: str = Depends(get_current_user_id),
    conversations: ConversationService = Depends(get_conversation_service)
) -> ChatsEnvelope:
    """Chats of the caller, most recently active first"""
    return ChatsEnvelope(chats=await conversations.list_for_user(user_id))


@router.get("/chat/{chat_id}", response_model=MessagesEnvelope)
async def get_chat_messages(
    chat_id: UUID,
    user_id: str = Depends(get_current_user_id),
    conversations: ConversationService = Depends(get_conversation_service)
) -> MessagesEnvelope:
    """Message history, oldest first; marks messages sent to the caller as read"""
    return MessagesEnvelope(messages=await conversations.get_messages(chat_id, user_id))


@router.put("/read/{chat_id}", response_model=ReadReceipt)
async def mark_chat_read(
    chat_id: UUID,
    user_id: str = Depends(get_current_user_id),
    conversations: ConversationService = Depends(get_conversation_service)
) -> ReadReceipt:
    updated = await conversations.mark_read(chat_id, user_id)
    return ReadReceipt(message="Messages marked as read", updated=updated)
