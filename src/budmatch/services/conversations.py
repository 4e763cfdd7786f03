"""Conversation store: two-party chats and their messages."""

from typing import List, Optional, Tuple
from uuid import UUID

import structlog

from ..domain.errors import Forbidden, NotFound, ValidationError
from ..domain.models import Conversation, ConversationSummary, Message
from ..metrics import MESSAGES_APPENDED
from ..repositories.base import ConversationRepository, ListingRepository

logger = structlog.get_logger()


class ConversationService:
    """Find-or-create conversations and exchange messages within them."""

    def __init__(
        self,
        repository: ConversationRepository,
        listings: Optional[ListingRepository] = None
    ) -> None:
        self.repository = repository
        self.listings = listings

    async def find_or_create(
        self, user_a: str, user_b: str, listing_id: Optional[UUID] = None
    ) -> Conversation:
        """Return the conversation for this pair and listing, creating it once."""
        conversation, _ = await self._find_or_create(user_a, user_b, listing_id)
        return conversation

    async def _find_or_create(
        self, user_a: str, user_b: str, listing_id: Optional[UUID]
    ) -> Tuple[Conversation, bool]:
        if not user_a or not user_b:
            raise ValidationError("Both participants are required")
        if user_a == user_b:
            raise ValidationError("Cannot start a conversation with yourself")
        if listing_id is not None and self.listings is not None:
            if await self.listings.get(listing_id) is None:
                raise NotFound(f"Listing {listing_id} not found")

        return await self.repository.insert_if_absent(
            Conversation(participants=(user_a, user_b), listing_id=listing_id)
        )

    async def start_conversation(
        self,
        requester_id: str,
        other_user_id: str,
        listing_id: Optional[UUID] = None,
        initial_message: Optional[str] = None
    ) -> Tuple[Conversation, Optional[Message]]:
        """Open (or reopen) a chat and optionally post its first message."""
        conversation, created = await self._find_or_create(requester_id, other_user_id, listing_id)
        message = None
        if initial_message is not None and initial_message.strip():
            message = await self.append_message(conversation.id, requester_id, initial_message)
            conversation = await self._get(conversation.id)
        logger.info(
            "conversation_started",
            conversation_id=str(conversation.id),
            created=created,
            with_message=message is not None
        )
        return conversation, message

    async def _get(self, conversation_id: UUID) -> Conversation:
        conversation = await self.repository.get(conversation_id)
        if conversation is None:
            raise NotFound(f"Conversation {conversation_id} not found")
        return conversation

    async def get_for_participant(self, conversation_id: UUID, user_id: str) -> Conversation:
        conversation = await self._get(conversation_id)
        if not conversation.has_participant(user_id):
            logger.warning(
                "conversation_access_denied",
                conversation_id=str(conversation_id),
                user_id=user_id
            )
            raise Forbidden("Not a participant in this conversation")
        return conversation

    async def list_for_user(self, user_id: str) -> List[ConversationSummary]:
        """Conversations of ``user_id``, most recently updated first."""
        summaries = []
        for conversation in await self.repository.list_for_user(user_id):
            last_message = None
            if conversation.last_message_id is not None:
                last_message = await self.repository.get_message(conversation.last_message_id)
            summaries.append(ConversationSummary(
                **conversation.model_dump(),
                last_message=last_message,
                unread_count=await self.repository.count_unread(conversation.id, user_id)
            ))
        return summaries

    async def append_message(self, conversation_id: UUID, sender_id: str, content: str) -> Message:
        content = (content or "").strip()
        if not content:
            raise ValidationError("Message content cannot be empty")

        await self.get_for_participant(conversation_id, sender_id)
        message = await self.repository.append_message(
            Message(conversation_id=conversation_id, sender_id=sender_id, content=content)
        )
        MESSAGES_APPENDED.inc()
        logger.info(
            "message_appended",
            conversation_id=str(conversation_id),
            message_id=str(message.id),
            sender_id=sender_id
        )
        return message

    async def get_messages(self, conversation_id: UUID, requester_id: str) -> List[Message]:
        """Messages oldest first; marks those sent to the requester as read.

        The returned messages reflect the read flags after marking.
        """
        await self.get_for_participant(conversation_id, requester_id)
        await self.repository.mark_read(conversation_id, requester_id)
        return await self.repository.get_messages(conversation_id)

    async def mark_read(self, conversation_id: UUID, requester_id: str) -> int:
        await self.get_for_participant(conversation_id, requester_id)
        return await self.repository.mark_read(conversation_id, requester_id)
