"""Base repository interfaces."""

from abc import ABC, abstractmethod
from typing import List, Optional, Sequence, Tuple
from uuid import UUID

from ..domain.filters import ListingFilter
from ..domain.models import Conversation, Listing, Message, Side


class ListingRepository(ABC):
    """Abstract store for listings.

    Every write is a compare-and-swap against the version the caller read, so
    concurrent writers to the same listing cannot both win.
    """

    @abstractmethod
    async def add(self, listing: Listing) -> Listing:
        """Persist a new listing."""
        pass

    @abstractmethod
    async def get(self, listing_id: UUID) -> Optional[Listing]:
        """Retrieve a listing by ID."""
        pass

    @abstractmethod
    async def list(self, listing_filter: ListingFilter) -> List[Listing]:
        """List listings matching the filter, newest first."""
        pass

    @abstractmethod
    async def find_available(self, brand: str, model: str, side: Side) -> List[Listing]:
        """List available listings for a brand, model and side, newest first."""
        pass

    @abstractmethod
    async def swap(self, replacements: Sequence[Listing]) -> List[Listing]:
        """Atomically replace listings whose stored version equals the given one.

        Each replacement carries the version it was read at. Either all are
        stored with their version bumped, or none are and ``StaleVersion`` is
        raised.
        """
        pass

    @abstractmethod
    async def remove(self, listing: Listing) -> None:
        """Delete a listing if it is still at the version the caller read."""
        pass


class ConversationRepository(ABC):
    """Abstract store for conversations and their messages."""

    @abstractmethod
    async def get(self, conversation_id: UUID) -> Optional[Conversation]:
        """Retrieve a conversation by ID."""
        pass

    @abstractmethod
    async def insert_if_absent(self, conversation: Conversation) -> Tuple[Conversation, bool]:
        """Insert unless a conversation with the same key exists.

        Returns the stored conversation and whether it was created.
        """
        pass

    @abstractmethod
    async def list_for_user(self, user_id: str) -> List[Conversation]:
        """Conversations the user takes part in, most recently updated first."""
        pass

    @abstractmethod
    async def append_message(self, message: Message) -> Message:
        """Store a message and advance the conversation's last-message pointer."""
        pass

    @abstractmethod
    async def get_messages(self, conversation_id: UUID) -> List[Message]:
        """Messages of a conversation, oldest first."""
        pass

    @abstractmethod
    async def get_message(self, message_id: UUID) -> Optional[Message]:
        """Retrieve a message by ID."""
        pass

    @abstractmethod
    async def mark_read(self, conversation_id: UUID, reader_id: str) -> int:
        """Flag every unread message not sent by ``reader_id`` as read.

        Returns how many messages changed.
        """
        pass

    @abstractmethod
    async def count_unread(self, conversation_id: UUID, reader_id: str) -> int:
        """Count unread messages addressed to ``reader_id``."""
        pass


class FavoritesRepository(ABC):
    """Abstract store for the listings each user has favorited."""

    @abstractmethod
    async def add(self, user_id: str, listing_id: UUID) -> bool:
        """Add a favorite. Returns False if it was already there."""
        pass

    @abstractmethod
    async def remove(self, user_id: str, listing_id: UUID) -> bool:
        """Remove a favorite. Returns False if it was not there."""
        pass

    @abstractmethod
    async def list_for_user(self, user_id: str) -> List[UUID]:
        """Favorited listing ids, in the order they were added."""
        pass
