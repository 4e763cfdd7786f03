"""In-memory repository implementations."""

import asyncio
import itertools
from typing import Dict, List, Optional, Sequence, Set, Tuple
from uuid import UUID

import structlog

from ..domain.errors import NotFound, StaleVersion
from ..domain.filters import ListingFilter
from ..domain.models import Conversation, Listing, ListingStatus, Message, Side, utcnow
from .base import ConversationRepository, FavoritesRepository, ListingRepository

logger = structlog.get_logger()

_MatchKey = Tuple[str, str, Side]


class InMemoryListingRepository(ListingRepository):
    """Listing store guarded by a single asyncio lock.

    Listings are indexed by (brand, model, side) so counterpart lookups do not
    scan the whole collection.
    """

    def __init__(self) -> None:
        self._listings: Dict[UUID, Listing] = {}
        self._inserted: Dict[UUID, int] = {}
        self._sequence = itertools.count()
        self._match_index: Dict[_MatchKey, Set[UUID]] = {}
        self._lock = asyncio.Lock()
        logger.info("listing_repository_initialized")

    @staticmethod
    def _match_key(listing: Listing) -> _MatchKey:
        return listing.brand, listing.model, listing.side

    def _newest_first(self, listings) -> List[Listing]:
        ordered = sorted(
            listings,
            key=lambda l: (l.created_at, self._inserted[l.id]),
            reverse=True
        )
        return [l.model_copy(deep=True) for l in ordered]

    def _unindex(self, listing: Listing) -> None:
        key = self._match_key(listing)
        ids = self._match_index.get(key)
        if ids is not None:
            ids.discard(listing.id)
            if not ids:
                del self._match_index[key]

    def _store(self, listing: Listing) -> None:
        previous = self._listings.get(listing.id)
        if previous is not None:
            self._unindex(previous)
        self._listings[listing.id] = listing
        self._match_index.setdefault(self._match_key(listing), set()).add(listing.id)

    async def add(self, listing: Listing) -> Listing:
        """Store a new listing."""
        async with self._lock:
            if listing.id in self._listings:
                raise StaleVersion(f"Listing {listing.id} already exists")
            stored = listing.model_copy(deep=True)
            self._inserted[stored.id] = next(self._sequence)
            self._store(stored)
            logger.info("listing_stored", listing_id=str(stored.id))
            return stored.model_copy(deep=True)

    async def get(self, listing_id: UUID) -> Optional[Listing]:
        """Retrieve a listing by ID."""
        async with self._lock:
            listing = self._listings.get(listing_id)
            if listing is None:
                logger.warning("listing_not_found", listing_id=str(listing_id))
                return None
            return listing.model_copy(deep=True)

    async def list(self, listing_filter: ListingFilter) -> List[Listing]:
        """List listings matching the filter, newest first."""
        async with self._lock:
            return self._newest_first(
                l for l in self._listings.values() if listing_filter.matches(l)
            )

    async def find_available(self, brand: str, model: str, side: Side) -> List[Listing]:
        """Look up available counterparts through the match index."""
        async with self._lock:
            ids = self._match_index.get((brand, model, side), set())
            return self._newest_first(
                self._listings[i] for i in ids
                if self._listings[i].status is ListingStatus.AVAILABLE
            )

    async def swap(self, replacements: Sequence[Listing]) -> List[Listing]:
        """Replace listings if every stored version still matches."""
        ids = [r.id for r in replacements]
        if len(set(ids)) != len(ids):
            raise ValueError("A swap cannot replace the same listing twice")

        async with self._lock:
            # Check every version before writing anything.
            for replacement in replacements:
                current = self._listings.get(replacement.id)
                if current is None:
                    raise NotFound(f"Listing {replacement.id} not found")
                if current.version != replacement.version:
                    logger.warning(
                        "listing_version_conflict",
                        listing_id=str(replacement.id),
                        expected=replacement.version,
                        actual=current.version
                    )
                    raise StaleVersion(f"Listing {replacement.id} was modified concurrently")

            now = utcnow()
            stored = []
            for replacement in replacements:
                listing = replacement.model_copy(
                    update={"version": replacement.version + 1, "updated_at": now},
                    deep=True
                )
                self._store(listing)
                stored.append(listing.model_copy(deep=True))
            return stored

    async def remove(self, listing: Listing) -> None:
        """Delete a listing at the version the caller read."""
        async with self._lock:
            current = self._listings.get(listing.id)
            if current is None:
                raise NotFound(f"Listing {listing.id} not found")
            if current.version != listing.version:
                raise StaleVersion(f"Listing {listing.id} was modified concurrently")
            del self._listings[listing.id]
            del self._inserted[listing.id]
            self._unindex(current)
            logger.info("listing_removed", listing_id=str(listing.id))


class InMemoryConversationRepository(ConversationRepository):
    """Conversation and message store guarded by a single asyncio lock.

    The (participants, listing) key is unique; messages are kept per
    conversation in append order.
    """

    def __init__(self) -> None:
        self._conversations: Dict[UUID, Conversation] = {}
        self._by_key: Dict[tuple, UUID] = {}
        self._messages: Dict[UUID, List[Message]] = {}
        self._message_locations: Dict[UUID, UUID] = {}
        # Bumped on create and on every message; orders conversations by recency.
        self._activity: Dict[UUID, int] = {}
        self._ticks = itertools.count()
        self._lock = asyncio.Lock()
        logger.info("conversation_repository_initialized")

    async def get(self, conversation_id: UUID) -> Optional[Conversation]:
        """Retrieve a conversation by ID."""
        async with self._lock:
            conversation = self._conversations.get(conversation_id)
            if conversation is None:
                logger.warning("conversation_not_found", conversation_id=str(conversation_id))
                return None
            return conversation.model_copy()

    async def insert_if_absent(self, conversation: Conversation) -> Tuple[Conversation, bool]:
        """Store a conversation unless its key is taken."""
        async with self._lock:
            existing_id = self._by_key.get(conversation.key)
            if existing_id is not None:
                return self._conversations[existing_id].model_copy(), False

            stored = conversation.model_copy()
            self._conversations[stored.id] = stored
            self._by_key[stored.key] = stored.id
            self._messages[stored.id] = []
            self._activity[stored.id] = next(self._ticks)
            logger.info("conversation_created", conversation_id=str(stored.id))
            return stored.model_copy(), True

    async def list_for_user(self, user_id: str) -> List[Conversation]:
        """List a user's conversations, most recent activity first."""
        async with self._lock:
            conversations = sorted(
                (c for c in self._conversations.values() if c.has_participant(user_id)),
                key=lambda c: self._activity[c.id],
                reverse=True
            )
            return [c.model_copy() for c in conversations]

    async def append_message(self, message: Message) -> Message:
        """Add a message to its conversation."""
        async with self._lock:
            conversation = self._conversations.get(message.conversation_id)
            if conversation is None:
                logger.error(
                    "conversation_not_found_for_message",
                    conversation_id=str(message.conversation_id)
                )
                raise NotFound(f"Conversation {message.conversation_id} not found")

            messages = self._messages[conversation.id]
            # Keep timestamps non-decreasing even if the clock steps back.
            if messages and message.created_at < messages[-1].created_at:
                message = message.model_copy(update={"created_at": messages[-1].created_at})

            messages.append(message)
            self._message_locations[message.id] = conversation.id
            conversation.last_message_id = message.id
            conversation.updated_at = message.created_at
            self._activity[conversation.id] = next(self._ticks)

            logger.info(
                "message_added",
                conversation_id=str(conversation.id),
                message_id=str(message.id)
            )
            return message

    async def get_messages(self, conversation_id: UUID) -> List[Message]:
        """Get all messages for a conversation."""
        async with self._lock:
            if conversation_id not in self._conversations:
                raise NotFound(f"Conversation {conversation_id} not found")
            return list(self._messages[conversation_id])

    async def get_message(self, message_id: UUID) -> Optional[Message]:
        """Retrieve a message by ID."""
        async with self._lock:
            conversation_id = self._message_locations.get(message_id)
            if conversation_id is None:
                return None
            for message in self._messages[conversation_id]:
                if message.id == message_id:
                    return message
            return None

    async def mark_read(self, conversation_id: UUID, reader_id: str) -> int:
        """Mark messages addressed to the reader as read."""
        async with self._lock:
            if conversation_id not in self._conversations:
                raise NotFound(f"Conversation {conversation_id} not found")

            messages = self._messages[conversation_id]
            changed = 0
            for position, message in enumerate(messages):
                if message.sender_id != reader_id and not message.is_read:
                    messages[position] = message.model_copy(update={"is_read": True})
                    changed += 1
            if changed:
                logger.info(
                    "messages_marked_read",
                    conversation_id=str(conversation_id),
                    reader_id=reader_id,
                    count=changed
                )
            return changed

    async def count_unread(self, conversation_id: UUID, reader_id: str) -> int:
        """Count unread messages addressed to the reader."""
        async with self._lock:
            return sum(
                1 for m in self._messages.get(conversation_id, [])
                if m.sender_id != reader_id and not m.is_read
            )


class InMemoryFavoritesRepository(FavoritesRepository):
    """Per-user favorites kept as insertion-ordered dicts."""

    def __init__(self) -> None:
        self._favorites: Dict[str, Dict[UUID, None]] = {}
        self._lock = asyncio.Lock()

    async def add(self, user_id: str, listing_id: UUID) -> bool:
        """Add a listing to a user's favorites."""
        async with self._lock:
            favorites = self._favorites.setdefault(user_id, {})
            if listing_id in favorites:
                return False
            favorites[listing_id] = None
            return True

    async def remove(self, user_id: str, listing_id: UUID) -> bool:
        """Remove a listing from a user's favorites."""
        async with self._lock:
            favorites = self._favorites.get(user_id)
            if favorites is None or listing_id not in favorites:
                return False
            del favorites[listing_id]
            if not favorites:
                del self._favorites[user_id]
            return True

    async def list_for_user(self, user_id: str) -> List[UUID]:
        """Get a user's favorites, oldest first."""
        async with self._lock:
            return list(self._favorites.get(user_id, {}))
