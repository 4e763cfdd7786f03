"""Favorites: listings a user wants to keep an eye on."""

from typing import List, Optional
from uuid import UUID

import structlog

from ..domain.errors import NotFound, ValidationError
from ..repositories.base import FavoritesRepository, ListingRepository

logger = structlog.get_logger()


class FavoritesService:
    """Adds and removes favorites for the calling user.

    Adding requires the listing to exist and rejects duplicates. Removing is
    idempotent and does not look at the listing, so a deleted listing can
    still be unfavorited.
    """

    def __init__(
        self,
        repository: FavoritesRepository,
        listings: Optional[ListingRepository] = None
    ) -> None:
        self.repository = repository
        self.listings = listings

    async def add_favorite(self, user_id: str, listing_id: UUID) -> List[UUID]:
        if self.listings is not None and await self.listings.get(listing_id) is None:
            raise NotFound(f"Listing {listing_id} not found")

        if not await self.repository.add(user_id, listing_id):
            raise ValidationError("Listing already in favorites")

        logger.info("favorite_added", user_id=user_id, listing_id=str(listing_id))
        return await self.repository.list_for_user(user_id)

    async def remove_favorite(self, user_id: str, listing_id: UUID) -> List[UUID]:
        if await self.repository.remove(user_id, listing_id):
            logger.info("favorite_removed", user_id=user_id, listing_id=str(listing_id))
        return await self.repository.list_for_user(user_id)
