"""Listing store: owner-facing create, read, edit and delete."""

from typing import Any, List, Mapping, Optional, Union
from uuid import UUID

import structlog

from ..domain.errors import Conflict, Forbidden, NotFound, ValidationError
from ..domain.filters import ListingFilter
from ..domain.models import MATCHING_FIELDS, Listing, ListingCreate, ListingStatus, ListingUpdate
from ..domain.validation import coerce
from ..metrics import LISTINGS_CREATED
from ..repositories.base import ListingRepository

logger = structlog.get_logger()


class ListingService:
    """Content operations on listings.

    Status and ``matched_with`` are never written here; that belongs to the
    match committer.
    """

    def __init__(self, repository: ListingRepository, max_images: int = 5) -> None:
        self.repository = repository
        self.max_images = max_images

    def _check_images(self, images: Optional[List[str]]) -> None:
        if images is not None and len(images) > self.max_images:
            raise ValidationError(f"A listing can have at most {self.max_images} images")

    async def create(
        self, owner_id: str, fields: Union[ListingCreate, Mapping[str, Any]]
    ) -> Listing:
        data = coerce(ListingCreate, fields)
        self._check_images(data.images)
        listing = await self.repository.add(Listing(owner_id=owner_id, **data.model_dump()))
        LISTINGS_CREATED.inc()
        logger.info(
            "listing_created",
            listing_id=str(listing.id),
            owner_id=owner_id,
            brand=listing.brand,
            model=listing.model,
            side=listing.side.value
        )
        return listing

    async def get(self, listing_id: UUID) -> Listing:
        listing = await self.repository.get(listing_id)
        if listing is None:
            raise NotFound(f"Listing {listing_id} not found")
        return listing

    async def _owned(self, listing_id: UUID, requester_id: str, action: str) -> Listing:
        listing = await self.get(listing_id)
        if listing.owner_id != requester_id:
            logger.warning(
                "listing_access_denied",
                listing_id=str(listing_id),
                requester_id=requester_id,
                action=action
            )
            raise Forbidden(f"Not authorized to {action} this listing")
        return listing

    async def update(
        self,
        listing_id: UUID,
        requester_id: str,
        fields: Union[ListingUpdate, Mapping[str, Any]]
    ) -> Listing:
        listing = await self._owned(listing_id, requester_id, "update")
        changes = coerce(ListingUpdate, fields).changes()
        self._check_images(changes.get("images"))
        if not changes:
            return listing

        touches_matching = any(
            name in changes and changes[name] != getattr(listing, name)
            for name in MATCHING_FIELDS
        )
        if touches_matching and not listing.is_available:
            raise Conflict(
                f"Brand, model and side of a {listing.status.value} listing cannot change"
            )

        (updated,) = await self.repository.swap([listing.model_copy(update=changes)])
        logger.info(
            "listing_updated",
            listing_id=str(listing_id),
            fields=sorted(changes),
            version=updated.version
        )
        return updated

    async def list(self, listing_filter: Optional[ListingFilter] = None) -> List[Listing]:
        return await self.repository.list(listing_filter or ListingFilter())

    async def delete(self, listing_id: UUID, requester_id: str) -> None:
        listing = await self._owned(listing_id, requester_id, "delete")
        if listing.status is ListingStatus.MATCHED:
            raise Conflict("A matched listing cannot be deleted")
        await self.repository.remove(listing)
        logger.info("listing_deleted", listing_id=str(listing_id), owner_id=requester_id)
