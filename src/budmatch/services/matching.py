"""Match finding and match commit.

Finding is a read-only query for available opposite-side listings of the
same brand and model. Committing links two listings symmetrically in one
version-guarded swap, so two commits racing for the same listing cannot both
succeed.
"""

from typing import List, Tuple
from uuid import UUID

import structlog

from ..domain.errors import Conflict, Forbidden, NotFound, StaleVersion, ValidationError
from ..domain.models import Listing, ListingStatus
from ..metrics import MATCH_CONFLICTS, MATCHES_COMMITTED
from ..repositories.base import ListingRepository

logger = structlog.get_logger()


class MatchFinder:
    """Computes counterpart candidates for a listing."""

    def __init__(self, repository: ListingRepository) -> None:
        self.repository = repository

    async def find_matches(self, listing_id: UUID) -> List[Listing]:
        source = await self.repository.get(listing_id)
        if source is None:
            raise NotFound(f"Listing {listing_id} not found")

        candidates = await self.repository.find_available(
            source.brand, source.model, source.side.opposite
        )
        matches = [c for c in candidates if c.id != source.id]
        logger.info("matches_found", listing_id=str(listing_id), count=len(matches))
        return matches


def is_compatible(listing: Listing, other: Listing) -> bool:
    return (
        listing.id != other.id
        and listing.brand == other.brand
        and listing.model == other.model
        and listing.side is other.side.opposite
    )


class MatchCommitter:
    """Turns a chosen pair of available listings into a confirmed match.

    Only the owner of the initiating listing has to confirm; the
    counterpart's owner is not asked.
    """

    def __init__(self, repository: ListingRepository) -> None:
        self.repository = repository

    async def commit_match(
        self, requester_id: str, listing_id: UUID, matched_listing_id: UUID
    ) -> Tuple[Listing, Listing]:
        if listing_id == matched_listing_id:
            raise ValidationError("A listing cannot be matched with itself")

        listing = await self.repository.get(listing_id)
        matched = await self.repository.get(matched_listing_id)
        if listing is None or matched is None:
            raise NotFound("One or both listings not found")

        if not (listing.is_available and matched.is_available):
            MATCH_CONFLICTS.inc()
            logger.warning(
                "match_commit_conflict",
                listing_id=str(listing_id),
                matched_listing_id=str(matched_listing_id),
                listing_status=listing.status.value,
                matched_status=matched.status.value
            )
            raise Conflict("One or both listings are no longer available")

        if listing.owner_id != requester_id:
            logger.warning(
                "match_commit_forbidden",
                listing_id=str(listing_id),
                requester_id=requester_id
            )
            raise Forbidden("Not authorized to match this listing")

        if not is_compatible(listing, matched):
            raise ValidationError(
                "Listings must share brand and model and be for opposite sides"
            )

        try:
            linked, linked_back = await self.repository.swap([
                listing.model_copy(
                    update={"status": ListingStatus.MATCHED, "matched_with": matched.id}
                ),
                matched.model_copy(
                    update={"status": ListingStatus.MATCHED, "matched_with": listing.id}
                ),
            ])
        except StaleVersion as e:
            MATCH_CONFLICTS.inc()
            logger.warning(
                "match_commit_lost_race",
                listing_id=str(listing_id),
                matched_listing_id=str(matched_listing_id)
            )
            raise Conflict("One or both listings changed; refresh matches and try again") from e

        MATCHES_COMMITTED.inc()
        logger.info(
            "match_committed",
            listing_id=str(linked.id),
            matched_listing_id=str(linked_back.id),
            requester_id=requester_id
        )
        return linked, linked_back
