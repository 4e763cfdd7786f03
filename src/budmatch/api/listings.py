"""Listing and matching endpoints."""

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, ConfigDict, Field

from ..domain.filters import ListingFilter
from ..domain.models import Listing, ListingCreate, ListingUpdate
from ..services.favorites import FavoritesService
from ..services.listings import ListingService
from ..services.matching import MatchCommitter, MatchFinder
from ..services.realtime import RealtimeHub, notify_match
from .dependencies import (
    get_current_user_id,
    get_favorites_service,
    get_listing_service,
    get_match_committer,
    get_match_finder,
    get_realtime_hub,
)

router = APIRouter(prefix="/listings", tags=["listings"])


class ListingEnvelope(BaseModel):
    listing: Listing


class ListingsEnvelope(BaseModel):
    listings: List[Listing]


class MatchRequest(BaseModel):
    """Defines the structure for match commit requests"""

    model_config = ConfigDict(populate_by_name=True)

    listing_id: UUID = Field(alias="listingId")
    matched_listing_id: UUID = Field(alias="matchedListingId")


class MatchResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    listing: Listing
    matched_listing: Listing = Field(alias="matchedListing")


class Acknowledgement(BaseModel):
    message: str


class FavoritesEnvelope(BaseModel):
    favorites: List[UUID]


@router.get("", response_model=ListingsEnvelope)
async def list_listings(
    request: Request,
    service: ListingService = Depends(get_listing_service)
) -> ListingsEnvelope:
    """Browses listings; every supported query parameter narrows the result"""
    listing_filter = ListingFilter.from_query(request.query_params)
    return ListingsEnvelope(listings=await service.list(listing_filter))


@router.post("/match", response_model=MatchResult)
async def commit_match(
    body: MatchRequest,
    user_id: str = Depends(get_current_user_id),
    committer: MatchCommitter = Depends(get_match_committer),
    hub: RealtimeHub = Depends(get_realtime_hub)
) -> MatchResult:
    """Links two available listings; notifies both owners once stored"""
    listing, matched = await committer.commit_match(
        user_id, body.listing_id, body.matched_listing_id
    )
    notify_match(hub, listing, matched)
    return MatchResult(listing=listing, matched_listing=matched)


@router.get("/{listing_id}", response_model=ListingEnvelope)
async def get_listing(
    listing_id: UUID,
    service: ListingService = Depends(get_listing_service)
) -> ListingEnvelope:
    return ListingEnvelope(listing=await service.get(listing_id))


@router.post("", response_model=ListingEnvelope, status_code=201)
async def create_listing(
    body: ListingCreate,
    user_id: str = Depends(get_current_user_id),
    service: ListingService = Depends(get_listing_service)
) -> ListingEnvelope:
    return ListingEnvelope(listing=await service.create(user_id, body))


@router.put("/{listing_id}", response_model=ListingEnvelope)
async def update_listing(
    listing_id: UUID,
    body: ListingUpdate,
    user_id: str = Depends(get_current_user_id),
    service: ListingService = Depends(get_listing_service)
) -> ListingEnvelope:
    """Owner-only edit of content fields"""
    return ListingEnvelope(listing=await service.update(listing_id, user_id, body))


@router.delete("/{listing_id}", response_model=Acknowledgement)
async def delete_listing(
    listing_id: UUID,
    user_id: str = Depends(get_current_user_id),
    service: ListingService = Depends(get_listing_service)
) -> Acknowledgement:
    await service.delete(listing_id, user_id)
    return Acknowledgement(message="Listing deleted successfully")


@router.get("/{listing_id}/matches", response_model=List[Listing])
async def find_matches(
    listing_id: UUID,
    user_id: str = Depends(get_current_user_id),
    finder: MatchFinder = Depends(get_match_finder)
) -> List[Listing]:
    """Available opposite-side listings of the same brand and model"""
    return await finder.find_matches(listing_id)


@router.post("/{listing_id}/favorite", response_model=FavoritesEnvelope)
async def add_favorite(
    listing_id: UUID,
    user_id: str = Depends(get_current_user_id),
    service: FavoritesService = Depends(get_favorites_service)
) -> FavoritesEnvelope:
    return FavoritesEnvelope(favorites=await service.add_favorite(user_id, listing_id))


@router.delete("/{listing_id}/favorite", response_model=FavoritesEnvelope)
async def remove_favorite(
    listing_id: UUID,
    user_id: str = Depends(get_current_user_id),
    service: FavoritesService = Depends(get_favorites_service)
) -> FavoritesEnvelope:
    """Idempotent; removing a listing that is not a favorite is not an error"""
    return FavoritesEnvelope(favorites=await service.remove_favorite(user_id, listing_id))
