"""FastAPI dependencies.

Stores and the realtime hub live on ``app.state`` and are handed to
endpoints from there, so each application instance owns its own.
"""

from typing import Optional

from fastapi import Depends, Header
from fastapi.requests import HTTPConnection

from ..config import Settings, get_settings
from ..domain.errors import Unauthenticated
from ..repositories.base import ConversationRepository, FavoritesRepository, ListingRepository
from ..services.conversations import ConversationService
from ..services.favorites import FavoritesService
from ..services.listings import ListingService
from ..services.matching import MatchCommitter, MatchFinder
from ..services.realtime import RealtimeHub


def get_listing_repository(connection: HTTPConnection) -> ListingRepository:
    """Returns the listing store"""
    return connection.app.state.listing_repository


def get_conversation_repository(connection: HTTPConnection) -> ConversationRepository:
    """Returns the conversation store"""
    return connection.app.state.conversation_repository


def get_favorites_repository(connection: HTTPConnection) -> FavoritesRepository:
    """Returns the favorites store"""
    return connection.app.state.favorites_repository


def get_realtime_hub(connection: HTTPConnection) -> RealtimeHub:
    """Returns the realtime delivery service"""
    return connection.app.state.realtime_hub


def get_listing_service(
    repository: ListingRepository = Depends(get_listing_repository),
    settings: Settings = Depends(get_settings)
) -> ListingService:
    return ListingService(repository, max_images=settings.max_images_per_listing)


def get_match_finder(
    repository: ListingRepository = Depends(get_listing_repository)
) -> MatchFinder:
    return MatchFinder(repository)


def get_match_committer(
    repository: ListingRepository = Depends(get_listing_repository)
) -> MatchCommitter:
    return MatchCommitter(repository)


def get_conversation_service(
    repository: ConversationRepository = Depends(get_conversation_repository),
    listings: ListingRepository = Depends(get_listing_repository)
) -> ConversationService:
    return ConversationService(repository, listings)


def get_favorites_service(
    repository: FavoritesRepository = Depends(get_favorites_repository),
    listings: ListingRepository = Depends(get_listing_repository)
) -> FavoritesService:
    return FavoritesService(repository, listings)


def get_current_user_id(x_user_id: Optional[str] = Header(default=None)) -> str:
    """Identity of the caller, as asserted by the upstream auth layer."""
    if x_user_id is None or not x_user_id.strip():
        raise Unauthenticated("Authentication required")
    return x_user_id.strip()
