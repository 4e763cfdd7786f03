"""Shared fixtures."""

from typing import Any, Dict

import pytest

from budmatch.repositories.memory import (
    InMemoryConversationRepository,
    InMemoryFavoritesRepository,
    InMemoryListingRepository,
)
from budmatch.services.conversations import ConversationService
from budmatch.services.favorites import FavoritesService
from budmatch.services.listings import ListingService
from budmatch.services.matching import MatchCommitter, MatchFinder


def listing_fields(**overrides: Any) -> Dict[str, Any]:
    fields = {
        "brand": "Sony",
        "model": "WF-1000XM4",
        "side": "left",
        "condition": "good",
        "price": 20,
        "description": "Left bud, case not included",
        "images": ["https://img.example/left.jpg"],
        "location": "Berlin",
    }
    fields.update(overrides)
    return fields


@pytest.fixture
def listing_repository() -> InMemoryListingRepository:
    return InMemoryListingRepository()


@pytest.fixture
def conversation_repository() -> InMemoryConversationRepository:
    return InMemoryConversationRepository()


@pytest.fixture
def listings(listing_repository) -> ListingService:
    return ListingService(listing_repository)


@pytest.fixture
def finder(listing_repository) -> MatchFinder:
    return MatchFinder(listing_repository)


@pytest.fixture
def committer(listing_repository) -> MatchCommitter:
    return MatchCommitter(listing_repository)


@pytest.fixture
def conversations(conversation_repository, listing_repository) -> ConversationService:
    return ConversationService(conversation_repository, listing_repository)


@pytest.fixture
def favorites(listing_repository) -> FavoritesService:
    return FavoritesService(InMemoryFavoritesRepository(), listing_repository)
