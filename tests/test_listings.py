"""Test suite for the listing store."""

from decimal import Decimal

import pytest

from budmatch.domain.errors import Conflict, Forbidden, NotFound, ValidationError
from budmatch.domain.filters import ListingFilter
from budmatch.domain.models import ListingStatus, Side

from conftest import listing_fields


@pytest.mark.asyncio
async def test_create_listing_defaults(listings):
    """New listings start available, unlinked and at version zero."""
    listing = await listings.create("u1", listing_fields(brand="  Sony  "))

    assert listing.owner_id == "u1"
    assert listing.brand == "Sony"
    assert listing.side is Side.LEFT
    assert listing.price == Decimal("20")
    assert listing.status is ListingStatus.AVAILABLE
    assert listing.matched_with is None
    assert listing.version == 0


@pytest.mark.asyncio
async def test_create_listing_rejects_bad_input(listings):
    """Invalid fields are reported as validation errors."""
    with pytest.raises(ValidationError):
        await listings.create("u1", listing_fields(price=-1))
    with pytest.raises(ValidationError):
        await listings.create("u1", listing_fields(side="middle"))
    with pytest.raises(ValidationError):
        await listings.create("u1", listing_fields(brand="   "))
    with pytest.raises(ValidationError):
        await listings.create("u1", listing_fields(status="matched"))
    with pytest.raises(ValidationError):
        await listings.create("u1", listing_fields(images=[f"https://img/{i}" for i in range(6)]))


@pytest.mark.asyncio
async def test_get_missing_listing(listings):
    from uuid import uuid4

    with pytest.raises(NotFound):
        await listings.get(uuid4())


@pytest.mark.asyncio
async def test_update_by_non_owner_is_forbidden(listings):
    """A user who does not own the listing cannot change it."""
    listing = await listings.create("u1", listing_fields())

    with pytest.raises(Forbidden):
        await listings.update(listing.id, "u3", {"price": 5})

    unchanged = await listings.get(listing.id)
    assert unchanged.price == Decimal("20")


@pytest.mark.asyncio
async def test_update_by_owner(listings):
    listing = await listings.create("u1", listing_fields())

    updated = await listings.update(listing.id, "u1", {"price": "17.50", "description": None})

    assert updated.price == Decimal("17.50")
    assert updated.description is None
    assert updated.version == listing.version + 1
    assert updated.brand == listing.brand


@pytest.mark.asyncio
async def test_update_cannot_touch_status_or_clear_required_fields(listings):
    listing = await listings.create("u1", listing_fields())

    with pytest.raises(ValidationError):
        await listings.update(listing.id, "u1", {"status": "sold"})
    with pytest.raises(ValidationError):
        await listings.update(listing.id, "u1", {"matched_with": str(listing.id)})
    with pytest.raises(ValidationError):
        await listings.update(listing.id, "u1", {"brand": None})


@pytest.mark.asyncio
async def test_matched_listing_keeps_matching_fields(listings, committer):
    """Brand, model and side of a matched listing are frozen; other fields are not."""
    left = await listings.create("u1", listing_fields())
    right = await listings.create("u2", listing_fields(side="right"))
    await committer.commit_match("u1", left.id, right.id)

    with pytest.raises(Conflict):
        await listings.update(left.id, "u1", {"side": "right"})

    repriced = await listings.update(left.id, "u1", {"price": 30, "side": "left"})
    assert repriced.price == Decimal("30")
    assert repriced.status is ListingStatus.MATCHED


@pytest.mark.asyncio
async def test_delete_listing(listings, committer):
    listing = await listings.create("u1", listing_fields())

    with pytest.raises(Forbidden):
        await listings.delete(listing.id, "u2")

    await listings.delete(listing.id, "u1")
    with pytest.raises(NotFound):
        await listings.get(listing.id)
    with pytest.raises(NotFound):
        await listings.delete(listing.id, "u1")

    left = await listings.create("u1", listing_fields())
    right = await listings.create("u2", listing_fields(side="right"))
    await committer.commit_match("u1", left.id, right.id)
    with pytest.raises(Conflict):
        await listings.delete(left.id, "u1")


@pytest.mark.asyncio
async def test_list_newest_first(listings):
    first = await listings.create("u1", listing_fields())
    second = await listings.create("u1", listing_fields())
    third = await listings.create("u2", listing_fields())

    result = await listings.list()

    assert [l.id for l in result] == [third.id, second.id, first.id]


@pytest.mark.asyncio
async def test_filters_compose(listings):
    """Filters combine with AND; search matches any of brand, model or description."""
    cheap_left = await listings.create("u1", listing_fields(price=10))
    pricey_right = await listings.create("u2", listing_fields(side="right", price=50, location="Paris"))
    apple = await listings.create(
        "u2", listing_fields(brand="Apple", model="AirPods Pro", description="mint", price=40)
    )

    by_owner = await listings.list(ListingFilter(owner="u2"))
    assert {l.id for l in by_owner} == {pricey_right.id, apple.id}

    in_range = await listings.list(ListingFilter.from_query({"minPrice": "15", "maxPrice": "45"}))
    assert [l.id for l in in_range] == [apple.id]

    search = await listings.list(ListingFilter(search="airpods"))
    assert [l.id for l in search] == [apple.id]

    search_description = await listings.list(ListingFilter(search="CASE NOT"))
    assert {l.id for l in search_description} == {cheap_left.id, pricey_right.id}

    combined = await listings.list(
        ListingFilter.from_query({"brand": "Sony", "side": "right", "location": "Paris"})
    )
    assert [l.id for l in combined] == [pricey_right.id]

    none = await listings.list(ListingFilter(brand="Sony", location="Tokyo"))
    assert none == []


def test_filter_rejects_unknown_keys_and_bad_ranges():
    with pytest.raises(ValidationError):
        ListingFilter.from_query({"colour": "black"})
    with pytest.raises(ValidationError):
        ListingFilter.from_query({"minPrice": "50", "maxPrice": "10"})
    with pytest.raises(ValidationError):
        ListingFilter.from_query({"side": "both"})


def test_filter_ignores_empty_values():
    listing_filter = ListingFilter.from_query({"brand": "", "user": "u1"})

    assert listing_filter.brand is None
    assert listing_filter.owner == "u1"


@pytest.mark.asyncio
async def test_match_index_forgets_emptied_keys(listings, listing_repository):
    listing = await listings.create("u1", listing_fields())
    await listings.update(listing.id, "u1", {"model": "WF-1000XM5"})
    assert list(listing_repository._match_index) == [("Sony", "WF-1000XM5", Side.LEFT)]

    await listings.delete(listing.id, "u1")
    assert listing_repository._match_index == {}
