"""Test suite for concurrent operations."""

import asyncio
from datetime import datetime

import pytest
from httpx import ASGITransport, AsyncClient

from budmatch.api.app import create_app

from conftest import listing_fields


def as_user(user_id: str) -> dict:
    return {"X-User-Id": user_id}


@pytest.mark.asyncio
async def test_concurrent_listing_creation():
    """Test handling many listings created at once."""
    async with AsyncClient(transport=ASGITransport(app=create_app()), base_url="http://test") as client:
        responses = await asyncio.gather(
            *[client.post("/listings", json=listing_fields(), headers=as_user(f"u{i}")) for i in range(10)]
        )

        assert all(r.status_code == 201 for r in responses)
        listing_ids = [r.json()["listing"]["id"] for r in responses]
        assert len(set(listing_ids)) == 10


@pytest.mark.asyncio
async def test_concurrent_match_commits():
    """Several owners race to claim the same counterpart; one wins, the rest conflict."""
    async with AsyncClient(transport=ASGITransport(app=create_app()), base_url="http://test") as client:
        right = (await client.post(
            "/listings", json=listing_fields(side="right"), headers=as_user("owner")
        )).json()["listing"]
        lefts = [
            (await client.post("/listings", json=listing_fields(), headers=as_user(f"u{i}"))).json()["listing"]
            for i in range(5)
        ]

        responses = await asyncio.gather(*[
            client.post(
                "/listings/match",
                json={"listingId": left["id"], "matchedListingId": right["id"]},
                headers=as_user(f"u{i}")
            )
            for i, left in enumerate(lefts)
        ])

        codes = sorted(r.status_code for r in responses)
        assert codes == [200, 409, 409, 409, 409]

        stored_right = (await client.get(f"/listings/{right['id']}")).json()["listing"]
        winner = next(r.json()["listing"] for r in responses if r.status_code == 200)
        assert stored_right["matched_with"] == winner["id"]


@pytest.mark.asyncio
async def test_concurrent_chat_creation_is_idempotent():
    """Both users opening the same chat at once end up in one conversation."""
    async with AsyncClient(transport=ASGITransport(app=create_app()), base_url="http://test") as client:
        listing = (await client.post("/listings", json=listing_fields(), headers=as_user("seller"))).json()["listing"]

        responses = await asyncio.gather(*[
            client.post(
                "/messages/chat",
                json={"userId": "seller" if i % 2 else "buyer", "listingId": listing["id"]},
                headers=as_user("buyer" if i % 2 else "seller")
            )
            for i in range(10)
        ])

        assert all(r.status_code == 201 for r in responses)
        assert len({r.json()["chat"]["id"] for r in responses}) == 1


@pytest.mark.asyncio
async def test_concurrent_messages_keep_order():
    """Messages sent concurrently are all stored with non-decreasing timestamps."""
    async with AsyncClient(transport=ASGITransport(app=create_app()), base_url="http://test") as client:
        chat = (await client.post(
            "/messages/chat", json={"userId": "u2"}, headers=as_user("u1")
        )).json()["chat"]

        responses = await asyncio.gather(*[
            client.post(
                "/messages",
                json={"chatId": chat["id"], "content": f"message {i}"},
                headers=as_user("u1" if i % 2 else "u2")
            )
            for i in range(10)
        ])
        assert all(r.status_code == 201 for r in responses)

        messages = (await client.get(f"/messages/chat/{chat['id']}", headers=as_user("u1"))).json()["messages"]
        assert len(messages) == 10
        timestamps = [datetime.fromisoformat(m["created_at"].replace("Z", "+00:00")) for m in messages]
        assert timestamps == sorted(timestamps)
