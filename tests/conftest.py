"""Shared fixtures for feed_aggregator tests."""

import pytest

from feed_aggregator.storage.database import FeedStore


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
async def store():
    """Create an in-memory store for testing."""
    feed_store = await FeedStore.connect(":memory:")
    yield feed_store
    await feed_store.close()


@pytest.fixture
async def user(store):
    return await store.create_user("Test User")


@pytest.fixture
async def feed(store, user):
    return await store.create_feed(user.id, "Test Feed", "https://example.com/rss.xml")
