"""Unit tests for database operations.

Tests for the storage layer using in-memory SQLite.
"""

import asyncio
import uuid
from datetime import datetime, timedelta, timezone

import pytest

from feed_aggregator.storage.database import PostWriteStatus, StoreError, new_id, utcnow


# Mark all tests as async
pytestmark = pytest.mark.anyio


async def _create_post(store, feed_id, url, published_at=None, title="Post"):
    now = utcnow()
    return await store.create_post(
        post_id=new_id(),
        created_at=now,
        updated_at=now,
        title=title,
        url=url,
        description="",
        feed_id=feed_id,
        published_at=published_at,
    )


class TestDatabaseInitialization:
    """Tests for database schema initialization."""

    async def test_init_creates_tables(self, store):
        """Test that initialization creates the required tables."""
        cursor = await store.db.execute(
            "SELECT name FROM sqlite_master WHERE type='table'"
        )
        tables = [row[0] for row in await cursor.fetchall()]

        for table in ("users", "feeds", "feed_follows", "posts"):
            assert table in tables

    async def test_init_is_idempotent(self, store):
        """Test that calling init multiple times doesn't cause errors."""
        await store.init_database()
        await store.init_database()


class TestUserOperations:
    """Tests for user creation and API key lookup."""

    async def test_create_user_generates_api_key(self, store):
        user = await store.create_user("Alice")

        assert user.name == "Alice"
        assert len(user.api_key) == 64
        uuid.UUID(user.id)

    async def test_api_keys_are_unique(self, store):
        first = await store.create_user("Alice")
        second = await store.create_user("Alice")

        assert first.api_key != second.api_key

    async def test_get_user_by_api_key(self, store, user):
        found = await store.get_user_by_api_key(user.api_key)

        assert found is not None
        assert found.id == user.id
        assert found.name == user.name

    async def test_get_user_by_unknown_api_key(self, store):
        assert await store.get_user_by_api_key("nope") is None


class TestFeedOperations:
    """Tests for feed CRUD and fetch bookkeeping."""

    async def test_create_feed(self, store, user):
        feed = await store.create_feed(user.id, "Blog", "https://blog.example.com/rss")

        assert feed.user_id == user.id
        assert feed.last_fetched_at is None
        assert (await store.get_feed(feed.id)).url == "https://blog.example.com/rss"

    async def test_create_feed_duplicate_url_raises(self, store, user):
        await store.create_feed(user.id, "One", "https://example.com/rss")

        with pytest.raises(StoreError):
            await store.create_feed(user.id, "Two", "https://example.com/rss")

    async def test_create_feed_unknown_user_raises(self, store):
        with pytest.raises(StoreError):
            await store.create_feed(new_id(), "Orphan", "https://example.com/rss")

    async def test_list_feeds(self, store, user):
        await store.create_feed(user.id, "One", "https://one.example.com/rss")
        await store.create_feed(user.id, "Two", "https://two.example.com/rss")

        feeds = await store.list_feeds()

        assert [f.name for f in feeds] == ["One", "Two"]

    async def test_mark_feed_fetched(self, store, feed):
        before = utcnow()
        updated = await store.mark_feed_fetched(feed.id)

        assert updated.id == feed.id
        assert updated.last_fetched_at is not None
        assert updated.last_fetched_at >= before

    async def test_mark_unknown_feed_raises(self, store):
        with pytest.raises(StoreError, match="not found"):
            await store.mark_feed_fetched(new_id())


class TestClaimNextFeeds:
    """Tests for selecting feeds due for a fetch."""

    async def test_claim_limits_batch(self, store, user):
        for i in range(5):
            await store.create_feed(user.id, f"Feed {i}", f"https://example.com/{i}.xml")

        claimed = await store.claim_next_feeds_to_fetch(3)

        assert len(claimed) == 3

    async def test_claim_orders_by_staleness(self, store, user):
        old = await store.create_feed(user.id, "Old", "https://example.com/old.xml")
        recent = await store.create_feed(user.id, "Recent", "https://example.com/recent.xml")
        never = await store.create_feed(user.id, "Never", "https://example.com/never.xml")

        await store.mark_feed_fetched(old.id)
        await asyncio.sleep(0.01)
        await store.mark_feed_fetched(recent.id)

        claimed = await store.claim_next_feeds_to_fetch(10)

        assert [f.id for f in claimed] == [never.id, old.id, recent.id]

    async def test_claim_empty_store(self, store):
        assert await store.claim_next_feeds_to_fetch(10) == []


class TestFeedFollowOperations:
    """Tests for follows."""

    async def test_create_and_list_follows(self, store, user, feed):
        follow = await store.create_feed_follow(user.id, feed.id)

        follows = await store.list_feed_follows_for_user(user.id)

        assert [f.id for f in follows] == [follow.id]
        assert follows[0].feed_id == feed.id

    async def test_duplicate_follow_raises(self, store, user, feed):
        await store.create_feed_follow(user.id, feed.id)

        with pytest.raises(StoreError):
            await store.create_feed_follow(user.id, feed.id)

    async def test_follow_unknown_feed_raises(self, store, user):
        with pytest.raises(StoreError):
            await store.create_feed_follow(user.id, new_id())

    async def test_delete_follow(self, store, user, feed):
        follow = await store.create_feed_follow(user.id, feed.id)

        assert await store.delete_feed_follow(follow.id) is True
        assert await store.list_feed_follows_for_user(user.id) == []

    async def test_delete_missing_follow(self, store):
        assert await store.delete_feed_follow(new_id()) is False


class TestPostOperations:
    """Tests for idempotent post writes and reads."""

    async def test_create_post_inserted(self, store, feed):
        result = await _create_post(store, feed.id, "https://example.com/a")

        assert result.status is PostWriteStatus.INSERTED
        assert result.post.url == "https://example.com/a"
        assert result.error is None

    async def test_duplicate_post_already_exists(self, store, feed):
        await _create_post(store, feed.id, "https://example.com/a")

        result = await _create_post(store, feed.id, "https://example.com/a", title="Changed")

        assert result.status is PostWriteStatus.ALREADY_EXISTS
        posts = await store.list_posts_for_feed(feed.id)
        assert len(posts) == 1
        assert posts[0].title == "Post"

    async def test_same_url_in_different_feeds(self, store, user, feed):
        other = await store.create_feed(user.id, "Other", "https://other.example.com/rss")

        first = await _create_post(store, feed.id, "https://example.com/shared")
        second = await _create_post(store, other.id, "https://example.com/shared")

        assert first.status is PostWriteStatus.INSERTED
        assert second.status is PostWriteStatus.INSERTED

    async def test_post_for_unknown_feed_fails(self, store):
        result = await _create_post(store, new_id(), "https://example.com/a")

        assert result.status is PostWriteStatus.FAILED
        assert result.error

    async def test_concurrent_duplicate_writes(self, store, feed):
        results = await asyncio.gather(*[
            _create_post(store, feed.id, "https://example.com/race") for _ in range(5)
        ])

        statuses = [r.status for r in results]
        assert statuses.count(PostWriteStatus.INSERTED) == 1
        assert statuses.count(PostWriteStatus.ALREADY_EXISTS) == 4
        assert len(await store.list_posts_for_feed(feed.id)) == 1

    async def test_published_at_round_trip(self, store, feed):
        published = datetime(2024, 5, 1, 12, 30, tzinfo=timezone(timedelta(hours=2)))

        await _create_post(store, feed.id, "https://example.com/dated", published_at=published)
        await _create_post(store, feed.id, "https://example.com/undated")

        posts = {p.url: p for p in await store.list_posts_for_feed(feed.id)}
        assert posts["https://example.com/dated"].published_at == published
        assert posts["https://example.com/undated"].published_at is None

    async def test_posts_for_user_only_followed_feeds(self, store, user, feed):
        other = await store.create_feed(user.id, "Other", "https://other.example.com/rss")
        await store.create_feed_follow(user.id, feed.id)
        await _create_post(store, feed.id, "https://example.com/followed")
        await _create_post(store, other.id, "https://other.example.com/not-followed")

        posts = await store.get_posts_for_user(user.id, 10)

        assert [p.url for p in posts] == ["https://example.com/followed"]

    async def test_posts_for_user_newest_first_with_limit(self, store, user, feed):
        await store.create_feed_follow(user.id, feed.id)
        base = datetime(2024, 1, 1, tzinfo=timezone.utc)
        await _create_post(store, feed.id, "https://example.com/undated")
        for day in range(3):
            await _create_post(
                store, feed.id, f"https://example.com/{day}",
                published_at=base + timedelta(days=day),
            )

        posts = await store.get_posts_for_user(user.id, 3)

        assert [p.url for p in posts] == [
            "https://example.com/2",
            "https://example.com/1",
            "https://example.com/0",
        ]
