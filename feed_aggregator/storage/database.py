"""Database storage for feed_aggregator.

This module provides async SQLite operations for users, feeds, follows and posts.
A single FeedStore instance is created at startup and handed to both the fetch
scheduler and the HTTP app.
"""

import enum
import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Union

import aiosqlite

from feed_aggregator.models.schemas import Feed, FeedFollow, Post, User


class StoreError(Exception):
    """Raised when a database operation fails."""


class PostWriteStatus(enum.Enum):
    INSERTED = "inserted"
    ALREADY_EXISTS = "already_exists"
    FAILED = "failed"


@dataclass
class PostWriteResult:
    """Outcome of an idempotent post insert."""

    status: PostWriteStatus
    post: Optional[Post] = None
    error: Optional[str] = None


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


def _ts(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def _dt(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _user(row: aiosqlite.Row) -> User:
    return User(
        id=row["id"],
        created_at=_dt(row["created_at"]),
        updated_at=_dt(row["updated_at"]),
        name=row["name"],
        api_key=row["api_key"],
    )


def _feed(row: aiosqlite.Row) -> Feed:
    return Feed(
        id=row["id"],
        created_at=_dt(row["created_at"]),
        updated_at=_dt(row["updated_at"]),
        name=row["name"],
        url=row["url"],
        user_id=row["user_id"],
        last_fetched_at=_dt(row["last_fetched_at"]),
    )


def _feed_follow(row: aiosqlite.Row) -> FeedFollow:
    return FeedFollow(
        id=row["id"],
        created_at=_dt(row["created_at"]),
        updated_at=_dt(row["updated_at"]),
        user_id=row["user_id"],
        feed_id=row["feed_id"],
    )


def _post(row: aiosqlite.Row) -> Post:
    return Post(
        id=row["id"],
        created_at=_dt(row["created_at"]),
        updated_at=_dt(row["updated_at"]),
        title=row["title"],
        url=row["url"],
        description=row["description"],
        feed_id=row["feed_id"],
        published_at=_dt(row["published_at"]),
    )


class FeedStore:
    """Async SQLite-backed store shared by the scheduler and the HTTP layer."""

    def __init__(self, db: aiosqlite.Connection) -> None:
        self.db = db

    @classmethod
    async def connect(cls, path: Union[str, Path]) -> "FeedStore":
        """Open a connection and make sure the schema exists.

        Args:
            path: SQLite file path, or ":memory:"

        Returns:
            Ready-to-use FeedStore
        """
        if str(path) != ":memory:":
            Path(path).parent.mkdir(parents=True, exist_ok=True)

        db = await aiosqlite.connect(path)
        db.row_factory = aiosqlite.Row
        store = cls(db)
        await store.init_database()
        return store

    async def init_database(self) -> None:
        """Initialize database tables if they don't exist."""
        await self.db.execute("PRAGMA foreign_keys = ON")

        await self.db.execute("""
            CREATE TABLE IF NOT EXISTS users (
                id TEXT PRIMARY KEY,
                created_at TIMESTAMP NOT NULL,
                updated_at TIMESTAMP NOT NULL,
                name TEXT NOT NULL,
                api_key TEXT NOT NULL UNIQUE
            )
        """)

        await self.db.execute("""
            CREATE TABLE IF NOT EXISTS feeds (
                id TEXT PRIMARY KEY,
                created_at TIMESTAMP NOT NULL,
                updated_at TIMESTAMP NOT NULL,
                name TEXT NOT NULL,
                url TEXT NOT NULL UNIQUE,
                user_id TEXT NOT NULL,
                last_fetched_at TIMESTAMP,
                FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE
            )
        """)

        await self.db.execute("""
            CREATE TABLE IF NOT EXISTS feed_follows (
                id TEXT PRIMARY KEY,
                created_at TIMESTAMP NOT NULL,
                updated_at TIMESTAMP NOT NULL,
                user_id TEXT NOT NULL,
                feed_id TEXT NOT NULL,
                UNIQUE (user_id, feed_id),
                FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE,
                FOREIGN KEY (feed_id) REFERENCES feeds(id) ON DELETE CASCADE
            )
        """)

        await self.db.execute("""
            CREATE TABLE IF NOT EXISTS posts (
                id TEXT PRIMARY KEY,
                created_at TIMESTAMP NOT NULL,
                updated_at TIMESTAMP NOT NULL,
                title TEXT NOT NULL,
                url TEXT NOT NULL,
                description TEXT NOT NULL,
                feed_id TEXT NOT NULL,
                published_at TIMESTAMP,
                UNIQUE (feed_id, url),
                FOREIGN KEY (feed_id) REFERENCES feeds(id) ON DELETE CASCADE
            )
        """)

        await self.db.execute("""
            CREATE INDEX IF NOT EXISTS idx_feeds_last_fetched_at ON feeds(last_fetched_at)
        """)

        await self.db.execute("""
            CREATE INDEX IF NOT EXISTS idx_posts_feed_id ON posts(feed_id)
        """)

        await self.db.commit()

    async def close(self) -> None:
        await self.db.close()

    async def _fetch(self, sql: str, params: tuple = ()) -> List[aiosqlite.Row]:
        try:
            cursor = await self.db.execute(sql, params)
            return list(await cursor.fetchall())
        except aiosqlite.Error as e:
            raise StoreError(f"Query failed: {e}") from e

    # Users

    async def create_user(self, name: str) -> User:
        """Create a user with a freshly generated API key.

        Raises:
            StoreError: If the insert fails
        """
        now = utcnow()
        user = User(
            id=new_id(),
            created_at=now,
            updated_at=now,
            name=name,
            api_key=secrets.token_hex(32),
        )
        try:
            await self.db.execute(
                """
                INSERT INTO users (id, created_at, updated_at, name, api_key)
                VALUES (?, ?, ?, ?, ?)
                """,
                (user.id, _ts(now), _ts(now), user.name, user.api_key),
            )
            await self.db.commit()
        except aiosqlite.Error as e:
            raise StoreError(f"Could not create user '{name}'") from e
        return user

    async def get_user_by_api_key(self, api_key: str) -> Optional[User]:
        rows = await self._fetch("SELECT * FROM users WHERE api_key = ?", (api_key,))
        return _user(rows[0]) if rows else None

    # Feeds

    async def create_feed(self, user_id: str, name: str, url: str) -> Feed:
        """Create a feed owned by a user.

        Raises:
            StoreError: If the URL is already registered or the user is unknown
        """
        now = utcnow()
        feed = Feed(
            id=new_id(),
            created_at=now,
            updated_at=now,
            name=name,
            url=url,
            user_id=user_id,
            last_fetched_at=None,
        )
        try:
            await self.db.execute(
                """
                INSERT INTO feeds (id, created_at, updated_at, name, url, user_id)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (feed.id, _ts(now), _ts(now), name, url, user_id),
            )
            await self.db.commit()
        except aiosqlite.Error as e:
            raise StoreError(f"Could not create feed '{name}' ({url})") from e
        return feed

    async def get_feed(self, feed_id: str) -> Optional[Feed]:
        rows = await self._fetch("SELECT * FROM feeds WHERE id = ?", (feed_id,))
        return _feed(rows[0]) if rows else None

    async def list_feeds(self) -> List[Feed]:
        rows = await self._fetch("SELECT * FROM feeds ORDER BY created_at")
        return [_feed(row) for row in rows]

    async def claim_next_feeds_to_fetch(self, limit: int) -> List[Feed]:
        """Select the feeds most overdue for a fetch.

        Never-fetched feeds come first, then the oldest last_fetched_at.

        Args:
            limit: Maximum number of feeds to return

        Returns:
            Up to ``limit`` feeds in order of staleness
        """
        rows = await self._fetch(
            """
            SELECT * FROM feeds
            ORDER BY last_fetched_at ASC NULLS FIRST, created_at ASC, rowid ASC
            LIMIT ?
            """,
            (limit,),
        )
        return [_feed(row) for row in rows]

    async def mark_feed_fetched(self, feed_id: str) -> Feed:
        """Stamp a feed's last_fetched_at with the current time.

        Raises:
            StoreError: If the feed does not exist or the update fails
        """
        now = _ts(utcnow())
        try:
            cursor = await self.db.execute(
                "UPDATE feeds SET last_fetched_at = ?, updated_at = ? WHERE id = ?",
                (now, now, feed_id),
            )
            await self.db.commit()
        except aiosqlite.Error as e:
            raise StoreError(f"Could not mark feed {feed_id} fetched") from e

        if cursor.rowcount == 0:
            raise StoreError(f"Feed {feed_id} not found")

        feed = await self.get_feed(feed_id)
        if feed is None:
            raise StoreError(f"Feed {feed_id} not found")
        return feed

    # Feed follows

    async def create_feed_follow(self, user_id: str, feed_id: str) -> FeedFollow:
        """Make a user follow a feed.

        Raises:
            StoreError: If the feed is unknown or already followed
        """
        now = utcnow()
        follow = FeedFollow(
            id=new_id(),
            created_at=now,
            updated_at=now,
            user_id=user_id,
            feed_id=feed_id,
        )
        try:
            await self.db.execute(
                """
                INSERT INTO feed_follows (id, created_at, updated_at, user_id, feed_id)
                VALUES (?, ?, ?, ?, ?)
                """,
                (follow.id, _ts(now), _ts(now), user_id, feed_id),
            )
            await self.db.commit()
        except aiosqlite.Error as e:
            raise StoreError(f"Could not follow feed {feed_id}") from e
        return follow

    async def delete_feed_follow(self, follow_id: str) -> bool:
        """Delete a follow.

        Returns:
            True if a follow was deleted, False if none matched
        """
        try:
            cursor = await self.db.execute(
                "DELETE FROM feed_follows WHERE id = ?", (follow_id,)
            )
            await self.db.commit()
        except aiosqlite.Error as e:
            raise StoreError(f"Could not delete feed follow {follow_id}") from e
        return cursor.rowcount > 0

    async def list_feed_follows_for_user(self, user_id: str) -> List[FeedFollow]:
        rows = await self._fetch(
            "SELECT * FROM feed_follows WHERE user_id = ? ORDER BY created_at",
            (user_id,),
        )
        return [_feed_follow(row) for row in rows]

    # Posts

    async def create_post(
        self,
        post_id: str,
        created_at: datetime,
        updated_at: datetime,
        title: str,
        url: str,
        description: str,
        feed_id: str,
        published_at: Optional[datetime],
    ) -> PostWriteResult:
        """Insert a post unless one with the same (feed_id, url) exists.

        The uniqueness check is done by the database in the same statement, so
        concurrent writers cannot produce duplicate rows.

        Returns:
            PostWriteResult tagged INSERTED, ALREADY_EXISTS or FAILED
        """
        post = Post(
            id=post_id,
            created_at=created_at,
            updated_at=updated_at,
            title=title,
            url=url,
            description=description,
            feed_id=feed_id,
            published_at=published_at,
        )
        try:
            cursor = await self.db.execute(
                """
                INSERT INTO posts (
                    id, created_at, updated_at, title, url, description,
                    feed_id, published_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT (feed_id, url) DO NOTHING
                """,
                (
                    post.id,
                    _ts(post.created_at),
                    _ts(post.updated_at),
                    post.title,
                    post.url,
                    post.description,
                    post.feed_id,
                    _ts(post.published_at),
                ),
            )
            await self.db.commit()
        except aiosqlite.Error as e:
            return PostWriteResult(status=PostWriteStatus.FAILED, error=str(e))

        if cursor.rowcount == 0:
            return PostWriteResult(status=PostWriteStatus.ALREADY_EXISTS)
        return PostWriteResult(status=PostWriteStatus.INSERTED, post=post)

    async def list_posts_for_feed(self, feed_id: str) -> List[Post]:
        rows = await self._fetch(
            "SELECT * FROM posts WHERE feed_id = ? ORDER BY created_at, rowid",
            (feed_id,),
        )
        return [_post(row) for row in rows]

    async def get_posts_for_user(self, user_id: str, limit: int) -> List[Post]:
        """Get the newest posts from feeds a user follows.

        Args:
            user_id: ID of the user
            limit: Maximum number of posts to return

        Returns:
            Posts ordered by published_at (undated last), newest first
        """
        rows = await self._fetch(
            """
            SELECT p.*
            FROM posts p
            JOIN feed_follows ff ON ff.feed_id = p.feed_id
            WHERE ff.user_id = ?
            ORDER BY p.published_at DESC NULLS LAST, p.created_at DESC
            LIMIT ?
            """,
            (user_id, limit),
        )
        return [_post(row) for row in rows]
