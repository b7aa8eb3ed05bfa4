"""Data models for feed_aggregator.

This module defines the core data structures for users, feeds, follows and posts.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass
class User:
    """Represents a registered user."""

    id: str
    created_at: datetime
    updated_at: datetime
    name: str
    api_key: str


@dataclass
class Feed:
    """Represents a syndication feed revisited by the scheduler."""

    id: str
    created_at: datetime
    updated_at: datetime
    name: str
    url: str
    user_id: str
    last_fetched_at: Optional[datetime]


@dataclass
class FeedFollow:
    """Association between a user and a feed."""

    id: str
    created_at: datetime
    updated_at: datetime
    user_id: str
    feed_id: str


@dataclass
class Post:
    """One ingested item, unique per (feed_id, url)."""

    id: str
    created_at: datetime
    updated_at: datetime
    title: str
    url: str
    description: str
    feed_id: str
    published_at: Optional[datetime]
