"""Data models for feed_aggregator."""

from .schemas import Feed, FeedFollow, Post, User

__all__ = ["Feed", "FeedFollow", "Post", "User"]
