"""Services for feed_aggregator."""

from .feed_fetcher import FeedFetchError, FeedItem, FeedParseError, fetch_feed
from .ingest import IngestStats, ingest_items, parse_published_at
from .scheduler import FeedOutcome, FeedScheduler

__all__ = [
    "FeedFetchError",
    "FeedItem",
    "FeedOutcome",
    "FeedParseError",
    "FeedScheduler",
    "IngestStats",
    "fetch_feed",
    "ingest_items",
    "parse_published_at",
]
