"""Storage layer for feed_aggregator."""

from .database import (
    FeedStore,
    PostWriteResult,
    PostWriteStatus,
    StoreError,
)

__all__ = [
    "FeedStore",
    "PostWriteResult",
    "PostWriteStatus",
    "StoreError",
]
