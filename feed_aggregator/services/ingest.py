"""Ingest writer.

Turns parsed feed items into posts. Writes are idempotent on (feed, url).
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional

from feed_aggregator.models.schemas import Feed
from feed_aggregator.services.feed_fetcher import FeedItem
from feed_aggregator.storage.database import (
    FeedStore,
    PostWriteStatus,
    new_id,
    utcnow,
)

logger = logging.getLogger(__name__)

# RFC 1123 with a numeric zone, e.g. "Mon, 02 Jan 2006 15:04:05 -0700"
PUB_DATE_FORMAT = "%a, %d %b %Y %H:%M:%S %z"
# strptime alone also takes one-digit days and "Z" or "+07:00" zones
PUB_DATE_PATTERN = re.compile(
    r"^[A-Z][a-z]{2}, \d{2} [A-Z][a-z]{2} \d{4} \d{2}:\d{2}:\d{2} [+-]\d{4}$"
)


@dataclass
class IngestStats:
    inserted: int = 0
    duplicates: int = 0
    failed: int = 0

    @property
    def total(self) -> int:
        return self.inserted + self.duplicates + self.failed


def parse_published_at(value: Optional[str]) -> Optional[datetime]:
    """Parse a publication date string, or return None if it doesn't fit."""
    if not value:
        return None
    value = value.strip()
    if not PUB_DATE_PATTERN.match(value):
        return None
    try:
        return datetime.strptime(value, PUB_DATE_FORMAT)
    except ValueError:
        return None


async def ingest_items(
    store: FeedStore, feed: Feed, items: Iterable[FeedItem]
) -> IngestStats:
    """Write items of one feed as posts, in document order.

    Items already stored for the feed are counted as duplicates. A failed write
    is logged and skipped; the remaining items are still processed.

    Args:
        store: Store to write to
        feed: Feed the items belong to
        items: Parsed items

    Returns:
        IngestStats with inserted, duplicate and failed counts
    """
    stats = IngestStats()

    for item in items:
        now = utcnow()
        result = await store.create_post(
            post_id=new_id(),
            created_at=now,
            updated_at=now,
            title=item.title,
            url=item.link,
            description=item.description,
            feed_id=feed.id,
            published_at=parse_published_at(item.pub_date),
        )

        if result.status is PostWriteStatus.INSERTED:
            stats.inserted += 1
        elif result.status is PostWriteStatus.ALREADY_EXISTS:
            stats.duplicates += 1
        else:
            stats.failed += 1
            logger.error(f"Couldn't create post {item.link} for feed {feed.name}: {result.error}")

    return stats
