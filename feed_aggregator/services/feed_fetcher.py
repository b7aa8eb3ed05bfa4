"""Feed fetcher service.

This module downloads a feed document and parses it into items.
"""

import logging
from dataclasses import dataclass
from typing import List

import feedparser
import httpx

logger = logging.getLogger(__name__)

USER_AGENT = "FeedAggregator/1.0 (RSS Feed Fetcher)"


class FeedFetchError(Exception):
    """The feed could not be retrieved."""


class FeedParseError(FeedFetchError):
    """The feed was retrieved but is not a readable document."""


@dataclass
class FeedItem:
    """One item as it appears in a feed document."""

    title: str
    link: str
    description: str
    pub_date: str


async def fetch_feed(url: str, timeout: float = 30.0) -> List[FeedItem]:
    """Fetch and parse a feed.

    Args:
        url: URL of the feed document
        timeout: Request timeout in seconds

    Returns:
        List of FeedItem objects in document order

    Raises:
        FeedFetchError: On connection failure or a non-2xx response
        FeedParseError: If the document cannot be parsed
    """
    logger.debug(f"Fetching feed: {url}")

    async with httpx.AsyncClient(
        follow_redirects=True,
        timeout=timeout,
        headers={"User-Agent": USER_AGENT},
    ) as client:
        try:
            response = await client.get(url)
            response.raise_for_status()
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise FeedFetchError(f"Failed to fetch {url}: {e}") from e

    feed = feedparser.parse(response.content)

    # bozo alone is not fatal: feedparser flags recoverable problems too
    if not feed.get("version"):
        reason = feed.get("bozo_exception") or "not a syndication document"
        raise FeedParseError(f"Could not parse feed {url}: {reason}")

    items = []
    for entry in feed.entries:
        link = (entry.get("link") or "").strip()
        if not link:
            continue

        items.append(FeedItem(
            title=(entry.get("title") or "").strip(),
            link=link,
            description=entry.get("description") or "",
            pub_date=(entry.get("published") or "").strip(),
        ))

    logger.debug(f"Parsed {len(items)} items from {url}")
    return items
