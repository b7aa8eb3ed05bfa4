"""Periodic feed refresh.

On every tick the scheduler claims a batch of the stalest feeds and starts one
independent task per feed. It never waits for those tasks before the next tick,
and stopping the scheduler leaves tasks already started running to completion.
"""

import asyncio
import enum
import logging
from typing import Awaitable, Callable, List, Set

from feed_aggregator.models.schemas import Feed
from feed_aggregator.services.feed_fetcher import FeedFetchError, FeedItem, fetch_feed
from feed_aggregator.services.ingest import ingest_items
from feed_aggregator.storage.database import FeedStore, StoreError

logger = logging.getLogger(__name__)

Fetcher = Callable[[str], Awaitable[List[FeedItem]]]


class FeedOutcome(enum.Enum):
    INGESTED = "ingested"
    ABANDONED = "abandoned"


class FeedScheduler:
    """Fetch due feeds on a fixed interval with a bounded batch per tick."""

    def __init__(
        self,
        store: FeedStore,
        interval: float = 60.0,
        batch_size: int = 10,
        fetcher: Fetcher = fetch_feed,
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")

        self.store = store
        self.interval = interval
        self.batch_size = batch_size
        self.fetcher = fetcher
        self._tasks: Set[asyncio.Task] = set()

    @property
    def in_flight(self) -> int:
        """Number of dispatched feed tasks that have not finished yet."""
        return len(self._tasks)

    async def run(self, stop_event: asyncio.Event) -> None:
        """Tick every ``interval`` seconds until ``stop_event`` is set."""
        logger.info(
            f"Feed fetcher worker started: every {self.interval}s, {self.batch_size} feeds per tick"
        )
        while not stop_event.is_set():
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                await self.tick()

        logger.info(f"Feed fetcher worker stopped ({self.in_flight} feed tasks still running)")

    async def tick(self) -> List[asyncio.Task]:
        """Claim a batch of feeds and start one task per feed.

        Returns:
            The tasks started on this tick (empty if the claim failed)
        """
        try:
            feeds = await self.store.claim_next_feeds_to_fetch(self.batch_size)
        except StoreError as e:
            logger.error(f"Error fetching feeds: {e}")
            return []

        started = []
        for feed in feeds:
            task = asyncio.create_task(self.process_feed(feed), name=f"feed-{feed.id}")
            self._tasks.add(task)
            task.add_done_callback(self._task_done)
            started.append(task)

        if started:
            logger.debug(f"Dispatched {len(started)} feeds")
        return started

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Feed task {task.get_name()} crashed", exc_info=exc)

    async def process_feed(self, feed: Feed) -> FeedOutcome:
        """Mark, fetch and ingest a single feed.

        The feed is marked fetched before the request goes out, so a feed that
        keeps failing waits for the next rotation instead of being picked again
        on every tick.
        """
        try:
            await self.store.mark_feed_fetched(feed.id)
        except StoreError as e:
            logger.error(f"Couldn't mark feed {feed.name} fetched: {e}")
            return FeedOutcome.ABANDONED

        try:
            items = await self.fetcher(feed.url)
        except FeedFetchError as e:
            logger.warning(f"Couldn't collect feed {feed.name}: {e}")
            return FeedOutcome.ABANDONED

        stats = await ingest_items(self.store, feed, items)
        logger.info(
            f"Feed {feed.name} collected, {len(items)} posts found "
            f"({stats.inserted} new, {stats.duplicates} existing, {stats.failed} failed)"
        )
        return FeedOutcome.INGESTED

    async def drain(self, timeout: float) -> int:
        """Wait up to ``timeout`` seconds for dispatched feed tasks.

        Returns:
            Number of tasks still running when the wait ended
        """
        if not self._tasks:
            return 0
        _, pending = await asyncio.wait(set(self._tasks), timeout=timeout)
        return len(pending)
