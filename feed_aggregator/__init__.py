"""feed_aggregator - RSS feed aggregator with a periodic background fetcher."""

__version__ = "0.1.0"
