"""Logging setup for feed_aggregator."""

import logging
import sys

from feed_aggregator.config import ServerConfig

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

logger = logging.getLogger("feed_aggregator")


def setup_logging(config: ServerConfig) -> logging.Logger:
    """Attach a stream handler to the package logger.

    Safe to call more than once; the handler is only added the first time.
    """
    level = getattr(logging, config.log_level.upper(), logging.INFO)

    if not any(getattr(h, "_feed_aggregator", False) for h in logger.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._feed_aggregator = True
        logger.addHandler(handler)

    logger.setLevel(level)

    return logger
