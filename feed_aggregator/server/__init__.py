"""HTTP server package initialization"""

from feed_aggregator.server.app import create_app, main

__all__ = ["create_app", "main"]
