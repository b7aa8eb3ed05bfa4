"""feed_aggregator - HTTP API and background feed fetcher.

This module builds the FastAPI application, starts the fetch scheduler in the
app lifespan, and provides the command line entry point.
"""

import asyncio
import sys
from contextlib import asynccontextmanager
from dataclasses import replace
from functools import partial
from typing import Optional

import click
import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from feed_aggregator.config import ServerConfig, get_config
from feed_aggregator.logging_config import logger, setup_logging
from feed_aggregator.server.routes import ApiError, router
from feed_aggregator.services.feed_fetcher import fetch_feed
from feed_aggregator.services.scheduler import FeedScheduler
from feed_aggregator.storage.database import FeedStore

# Grace period for in-flight feed tasks before the store is closed
SHUTDOWN_GRACE_SECONDS = 10.0


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def create_scheduler(store: FeedStore, config: ServerConfig) -> FeedScheduler:
    return FeedScheduler(
        store,
        interval=config.fetch_interval,
        batch_size=config.fetch_batch_size,
        fetcher=partial(fetch_feed, timeout=config.fetch_timeout),
    )


def create_app(
    store: FeedStore,
    config: Optional[ServerConfig] = None,
    run_worker: bool = True,
) -> FastAPI:
    """Create the HTTP application.

    Args:
        store: Store shared by the routes and the fetch scheduler
        config: Optional server configuration
        run_worker: Start the fetch scheduler for the lifetime of the app

    Returns:
        Configured FastAPI application
    """
    if config is None:
        config = get_config()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if not run_worker:
            yield
            return

        scheduler = create_scheduler(store, config)
        stop_event = asyncio.Event()
        worker = asyncio.create_task(scheduler.run(stop_event))
        app.state.scheduler = scheduler

        yield

        stop_event.set()
        await worker
        pending = await scheduler.drain(SHUTDOWN_GRACE_SECONDS)
        if pending:
            logger.warning(f"{pending} feed tasks still running at shutdown")

    app = FastAPI(title=config.name, lifespan=lifespan)
    app.state.store = store
    app.state.config = config
    app.include_router(router)

    @app.exception_handler(ApiError)
    async def handle_api_error(request: Request, exc: ApiError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path}: {exc.message}")
        return error_response(exc.status_code, exc.message)

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        return error_response(400, "please check your request body")

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_error(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        return error_response(exc.status_code, str(exc.detail))

    return app


@click.command()
@click.option("--host", default=None, help="Host to bind to (default: HOST or 127.0.0.1)")
@click.option("--port", type=int, default=None, help="Port to listen on (default: PORT or 8080)")
@click.option("--db-path", default=None, help="SQLite database file (default: DB_PATH)")
@click.option("--interval", type=float, default=None, help="Seconds between fetch ticks")
@click.option("--batch-size", type=int, default=None, help="Feeds fetched per tick")
def main(
    host: Optional[str],
    port: Optional[int],
    db_path: Optional[str],
    interval: Optional[float],
    batch_size: Optional[int],
) -> int:
    """Run the feed aggregator API and background fetcher."""
    config = get_config()
    overrides = {
        "host": host,
        "port": port,
        "db_path": db_path,
        "fetch_interval": interval,
        "fetch_batch_size": batch_size,
    }
    config = replace(config, **{k: v for k, v in overrides.items() if v is not None})
    setup_logging(config)

    async def run_server():
        store = await FeedStore.connect(config.db_path)
        logger.info(f"Database ready at {config.db_path}")
        try:
            app = create_app(store, config)
            server = uvicorn.Server(uvicorn.Config(
                app,
                host=config.host,
                port=config.port,
                log_level=config.log_level.lower(),
            ))
            logger.info(f"Starting server on {config.host}:{config.port}")
            await server.serve()
        finally:
            await store.close()

    try:
        asyncio.run(run_server())
        return 0
    except KeyboardInterrupt:
        logger.info("Server stopped by user")
        return 0
    except Exception as e:
        logger.error(f"Failed to start server: {e}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
