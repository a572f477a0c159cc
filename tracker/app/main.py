"""
FastAPI Application Entry Point.

This is the main application file for the Trek Tracker backend.
"""

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from tracker.app.core.config import settings
from tracker.app.api.router import router as api_router
from tracker.app.core.observability import ObservabilityMiddleware, configure_logging
from tracker.app.db.documents import (
    POSITIONS_COLLECTION,
    SEGMENTS_COLLECTION,
    create_document_client,
    ping_documents,
)
from tracker.app.db.seed import create_tables, seed_database
from tracker.app.db.session import AsyncSessionLocal, engine
from tracker.app.core.exceptions import (
    AppException,
    app_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    generic_exception_handler,
)
from tracker.app.services.migration import run_auto_migration
from tracker.app.services.position_store import (
    DocumentPositionStore,
    FallbackPositionStore,
    SqlPositionStore,
)
from tracker.app.services.routing import RoutingClient
from tracker.app.services.segments import DocumentSegmentStore, SegmentCache
from tracker.app.services.twitch import TwitchStatusService

logger = logging.getLogger("tracker")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for application startup/shutdown.

    1. Creates and seeds the relational tables.
    2. Connects the document store when configured and reachable.
    3. Builds the shared services on app.state.
    4. Starts the sql -> document auto-migration in the background.
    """
    configure_logging(settings.log_level)

    await create_tables(engine)
    async with AsyncSessionLocal() as session:
        await seed_database(session, settings)

    sql_store = SqlPositionStore(AsyncSessionLocal, streamer=settings.streamer)
    document_store = None
    segment_store = None
    client = create_document_client(settings)
    if client is not None:
        database = client[settings.mongo_dbname]
        if await ping_documents(database):
            document_store = DocumentPositionStore(
                database[POSITIONS_COLLECTION],
                streamer=settings.streamer,
                page_size=settings.document_count_page_size,
                count_ceiling=settings.document_count_ceiling,
            )
            segment_store = DocumentSegmentStore(database[SEGMENTS_COLLECTION])
            logger.info("Document store ready (%s)", settings.mongo_dbname)
        else:
            logger.warning("Document store unreachable; serving from sql only")

    routing_client = RoutingClient.from_settings(settings)
    app.state.position_store = FallbackPositionStore(
        sql_store, document_store, force_secondary_reads=settings.force_sqlite_reads
    )
    app.state.routing_client = routing_client
    app.state.segment_cache = SegmentCache.from_settings(settings, routing_client, segment_store)
    app.state.twitch_service = TwitchStatusService.from_settings(settings)
    if not app.state.twitch_service.has_credentials:
        logger.info("Twitch credentials missing; live status disabled")

    if document_store is not None:
        app.state.migration_task = asyncio.create_task(
            run_auto_migration(
                sql_store,
                document_store,
                settings.migration_throttle_every,
                settings.migration_pause_s,
            )
        )

    yield

    if client is not None:
        client.close()
    await engine.dispose()


# Initialize FastAPI application
app = FastAPI(
    title=settings.app_name,
    debug=settings.debug,
    description="Live trek position tracker with walking-track rendering",
    lifespan=lifespan,
)

app.add_middleware(ObservabilityMiddleware)
app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])

# Register global exception handlers
app.add_exception_handler(AppException, app_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)


@app.get("/health", tags=["Health"])
async def health_check(request: Request):
    """
    Health check endpoint.

    Returns:
        dict: Status, application name and whether the document store is in use
    """
    store = getattr(request.app.state, "position_store", None)
    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "document_store": bool(store and store.primary_enabled),
    }


app.include_router(api_router, prefix="/api")

if settings.static_dir:
    app.mount("/", StaticFiles(directory=settings.static_dir, html=True), name="static")
