"""
Document store (MongoDB) connection management.

The document store is optional: nothing is created unless
USE_DOCUMENT_STORE is true and MONGO_URI is set.
"""

import logging
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from tracker.app.core.config import Settings

logger = logging.getLogger("tracker.documents")

POSITIONS_COLLECTION = "positions"
SEGMENTS_COLLECTION = "walking_segments"


def create_document_client(config: Settings) -> Optional[AsyncIOMotorClient]:
    """Build a motor client, or None when the document store is disabled."""
    if not config.document_store_enabled:
        if config.use_document_store:
            logger.warning("USE_DOCUMENT_STORE is set but MONGO_URI is missing")
        return None
    # tz_aware so the created_at_ts mirror comes back as an aware datetime
    return AsyncIOMotorClient(
        config.mongo_uri,
        serverSelectionTimeoutMS=config.mongo_timeout_ms,
        tz_aware=True,
    )


async def ping_documents(database: AsyncIOMotorDatabase) -> bool:
    """
    Ping the document server. Returns True if reachable, False otherwise.
    """
    try:
        await database.command("ping")
        return True
    except Exception as exc:
        logger.warning("Document store ping failed: %s", exc)
        return False
