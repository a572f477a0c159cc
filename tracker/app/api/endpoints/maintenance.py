"""
Admin maintenance endpoints: migrations, date normalization, segment rebuild.

Each returns the count summary of its routine.
"""

from fastapi import APIRouter, Depends

from tracker.app.core.config import settings
from tracker.app.core.dependencies import get_position_store, get_segment_cache
from tracker.app.core.exceptions import ServiceUnavailableError
from tracker.app.core.guards import require_admin
from tracker.app.schemas.migration import CopyReport, InsertReport, NormalizeReport
from tracker.app.schemas.track import RebuildReport
from tracker.app.services.migration import (
    copy_documents_to_sql,
    copy_sql_to_documents,
    normalize_document_dates,
)
from tracker.app.services.position_store import DocumentPositionStore, FallbackPositionStore
from tracker.app.services.segments import SegmentCache

router = APIRouter(tags=["Maintenance"], dependencies=[Depends(require_admin)])


def _document_store(store: FallbackPositionStore) -> DocumentPositionStore:
    if store.primary is None:
        raise ServiceUnavailableError("Document store not configured")
    return store.primary


@router.post("/migrate/sqlite-to-firestore", response_model=CopyReport)
async def migrate_sql_to_documents(store: FallbackPositionStore = Depends(get_position_store)):
    return await copy_sql_to_documents(
        store.secondary,
        _document_store(store),
        throttle_every=settings.migration_throttle_every,
        pause_s=settings.migration_pause_s,
    )


@router.post("/migrate/firestore-to-sqlite", response_model=InsertReport)
async def migrate_documents_to_sql(store: FallbackPositionStore = Depends(get_position_store)):
    return await copy_documents_to_sql(_document_store(store), store.secondary)


@router.post("/admin/normalize-firestore-dates", response_model=NormalizeReport)
async def normalize_dates(store: FallbackPositionStore = Depends(get_position_store)):
    return await normalize_document_dates(_document_store(store))


@router.post("/walking-segments/rebuild", response_model=RebuildReport)
async def rebuild_segments(
    store: FallbackPositionStore = Depends(get_position_store),
    cache: SegmentCache = Depends(get_segment_cache),
):
    positions = await _document_store(store).list_positions()
    return await cache.rebuild(positions)
