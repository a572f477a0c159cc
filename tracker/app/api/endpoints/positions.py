"""
Position reporting endpoints.

Reads are public; every write requires the admin code. New positions are
linked to their predecessor by a walking segment in a background task.
"""

import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession

from tracker.app.core.dependencies import get_position_store, get_segment_cache
from tracker.app.core.exceptions import BadRequestError, ResourceNotFoundError
from tracker.app.core.guards import require_admin
from tracker.app.db.session import get_db
from tracker.app.schemas.position import (
    PlaceRequest,
    PositionCreate,
    PositionCreatedResponse,
    PositionPatch,
    PositionRecord,
)
from tracker.app.services.coordinates import resolve_created_at, to_civil_iso
from tracker.app.services.meta import find_stop
from tracker.app.services.position_store import FallbackPositionStore
from tracker.app.services.segments import SegmentCache

logger = logging.getLogger("tracker.api.positions")

router = APIRouter(prefix="/positions", tags=["Positions"])

SQLITE_SOURCE = "sqlite"


async def link_segment(store: FallbackPositionStore, cache: SegmentCache, record: PositionRecord) -> None:
    """Background task: build the segment from the previous position to `record`."""
    if not cache.available or store.primary is None:
        return
    try:
        positions = await store.primary.list_positions()
        await cache.link_new_position(positions, record)
    except Exception as exc:
        logger.warning("Segment for new position %s not created: %s", record.id, exc)


def _created_at(date: Optional[str], time: Optional[str], current: Optional[str] = None) -> Optional[str]:
    try:
        return resolve_created_at(date, time, current)
    except ValueError as exc:
        raise BadRequestError(str(exc))


async def _record_position(
    store: FallbackPositionStore,
    cache: SegmentCache,
    background_tasks: BackgroundTasks,
    lat: float,
    lng: float,
    created_at: str,
) -> PositionRecord:
    record = await store.add_position(lat, lng, created_at)
    logger.info("Position %s recorded on %s at %s", record.id, record.backend, created_at)
    background_tasks.add_task(link_segment, store, cache, record)
    return record


@router.get("")
async def list_positions(
    source: Optional[str] = Query(None, description="'sqlite' forces the relational store"),
    store: FallbackPositionStore = Depends(get_position_store),
):
    """All positions, oldest first."""
    positions = await store.list_positions(prefer_secondary=source == SQLITE_SOURCE)
    return [p.model_dump() for p in positions]


@router.post("", response_model=PositionCreatedResponse)
async def create_position(
    payload: PositionCreate,
    background_tasks: BackgroundTasks,
    _admin: str = Depends(require_admin),
    store: FallbackPositionStore = Depends(get_position_store),
    cache: SegmentCache = Depends(get_segment_cache),
):
    """
    Record a position.

    `time` may be HH:MM (combined with `date` or today) or a full ISO
    timestamp; a bare `date` takes the current time of day. Defaults to now.
    """
    if payload.lat is None or payload.lng is None:
        raise BadRequestError("Missing lat/lng")

    created_at = _created_at(payload.date, payload.time) or to_civil_iso()
    record = await _record_position(store, cache, background_tasks, payload.lat, payload.lng, created_at)
    return PositionCreatedResponse(id=record.id, created_at=record.created_at)


@router.get("/quick", response_model=PositionCreatedResponse)
async def quick_position(
    background_tasks: BackgroundTasks,
    lat: Optional[str] = Query(None),
    lng: Optional[str] = Query(None),
    date: Optional[str] = Query(None),
    time: Optional[str] = Query(None),
    _admin: str = Depends(require_admin),
    store: FallbackPositionStore = Depends(get_position_store),
    cache: SegmentCache = Depends(get_segment_cache),
):
    """Query-string variant of POST /positions for link-based entry."""
    if lat is None or lng is None:
        raise BadRequestError("lat & lng required")
    try:
        lat_value, lng_value = float(lat), float(lng)
    except ValueError:
        raise BadRequestError("lat & lng must be numbers")

    created_at = _created_at(date, time) or to_civil_iso()
    record = await _record_position(store, cache, background_tasks, lat_value, lng_value, created_at)
    return PositionCreatedResponse(id=record.id, created_at=record.created_at)


@router.post("/by-place")
async def create_position_by_place(
    payload: PlaceRequest,
    background_tasks: BackgroundTasks,
    _admin: str = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    store: FallbackPositionStore = Depends(get_position_store),
    cache: SegmentCache = Depends(get_segment_cache),
):
    """Record a position at the coordinates of a planned route stop."""
    if not payload.name:
        raise BadRequestError("Missing name")

    stop = await find_stop(db, payload.name)
    if stop is None:
        raise ResourceNotFoundError("Route stop", payload.name)

    record = await _record_position(store, cache, background_tasks, stop.lat, stop.lng, to_civil_iso())
    return {"ok": True, "id": record.id, "lat": stop.lat, "lng": stop.lng, "created_at": record.created_at}


@router.patch("/{position_id}")
async def update_position(
    payload: PositionPatch,
    position_id: str = Path(..., description="Position ID"),
    _admin: str = Depends(require_admin),
    store: FallbackPositionStore = Depends(get_position_store),
):
    """Partial update of lat/lng/date/time."""
    existing = await store.get_position(position_id)
    if existing is None:
        raise ResourceNotFoundError("Position", position_id)

    fields = {
        "lat": payload.lat,
        "lng": payload.lng,
        "created_at": _created_at(payload.date, payload.time, existing.created_at),
    }
    record = await store.update_position(position_id, fields)
    if record is None:
        raise ResourceNotFoundError("Position", position_id)
    return {"ok": True, **record.model_dump()}


@router.delete("/{position_id}")
async def delete_position(
    position_id: str = Path(..., description="Position ID"),
    _admin: str = Depends(require_admin),
    store: FallbackPositionStore = Depends(get_position_store),
):
    if not await store.delete_position(position_id):
        raise ResourceNotFoundError("Position", position_id)
    return {"ok": True}
