"""
Walking track and on-demand walking route endpoints.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from tracker.app.core.dependencies import get_position_store, get_routing_client, get_segment_cache
from tracker.app.services.position_store import FallbackPositionStore
from tracker.app.services.routing import RoutingClient, RoutingError, straight_line
from tracker.app.services.segments import SegmentCache

logger = logging.getLogger("tracker.api.track")

router = APIRouter(tags=["Walking Track"])


@router.get("/walking-track")
async def get_walking_track(
    full: bool = Query(False, description="Every pair, straight lines where nothing is cached"),
    source: Optional[str] = Query(None, description="'sqlite' forces the relational store"),
    store: FallbackPositionStore = Depends(get_position_store),
    cache: SegmentCache = Depends(get_segment_cache),
):
    """GeoJSON FeatureCollection of the walked path."""
    positions = await store.list_positions(prefer_secondary=source == "sqlite")
    return await cache.assemble_track(positions, full=full)


@router.get("/walking-route")
async def get_walking_route(
    fromLat: float = Query(...),
    fromLng: float = Query(...),
    toLat: float = Query(...),
    toLng: float = Query(...),
    routing: RoutingClient = Depends(get_routing_client),
):
    """Single routed path between two points; straight line when routing fails."""
    try:
        route = await routing.get_walking_route(fromLat, fromLng, toLat, toLng)
    except RoutingError as exc:
        logger.warning("On-demand walking route failed: %s", exc)
        route = straight_line(fromLat, fromLng, toLat, toLng)
    return route.model_dump()
