"""
API Router.

Aggregates all endpoints under /api.
"""

from fastapi import APIRouter
from tracker.app.api.endpoints import meta, positions, route, track, maintenance, twitch

router = APIRouter()

router.include_router(meta.router)
router.include_router(positions.router)
router.include_router(route.router)
router.include_router(track.router)
router.include_router(maintenance.router)
router.include_router(twitch.router)
