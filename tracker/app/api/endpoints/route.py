"""
Planned route endpoints.
"""

from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from tracker.app.core.exceptions import BadRequestError
from tracker.app.core.guards import require_admin
from tracker.app.db.session import get_db
from tracker.app.schemas.route import ArrivalRequest, RouteStopResponse
from tracker.app.services.meta import list_route, set_arrival

router = APIRouter(prefix="/route", tags=["Route"])


@router.get("", response_model=List[RouteStopResponse])
async def get_route(db: AsyncSession = Depends(get_db)):
    """Planned stops ordered by sequence."""
    return await list_route(db)


@router.post("/arrival")
async def record_arrival(
    payload: ArrivalRequest,
    _admin: str = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    if not payload.name or not payload.time:
        raise BadRequestError("name & time required")
    try:
        stop = await set_arrival(db, payload.name, payload.time)
    except ValueError as exc:
        raise BadRequestError(str(exc))
    return {"ok": True, "arrival_time": stop.arrival_time}
