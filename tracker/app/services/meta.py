"""
Meta key/value access and planned route lookups.
"""

import re
from typing import Dict, List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tracker.app.core.exceptions import ResourceNotFoundError
from tracker.app.models.meta import Meta
from tracker.app.models.route_stop import RouteStop
from tracker.app.services.coordinates import normalize_to_civil_iso, resolve_created_at

ADMIN_CODE_KEY = "admin_code"
START_KEYS = ("start_time", "start_place", "start_lat", "start_lng")

_HHMM_RE = re.compile(r"^\d{2}:\d{2}$")


async def get_meta(db: AsyncSession, keys: Sequence[str]) -> Dict[str, Optional[str]]:
    result = await db.execute(select(Meta).where(Meta.key.in_(list(keys))))
    return {row.key: row.value for row in result.scalars().all()}


async def set_meta(db: AsyncSession, key: str, value: str, overwrite: bool = True) -> None:
    """Insert a meta value; existing keys are only replaced when `overwrite` is set."""
    row = await db.get(Meta, key)
    if row is None:
        db.add(Meta(key=key, value=value))
        await db.flush()
    elif overwrite:
        row.value = value


async def get_admin_code(db: AsyncSession) -> Optional[str]:
    row = await db.get(Meta, ADMIN_CODE_KEY)
    return row.value if row else None


async def list_route(db: AsyncSession) -> List[RouteStop]:
    result = await db.execute(select(RouteStop).order_by(RouteStop.seq))
    return list(result.scalars().all())


async def find_stop(db: AsyncSession, name: str) -> Optional[RouteStop]:
    """Case-insensitive lookup; done in Python because SQLite lower() ignores accents."""
    wanted = name.strip().casefold()
    for stop in await list_route(db):
        if stop.name.casefold() == wanted:
            return stop
    return None


async def set_arrival(db: AsyncSession, name: str, time_value: str) -> RouteStop:
    """Record the arrival time of a stop. HH:MM is read as today's civil time."""
    stop = await find_stop(db, name)
    if stop is None:
        raise ResourceNotFoundError("Route stop", name)

    if _HHMM_RE.match(time_value):
        arrival = resolve_created_at(None, time_value)
    else:
        arrival = normalize_to_civil_iso(time_value)
        if arrival is None:
            raise ValueError(f"Unparseable arrival time: {time_value}")

    stop.arrival_time = arrival
    await db.commit()
    await db.refresh(stop)
    return stop
