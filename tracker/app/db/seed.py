"""
Database initialization and seeding.

Creates the relational tables, the meta defaults and the planned route.
Safe to run on every start: existing values are kept except where noted.
"""

import logging

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from tracker.app.core.config import Settings
from tracker.app.db.session import Base
from tracker.app.models.meta import Meta  # noqa: F401 (table registration)
from tracker.app.models.position import Position
from tracker.app.models.route_stop import RouteStop
from tracker.app.services.meta import ADMIN_CODE_KEY, set_meta

logger = logging.getLogger("tracker.seed")

# Planned route, Montpellier to Paris. seq 0 is replaced by the configured start.
PLANNED_ROUTE = [
    ("Montpellier (Radisson Blu)", 43.6129535885483, 3.8839984003394976),
    ("Lunel", 43.6776, 4.1351),
    ("Nîmes", 43.8367, 4.3601),
    ("Remoulins", 43.9406, 4.5606),
    ("Avignon", 43.9493, 4.8055),
    ("Orange", 44.1381, 4.8079),
    ("Montélimar", 44.5558, 4.7500),
    ("Valence", 44.9334, 4.8924),
    ("Vienne", 45.5245, 4.8730),
    ("Lyon", 45.7640, 4.8357),
    ("Villefranche-sur-Saône", 45.9894, 4.7186),
    ("Mâcon", 46.3069, 4.8280),
    ("Tournus", 46.5679, 4.9073),
    ("Chalon-sur-Saône", 46.7800, 4.8527),
    ("Beaune", 47.0260, 4.8400),
    ("Nuits-Saint-Georges", 47.1376, 4.9506),
    ("Dijon", 47.3220, 5.0415),
    ("Montbard", 47.6231, 4.3382),
    ("Tonnerre", 47.8554, 3.9732),
    ("Chablis", 47.8131, 3.7984),
    ("Joigny", 47.9814, 3.3987),
    ("Sens", 48.1975, 3.2830),
    ("Montereau-Fault-Yonne", 48.3835, 2.9577),
    ("Fontainebleau", 48.4047, 2.7016),
    ("Melun", 48.5393, 2.6596),
    ("Brunoy", 48.6990, 2.4924),
    ("Paris (Arrivée)", 48.8566, 2.3522),
]


async def create_tables(engine: AsyncEngine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def seed_database(db: AsyncSession, config: Settings) -> None:
    """
    Seed meta defaults, the planned route and the start position.

    - start time/place and the default admin code are inserted only if absent
    - start lat/lng are always refreshed from configuration
    - ADMIN_CODE in the environment overrides the stored admin code
    - the start position is inserted when the positions table is empty
    """
    await set_meta(db, "start_time", config.start_time, overwrite=False)
    await set_meta(db, "start_place", config.start_place, overwrite=False)
    await set_meta(db, "start_lat", str(config.start_lat))
    await set_meta(db, "start_lng", str(config.start_lng))
    await set_meta(db, ADMIN_CODE_KEY, config.default_admin_code, overwrite=False)
    if config.admin_code:
        await set_meta(db, ADMIN_CODE_KEY, config.admin_code)
        logger.info("Admin code set from ADMIN_CODE")

    result = await db.execute(select(RouteStop.seq))
    existing_seqs = set(result.scalars().all())
    for seq, (name, lat, lng) in enumerate(PLANNED_ROUTE):
        if seq == 0:
            lat, lng = config.start_lat, config.start_lng
        if seq in existing_seqs:
            continue
        db.add(RouteStop(seq=seq, name=name, lat=lat, lng=lng))

    start_stop = (await db.execute(select(RouteStop).where(RouteStop.seq == 0))).scalar_one_or_none()
    if start_stop is not None:
        start_stop.lat, start_stop.lng = config.start_lat, config.start_lng

    count = (await db.execute(select(func.count(Position.id)))).scalar_one()
    if count == 0:
        db.add(Position(
            streamer=config.streamer,
            lat=config.start_lat,
            lng=config.start_lng,
            created_at=config.start_time,
        ))
        logger.info("Inserted start position")

    await db.commit()
