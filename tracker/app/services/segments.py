"""
Walking segment cache and track assembly.

A segment is the walking path between two consecutive positions, keyed
`"{from_id}__{to_id}"`. Segments live in the document store and are never
recomputed once written. Positions served by the relational store have no
segments and are joined by straight lines.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Tuple

import httpx

from tracker.app.core.config import Settings
from tracker.app.core.exceptions import ServiceUnavailableError
from tracker.app.schemas.position import PositionRecord
from tracker.app.schemas.track import RebuildReport, RouteResult, Segment
from tracker.app.services.coordinates import haversine_km
from tracker.app.services.position_store import BACKEND_DOCUMENT
from tracker.app.services.routing import RoutingClient, RoutingError, straight_line

logger = logging.getLogger("tracker.segments")

BACKEND_SYNTHETIC = "synthetic"
START_ID = "start"

Pair = Tuple[PositionRecord, PositionRecord]


def segment_key(from_id, to_id) -> str:
    return f"{from_id}__{to_id}"


def _is_timeout(exc: RoutingError) -> bool:
    return isinstance(exc.__cause__, (asyncio.TimeoutError, httpx.TimeoutException))


def _has_coordinates(position: PositionRecord) -> bool:
    return position.lat is not None and position.lng is not None


def _segment_from_route(prev: PositionRecord, curr: PositionRecord, route: RouteResult) -> Segment:
    return Segment(
        key=segment_key(prev.id, curr.id),
        from_id=prev.id,
        to_id=curr.id,
        **route.model_dump(),
    )


class DocumentSegmentStore:
    """Segments collection; writes are upserts so concurrent creators end last-write-wins."""

    def __init__(self, collection):
        self.collection = collection

    async def get(self, key: str) -> Optional[Segment]:
        doc = await self.collection.find_one({"_id": key})
        if not doc:
            return None
        fields = {k: v for k, v in doc.items() if k != "_id"}
        return Segment(key=doc["_id"], **fields)

    async def put(self, segment: Segment) -> None:
        doc = segment.model_dump(exclude={"key"})
        await self.collection.replace_one({"_id": segment.key}, {"_id": segment.key, **doc}, upsert=True)


class SegmentCache:
    def __init__(
        self,
        routing: RoutingClient,
        store: Optional[DocumentSegmentStore] = None,
        max_pairs: int = 40,
        budget_s: float = 10.0,
        start: Optional[PositionRecord] = None,
        start_snap_km: float = 0.01,
    ):
        self.routing = routing
        self.store = store
        self.max_pairs = max(5, max_pairs)
        self.budget_s = budget_s
        self.start = start
        self.start_snap_km = start_snap_km

    @classmethod
    def from_settings(
        cls, config: Settings, routing: RoutingClient, store: Optional[DocumentSegmentStore] = None
    ) -> "SegmentCache":
        start = PositionRecord(
            id=START_ID,
            streamer=config.streamer,
            lat=config.start_lat,
            lng=config.start_lng,
            created_at=config.start_time,
            backend=BACKEND_SYNTHETIC,
        )
        return cls(
            routing=routing,
            store=store,
            max_pairs=config.track_max_pairs,
            budget_s=config.walking_track_budget_s,
            start=start,
            start_snap_km=config.start_snap_km,
        )

    @property
    def available(self) -> bool:
        return self.store is not None

    def _persistable(self, prev: PositionRecord, curr: PositionRecord) -> bool:
        return self.available and prev.backend == BACKEND_DOCUMENT and curr.backend == BACKEND_DOCUMENT

    async def lookup(self, prev: PositionRecord, curr: PositionRecord) -> Optional[Segment]:
        if not self._persistable(prev, curr):
            return None
        return await self.store.get(segment_key(prev.id, curr.id))

    async def _route(
        self, prev: PositionRecord, curr: PositionRecord, timeout_s: Optional[float] = None
    ) -> Tuple[RouteResult, bool]:
        """
        Route one pair. Returns the route and whether it may be persisted:
        straight lines caused by a routing failure are, timeouts are not.
        """
        budget_limited = timeout_s is not None and timeout_s * 1000 < self.routing.timeout_ms
        call = self.routing.get_walking_route(
            prev.lat,
            prev.lng,
            curr.lat,
            curr.lng,
            timeout_ms=int(timeout_s * 1000) if budget_limited else None,
        )
        try:
            if timeout_s is not None:
                return await asyncio.wait_for(call, timeout_s), True
            return await call, True
        except asyncio.TimeoutError:
            logger.info("Track budget exhausted for %s -> %s", prev.id, curr.id)
            return straight_line(prev.lat, prev.lng, curr.lat, curr.lng), False
        except RoutingError as exc:
            logger.warning("Routing failed for %s -> %s: %s", prev.id, curr.id, exc)
            return straight_line(prev.lat, prev.lng, curr.lat, curr.lng), not _is_timeout(exc)

    async def ensure_segment(
        self, prev: PositionRecord, curr: PositionRecord, timeout_s: Optional[float] = None
    ) -> Segment:
        """Cached segment for the pair, computing and persisting it on a miss."""
        if not self.available:
            raise ServiceUnavailableError("Walking segments require the document store")

        key = segment_key(prev.id, curr.id)
        existing = await self.store.get(key)
        if existing is not None:
            return existing

        route, persist = await self._route(prev, curr, timeout_s)
        segment = _segment_from_route(prev, curr, route)
        if persist:
            await self.store.put(segment)
        return segment

    async def link_new_position(self, positions: List[PositionRecord], record: PositionRecord) -> Optional[Segment]:
        """Create the segment ending at a freshly appended position."""
        if not self.available or record.backend != BACKEND_DOCUMENT:
            return None
        ids = [p.id for p in positions]
        if record.id not in ids:
            return None
        index = ids.index(record.id)
        if index == 0:
            return None
        return await self.ensure_segment(positions[index - 1], record)

    async def rebuild(self, positions: List[PositionRecord]) -> RebuildReport:
        """Fill every missing segment between consecutive positions."""
        if not self.available:
            raise ServiceUnavailableError("Walking segments require the document store")
        if any(p.backend != BACKEND_DOCUMENT for p in positions):
            raise ServiceUnavailableError("Positions were not served by the document store")

        report = RebuildReport()
        for prev, curr in zip(positions, positions[1:]):
            if not (_has_coordinates(prev) and _has_coordinates(curr)):
                report.skipped += 1
                continue
            try:
                if await self.store.get(segment_key(prev.id, curr.id)) is not None:
                    report.skipped += 1
                    continue
                await self.ensure_segment(prev, curr)
                report.created += 1
            except Exception as exc:
                logger.warning("Segment %s -> %s failed: %s", prev.id, curr.id, exc)
                report.failed += 1
        logger.info("Segment rebuild finished: %s", report.model_dump())
        return report

    def with_start(self, positions: List[PositionRecord]) -> List[PositionRecord]:
        """Prepend the declared start point unless the first position already sits on it."""
        if not positions or self.start is None:
            return list(positions)
        first = positions[0]
        if _has_coordinates(first):
            distance = haversine_km(self.start.lat, self.start.lng, first.lat, first.lng)
            if distance <= self.start_snap_km:
                return list(positions)
        return [self.start] + list(positions)

    @staticmethod
    def _feature(segment: Segment) -> Dict[str, Any]:
        return {
            "type": "Feature",
            "geometry": {"type": "LineString", "coordinates": segment.geometry},
            "properties": {
                "from": segment.from_id,
                "to": segment.to_id,
                "source": segment.source,
                "distance_km": segment.distance_km,
                "duration_min": segment.duration_min,
            },
        }

    async def assemble_track(self, positions: List[PositionRecord], full: bool = False) -> Dict[str, Any]:
        """
        GeoJSON FeatureCollection of the walked path.

        Full mode: every pair, cached segment or an immediate straight line.
        Reduced mode: the newest `max_pairs` pairs are always present and
        routed live within the time budget (newest first); older pairs appear
        only when already cached.
        """
        points = self.with_start(positions)
        pairs: List[Pair] = [
            (prev, curr)
            for prev, curr in zip(points, points[1:])
            if _has_coordinates(prev) and _has_coordinates(curr)
        ]
        routable = self.available and all(p.backend == BACKEND_DOCUMENT for p in positions)
        segments: Dict[int, Segment] = {}

        if full:
            for index, (prev, curr) in enumerate(pairs):
                cached = await self.lookup(prev, curr)
                segments[index] = cached or _segment_from_route(
                    prev, curr, straight_line(prev.lat, prev.lng, curr.lat, curr.lng)
                )
        else:
            window_start = max(0, len(pairs) - self.max_pairs)
            for index in range(window_start):
                cached = await self.lookup(*pairs[index])
                if cached is not None:
                    segments[index] = cached

            loop = asyncio.get_running_loop()
            deadline = loop.time() + self.budget_s
            for index in reversed(range(window_start, len(pairs))):
                prev, curr = pairs[index]
                cached = await self.lookup(prev, curr)
                if cached is not None:
                    segments[index] = cached
                    continue
                remaining = deadline - loop.time()
                if not routable or remaining <= 0:
                    route = straight_line(prev.lat, prev.lng, curr.lat, curr.lng)
                    segments[index] = _segment_from_route(prev, curr, route)
                else:
                    route, persist = await self._route(prev, curr, timeout_s=remaining)
                    segments[index] = _segment_from_route(prev, curr, route)
                    # pairs touching the synthetic start are routed but never stored
                    if persist and self._persistable(prev, curr):
                        await self.store.put(segments[index])

        return {
            "type": "FeatureCollection",
            "features": [self._feature(segments[index]) for index in sorted(segments)],
            "properties": {"mode": "full" if full else "reduced", "pairs": len(pairs)},
        }
