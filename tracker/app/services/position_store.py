"""
Position storage over two interchangeable backends.

- SqlPositionStore: relational rows through SQLAlchemy, always available.
- DocumentPositionStore: MongoDB documents through motor, optional.
- FallbackPositionStore: the single policy object the API talks to. It
  prefers the document store and retries on the relational one when the
  document store fails with a credential or connectivity error.
"""

import logging
import re
import uuid
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Union

from pymongo import ASCENDING
from pymongo.errors import ConnectionFailure, OperationFailure
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tracker.app.models.position import Position
from tracker.app.schemas.position import PositionRecord
from tracker.app.services.coordinates import civil_iso_to_datetime, normalize_to_civil_iso

logger = logging.getLogger("tracker.store")

BACKEND_SQL = "sql"
BACKEND_DOCUMENT = "document"

# Returned by DocumentPositionStore.count_positions past the paging ceiling
COUNT_UNKNOWN = -1

PositionId = Union[int, str]

UPDATABLE_FIELDS = ("lat", "lng", "created_at")

# pymongo codes: 13 Unauthorized, 18 AuthenticationFailed
_CREDENTIAL_ERROR_CODES = {13, 18}
_CREDENTIAL_SIGNATURES = re.compile(
    r"unauthenticated|permission[_ ]denied|not authorized|unauthorized|"
    r"authentication failed|requires authentication|credential",
    re.IGNORECASE,
)


def is_fallback_error(exc: Exception) -> bool:
    """True for document-store failures that should be retried on the relational store."""
    if isinstance(exc, OperationFailure) and exc.code in _CREDENTIAL_ERROR_CODES:
        return True
    if isinstance(exc, ConnectionFailure):
        return True
    return bool(_CREDENTIAL_SIGNATURES.search(str(exc)))


class PositionStore(ABC):
    """CRUD contract shared by both backends."""

    name: str

    @abstractmethod
    async def list_positions(self) -> List[PositionRecord]:
        """All positions, oldest first."""

    @abstractmethod
    async def add_position(self, lat: float, lng: float, created_at: str) -> PositionRecord:
        ...

    @abstractmethod
    async def get_position(self, position_id: PositionId) -> Optional[PositionRecord]:
        ...

    @abstractmethod
    async def update_position(self, position_id: PositionId, fields: Dict[str, Any]) -> Optional[PositionRecord]:
        """Apply a partial update; None when the id is unknown."""

    @abstractmethod
    async def delete_position(self, position_id: PositionId) -> bool:
        ...

    @abstractmethod
    async def count_positions(self) -> int:
        ...


class SqlPositionStore(PositionStore):
    name = BACKEND_SQL

    def __init__(self, session_factory: async_sessionmaker, streamer: str = "Team"):
        self._session_factory = session_factory
        self.streamer = streamer

    @staticmethod
    def _coerce_id(position_id: PositionId) -> Optional[int]:
        try:
            return int(position_id)
        except (TypeError, ValueError):
            return None

    def _to_record(self, row: Position) -> PositionRecord:
        return PositionRecord(
            id=row.id,
            streamer=row.streamer,
            lat=row.lat,
            lng=row.lng,
            created_at=row.created_at,
            backend=self.name,
        )

    async def list_positions(self) -> List[PositionRecord]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(Position).order_by(Position.created_at, Position.id)
            )
            return [self._to_record(row) for row in result.scalars().all()]

    async def list_positions_by_id(self) -> List[PositionRecord]:
        async with self._session_factory() as session:
            result = await session.execute(select(Position).order_by(Position.id))
            return [self._to_record(row) for row in result.scalars().all()]

    async def add_position(
        self, lat: float, lng: float, created_at: str, streamer: Optional[str] = None
    ) -> PositionRecord:
        async with self._session_factory() as session:
            row = Position(
                streamer=streamer or self.streamer,
                lat=lat,
                lng=lng,
                created_at=created_at,
            )
            session.add(row)
            await session.commit()
            await session.refresh(row)
            return self._to_record(row)

    async def _load(self, session: AsyncSession, position_id: PositionId) -> Optional[Position]:
        row_id = self._coerce_id(position_id)
        if row_id is None:
            return None
        result = await session.execute(select(Position).where(Position.id == row_id))
        return result.scalar_one_or_none()

    async def get_position(self, position_id: PositionId) -> Optional[PositionRecord]:
        async with self._session_factory() as session:
            row = await self._load(session, position_id)
            return self._to_record(row) if row else None

    async def update_position(self, position_id: PositionId, fields: Dict[str, Any]) -> Optional[PositionRecord]:
        async with self._session_factory() as session:
            row = await self._load(session, position_id)
            if row is None:
                return None
            for key in UPDATABLE_FIELDS:
                if fields.get(key) is not None:
                    setattr(row, key, fields[key])
            await session.commit()
            await session.refresh(row)
            return self._to_record(row)

    async def delete_position(self, position_id: PositionId) -> bool:
        async with self._session_factory() as session:
            row = await self._load(session, position_id)
            if row is None:
                return False
            await session.delete(row)
            await session.commit()
            return True

    async def count_positions(self) -> int:
        async with self._session_factory() as session:
            result = await session.execute(select(func.count(Position.id)))
            return result.scalar_one()

    async def find_matching(
        self, created_at: str, lat: float, lng: float, tolerance: float = 1e-6
    ) -> Optional[PositionRecord]:
        """Row with the same timestamp and coordinates within `tolerance`."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(Position).where(
                    Position.created_at == created_at,
                    func.abs(Position.lat - lat) < tolerance,
                    func.abs(Position.lng - lng) < tolerance,
                ).limit(1)
            )
            row = result.scalar_one_or_none()
            return self._to_record(row) if row else None


class DocumentPositionStore(PositionStore):
    """
    Positions as documents keyed by a string `_id`.

    Each document carries `created_at` (civil string) and `created_at_ts`
    (native timestamp mirror). Ordering uses the mirror when every document
    has one; otherwise it falls back to the string field, which is only
    chronological when all strings share one offset.
    """

    name = BACKEND_DOCUMENT

    def __init__(
        self,
        collection,
        streamer: str = "Team",
        page_size: int = 500,
        count_ceiling: int = 20000,
    ):
        self.collection = collection
        self.streamer = streamer
        self.page_size = page_size
        self.count_ceiling = count_ceiling

    def _to_record(self, doc: Dict[str, Any]) -> PositionRecord:
        created_at = doc.get("created_at")
        if not isinstance(created_at, str):
            created_at = normalize_to_civil_iso(created_at) or ""
        return PositionRecord(
            id=doc["_id"],
            streamer=doc.get("streamer") or self.streamer,
            lat=doc["lat"],
            lng=doc["lng"],
            created_at=created_at,
            backend=self.name,
        )

    async def list_documents(self) -> List[Dict[str, Any]]:
        """Raw documents ordered by key, for maintenance passes."""
        return await self.collection.find({}).sort("_id", ASCENDING).to_list(length=None)

    async def list_positions(self) -> List[PositionRecord]:
        missing_mirror = await self.collection.find_one(
            {"created_at_ts": {"$exists": False}}, {"_id": 1}
        )
        order_field = "created_at" if missing_mirror else "created_at_ts"
        cursor = self.collection.find({}).sort([(order_field, ASCENDING), ("_id", ASCENDING)])
        return [self._to_record(doc) for doc in await cursor.to_list(length=None)]

    async def add_position(
        self,
        lat: float,
        lng: float,
        created_at: str,
        doc_id: Optional[str] = None,
        streamer: Optional[str] = None,
    ) -> PositionRecord:
        doc = {
            "_id": doc_id or uuid.uuid4().hex,
            "streamer": streamer or self.streamer,
            "lat": lat,
            "lng": lng,
            "created_at": created_at,
        }
        created_at_ts = civil_iso_to_datetime(created_at)
        if created_at_ts is not None:
            doc["created_at_ts"] = created_at_ts
        await self.collection.insert_one(doc)
        return self._to_record(doc)

    async def get_position(self, position_id: PositionId) -> Optional[PositionRecord]:
        doc = await self.collection.find_one({"_id": str(position_id)})
        return self._to_record(doc) if doc else None

    async def set_fields(self, position_id: PositionId, fields: Dict[str, Any]) -> bool:
        result = await self.collection.update_one({"_id": str(position_id)}, {"$set": fields})
        return result.matched_count > 0

    async def update_position(self, position_id: PositionId, fields: Dict[str, Any]) -> Optional[PositionRecord]:
        changes = {key: fields[key] for key in UPDATABLE_FIELDS if fields.get(key) is not None}
        if "created_at" in changes:
            created_at_ts = civil_iso_to_datetime(changes["created_at"])
            if created_at_ts is not None:
                changes["created_at_ts"] = created_at_ts
        if changes and not await self.set_fields(position_id, changes):
            return None
        return await self.get_position(position_id)

    async def delete_position(self, position_id: PositionId) -> bool:
        result = await self.collection.delete_one({"_id": str(position_id)})
        return result.deleted_count > 0

    async def count_positions(self) -> int:
        """
        Page through keys in fixed-size batches. Past the ceiling the count
        is reported as COUNT_UNKNOWN.
        """
        total = 0
        last_id = None
        while True:
            query = {"_id": {"$gt": last_id}} if last_id is not None else {}
            cursor = self.collection.find(query, {"_id": 1}).sort("_id", ASCENDING).limit(self.page_size)
            batch = await cursor.to_list(length=self.page_size)
            total += len(batch)
            if total > self.count_ceiling:
                return COUNT_UNKNOWN
            if len(batch) < self.page_size:
                return total
            last_id = batch[-1]["_id"]


class FallbackPositionStore:
    """
    Primary-first policy over the two backends.

    Every operation runs on the document store when one is configured,
    unless the caller (or FORCE_SQLITE_READS for listing and counting) asks for the
    relational store. Credential/connectivity failures are logged and
    retried on the relational store; anything else propagates.
    """

    def __init__(
        self,
        secondary: SqlPositionStore,
        primary: Optional[DocumentPositionStore] = None,
        force_secondary_reads: bool = False,
    ):
        self.secondary = secondary
        self.primary = primary
        self.force_secondary_reads = force_secondary_reads

    @property
    def primary_enabled(self) -> bool:
        return self.primary is not None

    async def _call(self, operation: str, *args, read: bool = False, prefer_secondary: bool = False):
        use_secondary = prefer_secondary or (read and self.force_secondary_reads)
        if self.primary is None or use_secondary:
            return await getattr(self.secondary, operation)(*args)
        try:
            return await getattr(self.primary, operation)(*args)
        except Exception as exc:
            if not is_fallback_error(exc):
                raise
            logger.warning("%s failed on document store (%s); falling back to sql", operation, exc)
            return await getattr(self.secondary, operation)(*args)

    async def list_positions(self, prefer_secondary: bool = False) -> List[PositionRecord]:
        return await self._call("list_positions", read=True, prefer_secondary=prefer_secondary)

    async def add_position(self, lat: float, lng: float, created_at: str) -> PositionRecord:
        return await self._call("add_position", lat, lng, created_at)

    async def get_position(self, position_id: PositionId, prefer_secondary: bool = False) -> Optional[PositionRecord]:
        return await self._call("get_position", position_id, prefer_secondary=prefer_secondary)

    async def update_position(self, position_id: PositionId, fields: Dict[str, Any]) -> Optional[PositionRecord]:
        return await self._call("update_position", position_id, fields)

    async def delete_position(self, position_id: PositionId) -> bool:
        return await self._call("delete_position", position_id)

    async def count_positions(self, prefer_secondary: bool = False) -> int:
        return await self._call("count_positions", read=True, prefer_secondary=prefer_secondary)
