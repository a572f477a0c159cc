"""
Centralized Test Configuration.
"""

import asyncio
from types import SimpleNamespace

import pytest
from httpx import AsyncClient, ASGITransport
from pymongo.errors import DuplicateKeyError
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from tracker.app.main import app
from tracker.app.core.config import Settings
from tracker.app.core.dependencies import (
    get_position_store,
    get_routing_client,
    get_segment_cache,
    get_twitch_service,
)
from tracker.app.db.seed import seed_database
from tracker.app.db.session import get_db, Base
from tracker.app.schemas.track import RouteResult
from tracker.app.services.position_store import (
    DocumentPositionStore,
    FallbackPositionStore,
    SqlPositionStore,
)
from tracker.app.services.routing import RoutingError
from tracker.app.services.segments import DocumentSegmentStore, SegmentCache
from tracker.app.services.twitch import TwitchStatusService

# Setup In-Memory Test Database
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"
ADMIN_CODE = "test-code"

engine = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)


def make_settings(**overrides) -> Settings:
    values = {"admin_code": ADMIN_CODE, "twitch_client_id": "", "twitch_client_secret": ""}
    values.update(overrides)
    return Settings(_env_file=None, **values)


# Mock document collection for reliability in CI/CD
_MISSING = object()


def _sort_key(value):
    return (value is not None, value)


def _matches(doc, query) -> bool:
    for field, condition in (query or {}).items():
        value = doc.get(field, _MISSING)
        if isinstance(condition, dict):
            for op, arg in condition.items():
                if op == "$exists":
                    if (value is not _MISSING) != arg:
                        return False
                elif op == "$gt":
                    if value is _MISSING or not value > arg:
                        return False
                else:
                    raise NotImplementedError(op)
        elif value != condition:
            return False
    return True


class MockCursor:
    def __init__(self, collection, docs):
        self._collection = collection
        self._docs = docs
        self._limit = None

    def sort(self, key_or_list, direction=None):
        if isinstance(key_or_list, str):
            keys = [(key_or_list, direction or 1)]
        else:
            keys = list(key_or_list)
        for field, order in reversed(keys):
            self._docs.sort(key=lambda d: _sort_key(d.get(field)), reverse=order < 0)
        return self

    def limit(self, count):
        self._limit = count
        return self

    async def to_list(self, length=None):
        self._collection._check()
        docs = self._docs[: self._limit] if self._limit else self._docs
        if length is not None:
            docs = docs[:length]
        return [dict(d) for d in docs]


class MockCollection:
    """The subset of a motor collection the stores use. Set `error` to make every call fail."""

    def __init__(self):
        self.docs = {}
        self.error = None
        self.writes = 0

    def _check(self):
        if self.error is not None:
            raise self.error

    def find(self, query=None, projection=None):
        return MockCursor(self, [d for d in self.docs.values() if _matches(d, query)])

    async def find_one(self, query=None, projection=None):
        self._check()
        for doc in self.docs.values():
            if _matches(doc, query):
                return dict(doc)
        return None

    async def insert_one(self, doc):
        self._check()
        if doc["_id"] in self.docs:
            raise DuplicateKeyError(f"duplicate key {doc['_id']}")
        self.docs[doc["_id"]] = dict(doc)
        self.writes += 1
        return SimpleNamespace(inserted_id=doc["_id"])

    async def update_one(self, query, update):
        self._check()
        for doc in self.docs.values():
            if _matches(doc, query):
                doc.update(update.get("$set", {}))
                self.writes += 1
                return SimpleNamespace(matched_count=1, modified_count=1)
        return SimpleNamespace(matched_count=0, modified_count=0)

    async def replace_one(self, query, replacement, upsert=False):
        self._check()
        key = replacement["_id"]
        if key in self.docs or upsert:
            self.docs[key] = dict(replacement)
            self.writes += 1
        return SimpleNamespace(matched_count=1)

    async def delete_one(self, query):
        self._check()
        for key, doc in list(self.docs.items()):
            if _matches(doc, query):
                del self.docs[key]
                return SimpleNamespace(deleted_count=1)
        return SimpleNamespace(deleted_count=0)


class StubRouting:
    """Routing client double that counts calls."""

    def __init__(self, fail: bool = False, delay: float = 0.0, timeout: bool = False):
        self.fail = fail
        self.timeout = timeout
        self.delay = delay
        self.calls = 0
        self.timeout_ms = 9000

    async def get_walking_route(self, a_lat, a_lng, b_lat, b_lng, timeout_ms=None):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.timeout:
            raise RoutingError("OSRM timed out") from asyncio.TimeoutError()
        if self.fail:
            raise RoutingError("OSRM error: NoRoute")
        return RouteResult(
            geometry=[[a_lng, a_lat], [(a_lng + b_lng) / 2, (a_lat + b_lat) / 2], [b_lng, b_lat]],
            distance_km=1.5,
            duration_min=20.0,
            source="osrm",
        )


@pytest.fixture(autouse=True)
async def setup_database():
    """Create tables before each test function and drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
async def db_session():
    async with TestingSessionLocal() as session:
        yield session


@pytest.fixture
async def seeded():
    async with TestingSessionLocal() as session:
        await seed_database(session, make_settings())


@pytest.fixture
def routing():
    return StubRouting()


@pytest.fixture
def position_collection():
    return MockCollection()


@pytest.fixture
def segment_collection():
    return MockCollection()


@pytest.fixture
def sql_store():
    return SqlPositionStore(TestingSessionLocal)


@pytest.fixture
def document_store(position_collection):
    return DocumentPositionStore(position_collection)


@pytest.fixture
def position_store(sql_store, document_store):
    return FallbackPositionStore(sql_store, document_store)


@pytest.fixture
def segment_cache(routing, segment_collection):
    # start=None: tracks begin at the first real position
    return SegmentCache(routing, DocumentSegmentStore(segment_collection))


@pytest.fixture
def twitch_service():
    return TwitchStatusService(client_id="", client_secret="", user_login="someone")


@pytest.fixture
async def client(seeded, position_store, segment_cache, routing, twitch_service):
    """Async client with the app's services replaced by test doubles."""

    async def override_get_db():
        async with TestingSessionLocal() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_position_store] = lambda: position_store
    app.dependency_overrides[get_segment_cache] = lambda: segment_cache
    app.dependency_overrides[get_routing_client] = lambda: routing
    app.dependency_overrides[get_twitch_service] = lambda: twitch_service

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides = {}


@pytest.fixture
def admin_headers():
    return {"X-Admin-Code": ADMIN_CODE}


@pytest.fixture
def failing_routing():
    return StubRouting(fail=True)


@pytest.fixture
def slow_routing():
    return StubRouting(delay=1.0)


@pytest.fixture
def admin_code():
    return ADMIN_CODE


@pytest.fixture
def timing_out_routing():
    return StubRouting(timeout=True)
