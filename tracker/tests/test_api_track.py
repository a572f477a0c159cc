"""
Integration tests for the walking track, walking route, maintenance and
live-status endpoints.
"""

import pytest

from tracker.app.core.dependencies import get_position_store, get_routing_client
from tracker.app.main import app
from tracker.app.services.position_store import FallbackPositionStore


async def add_walk(document_store, count):
    return [
        await document_store.add_position(
            43.6 + i * 0.01, 3.88 + i * 0.01, f"2025-09-08T{10 + i:02d}:00:00+02:00", doc_id=f"d{i}"
        )
        for i in range(count)
    ]


@pytest.mark.asyncio
async def test_walking_track_full_mode_draws_straight_lines(client, document_store, routing):
    await add_walk(document_store, 3)

    response = await client.get("/api/walking-track", params={"full": "true"})

    assert response.status_code == 200
    track = response.json()
    assert track["type"] == "FeatureCollection"
    assert track["properties"]["mode"] == "full"
    assert [f["properties"]["source"] for f in track["features"]] == ["straight", "straight"]
    assert track["features"][0]["geometry"]["type"] == "LineString"
    assert routing.calls == 0


@pytest.mark.asyncio
async def test_walking_track_reduced_mode_routes_and_caches(client, document_store, segment_collection, routing):
    await add_walk(document_store, 3)

    track = (await client.get("/api/walking-track")).json()

    assert [f["properties"]["from"] for f in track["features"]] == ["d0", "d1"]
    assert all(f["properties"]["source"] == "osrm" for f in track["features"])
    assert sorted(segment_collection.docs) == ["d0__d1", "d1__d2"]

    again = (await client.get("/api/walking-track")).json()
    assert again == track
    assert routing.calls == 2


@pytest.mark.asyncio
async def test_walking_track_from_sql(client, sql_store, routing):
    await sql_store.add_position(43.7, 3.9, "2025-09-08T18:00:00+02:00")

    track = (await client.get("/api/walking-track", params={"source": "sqlite"})).json()

    assert len(track["features"]) == 1
    assert track["features"][0]["properties"]["source"] == "straight"
    assert routing.calls == 0


@pytest.mark.asyncio
async def test_walking_track_empty(client):
    track = (await client.get("/api/walking-track")).json()
    assert track["features"] == []


@pytest.mark.asyncio
async def test_walking_route(client):
    response = await client.get(
        "/api/walking-route", params={"fromLat": 43.6, "fromLng": 3.88, "toLat": 43.7, "toLng": 3.9}
    )
    assert response.status_code == 200
    data = response.json()
    assert data["source"] == "osrm"
    assert data["geometry"][0] == [3.88, 43.6]


@pytest.mark.asyncio
async def test_walking_route_falls_back_to_straight_line(client, failing_routing):
    app.dependency_overrides[get_routing_client] = lambda: failing_routing

    response = await client.get(
        "/api/walking-route", params={"fromLat": 43.6, "fromLng": 3.88, "toLat": 43.7, "toLng": 3.9}
    )

    data = response.json()
    assert data["source"] == "straight"
    assert data["duration_min"] is None
    assert data["distance_km"] > 0


@pytest.mark.asyncio
async def test_walking_route_requires_coordinates(client):
    response = await client.get("/api/walking-route", params={"fromLat": 43.6})
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_maintenance_requires_admin(client):
    response = await client.post("/api/migrate/sqlite-to-firestore")
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_migrations_round_trip(client, admin_headers, position_collection):
    to_documents = await client.post("/api/migrate/sqlite-to-firestore", headers=admin_headers)
    assert to_documents.json() == {"copied": 1, "skipped": 0, "failed": 0}
    assert list(position_collection.docs) == ["1"]

    to_sql = await client.post("/api/migrate/firestore-to-sqlite", headers=admin_headers)
    assert to_sql.json() == {"inserted": 0, "skipped": 1, "failed": 0}


@pytest.mark.asyncio
async def test_normalize_dates_endpoint(client, admin_headers, position_collection):
    position_collection.docs["old"] = {
        "_id": "old", "streamer": "Team", "lat": 1.0, "lng": 1.0, "created_at": "2025-09-08 09:00",
    }

    response = await client.post("/api/admin/normalize-firestore-dates", headers=admin_headers)

    assert response.json() == {"fixed": 1, "skipped": 0, "failed": 0}
    assert position_collection.docs["old"]["created_at"] == "2025-09-08T09:00:00+02:00"


@pytest.mark.asyncio
async def test_rebuild_segments_endpoint(client, admin_headers, document_store, segment_collection):
    await add_walk(document_store, 4)

    first = await client.post("/api/walking-segments/rebuild", headers=admin_headers)
    second = await client.post("/api/walking-segments/rebuild", headers=admin_headers)

    assert first.json() == {"created": 3, "skipped": 0, "failed": 0}
    assert second.json() == {"created": 0, "skipped": 3, "failed": 0}
    assert len(segment_collection.docs) == 3


@pytest.mark.asyncio
async def test_maintenance_without_document_store(client, admin_headers, sql_store):
    app.dependency_overrides[get_position_store] = lambda: FallbackPositionStore(sql_store)

    for path in (
        "/api/migrate/sqlite-to-firestore",
        "/api/migrate/firestore-to-sqlite",
        "/api/admin/normalize-firestore-dates",
        "/api/walking-segments/rebuild",
    ):
        response = await client.post(path, headers=admin_headers)
        assert response.status_code == 503
        assert response.json() == {"error": "Document store not configured"}


@pytest.mark.asyncio
async def test_twitch_status_without_credentials(client):
    response = await client.get("/api/twitch-status")
    assert response.json() == {"live": False, "reason": "NO_CREDENTIALS"}


@pytest.mark.asyncio
async def test_twitch_debug_env(client):
    response = await client.get("/api/_debug/twitch-env")
    assert response.json() == {"client_id_present": False, "secret_present": False, "sample_id": None}
