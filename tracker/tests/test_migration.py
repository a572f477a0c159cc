"""
Tests for the store-to-store copy and date normalization routines.
"""

from datetime import datetime

import pytest

from tracker.app.services.migration import (
    auto_migrate,
    copy_documents_to_sql,
    copy_sql_to_documents,
    normalize_document_dates,
    run_auto_migration,
)
from tracker.app.services.position_store import DocumentPositionStore


@pytest.mark.asyncio
async def test_copy_sql_to_documents_is_idempotent(sql_store, document_store, position_collection):
    await sql_store.add_position(43.61, 3.88, "2025-09-08T16:15:00+02:00")
    await sql_store.add_position(43.70, 3.90, "2025-09-08T17:15:00+02:00")

    first = await copy_sql_to_documents(sql_store, document_store)
    second = await copy_sql_to_documents(sql_store, document_store)

    assert first.model_dump() == {"copied": 2, "skipped": 0, "failed": 0}
    assert second.model_dump() == {"copied": 0, "skipped": 2, "failed": 0}
    assert sorted(position_collection.docs) == ["1", "2"]
    assert position_collection.docs["1"]["created_at_ts"] == datetime.fromisoformat("2025-09-08T16:15:00+02:00")


@pytest.mark.asyncio
async def test_copy_sql_to_documents_throttles(mocker, sql_store, document_store):
    sleep = mocker.patch("tracker.app.services.migration.asyncio.sleep", new_callable=mocker.AsyncMock)
    for index in range(5):
        await sql_store.add_position(1.0 + index, 1.0, "2025-09-08T16:15:00+02:00")

    await copy_sql_to_documents(sql_store, document_store, throttle_every=2, pause_s=0.5)

    assert sleep.await_count == 2
    sleep.assert_awaited_with(0.5)


@pytest.mark.asyncio
async def test_copy_sql_to_documents_counts_failures(sql_store, document_store, position_collection):
    await sql_store.add_position(43.61, 3.88, "2025-09-08T16:15:00+02:00")
    position_collection.error = RuntimeError("quota exceeded")

    report = await copy_sql_to_documents(sql_store, document_store)

    assert report.failed == 1
    assert report.copied == 0


@pytest.mark.asyncio
async def test_copy_documents_to_sql_skips_matches(sql_store, document_store):
    await sql_store.add_position(43.61, 3.88, "2025-09-08T16:15:00+02:00")
    await document_store.add_position(43.61, 3.88, "2025-09-08T16:15:00+02:00", doc_id="a")
    await document_store.add_position(43.70, 3.90, "2025-09-08T17:15:00+02:00", doc_id="b")

    first = await copy_documents_to_sql(document_store, sql_store)
    second = await copy_documents_to_sql(document_store, sql_store)

    assert first.model_dump() == {"inserted": 1, "skipped": 1, "failed": 0}
    assert second.model_dump() == {"inserted": 0, "skipped": 2, "failed": 0}
    assert await sql_store.count_positions() == 2


@pytest.mark.asyncio
async def test_auto_migrate_runs_only_when_behind(sql_store, document_store):
    assert await auto_migrate(sql_store, document_store) is None

    await sql_store.add_position(43.61, 3.88, "2025-09-08T16:15:00+02:00")
    report = await auto_migrate(sql_store, document_store)

    assert report.copied == 1
    assert await auto_migrate(sql_store, document_store) is None


@pytest.mark.asyncio
async def test_auto_migrate_skips_when_count_unknown(sql_store, position_collection):
    store = DocumentPositionStore(position_collection, page_size=1, count_ceiling=1)
    await store.add_position(1.0, 1.0, "2025-09-08T16:15:00+02:00", doc_id="a")
    await store.add_position(1.0, 1.0, "2025-09-08T16:15:00+02:00", doc_id="b")
    for index in range(3):
        await sql_store.add_position(2.0 + index, 2.0, "2025-09-08T16:15:00+02:00")

    assert await auto_migrate(sql_store, store) is None
    assert sorted(position_collection.docs) == ["a", "b"]


@pytest.mark.asyncio
async def test_run_auto_migration_logs_failures(sql_store, document_store, position_collection, caplog):
    await sql_store.add_position(43.61, 3.88, "2025-09-08T16:15:00+02:00")
    position_collection.error = RuntimeError("unreachable")

    await run_auto_migration(sql_store, document_store)

    assert "Auto-migration failed" in caplog.text


@pytest.mark.asyncio
async def test_normalize_document_dates(document_store, position_collection):
    await document_store.add_position(1.0, 1.0, "2025-09-08T16:15:00+02:00", doc_id="ok")
    position_collection.docs["bare"] = {
        "_id": "bare", "streamer": "Team", "lat": 2.0, "lng": 2.0,
        "created_at": "2025-01-08 16:15",
    }
    position_collection.docs["native"] = {
        "_id": "native", "streamer": "Team", "lat": 3.0, "lng": 3.0,
        "created_at": datetime(2025, 9, 8, 14, 15),
    }
    position_collection.docs["junk"] = {
        "_id": "junk", "streamer": "Team", "lat": 4.0, "lng": 4.0,
        "created_at": "sometime",
    }

    report = await normalize_document_dates(document_store)

    assert report.model_dump() == {"fixed": 3, "skipped": 1, "failed": 0}
    assert position_collection.docs["bare"]["created_at"] == "2025-01-08T16:15:00+01:00"
    assert position_collection.docs["native"]["created_at"] == "2025-09-08T14:15:00+02:00"
    assert position_collection.docs["junk"]["created_at_ts"] is not None

    again = await normalize_document_dates(document_store)
    assert again.fixed == 0
