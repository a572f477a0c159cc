"""
Copy routines between the relational and document stores.

All routines are idempotent and best-effort: every row is checked before
it is written, per-row failures are counted and logged, and nothing is
rolled back.
"""

import asyncio
import logging
from datetime import datetime
from typing import Optional

from tracker.app.schemas.migration import CopyReport, InsertReport, NormalizeReport
from tracker.app.services.coordinates import (
    civil_iso_to_datetime,
    normalize_to_civil_iso,
    to_civil_iso,
)
from tracker.app.services.position_store import (
    COUNT_UNKNOWN,
    DocumentPositionStore,
    SqlPositionStore,
)

logger = logging.getLogger("tracker.migration")

MATCH_TOLERANCE = 1e-6


async def copy_sql_to_documents(
    sql_store: SqlPositionStore,
    document_store: DocumentPositionStore,
    throttle_every: int = 50,
    pause_s: float = 0.2,
) -> CopyReport:
    """
    Copy relational rows to the document store, keyed by the row id.

    The same row always maps to the same document, so re-running skips
    everything already copied.
    """
    report = CopyReport()
    rows = await sql_store.list_positions_by_id()

    for row in rows:
        doc_id = str(row.id)
        try:
            if await document_store.get_position(doc_id) is not None:
                report.skipped += 1
                continue
            await document_store.add_position(
                row.lat, row.lng, row.created_at, doc_id=doc_id, streamer=row.streamer
            )
            report.copied += 1
            if throttle_every and report.copied % throttle_every == 0:
                await asyncio.sleep(pause_s)
        except Exception as exc:
            logger.warning("Copy of position %s to document store failed: %s", row.id, exc)
            report.failed += 1

    logger.info("sql -> document migration: %s", report.model_dump())
    return report


async def copy_documents_to_sql(
    document_store: DocumentPositionStore,
    sql_store: SqlPositionStore,
    tolerance: float = MATCH_TOLERANCE,
) -> InsertReport:
    """Insert documents missing from the relational store, matched on (created_at, lat, lng)."""
    report = InsertReport()
    documents = await document_store.list_positions()

    for doc in documents:
        try:
            match = await sql_store.find_matching(doc.created_at, doc.lat, doc.lng, tolerance)
            if match is not None:
                report.skipped += 1
                continue
            await sql_store.add_position(doc.lat, doc.lng, doc.created_at, streamer=doc.streamer)
            report.inserted += 1
        except Exception as exc:
            logger.warning("Copy of document %s to sql failed: %s", doc.id, exc)
            report.failed += 1

    logger.info("document -> sql migration: %s", report.model_dump())
    return report


async def auto_migrate(
    sql_store: SqlPositionStore,
    document_store: DocumentPositionStore,
    throttle_every: int = 50,
    pause_s: float = 0.2,
) -> Optional[CopyReport]:
    """Copy sql -> document only when the document store is strictly behind."""
    sql_count = await sql_store.count_positions()
    document_count = await document_store.count_positions()

    if document_count == COUNT_UNKNOWN:
        logger.info("Document count above paging ceiling; skipping auto-migration")
        return None
    if document_count >= sql_count:
        logger.info("Document store up to date (%s >= %s)", document_count, sql_count)
        return None

    logger.info("Document store behind (%s < %s); migrating", document_count, sql_count)
    return await copy_sql_to_documents(sql_store, document_store, throttle_every, pause_s)


async def run_auto_migration(sql_store, document_store, throttle_every: int = 50, pause_s: float = 0.2) -> None:
    """Background-task entry point; a failed run is logged and retried next boot."""
    try:
        await auto_migrate(sql_store, document_store, throttle_every, pause_s)
    except Exception:
        logger.exception("Auto-migration failed")


async def normalize_document_dates(document_store: DocumentPositionStore) -> NormalizeReport:
    """
    Rewrite every document's `created_at` as a civil ISO string and its
    `created_at_ts` as a native timestamp. Unparseable dates become now.
    """
    report = NormalizeReport()
    documents = await document_store.list_documents()

    for doc in documents:
        try:
            current = doc.get("created_at")
            normalized = normalize_to_civil_iso(current) or to_civil_iso()
            timestamp = civil_iso_to_datetime(normalized)
            stored_ts = doc.get("created_at_ts")

            if normalized == current and isinstance(stored_ts, datetime) and stored_ts == timestamp:
                report.skipped += 1
                continue

            await document_store.set_fields(
                doc["_id"], {"created_at": normalized, "created_at_ts": timestamp}
            )
            report.fixed += 1
        except Exception as exc:
            logger.warning("Date normalization of %s failed: %s", doc.get("_id"), exc)
            report.failed += 1

    logger.info("Document date normalization: %s", report.model_dump())
    return report
