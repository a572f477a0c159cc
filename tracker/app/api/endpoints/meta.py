"""
Start metadata and admin code verification.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from tracker.app.core.guards import codes_match
from tracker.app.db.session import get_db
from tracker.app.schemas.route import VerifyRequest
from tracker.app.services.meta import START_KEYS, get_admin_code, get_meta

router = APIRouter(tags=["Meta"])


@router.get("/start")
async def get_start(db: AsyncSession = Depends(get_db)):
    """Start time, place and coordinates of the trek."""
    return await get_meta(db, START_KEYS)


@router.post("/admin/verify")
async def verify_admin_code(payload: VerifyRequest, db: AsyncSession = Depends(get_db)):
    if not payload.code:
        return {"ok": False}
    return {"ok": codes_match(await get_admin_code(db), payload.code)}
