"""
Admin guard.

A single shared secret, stored in the meta table, protects every write.
The code may arrive as the `X-Admin-Code` header, an `adminCode` JSON body
field, or an `adminCode` query parameter (checked in that order).
"""

import secrets
from typing import Optional

from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from tracker.app.core.exceptions import AuthenticationError, InvalidAdminCodeError
from tracker.app.db.session import get_db
from tracker.app.services.meta import get_admin_code


async def _code_from_body(request: Request) -> Optional[str]:
    if "application/json" not in request.headers.get("content-type", ""):
        return None
    try:
        body = await request.json()
    except ValueError:
        return None
    if isinstance(body, dict) and body.get("adminCode"):
        return str(body["adminCode"])
    return None


def codes_match(stored: Optional[str], supplied: Optional[str]) -> bool:
    if not stored or not supplied:
        return False
    return secrets.compare_digest(stored.encode(), supplied.encode())


async def require_admin(
    request: Request,
    x_admin_code: Optional[str] = Header(None),
    db: AsyncSession = Depends(get_db),
) -> str:
    """
    Raises:
        AuthenticationError: 401 if no code was supplied
        InvalidAdminCodeError: 403 if the code does not match
    """
    code = x_admin_code or await _code_from_body(request) or request.query_params.get("adminCode")
    if not code:
        raise AuthenticationError()

    if not codes_match(await get_admin_code(db), code):
        raise InvalidAdminCodeError()
    return code
