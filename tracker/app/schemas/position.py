"""
Position schemas.
"""

from pydantic import BaseModel, Field
from typing import Optional, Union


class PositionRecord(BaseModel):
    """A position as returned by either backend."""
    id: Union[int, str]
    streamer: str
    lat: float
    lng: float
    created_at: str
    # which backend produced the record ("sql" or "document"); never serialized
    backend: Optional[str] = Field(default=None, exclude=True)


class PositionCreate(BaseModel):
    """Body of POST /api/positions; `time` may be HH:MM or a full ISO string."""
    lat: Optional[float] = None
    lng: Optional[float] = None
    date: Optional[str] = None
    time: Optional[str] = None
    adminCode: Optional[str] = None


class PositionPatch(BaseModel):
    lat: Optional[float] = None
    lng: Optional[float] = None
    date: Optional[str] = None
    time: Optional[str] = None
    adminCode: Optional[str] = None


class PositionCreatedResponse(BaseModel):
    ok: bool = True
    id: Union[int, str]
    created_at: str


class PlaceRequest(BaseModel):
    name: Optional[str] = None
    adminCode: Optional[str] = None
