"""
Planned route and meta schemas.
"""

from pydantic import BaseModel
from typing import Optional


class RouteStopResponse(BaseModel):
    id: int
    seq: int
    name: str
    lat: float
    lng: float
    arrival_time: Optional[str] = None

    class Config:
        from_attributes = True


class ArrivalRequest(BaseModel):
    name: Optional[str] = None
    time: Optional[str] = None
    adminCode: Optional[str] = None


class VerifyRequest(BaseModel):
    code: Optional[str] = None
