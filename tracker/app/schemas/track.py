"""
Walking route and segment schemas.
"""

from pydantic import BaseModel
from typing import List, Optional, Union


class RouteResult(BaseModel):
    """Canonical routed path: geometry is always [lng, lat] pairs."""
    geometry: List[List[float]]
    distance_km: Optional[float] = None
    duration_min: Optional[float] = None
    source: str


class Segment(BaseModel):
    """Cached walking path between two positions, keyed `from__to`."""
    key: str
    from_id: Union[int, str]
    to_id: Union[int, str]
    geometry: List[List[float]]
    distance_km: Optional[float] = None
    duration_min: Optional[float] = None
    source: str


class RebuildReport(BaseModel):
    created: int = 0
    skipped: int = 0
    failed: int = 0
