"""
FastAPI dependencies for the long-lived services built at startup.

The services live on `app.state`; tests replace them through
`app.dependency_overrides`.
"""

from fastapi import Request

from tracker.app.services.position_store import FallbackPositionStore
from tracker.app.services.routing import RoutingClient
from tracker.app.services.segments import SegmentCache
from tracker.app.services.twitch import TwitchStatusService


def get_position_store(request: Request) -> FallbackPositionStore:
    return request.app.state.position_store


def get_segment_cache(request: Request) -> SegmentCache:
    return request.app.state.segment_cache


def get_routing_client(request: Request) -> RoutingClient:
    return request.app.state.routing_client


def get_twitch_service(request: Request) -> TwitchStatusService:
    return request.app.state.twitch_service
