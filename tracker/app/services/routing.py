"""
Walking directions client.

Sole responsibility: talk to the routing providers over HTTP and return a
normalized RouteResult whose geometry is always [lng, lat] pairs.

Tier 1: OpenRouteService (only when an API key is configured). Any failure
falls through to tier 2.
Tier 2: public OSRM foot router. Failures raise RoutingError; the
straight-line fallback is the caller's decision.
"""

import asyncio
import logging
from typing import List, Optional, Sequence, Tuple

import httpx

from tracker.app.core.config import Settings
from tracker.app.schemas.track import RouteResult
from tracker.app.services.coordinates import haversine_km

logger = logging.getLogger("tracker.routing")

# Internal coordinate type: (lat, lng)
LatLng = Tuple[float, float]

SOURCE_ORS = "ors"
SOURCE_OSRM = "osrm"
SOURCE_STRAIGHT = "straight"


class RoutingError(Exception):
    """Raised when no routing provider could produce a path."""


def straight_line(a_lat: float, a_lng: float, b_lat: float, b_lng: float) -> RouteResult:
    """Two-point path with a haversine distance and no duration."""
    return RouteResult(
        geometry=[[a_lng, a_lat], [b_lng, b_lat]],
        distance_km=round(haversine_km(a_lat, a_lng, b_lat, b_lng), 3),
        duration_min=None,
        source=SOURCE_STRAIGHT,
    )


def _validated_geometry(coordinates) -> List[List[float]]:
    if not isinstance(coordinates, list) or len(coordinates) < 2:
        raise ValueError("route geometry has fewer than two points")
    return [[float(point[0]), float(point[1])] for point in coordinates]


class RoutingClient:
    """
    Routing adapter.

    `transport` lets tests plug an httpx.MockTransport in place of the network.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        ors_base_url: str = "https://api.openrouteservice.org",
        osrm_base_url: str = "https://routing.openstreetmap.de/routed-foot",
        avoid_features: Optional[Sequence[str]] = None,
        timeout_ms: int = 9000,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.ors_base_url = ors_base_url.rstrip("/")
        self.osrm_base_url = osrm_base_url.rstrip("/")
        self.avoid_features = list(avoid_features or [])
        self.timeout_ms = timeout_ms
        self._transport = transport

    @classmethod
    def from_settings(cls, config: Settings) -> "RoutingClient":
        return cls(
            api_key=config.ors_api_key,
            ors_base_url=config.ors_base_url,
            osrm_base_url=config.osrm_base_url,
            avoid_features=config.ors_avoid_features,
            timeout_ms=config.routing_timeout_ms,
        )

    def _client(self, timeout_s: float) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=timeout_s, transport=self._transport)

    @staticmethod
    def format_coordinates(points: Sequence[LatLng]) -> str:
        """Convert (lat, lng) points to the OSRM 'lng,lat;lng,lat' form."""
        return ";".join(f"{lng},{lat}" for lat, lng in points)

    async def get_walking_route(
        self,
        a_lat: float,
        a_lng: float,
        b_lat: float,
        b_lng: float,
        timeout_ms: Optional[int] = None,
    ) -> RouteResult:
        timeout_s = (timeout_ms or self.timeout_ms) / 1000

        if self.api_key:
            try:
                return await asyncio.wait_for(
                    self._ors_route(a_lat, a_lng, b_lat, b_lng, timeout_s), timeout_s
                )
            except asyncio.TimeoutError:
                logger.warning("ORS timed out after %.1fs, trying OSRM", timeout_s)
            except Exception as exc:
                logger.warning("ORS routing failed (%s), trying OSRM", exc)

        try:
            return await asyncio.wait_for(
                self._osrm_route(a_lat, a_lng, b_lat, b_lng, timeout_s), timeout_s
            )
        except asyncio.TimeoutError as exc:
            raise RoutingError(f"OSRM timed out after {timeout_s:.1f}s") from exc
        except (httpx.HTTPError, ValueError, KeyError, IndexError, TypeError) as exc:
            raise RoutingError(f"OSRM routing failed: {exc}") from exc

    async def _ors_route(self, a_lat, a_lng, b_lat, b_lng, timeout_s: float) -> RouteResult:
        url = f"{self.ors_base_url}/v2/directions/foot-walking/geojson"
        body = {
            "coordinates": [[a_lng, a_lat], [b_lng, b_lat]],
            "preference": "shortest",
        }
        if self.avoid_features:
            body["options"] = {"avoid_features": self.avoid_features}

        async with self._client(timeout_s) as client:
            response = await client.post(
                url,
                json=body,
                headers={"Authorization": self.api_key, "Accept": "application/geo+json"},
            )
        response.raise_for_status()
        data = response.json()

        feature = data["features"][0]
        summary = feature.get("properties", {}).get("summary", {})
        distance_m = summary.get("distance")
        duration_s = summary.get("duration")
        return RouteResult(
            geometry=_validated_geometry(feature["geometry"]["coordinates"]),
            distance_km=round(distance_m / 1000, 3) if distance_m is not None else None,
            duration_min=round(duration_s / 60, 1) if duration_s is not None else None,
            source=SOURCE_ORS,
        )

    async def _osrm_route(self, a_lat, a_lng, b_lat, b_lng, timeout_s: float) -> RouteResult:
        coordinates = self.format_coordinates([(a_lat, a_lng), (b_lat, b_lng)])
        url = f"{self.osrm_base_url}/route/v1/foot/{coordinates}"

        async with self._client(timeout_s) as client:
            response = await client.get(url, params={"overview": "full", "geometries": "geojson"})
        response.raise_for_status()
        data = response.json()

        if data.get("code") != "Ok":
            raise ValueError(f"OSRM error: {data.get('message', data.get('code', 'Unknown error'))}")

        route = data["routes"][0]
        return RouteResult(
            geometry=_validated_geometry(route["geometry"]["coordinates"]),
            distance_km=round(route["distance"] / 1000, 3),
            duration_min=round(route["duration"] / 60, 1),
            source=SOURCE_OSRM,
        )
