"""
Tests for the walking directions client, using httpx.MockTransport.
"""

import httpx
import pytest

from tracker.app.services.routing import RoutingClient, RoutingError, straight_line


OSRM_OK = {
    "code": "Ok",
    "routes": [{
        "geometry": {"coordinates": [[3.88, 43.61], [3.90, 43.62], [3.95, 43.63]]},
        "distance": 6500.0,
        "duration": 4680.0,
    }],
}

ORS_OK = {
    "features": [{
        "geometry": {"coordinates": [[3.88, 43.61], [3.95, 43.63]]},
        "properties": {"summary": {"distance": 6200.0, "duration": 4500.0}},
    }],
}


def make_client(handler, api_key=None):
    return RoutingClient(api_key=api_key, transport=httpx.MockTransport(handler), timeout_ms=2000)


@pytest.mark.asyncio
async def test_osrm_route_is_normalized():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json=OSRM_OK)

    route = await make_client(handler).get_walking_route(43.61, 3.88, 43.63, 3.95)

    assert route.source == "osrm"
    assert route.geometry[0] == [3.88, 43.61]
    assert route.distance_km == 6.5
    assert route.duration_min == 78.0
    assert "/route/v1/foot/3.88,43.61;3.95,43.63" in seen[0].url.path
    assert seen[0].url.params["geometries"] == "geojson"


@pytest.mark.asyncio
async def test_ors_is_used_when_key_configured():
    def handler(request):
        assert request.method == "POST"
        assert request.headers["Authorization"] == "secret-key"
        return httpx.Response(200, json=ORS_OK)

    route = await make_client(handler, api_key="secret-key").get_walking_route(43.61, 3.88, 43.63, 3.95)

    assert route.source == "ors"
    assert route.distance_km == 6.2
    assert route.duration_min == 75.0


@pytest.mark.asyncio
async def test_ors_failure_falls_through_to_osrm():
    def handler(request):
        if request.url.path.endswith("/geojson"):
            return httpx.Response(500, json={"error": "boom"})
        return httpx.Response(200, json=OSRM_OK)

    route = await make_client(handler, api_key="secret-key").get_walking_route(43.61, 3.88, 43.63, 3.95)

    assert route.source == "osrm"


@pytest.mark.asyncio
async def test_ors_empty_geometry_falls_through():
    def handler(request):
        if request.url.path.endswith("/geojson"):
            return httpx.Response(200, json={"features": [{"geometry": {"coordinates": []}}]})
        return httpx.Response(200, json=OSRM_OK)

    route = await make_client(handler, api_key="k").get_walking_route(43.61, 3.88, 43.63, 3.95)

    assert route.source == "osrm"


@pytest.mark.asyncio
async def test_osrm_failure_raises_routing_error():
    def handler(request):
        return httpx.Response(200, json={"code": "NoRoute", "message": "Impossible route"})

    with pytest.raises(RoutingError):
        await make_client(handler).get_walking_route(43.61, 3.88, 43.63, 3.95)


@pytest.mark.asyncio
async def test_osrm_network_error_raises_routing_error():
    def handler(request):
        raise httpx.ConnectError("unreachable", request=request)

    with pytest.raises(RoutingError):
        await make_client(handler).get_walking_route(43.61, 3.88, 43.63, 3.95)


def test_straight_line_shape():
    route = straight_line(0, 0, 0, 1)
    assert route.geometry == [[0, 0], [1, 0]]
    assert route.distance_km == pytest.approx(111.19, rel=0.005)
    assert route.duration_min is None
    assert route.source == "straight"
