import httpx
import pytest

from dispatch.config import Settings
from dispatch.errors import RouteUnavailableError
from dispatch.models.domain import Location
from dispatch.services.routing.maps_client import (
    GoogleDirectionsClient,
    OSRMRouteClient,
    build_maps_client,
    check_health,
)

ORIGIN = Location(latitude=21.5, longitude=39.2)
DESTINATION = Location(street_address="King Road, Jeddah")


def _google(handler, **kwargs) -> GoogleDirectionsClient:
    return GoogleDirectionsClient(
        api_key="test-key",
        transport=httpx.MockTransport(handler),
        max_retries=0,
        **kwargs,
    )


def test_google_directions_parses_first_leg() -> None:
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen.update(request.url.params)
        return httpx.Response(
            200,
            json={
                "status": "OK",
                "routes": [
                    {
                        "overview_polyline": {"points": "_p~iF~ps|U"},
                        "legs": [{"distance": {"value": 1520}, "duration": {"value": 410}}],
                    }
                ],
            },
        )

    leg = _google(handler).directions(ORIGIN, DESTINATION)

    assert leg.distance_meters == 1520
    assert leg.duration_seconds == 410
    assert leg.polyline == "_p~iF~ps|U"
    assert seen["origin"] == "21.5,39.2"
    assert seen["destination"] == "King Road, Jeddah"
    assert seen["key"] == "test-key"


def test_google_empty_routes_is_unavailable() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"status": "ZERO_RESULTS", "routes": []})

    with pytest.raises(RouteUnavailableError):
        _google(handler).directions(ORIGIN, DESTINATION)


def test_google_http_error_is_unavailable() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, text="busy")

    with pytest.raises(RouteUnavailableError):
        _google(handler).directions(ORIGIN, DESTINATION)


def test_timeout_is_unavailable_after_retries() -> None:
    attempts = []

    def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(request)
        raise httpx.ReadTimeout("timed out", request=request)

    client = GoogleDirectionsClient(
        api_key="test-key",
        transport=httpx.MockTransport(handler),
        max_retries=2,
        backoff_seconds=0,
    )
    with pytest.raises(RouteUnavailableError):
        client.directions(ORIGIN, DESTINATION)
    assert len(attempts) == 3


def test_client_error_is_not_retried() -> None:
    attempts = []

    def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(request)
        return httpx.Response(403, json={"error_message": "The provided API key is invalid."})

    client = GoogleDirectionsClient(
        api_key="bad-key",
        transport=httpx.MockTransport(handler),
        max_retries=2,
        backoff_seconds=0,
    )
    with pytest.raises(RouteUnavailableError, match="403"):
        client.directions(ORIGIN, DESTINATION)
    assert len(attempts) == 1


def test_server_error_is_retried() -> None:
    attempts = []

    def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(request)
        return httpx.Response(502, text="bad gateway")

    client = GoogleDirectionsClient(
        api_key="test-key",
        transport=httpx.MockTransport(handler),
        max_retries=2,
        backoff_seconds=0,
    )
    with pytest.raises(RouteUnavailableError):
        client.directions(ORIGIN, DESTINATION)
    assert len(attempts) == 3


def test_google_requires_api_key(monkeypatch) -> None:
    from dispatch.services.routing import maps_client

    monkeypatch.setattr(maps_client.settings, "maps_api_key", None)
    with pytest.raises(ValueError):
        GoogleDirectionsClient(api_key=None)


def test_osrm_route_parses_geometry() -> None:
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        return httpx.Response(
            200,
            json={"code": "Ok", "routes": [{"distance": 1234.6, "duration": 98.4, "geometry": "abc"}]},
        )

    client = OSRMRouteClient(
        base_url="http://osrm.local/",
        profile="driving",
        transport=httpx.MockTransport(handler),
    )
    leg = client.directions(ORIGIN, Location(latitude=21.6, longitude=39.3))

    assert leg.distance_meters == 1235
    assert leg.duration_seconds == 98
    assert leg.polyline == "abc"
    assert seen["path"] == "/route/v1/driving/39.2,21.5;39.3,21.6"


def test_osrm_needs_coordinates() -> None:
    client = OSRMRouteClient(base_url="http://osrm.local", transport=httpx.MockTransport(lambda r: None))
    with pytest.raises(RouteUnavailableError):
        client.directions(ORIGIN, DESTINATION)


def test_osrm_error_code_is_unavailable() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"code": "NoRoute", "message": "Impossible route"})

    client = OSRMRouteClient(base_url="http://osrm.local", transport=httpx.MockTransport(handler))
    with pytest.raises(RouteUnavailableError):
        client.directions(ORIGIN, Location(latitude=21.6, longitude=39.3))


def test_build_maps_client_follows_provider_setting() -> None:
    config = Settings(_env_file=None, maps_provider="osrm", maps_base_url="http://osrm.local")
    assert isinstance(build_maps_client(config), OSRMRouteClient)

    config = Settings(_env_file=None, maps_provider="google", maps_api_key="k")
    assert isinstance(build_maps_client(config), GoogleDirectionsClient)


def test_check_health_reports_failures() -> None:
    class Broken:
        def directions(self, origin, destination):
            raise RouteUnavailableError("down")

    assert check_health(None) is False
    assert check_health(Broken()) is False
