"""HTTP clients for the mapping providers that answer route lookups."""

from __future__ import annotations

import logging
import time
from typing import Any, Protocol

import httpx

from ...config import Settings, settings
from ...errors import RouteUnavailableError
from ...models.domain import Location
from .models import RouteLeg

GOOGLE_DIRECTIONS_URL = "https://maps.googleapis.com/maps/api/directions/json"

logger = logging.getLogger(__name__)


class MapsClient(Protocol):
    """Anything that can turn an origin/destination pair into a route leg."""

    def directions(self, origin: Location, destination: Location) -> RouteLeg:
        ...


class _HTTPMapsClient:
    """Shared request loop; subclasses build the URL and parse the payload."""

    provider = "maps"

    def __init__(
        self,
        base_url: str | None,
        timeout: float | None = None,
        max_retries: int | None = None,
        backoff_seconds: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base_url = base_url
        self.timeout = timeout if timeout is not None else settings.maps_timeout_seconds
        self.max_retries = max_retries if max_retries is not None else settings.maps_max_retries
        self.backoff_seconds = backoff_seconds if backoff_seconds is not None else settings.maps_backoff_seconds
        self._transport = transport

    def _get_client(self) -> httpx.Client:
        return httpx.Client(
            timeout=httpx.Timeout(self.timeout, connect=min(self.timeout, 3.0)),
            transport=self._transport,
        )

    def _get_json(self, url: str, params: dict[str, str]) -> dict[str, Any]:
        client = self._get_client()
        try:
            attempt = 0
            while True:
                try:
                    response = client.get(url, params=params)
                    response.raise_for_status()
                    return response.json()
                except httpx.TimeoutException as e:
                    attempt += 1
                    if attempt > self.max_retries:
                        logger.warning(f"{self.provider} request timed out after {self.timeout:.1f}s: {e}")
                        raise RouteUnavailableError(
                            f"{self.provider} did not answer within {self.timeout:.1f}s."
                        ) from e
                    time.sleep(self.backoff_seconds * attempt)
                except httpx.HTTPStatusError as e:
                    attempt += 1
                    # only 5xx is retried
                    if e.response.status_code < 500 or attempt > self.max_retries:
                        raise RouteUnavailableError(
                            f"{self.provider} returned HTTP {e.response.status_code}."
                        ) from e
                    time.sleep(self.backoff_seconds * attempt)
                except (httpx.HTTPError, OSError) as e:
                    attempt += 1
                    if attempt > self.max_retries:
                        raise RouteUnavailableError(
                            f"Failed to reach {self.provider} at {self.base_url}: {e}"
                        ) from e
                    time.sleep(self.backoff_seconds * attempt)
                except ValueError as e:
                    raise RouteUnavailableError(f"{self.provider} returned a malformed response.") from e
        finally:
            client.close()


class GoogleDirectionsClient(_HTTPMapsClient):
    """Google Directions API; accepts street addresses or "lat,lon" strings."""

    provider = "Google Directions"

    def __init__(self, api_key: str | None = None, base_url: str | None = None, **kwargs: Any) -> None:
        super().__init__(base_url or settings.maps_base_url or GOOGLE_DIRECTIONS_URL, **kwargs)
        self.api_key = api_key or settings.maps_api_key
        if not self.api_key:
            raise ValueError("Google Directions API key is not configured.")

    def directions(self, origin: Location, destination: Location) -> RouteLeg:
        params = {
            "origin": origin.as_query(),
            "destination": destination.as_query(),
            "key": self.api_key,
        }
        data = self._get_json(self.base_url, params)

        status = data.get("status", "OK")
        routes = data.get("routes") or []
        if status != "OK" or not routes or not routes[0].get("legs"):
            raise RouteUnavailableError(
                f"No route data from Google Directions (status {status}): "
                f"{data.get('error_message', 'empty result')}"
            )
        route = routes[0]
        leg = route["legs"][0]
        try:
            return RouteLeg(
                distance_meters=int(leg["distance"]["value"]),
                duration_seconds=int(leg["duration"]["value"]),
                polyline=route.get("overview_polyline", {}).get("points", ""),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise RouteUnavailableError("Google Directions leg is missing distance or duration.") from e


class OSRMRouteClient(_HTTPMapsClient):
    """OSRM ``/route`` endpoint; both ends must carry coordinates."""

    provider = "OSRM"

    def __init__(self, base_url: str | None = None, profile: str | None = None, **kwargs: Any) -> None:
        super().__init__(base_url or settings.maps_base_url, **kwargs)
        if not self.base_url:
            raise ValueError("OSRM base URL is not configured.")
        self.base_url = self.base_url.rstrip("/")
        self.profile = profile or settings.maps_profile

    def directions(self, origin: Location, destination: Location) -> RouteLeg:
        if not (origin.has_coordinates and destination.has_coordinates):
            raise RouteUnavailableError("OSRM routing needs latitude/longitude for both locations.")

        # OSRM route endpoint expects coordinates as "lon,lat;lon,lat"
        coordinate_str = ";".join(
            f"{point.longitude},{point.latitude}" for point in (origin, destination)
        )
        params = {
            "overview": "full",
            "geometries": "polyline",
            "steps": "false",
        }
        url = f"{self.base_url}/route/v1/{self.profile}/{coordinate_str}"
        data = self._get_json(url, params)

        if data.get("code") != "Ok" or not data.get("routes"):
            error_msg = data.get("message", "Unknown OSRM route error")
            raise RouteUnavailableError(f"OSRM route request failed: {error_msg}")
        route = data["routes"][0]
        try:
            return RouteLeg(
                distance_meters=int(round(float(route["distance"]))),
                duration_seconds=int(round(float(route["duration"]))),
                polyline=route.get("geometry") or "",
            )
        except (KeyError, TypeError, ValueError) as e:
            raise RouteUnavailableError("OSRM route is missing distance or duration.") from e


def build_maps_client(config: Settings | None = None) -> MapsClient:
    """Create the mapping client selected by ``maps_provider``."""
    config = config or settings
    common = {
        "timeout": config.maps_timeout_seconds,
        "max_retries": config.maps_max_retries,
        "backoff_seconds": config.maps_backoff_seconds,
    }
    if config.maps_provider == "osrm":
        return OSRMRouteClient(base_url=config.maps_base_url, profile=config.maps_profile, **common)
    return GoogleDirectionsClient(api_key=config.maps_api_key, base_url=config.maps_base_url, **common)


def check_health(client: MapsClient | None) -> bool:
    """Probe the mapping provider with a short fixed route.

    Public endpoints do not expose a health route, so we ask for directions
    between two nearby points instead.
    """
    if client is None:
        return False
    try:
        client.directions(
            Location(latitude=52.517037, longitude=13.388860),
            Location(latitude=52.496891, longitude=13.385983),
        )
        return True
    except RouteUnavailableError:
        return False
