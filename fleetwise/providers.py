# fleetwise/fleetwise/providers.py
"""
External directions and geocoding providers (Google Maps web services).

The engine only orchestrates and interprets provider output; it never solves
shortest paths itself. Every call carries a timeout and a bounded retry on
transient failures. Anything that goes wrong is raised as ProviderError so the
caller can decide whether a fallback exists.

Note:
    Google expects "lat,lng" ordering (unlike OSRM's lng,lat).
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .config import ProviderConfig
from .exceptions import ProviderError
from .models import GeocodeResult, GeoPoint, RouteLeg, RouteOption, WaypointRoute

logger = logging.getLogger(__name__)

# 525 = Cloudflare SSL handshake failed, a transient infrastructure hiccup
RETRY_STATUSES: Tuple[int, ...] = (500, 502, 503, 504, 525)


class DirectionsProvider(Protocol):
    """What the engine needs from a directions service."""

    def optimize_waypoints(
        self, origin: GeoPoint, waypoints: Sequence[GeoPoint], destination: Optional[GeoPoint] = None
    ) -> WaypointRoute:
        ...

    def routes(self, origin: GeoPoint, destination: GeoPoint) -> List[RouteOption]:
        ...


class GeocodingProvider(Protocol):
    def geocode(self, address: str) -> GeocodeResult:
        ...

    def reverse_geocode(self, point: GeoPoint) -> str:
        ...


def create_retry_session(retries: int = 3, backoff_factor: float = 0.5) -> requests.Session:
    """Create a requests session that retries transient provider failures."""
    session = requests.Session()
    retry = Retry(
        total=retries,
        read=retries,
        connect=retries,
        backoff_factor=backoff_factor,
        status_forcelist=RETRY_STATUSES,
        allowed_methods=["GET"],
    )
    adapter = HTTPAdapter(max_retries=retry)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    return session


class GoogleMapsClient:
    """Shared HTTP plumbing: key handling, timeout, status checking."""

    def __init__(
        self,
        config: Optional[ProviderConfig] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.config = config or ProviderConfig.from_env()
        self.session = session or create_retry_session(
            retries=self.config.retries, backoff_factor=self.config.backoff_factor
        )

    def _get(self, url: str, params: Dict[str, Any]) -> Dict[str, Any]:
        if not self.config.api_key:
            raise ProviderError("Google Maps API key not configured", status="NO_KEY")

        try:
            response = self.session.get(
                url,
                params={**params, "key": self.config.api_key},
                timeout=self.config.timeout_seconds,
            )
            response.raise_for_status()
            data = response.json()
        except requests.exceptions.Timeout as e:
            raise ProviderError(f"Provider request timed out after {self.config.timeout_seconds}s",
                                status="TIMEOUT") from e
        except requests.exceptions.RequestException as e:
            raise ProviderError(f"Provider request failed: {e}", status="HTTP_ERROR") from e
        except ValueError as e:
            raise ProviderError(f"Provider returned invalid JSON: {e}", status="INVALID_RESPONSE") from e

        status = data.get("status")
        if status != "OK":
            message = data.get("error_message") or status or "Unknown error"
            logger.warning(f"Provider returned {status}: {message}")
            raise ProviderError(f"Provider error: {message}", status=status)
        return data


class GoogleDirectionsProvider(GoogleMapsClient):
    """
    Directions API adapter.

    Single origin/destination lookups are cached (rounded coordinates, bounded
    size) since planned distances are requested repeatedly for the same pairs.
    """

    def __init__(
        self,
        config: Optional[ProviderConfig] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        super().__init__(config, session)
        self._route_cache: Dict[Tuple[float, float, float, float], List[RouteOption]] = {}

    def optimize_waypoints(
        self,
        origin: GeoPoint,
        waypoints: Sequence[GeoPoint],
        destination: Optional[GeoPoint] = None,
    ) -> WaypointRoute:
        """
        Ask the provider for the best visiting order of `waypoints`.

        Args:
            origin: Route start
            waypoints: Stops to visit, in the caller's original order
            destination: Route end (defaults to origin: a round trip)

        Returns:
            WaypointRoute with the permutation of waypoint indices and per-leg
            distance (km) / duration (minutes)
        """
        destination = destination or origin
        params = {
            "origin": origin.to_query(),
            "destination": destination.to_query(),
            "waypoints": "optimize:true|" + "|".join(p.to_query() for p in waypoints),
        }
        logger.debug(f"Requesting optimized route for {len(waypoints)} waypoints")
        data = self._get(self.config.directions_url, params)

        routes = data.get("routes") or []
        if not routes:
            raise ProviderError("No routes returned from provider", status="ZERO_RESULTS")
        route = routes[0]

        try:
            legs = [
                RouteLeg(
                    distance_km=leg["distance"]["value"] / 1000,  # meters -> km
                    duration_minutes=leg["duration"]["value"] / 60,  # seconds -> minutes
                )
                for leg in route.get("legs", [])
            ]
        except (KeyError, TypeError) as e:
            raise ProviderError(f"Provider response parsing failed: {e}",
                                status="INVALID_RESPONSE") from e

        waypoint_order = route.get("waypoint_order")
        if waypoint_order is None:
            waypoint_order = list(range(len(waypoints)))
        return WaypointRoute(waypoint_order=list(waypoint_order), legs=legs)

    def routes(self, origin: GeoPoint, destination: GeoPoint) -> List[RouteOption]:
        """
        Route alternatives between two points, with live-traffic durations.

        The fastest (by traffic duration) and shortest (by distance) options
        are marked. The first option is the provider's primary route.
        """
        cache_key = (
            round(origin.latitude, 5), round(origin.longitude, 5),
            round(destination.latitude, 5), round(destination.longitude, 5),
        )
        if cache_key in self._route_cache:
            return self._route_cache[cache_key]

        params = {
            "origin": origin.to_query(),
            "destination": destination.to_query(),
            "departure_time": "now",
            "traffic_model": "best_guess",
            "alternatives": "true",
        }
        data = self._get(self.config.directions_url, params)
        raw_routes = data.get("routes") or []
        if not raw_routes:
            raise ProviderError("Route not found", status="ZERO_RESULTS")

        options: List[RouteOption] = []
        try:
            for index, route in enumerate(raw_routes):
                leg = route["legs"][0]
                duration = round(leg["duration"]["value"] / 60)
                traffic = leg.get("duration_in_traffic")
                options.append(RouteOption(
                    route_index=index,
                    distance_km=round(leg["distance"]["value"] / 1000, 2),
                    duration_minutes=duration,
                    traffic_duration_minutes=round(traffic["value"] / 60) if traffic else duration,
                    summary=route.get("summary") or f"Route {index + 1}",
                ))
        except (KeyError, IndexError, TypeError) as e:
            raise ProviderError(f"Provider response parsing failed: {e}",
                                status="INVALID_RESPONSE") from e

        min(options, key=lambda o: o.traffic_duration_minutes).is_fastest = True
        min(options, key=lambda o: o.distance_km).is_shortest = True

        # Enforce cache size limit by dropping the oldest 10%
        if len(self._route_cache) >= self.config.cache_size:
            for key in list(self._route_cache.keys())[:max(1, self.config.cache_size // 10)]:
                del self._route_cache[key]
        self._route_cache[cache_key] = options
        return options

    def clear_cache(self) -> int:
        """Clear the route cache. Returns the number of entries removed."""
        count = len(self._route_cache)
        self._route_cache.clear()
        return count


class GoogleGeocodingProvider(GoogleMapsClient):
    """Geocoding API adapter: address <-> coordinates."""

    def geocode(self, address: str) -> GeocodeResult:
        """
        Resolve a free-text address.

        Raises:
            ProviderError: If the address cannot be found
        """
        if not address or not address.strip():
            raise ProviderError("Address is empty", status="INVALID_REQUEST")
        data = self._get(self.config.geocode_url, {"address": address})
        results = data.get("results") or []
        if not results:
            raise ProviderError(f"Address not found: {address}", status="ZERO_RESULTS")
        try:
            loc = results[0]["geometry"]["location"]
            return GeocodeResult(
                point=GeoPoint(float(loc["lat"]), float(loc["lng"])),
                formatted_address=results[0].get("formatted_address", address),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ProviderError(f"Geocoding response parsing failed: {e}",
                                status="INVALID_RESPONSE") from e

    def reverse_geocode(self, point: GeoPoint) -> str:
        """
        Human-readable address for a point.

        Falls back to a "lat, lng" string when the provider cannot answer.
        """
        try:
            data = self._get(self.config.geocode_url, {"latlng": point.to_query()})
            results = data.get("results") or []
            if results and results[0].get("formatted_address"):
                return results[0]["formatted_address"]
        except ProviderError as e:
            logger.debug(f"Reverse geocoding failed, using coordinates: {e}")
        return f"{point.latitude:.4f}, {point.longitude:.4f}"
