"""
Google Maps adapter tests against a mocked requests session.
"""

from unittest.mock import MagicMock

import pytest
import requests

from fleetwise.config import ProviderConfig
from fleetwise.exceptions import ProviderError
from fleetwise.models import GeoPoint
from fleetwise.providers import (
    RETRY_STATUSES,
    GoogleDirectionsProvider,
    GoogleGeocodingProvider,
    create_retry_session,
)

ORIGIN = GeoPoint(12.9716, 77.5946)
DEST = GeoPoint(12.9352, 77.6245)


def session_returning(payload):
    response = MagicMock()
    response.json.return_value = payload
    response.raise_for_status.return_value = None
    session = MagicMock()
    session.get.return_value = response
    return session


@pytest.fixture
def provider_config():
    return ProviderConfig(api_key="test-key", timeout_seconds=5.0)


# =============================================================================
# SESSION / PLUMBING
# =============================================================================

def test_retry_session_retries_transient_statuses():
    session = create_retry_session(retries=2, backoff_factor=0.1)
    retry = session.get_adapter("https://maps.googleapis.com").max_retries
    assert retry.total == 2
    assert 525 in retry.status_forcelist
    assert set(RETRY_STATUSES) <= set(retry.status_forcelist)


def test_missing_api_key_fails_without_a_request():
    session = MagicMock()
    provider = GoogleDirectionsProvider(ProviderConfig(api_key=None), session=session)
    with pytest.raises(ProviderError) as exc:
        provider.routes(ORIGIN, DEST)
    assert exc.value.status == "NO_KEY"
    session.get.assert_not_called()


def test_timeout_is_reported(provider_config):
    session = MagicMock()
    session.get.side_effect = requests.exceptions.Timeout("slow")
    provider = GoogleDirectionsProvider(provider_config, session=session)
    with pytest.raises(ProviderError) as exc:
        provider.optimize_waypoints(ORIGIN, [DEST])
    assert exc.value.status == "TIMEOUT"
    assert session.get.call_args.kwargs["timeout"] == 5.0


def test_connection_error_is_reported(provider_config):
    session = MagicMock()
    session.get.side_effect = requests.exceptions.ConnectionError("refused")
    provider = GoogleDirectionsProvider(provider_config, session=session)
    with pytest.raises(ProviderError) as exc:
        provider.routes(ORIGIN, DEST)
    assert exc.value.status == "HTTP_ERROR"


def test_non_ok_status_carries_provider_message(provider_config):
    session = session_returning({"status": "REQUEST_DENIED", "error_message": "The provided API key is invalid."})
    provider = GoogleDirectionsProvider(provider_config, session=session)
    with pytest.raises(ProviderError) as exc:
        provider.routes(ORIGIN, DEST)
    assert exc.value.status == "REQUEST_DENIED"
    assert "API key is invalid" in str(exc.value)


# =============================================================================
# WAYPOINT OPTIMIZATION
# =============================================================================

def test_optimize_waypoints_parses_order_and_legs(provider_config):
    session = session_returning({
        "status": "OK",
        "routes": [{
            "waypoint_order": [1, 0],
            "legs": [
                {"distance": {"value": 2500}, "duration": {"value": 300}},
                {"distance": {"value": 1000}, "duration": {"value": 90}},
                {"distance": {"value": 4000}, "duration": {"value": 600}},
            ],
        }],
    })
    provider = GoogleDirectionsProvider(provider_config, session=session)

    route = provider.optimize_waypoints(ORIGIN, [DEST, GeoPoint(12.95, 77.60)])

    assert route.waypoint_order == [1, 0]
    assert [leg.distance_km for leg in route.legs] == [2.5, 1.0, 4.0]
    assert [leg.duration_minutes for leg in route.legs] == [5.0, 1.5, 10.0]

    params = session.get.call_args.kwargs["params"]
    assert params["origin"] == "12.971600,77.594600"
    assert params["destination"] == params["origin"]
    assert params["waypoints"] == "optimize:true|12.935200,77.624500|12.950000,77.600000"
    assert params["key"] == "test-key"


def test_optimize_waypoints_without_routes(provider_config):
    provider = GoogleDirectionsProvider(provider_config, session=session_returning({"status": "OK", "routes": []}))
    with pytest.raises(ProviderError) as exc:
        provider.optimize_waypoints(ORIGIN, [DEST])
    assert exc.value.status == "ZERO_RESULTS"


def test_optimize_waypoints_malformed_leg(provider_config):
    session = session_returning({"status": "OK", "routes": [{"legs": [{"distance": {}}]}]})
    provider = GoogleDirectionsProvider(provider_config, session=session)
    with pytest.raises(ProviderError) as exc:
        provider.optimize_waypoints(ORIGIN, [DEST])
    assert exc.value.status == "INVALID_RESPONSE"


# =============================================================================
# ROUTE ALTERNATIVES
# =============================================================================

ROUTES_PAYLOAD = {
    "status": "OK",
    "routes": [
        {
            "summary": "Outer Ring Rd",
            "legs": [{
                "distance": {"value": 12340},
                "duration": {"value": 1500},
                "duration_in_traffic": {"value": 1800},
            }],
        },
        {
            "summary": "",
            "legs": [{
                "distance": {"value": 13000},
                "duration": {"value": 1620},
            }],
        },
    ],
}


def test_routes_marks_fastest_and_shortest(provider_config):
    provider = GoogleDirectionsProvider(provider_config, session=session_returning(ROUTES_PAYLOAD))

    options = provider.routes(ORIGIN, DEST)

    primary, alternative = options
    assert primary.distance_km == 12.34
    assert primary.duration_minutes == 25
    assert primary.traffic_duration_minutes == 30
    assert primary.traffic_delay_minutes == 5
    assert primary.summary == "Outer Ring Rd"
    assert primary.is_shortest is True
    assert primary.is_fastest is False

    assert alternative.duration_minutes == 27
    assert alternative.traffic_duration_minutes == 27
    assert alternative.summary == "Route 2"
    assert alternative.is_fastest is True


def test_routes_are_cached_per_rounded_pair(provider_config):
    session = session_returning(ROUTES_PAYLOAD)
    provider = GoogleDirectionsProvider(provider_config, session=session)

    provider.routes(ORIGIN, DEST)
    provider.routes(GeoPoint(12.971600001, 77.5946), DEST)
    assert session.get.call_count == 1

    assert provider.clear_cache() == 1
    provider.routes(ORIGIN, DEST)
    assert session.get.call_count == 2


def test_route_cache_is_bounded():
    config = ProviderConfig(api_key="test-key", cache_size=10)
    provider = GoogleDirectionsProvider(config, session=session_returning(ROUTES_PAYLOAD))
    for i in range(25):
        provider.routes(GeoPoint(12.0 + i * 0.01, 77.0), DEST)
    assert len(provider._route_cache) <= 10


# =============================================================================
# GEOCODING
# =============================================================================

def test_geocode(provider_config):
    session = session_returning({
        "status": "OK",
        "results": [{
            "formatted_address": "MG Road, Bengaluru",
            "geometry": {"location": {"lat": 12.9756, "lng": 77.6066}},
        }],
    })
    result = GoogleGeocodingProvider(provider_config, session=session).geocode("MG Road")
    assert result.point == GeoPoint(12.9756, 77.6066)
    assert result.formatted_address == "MG Road, Bengaluru"


def test_geocode_rejects_empty_address(provider_config):
    session = MagicMock()
    with pytest.raises(ProviderError) as exc:
        GoogleGeocodingProvider(provider_config, session=session).geocode("   ")
    assert exc.value.status == "INVALID_REQUEST"
    session.get.assert_not_called()


def test_geocode_not_found(provider_config):
    session = session_returning({"status": "ZERO_RESULTS", "results": []})
    with pytest.raises(ProviderError) as exc:
        GoogleGeocodingProvider(provider_config, session=session).geocode("nowhere")
    assert exc.value.status == "ZERO_RESULTS"


def test_reverse_geocode_falls_back_to_coordinates(provider_config):
    session = session_returning({"status": "ZERO_RESULTS", "results": []})
    geocoder = GoogleGeocodingProvider(provider_config, session=session)
    assert geocoder.reverse_geocode(GeoPoint(12.97164, 77.59456)) == "12.9716, 77.5946"


def test_reverse_geocode(provider_config):
    session = session_returning({"status": "OK", "results": [{"formatted_address": "Cubbon Park"}]})
    geocoder = GoogleGeocodingProvider(provider_config, session=session)
    assert geocoder.reverse_geocode(ORIGIN) == "Cubbon Park"
    assert session.get.call_args.kwargs["params"]["latlng"] == "12.971600,77.594600"


def test_provider_config_from_env(monkeypatch):
    monkeypatch.setenv("GOOGLE_MAPS_API_KEY", "  env-key ")
    monkeypatch.setenv("FLEETWISE_PROVIDER_TIMEOUT", "2.5")
    cfg = ProviderConfig.from_env()
    assert cfg.api_key == "env-key"
    assert cfg.timeout_seconds == 2.5

    monkeypatch.setenv("FLEETWISE_PROVIDER_TIMEOUT", "soon")
    monkeypatch.delenv("GOOGLE_MAPS_API_KEY")
    cfg = ProviderConfig.from_env()
    assert cfg.api_key is None
    assert cfg.timeout_seconds == 10.0
