# fleetwise/fleetwise/config.py
"""
Configuration parameters for the Fleetwise route-efficiency engine.

This module centralizes all tunable policy thresholds, making it easy to:
- Adjust deviation flagging and idle-time detection
- Fine-tune en-route bundling and return-trip detection
- Configure the external directions/geocoding provider

The module-level constants are the documented defaults. The engine components
never read them directly: they receive one of the frozen config structs below
at construction, so thresholds can be tuned per deployment and in tests.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Dict, Final, Optional

# =============================================================================
# GEO CONSTANTS
# =============================================================================

EARTH_RADIUS_KM: Final[float] = 6371.0
"""Mean Earth radius used by the Haversine formula."""

# =============================================================================
# FUEL AND DEVIATION POLICY
# =============================================================================

FUEL_EFFICIENCY_KM_PER_LITER: Final[Dict[str, float]] = {
    "bike": 40.0,
    "car": 15.0,
    "van": 10.0,
    "truck": 6.0,
}
"""
Fuel efficiency table (km per liter) by vehicle class.
This is a policy constant, not physics: billing and anomaly flags depend on
these exact values.
"""

DEFAULT_KM_PER_LITER: Final[float] = 15.0
"""Efficiency used when the vehicle type is unknown or missing."""

DEVIATION_MARGIN_FRACTION: float = 0.20
"""
Allowed excess of actual over planned distance before an order is flagged.
0.20 means an order is flagged once it runs more than 20% over plan.
"""

IDLE_DISTANCE_THRESHOLD_M: float = 50.0
"""Consecutive fixes closer than this (meters) count as not moving."""

IDLE_TIME_THRESHOLD_MINS: float = 5.0
"""Minimum gap (minutes) between motionless fixes to count as idling."""

FUEL_PRICE_PER_LITER: float = 100.0
"""Average fuel price per liter, used for cost reports only."""

# =============================================================================
# EN-ROUTE MATCHING
# =============================================================================

ALONG_ROUTE_DETOUR_KM: float = 2.0
"""An order endpoint is 'along the route' if inserting it costs at most this detour."""

RETURN_TRIP_STRICT_KM: float = 3.0
"""Strict return trip: both mirrored endpoints within this distance."""

RETURN_TRIP_PERFECT_MATCH_KM: float = 0.5
"""A mirrored endpoint closer than this counts as a near-perfect match."""

RETURN_TRIP_LOOSE_KM: float = 10.0
"""Loose return trip: one perfect match and both endpoints within this distance."""

MAX_ROUTE_SUGGESTIONS: int = 3
"""How many bundling candidates are presented to a driver."""

# =============================================================================
# MULTI-STOP OPTIMIZATION
# =============================================================================

TIME_SAVED_MINS_PER_KM: float = 2.0
"""
Rough estimate used to convert saved kilometers into saved minutes.
This is a heuristic for display, not a guarantee.
"""

MAX_OPTIMIZED_WAYPOINTS: int = 23
"""Directions provider limit: 25 total points minus origin and destination."""

# =============================================================================
# DIRECTIONS / GEOCODING PROVIDER
# =============================================================================

GOOGLE_DIRECTIONS_URL: str = "https://maps.googleapis.com/maps/api/directions/json"
GOOGLE_GEOCODE_URL: str = "https://maps.googleapis.com/maps/api/geocode/json"

PROVIDER_TIMEOUT_SECONDS: float = 10.0
"""Timeout for provider requests. Fail fast, the optimizer falls back."""

PROVIDER_RETRIES: int = 3
"""Retries for transient provider failures (5xx, 525 SSL handshake, connect errors)."""

PROVIDER_BACKOFF_FACTOR: float = 0.5
"""Exponential backoff factor between retries: 0.5s, 1s, 2s..."""

PROVIDER_CACHE_SIZE: int = 1000
"""Maximum number of origin/destination route results to cache."""

HAVERSINE_FALLBACK_MULTIPLIER: float = 1.4
"""
Multiplier applied to Haversine distance when the provider cannot plan a route.
Typical city roads are 1.3-1.5x longer than straight-line distance.
"""


@dataclass(frozen=True)
class DeviationConfig:
    """Thresholds used by the DeviationMonitor."""
    margin_fraction: float = DEVIATION_MARGIN_FRACTION
    idle_distance_threshold_m: float = IDLE_DISTANCE_THRESHOLD_M
    idle_time_threshold_mins: float = IDLE_TIME_THRESHOLD_MINS
    km_per_liter: Dict[str, float] = field(
        default_factory=lambda: dict(FUEL_EFFICIENCY_KM_PER_LITER)
    )
    default_km_per_liter: float = DEFAULT_KM_PER_LITER


@dataclass(frozen=True)
class MatchingConfig:
    """Thresholds used by the RouteMatcher."""
    along_route_detour_km: float = ALONG_ROUTE_DETOUR_KM
    return_trip_strict_km: float = RETURN_TRIP_STRICT_KM
    return_trip_perfect_match_km: float = RETURN_TRIP_PERFECT_MATCH_KM
    return_trip_loose_km: float = RETURN_TRIP_LOOSE_KM


@dataclass(frozen=True)
class ProviderConfig:
    """Connection settings for the external directions/geocoding provider."""
    api_key: Optional[str] = None
    timeout_seconds: float = PROVIDER_TIMEOUT_SECONDS
    retries: int = PROVIDER_RETRIES
    backoff_factor: float = PROVIDER_BACKOFF_FACTOR
    cache_size: int = PROVIDER_CACHE_SIZE
    directions_url: str = GOOGLE_DIRECTIONS_URL
    geocode_url: str = GOOGLE_GEOCODE_URL

    @classmethod
    def from_env(cls) -> "ProviderConfig":
        """Build provider settings from GOOGLE_MAPS_API_KEY / FLEETWISE_PROVIDER_TIMEOUT."""
        timeout = PROVIDER_TIMEOUT_SECONDS
        raw_timeout = os.environ.get("FLEETWISE_PROVIDER_TIMEOUT")
        if raw_timeout:
            try:
                timeout = max(0.1, float(raw_timeout))
            except ValueError:
                timeout = PROVIDER_TIMEOUT_SECONDS
        api_key = (os.environ.get("GOOGLE_MAPS_API_KEY") or "").strip() or None
        return cls(api_key=api_key, timeout_seconds=timeout)
