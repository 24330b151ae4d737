# fleetwise/fleetwise/utils.py
"""
Utility functions for the Fleetwise route-efficiency engine.

Provides the single geographic distance implementation every component goes
through, plus small time helpers. Do not reimplement Haversine elsewhere:
deviation flags, detour thresholds and idle detection must all agree on the
same distance.
"""

from __future__ import annotations

import math
from datetime import datetime

from . import config
from .models import GeoPoint


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Calculate the great-circle distance between two points on Earth.

    Args:
        lat1: Latitude of point 1 in decimal degrees
        lon1: Longitude of point 1 in decimal degrees
        lat2: Latitude of point 2 in decimal degrees
        lon2: Longitude of point 2 in decimal degrees

    Returns:
        Distance in kilometers between the two points

    Example:
        >>> round(haversine_distance(0.0, 0.0, 1.0, 0.0), 2)
        111.19
    """
    # Convert decimal degrees to radians
    lon1, lat1, lon2, lat2 = map(math.radians, [lon1, lat1, lon2, lat2])

    dlon = lon2 - lon1
    dlat = lat2 - lat1
    a = math.sin(dlat / 2)**2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2)**2
    # Clamp: rounding can push `a` a hair above 1 for antipodal points
    c = 2 * math.asin(math.sqrt(min(1.0, a)))

    return c * config.EARTH_RADIUS_KM


def distance_km(a: GeoPoint, b: GeoPoint) -> float:
    """Great-circle distance in kilometers between two GeoPoints."""
    return haversine_distance(a.latitude, a.longitude, b.latitude, b.longitude)


def distance_m(a: GeoPoint, b: GeoPoint) -> float:
    """Great-circle distance in meters between two GeoPoints."""
    return distance_km(a, b) * 1000.0


def minutes_between(start: datetime, end: datetime) -> float:
    """Elapsed minutes from start to end (negative if end is earlier)."""
    return (end - start).total_seconds() / 60


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero (2.5 -> 3, not 2)."""
    return int(math.floor(abs(value) + 0.5)) * (1 if value >= 0 else -1)


def format_time_duration(minutes: float) -> str:
    """
    Format a duration in minutes as a human-readable string.

    Args:
        minutes: Duration in minutes

    Returns:
        Formatted string like "1h 23m" or "45m"
    """
    if minutes < 60:
        return f"{minutes:.0f}m"
    hours = int(minutes // 60)
    mins = int(minutes % 60)
    return f"{hours}h {mins}m"
