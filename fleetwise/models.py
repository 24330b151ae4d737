# fleetwise/fleetwise/models.py
"""
Core domain models for the Fleetwise route-efficiency engine.

This module defines the data structures shared by every component:
- GeoPoint / Location: Immutable coordinates (plus a free-text address)
- Order: One delivery task and its pending -> assigned -> delivered lifecycle
- GpsFix: One sampled driver position, append-only
- RouteMatchCandidate, OptimizedRoutePlan, DriverPerformanceRecord: transient
  computation results, never persisted
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import List, Optional, Tuple

from .exceptions import OrderStateError, ValidationError


class VehicleType(Enum):
    """Vehicle classes. Determines the fuel-efficiency rate."""
    BIKE = "bike"
    CAR = "car"
    VAN = "van"
    TRUCK = "truck"


class OrderStatus(Enum):
    """Lifecycle states for an order."""
    PENDING = "pending"      # Created, not yet accepted by a driver
    ASSIGNED = "assigned"    # Accepted by a driver, GPS fixes accumulate
    DELIVERED = "delivered"  # Proof of delivery submitted, metrics frozen


@dataclass(frozen=True)
class GeoPoint:
    """
    A WGS84 coordinate in decimal degrees.

    Construction fails with ValidationError for non-finite or out-of-range
    values, so every GeoPoint in the system is safe to measure.
    """
    latitude: float
    longitude: float

    def __post_init__(self) -> None:
        for name, value, bound in (
            ("latitude", self.latitude, 90.0),
            ("longitude", self.longitude, 180.0),
        ):
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValidationError(f"{name} must be a number, got {value!r}")
            if not math.isfinite(value):
                raise ValidationError(f"{name} must be finite, got {value!r}")
            if abs(value) > bound:
                raise ValidationError(f"{name} out of range: {value}")

    def as_tuple(self) -> Tuple[float, float]:
        """Returns the point as a (lat, lng) tuple."""
        return (self.latitude, self.longitude)

    def to_query(self) -> str:
        """'lat,lng' with 6 decimals (~0.1m), the form directions APIs expect."""
        return f"{self.latitude:.6f},{self.longitude:.6f}"

    def __repr__(self) -> str:
        return f"GeoPoint({self.latitude:.5f}, {self.longitude:.5f})"


@dataclass(frozen=True)
class Location:
    """A point plus the free-text address it was geocoded from."""
    point: GeoPoint
    address: str = ""


@dataclass
class Order:
    """
    Represents one delivery task.

    Attributes:
        id: Unique identifier
        pickup/drop: Where the goods are collected and delivered
        driver_id: Set once a driver accepts the order
        vehicle_type: Vehicle class used for the fuel estimate
        status: Current lifecycle state
        planned_distance_km: Provider route distance computed at creation

    Settlement (frozen once delivered):
        actual_distance_km: Distance derived from the GPS trace
        fuel_consumed_liters: actual distance / vehicle efficiency
        travel_time_minutes: Wall-clock minutes from start to completion
        is_flagged/flag_reason: Deviation classification of actual vs planned

    Route planning:
        sequence: 1-based position in the driver's optimized queue
    """
    id: str
    pickup: Location
    drop: Location
    planned_distance_km: Optional[float] = None
    vehicle_type: Optional[VehicleType] = VehicleType.CAR
    driver_id: Optional[str] = None
    status: OrderStatus = OrderStatus.PENDING

    actual_distance_km: Optional[float] = None
    fuel_consumed_liters: Optional[float] = None
    travel_time_minutes: Optional[int] = None
    is_flagged: bool = False
    flag_reason: Optional[str] = None

    sequence: Optional[int] = None

    created_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def pickup_point(self) -> GeoPoint:
        return self.pickup.point

    @property
    def drop_point(self) -> GeoPoint:
        return self.drop.point

    @property
    def is_delivered(self) -> bool:
        return self.status is OrderStatus.DELIVERED

    def assign(self, driver_id: str) -> None:
        """Driver accepts the order: pending -> assigned."""
        if self.status is not OrderStatus.PENDING:
            raise OrderStateError(self.id, self.status.value, "be assigned")
        if not driver_id:
            raise ValidationError(f"Order {self.id}: driver_id is required to assign")
        self.driver_id = driver_id
        self.status = OrderStatus.ASSIGNED

    def mark_started(self, at: datetime) -> None:
        """Record the moment tracking starts. Only assigned orders can start."""
        if self.status is not OrderStatus.ASSIGNED:
            raise OrderStateError(self.id, self.status.value, "start")
        self.started_at = at

    def with_sequence(self, sequence: Optional[int]) -> "Order":
        """Copy of this order placed at a new queue position."""
        if sequence is not None and sequence < 1:
            raise ValidationError(f"sequence must be >= 1, got {sequence}")
        return replace(self, sequence=sequence)

    def __repr__(self) -> str:
        return f"Order({self.id}, {self.status.value})"


@dataclass(frozen=True)
class GpsFix:
    """One sampled driver position. Ordered by recorded_at within an order trace."""
    driver_id: str
    location: GeoPoint
    recorded_at: datetime
    order_id: Optional[str] = None


@dataclass(frozen=True)
class DriverLocation:
    """A driver's last known position, optionally with a display address."""
    fix: GpsFix
    address: str = ""

    @property
    def driver_id(self) -> str:
        return self.fix.driver_id


@dataclass(frozen=True)
class Savings:
    """Distance (and optionally time) saved by bundling or resequencing."""
    distance_saved_km: float
    percent_saved: float
    time_saved_minutes: Optional[int] = None


@dataclass(frozen=True)
class RouteMatchCandidate:
    """
    A pending order that can be folded into the driver's active trip.

    Transient: produced by the RouteMatcher and consumed immediately by the
    caller to present a choice.
    """
    order: Order
    pickup_detour_km: float
    drop_detour_km: float
    total_detour_km: float
    is_return_trip: bool
    savings: Savings
    is_pickup_along: bool = True
    is_drop_along: bool = True

    def __repr__(self) -> str:
        kind = "return" if self.is_return_trip else f"detour={self.total_detour_km:.2f}km"
        return f"RouteMatchCandidate({self.order.id}, {kind})"


@dataclass(frozen=True)
class RouteStop:
    """An order placed in an optimized route, with its pre-optimization position kept for audit."""
    order: Order
    sequence: int
    original_sequence: int


@dataclass
class OptimizedRoutePlan:
    """
    Result of a multi-stop optimization.

    When the provider fails, `optimized` is False, stops keep their input order
    and `error` carries the provider message.
    """
    ordered_stops: List[RouteStop] = field(default_factory=list)
    total_distance_km: float = 0.0
    total_duration_minutes: int = 0
    savings: Optional[Savings] = None
    error: Optional[str] = None
    optimized: bool = True

    @property
    def orders(self) -> List[Order]:
        """Orders in visiting order, each carrying its new sequence."""
        return [stop.order for stop in self.ordered_stops]

    def __repr__(self) -> str:
        return (f"OptimizedRoutePlan(stops={len(self.ordered_stops)}, "
                f"dist={self.total_distance_km:.2f}km, optimized={self.optimized})")


@dataclass(frozen=True)
class DeviationResult:
    is_flagged: bool
    reason: Optional[str] = None


@dataclass(frozen=True)
class DeliveryMetrics:
    """Live (partial trace) or final (complete trace) metrics for one order."""
    actual_distance_km: float
    fuel_consumed_liters: float
    idle_minutes: int
    fix_count: int
    deviation: DeviationResult


@dataclass
class DriverPerformanceRecord:
    """Per-driver efficiency aggregate. Recomputed on demand from orders and fixes."""
    driver_id: str
    total_deliveries: int = 0
    total_planned_distance_km: float = 0.0
    total_actual_distance_km: float = 0.0
    total_idle_minutes: int = 0
    avg_fuel_efficiency_pct: float = 0.0
    fuel_efficiency_score: float = 0.0
    flagged_deliveries: int = 0
    total_fuel_consumed_liters: float = 0.0

    def __repr__(self) -> str:
        return (f"DriverPerformanceRecord({self.driver_id}, "
                f"score={self.fuel_efficiency_score:.1f}, deliveries={self.total_deliveries})")


@dataclass(frozen=True)
class RouteLeg:
    distance_km: float
    duration_minutes: float


@dataclass(frozen=True)
class WaypointRoute:
    """Provider answer to an optimized waypoint request."""
    waypoint_order: List[int]
    legs: List[RouteLeg]


@dataclass
class RouteOption:
    """One origin -> destination route alternative, with live-traffic duration."""
    route_index: int
    distance_km: float
    duration_minutes: int
    traffic_duration_minutes: int
    summary: str = ""
    is_fastest: bool = False
    is_shortest: bool = False

    @property
    def traffic_delay_minutes(self) -> int:
        return self.traffic_duration_minutes - self.duration_minutes


@dataclass(frozen=True)
class GeocodeResult:
    point: GeoPoint
    formatted_address: str
