"""
Shared fixtures: order/trace factories and a scriptable directions provider.
"""

from datetime import datetime, timedelta, timezone
from typing import List, Optional, Sequence, Tuple

import pytest

from fleetwise.exceptions import ProviderError
from fleetwise.models import (
    GeocodeResult,
    GeoPoint,
    GpsFix,
    Location,
    Order,
    OrderStatus,
    RouteLeg,
    RouteOption,
    VehicleType,
    WaypointRoute,
)

T0 = datetime(2025, 1, 15, 9, 0, 0, tzinfo=timezone.utc)


def make_order(
    order_id: str = "ORD-1",
    pickup: Tuple[float, float] = (0.0, 0.0),
    drop: Tuple[float, float] = (1.0, 0.0),
    planned: Optional[float] = None,
    status: OrderStatus = OrderStatus.PENDING,
    driver_id: Optional[str] = "DRV-1",
    vehicle_type: Optional[VehicleType] = VehicleType.CAR,
    **kwargs,
) -> Order:
    return Order(
        id=order_id,
        pickup=Location(GeoPoint(*pickup), f"{order_id} pickup"),
        drop=Location(GeoPoint(*drop), f"{order_id} drop"),
        planned_distance_km=planned,
        status=status,
        driver_id=driver_id,
        vehicle_type=vehicle_type,
        **kwargs,
    )


def make_trace(
    points: Sequence[Tuple[float, float]],
    start: datetime = T0,
    step: timedelta = timedelta(minutes=1),
    order_id: Optional[str] = "ORD-1",
    driver_id: str = "DRV-1",
) -> List[GpsFix]:
    return [
        GpsFix(
            driver_id=driver_id,
            order_id=order_id,
            location=GeoPoint(*p),
            recorded_at=start + step * i,
        )
        for i, p in enumerate(points)
    ]


class FakeDirections:
    """Directions provider double that records calls and replays scripted answers."""

    def __init__(
        self,
        waypoint_route: Optional[WaypointRoute] = None,
        route_options: Optional[List[RouteOption]] = None,
        error: Optional[ProviderError] = None,
    ) -> None:
        self.waypoint_route = waypoint_route
        self.route_options = route_options or []
        self.error = error
        self.optimize_calls = []
        self.route_calls = []

    def optimize_waypoints(self, origin, waypoints, destination=None):
        self.optimize_calls.append((origin, list(waypoints)))
        if self.error is not None:
            raise self.error
        if self.waypoint_route is None:
            # Identity order, one 1 km / 2 min leg per hop plus the return leg
            return WaypointRoute(
                waypoint_order=list(range(len(waypoints))),
                legs=[RouteLeg(1.0, 2.0) for _ in range(len(waypoints) + 1)],
            )
        return self.waypoint_route

    def routes(self, origin, destination):
        self.route_calls.append((origin, destination))
        if self.error is not None:
            raise self.error
        return self.route_options


@pytest.fixture
def fake_directions():
    return FakeDirections()


class FakeGeocoder:
    """Geocoding double backed by a fixed address book."""

    def __init__(self, addresses: Optional[dict] = None) -> None:
        self.addresses = addresses or {}
        self.reverse_calls = []

    def geocode(self, address):
        if address not in self.addresses:
            raise ProviderError(f"Address not found: {address}", status="ZERO_RESULTS")
        point = self.addresses[address]
        return GeocodeResult(point=point, formatted_address=f"{address}, Bengaluru")

    def reverse_geocode(self, point):
        self.reverse_calls.append(point)
        for address, known in self.addresses.items():
            if known == point:
                return address
        return f"{point.latitude:.4f}, {point.longitude:.4f}"
