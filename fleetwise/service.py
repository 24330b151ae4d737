# fleetwise/fleetwise/service.py
"""
Delivery lifecycle orchestration.

DeliveryService wires the pure engine components to the repositories and
providers, following the order lifecycle:

    create (pending) -> accept (assigned, bundling proposed) -> start
    -> GPS fixes stream in (live metrics) -> complete (delivered, settled)

Independently, an admin may resequence a driver's queue, and the leaderboard
is recomputed on demand from order and fix history.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from . import config, utils
from .deviation import DeviationMonitor
from .exceptions import OrderStateError, ProviderError, ValidationError
from .matching import RouteMatcher
from .models import (
    DeliveryMetrics,
    DriverLocation,
    DriverPerformanceRecord,
    GeoPoint,
    GpsFix,
    Location,
    OptimizedRoutePlan,
    Order,
    OrderStatus,
    RouteMatchCandidate,
    VehicleType,
)
from .optimizer import MultiStopOptimizer
from .providers import DirectionsProvider, GeocodingProvider
from .repository import GpsFixRepository, OrderRepository
from .scoring import DriverPerformanceAggregator

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class DeliveryService:
    """
    Facade over the engine for the UI/business layer.

    Attributes:
        orders: Order repository
        fixes: GPS fix repository
        directions: Directions provider (planned distances, optimization)
        geocoder: Optional geocoding provider (address entry, driver locations)
    """

    def __init__(
        self,
        orders: OrderRepository,
        fixes: GpsFixRepository,
        directions: DirectionsProvider,
        monitor: Optional[DeviationMonitor] = None,
        matcher: Optional[RouteMatcher] = None,
        geocoder: Optional[GeocodingProvider] = None,
    ) -> None:
        self.orders = orders
        self.fixes = fixes
        self.directions = directions
        self.geocoder = geocoder
        self.monitor = monitor or DeviationMonitor()
        self.matcher = matcher or RouteMatcher()
        self.optimizer = MultiStopOptimizer(directions)
        self.aggregator = DriverPerformanceAggregator(self.monitor)

    # =========================================================================
    # ORDER CREATION
    # =========================================================================

    def plan_distance(self, pickup: GeoPoint, drop: GeoPoint) -> float:
        """
        Planned distance for a new order from the provider's primary route.

        Falls back to Haversine distance with a road multiplier when the
        provider fails, so order creation is never blocked.
        """
        try:
            options = self.directions.routes(pickup, drop)
            return options[0].distance_km
        except ProviderError as e:
            logger.warning(f"Planned distance unavailable ({e}), using Haversine estimate")
            return utils.distance_km(pickup, drop) * config.HAVERSINE_FALLBACK_MULTIPLIER

    def create_order(
        self,
        order_id: str,
        pickup: Location,
        drop: Location,
        vehicle_type: Optional[VehicleType] = VehicleType.CAR,
        driver_id: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ) -> Order:
        """Create a pending order with its planned distance computed once."""
        order = Order(
            id=order_id,
            pickup=pickup,
            drop=drop,
            planned_distance_km=self.plan_distance(pickup.point, drop.point),
            vehicle_type=vehicle_type,
            driver_id=driver_id,
            created_at=created_at or _now(),
        )
        logger.info(f"Created order {order_id}: planned {order.planned_distance_km:.2f} km")
        return self.orders.save(order)

    def create_order_from_addresses(
        self,
        order_id: str,
        pickup_address: str,
        drop_address: str,
        vehicle_type: Optional[VehicleType] = VehicleType.CAR,
        driver_id: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ) -> Order:
        """
        Create an order from free-text addresses.

        Both addresses are geocoded before anything is stored, so an address
        the provider cannot resolve creates nothing.

        Raises:
            ProviderError: If no geocoder is configured or an address is not found
        """
        if self.geocoder is None:
            raise ProviderError("Geocoding provider not configured", status="NO_GEOCODER")
        pickup = self.geocoder.geocode(pickup_address)
        drop = self.geocoder.geocode(drop_address)
        return self.create_order(
            order_id,
            Location(pickup.point, pickup.formatted_address),
            Location(drop.point, drop.formatted_address),
            vehicle_type=vehicle_type,
            driver_id=driver_id,
            created_at=created_at,
        )

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def accept_order(
        self,
        order_id: str,
        driver_id: str,
        limit: Optional[int] = config.MAX_ROUTE_SUGGESTIONS,
    ) -> List[RouteMatchCandidate]:
        """
        Driver accepts an order; returns bundling suggestions from their pending queue.

        Returns:
            Ranked candidates (at most `limit`)
        """
        def assign(current: Order) -> Order:
            current.assign(driver_id)
            return current

        order = self.orders.transform(order_id, assign)
        pending = self.orders.by_driver(driver_id, OrderStatus.PENDING)
        candidates = self.matcher.find_candidates(order, pending, limit=limit)
        logger.info(f"Driver {driver_id} accepted {order_id}, {len(candidates)} bundling candidates")
        return candidates

    def start_delivery(self, order_id: str, at: Optional[datetime] = None) -> Order:
        started_at = at or _now()

        def start(current: Order) -> Order:
            current.mark_started(started_at)
            return current

        return self.orders.transform(order_id, start)

    def record_location(
        self,
        driver_id: str,
        point: GeoPoint,
        recorded_at: Optional[datetime] = None,
        order_id: Optional[str] = None,
    ) -> GpsFix:
        """
        Store a GPS sample. Samples tied to an order are only accepted while
        that order is assigned to the same driver.

        The check and the append run under the order's lock, so a sample can
        never land in a trace that has already been settled.
        """
        fix = GpsFix(
            driver_id=driver_id,
            location=point,
            recorded_at=recorded_at or _now(),
            order_id=order_id,
        )
        if order_id is None:
            self.fixes.append(fix)
            return fix

        def append_to_trace(current: Order) -> Order:
            if current.status is not OrderStatus.ASSIGNED:
                raise OrderStateError(order_id, current.status.value, "record locations")
            if current.driver_id != driver_id:
                raise ValidationError(
                    f"Order {order_id} is assigned to {current.driver_id}, not {driver_id}"
                )
            self.fixes.append(fix)
            return current

        self.orders.transform(order_id, append_to_trace)
        return fix

    def live_metrics(self, order_id: str) -> DeliveryMetrics:
        """Metrics for an in-progress (or finished) delivery from its trace so far."""
        order = self.orders.get(order_id)
        return self.monitor.live_metrics(order, self.fixes.for_order(order_id))

    def complete_delivery(self, order_id: str, completed_at: Optional[datetime] = None) -> Order:
        """Proof of delivery submitted: settle metrics and freeze them on the order."""
        completed_at = completed_at or _now()
        return self.orders.transform(
            order_id,
            lambda current: self.monitor.settle(current, self.fixes.for_order(order_id), completed_at),
        )

    # =========================================================================
    # DRIVER QUEUE
    # =========================================================================

    def driver_queue(self, driver_id: str) -> List[Order]:
        """The driver's non-delivered orders, by sequence (unsequenced last)."""
        queue = [o for o in self.orders.by_driver(driver_id) if not o.is_delivered]
        return sorted(queue, key=lambda o: (o.sequence is None, o.sequence or 0))

    def optimize_queue(self, driver_id: str, start: Optional[GeoPoint] = None) -> OptimizedRoutePlan:
        """
        Resequence all of a driver's non-delivered orders and persist the sequences.

        Args:
            driver_id: Driver whose queue is optimized
            start: Start location (defaults to the driver's last GPS fix)

        Raises:
            ValidationError: If no start is given and the driver has no known location
        """
        if start is None:
            last = self.fixes.last_for_driver(driver_id)
            if last is None:
                raise ValidationError(f"No start location given and no GPS fix known for {driver_id}")
            start = last.location

        plan = self.optimizer.optimize(start, self.driver_queue(driver_id))
        sequences = {stop.order.id: stop.sequence for stop in plan.ordered_stops}
        written = self.orders.assign_sequences(sequences)
        skipped = [order_id for order_id in sequences if order_id not in written]
        if skipped:
            logger.info(f"Skipped sequencing delivered orders for {driver_id}: {skipped}")
        return plan

    def active_driver_locations(self, with_addresses: bool = False) -> List[DriverLocation]:
        """
        Last known position of every driver, newest first.

        Args:
            with_addresses: Reverse-geocode each position (needs a geocoder)
        """
        latest = sorted(
            self.fixes.latest_by_driver().values(),
            key=lambda fix: fix.recorded_at,
            reverse=True,
        )
        locations = []
        for fix in latest:
            address = ""
            if with_addresses and self.geocoder is not None:
                address = self.geocoder.reverse_geocode(fix.location)
            locations.append(DriverLocation(fix=fix, address=address))
        return locations

    # =========================================================================
    # LEADERBOARD
    # =========================================================================

    def leaderboard(self, driver_ids: Optional[Iterable[str]] = None) -> List[DriverPerformanceRecord]:
        """Rank drivers (default: every driver with at least one order)."""
        all_orders = self.orders.all()
        if driver_ids is None:
            driver_ids = list(dict.fromkeys(o.driver_id for o in all_orders if o.driver_id))
        else:
            driver_ids = list(driver_ids)

        orders_by_driver = {d: [o for o in all_orders if o.driver_id == d] for d in driver_ids}
        delivered_ids = [o.id for o in all_orders if o.is_delivered]
        return self.aggregator.rank_drivers(
            driver_ids, orders_by_driver, self.fixes.traces(delivered_ids)
        )
