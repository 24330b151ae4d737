# fleetwise/fleetwise/optimizer.py
"""
Multi-stop route resequencing.

Turns an unordered set of a driver's orders into a cost-efficient visiting
sequence. The combinatorial ordering itself (a small traveling-salesman
problem) is delegated to the directions provider; this module builds the
waypoint request, maps the provider's permutation back onto the orders and
computes savings against the original ordering.

Resequencing is best-effort: if the provider fails, the plan falls back to the
input order with the error attached. It never blocks delivery.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence

from . import config, utils
from .exceptions import ProviderError
from .models import GeoPoint, OptimizedRoutePlan, Order, RouteStop, Savings, WaypointRoute
from .providers import DirectionsProvider

logger = logging.getLogger(__name__)


def baseline_distance_km(order: Order) -> float:
    """
    Distance an order contributes to the unoptimized route.

    Uses the planned (provider) distance; orders planned without a provider
    fall back to the straight-line pickup -> drop distance.
    """
    if order.planned_distance_km is not None:
        return order.planned_distance_km
    return utils.distance_km(order.pickup_point, order.drop_point)


def calculate_savings(original_km: float, optimized_km: float) -> Savings:
    """
    Savings of an optimized route over the original ordering.

    time_saved_minutes is a rough estimate (config.TIME_SAVED_MINS_PER_KM per
    saved km), not a guarantee.
    """
    saved = original_km - optimized_km
    return Savings(
        distance_saved_km=saved,
        percent_saved=(saved / original_km * 100) if original_km > 0 else 0.0,
        time_saved_minutes=utils.round_half_up(saved * config.TIME_SAVED_MINS_PER_KM),
    )


class MultiStopOptimizer:
    """
    Resequences a driver's queue through an external directions provider.

    Attributes:
        provider: Directions service that solves the waypoint ordering
        max_waypoints: Provider waypoint limit; larger queues are not sent
    """

    def __init__(
        self,
        provider: DirectionsProvider,
        max_waypoints: int = config.MAX_OPTIMIZED_WAYPOINTS,
    ) -> None:
        self.provider = provider
        self.max_waypoints = max_waypoints

    def optimize(self, start: GeoPoint, orders: Sequence[Order]) -> OptimizedRoutePlan:
        """
        Find a visiting order for `orders` starting (and ending) at `start`.

        Args:
            start: Driver's current or depot location
            orders: Orders to visit, in their current (original) order

        Returns:
            OptimizedRoutePlan whose stops carry sequence = position + 1.
            The caller persists those sequences back onto the orders.
        """
        if not orders:
            return OptimizedRoutePlan()

        if len(orders) == 1:
            only = orders[0]
            return OptimizedRoutePlan(
                ordered_stops=[RouteStop(order=only.with_sequence(1), sequence=1, original_sequence=1)],
                total_distance_km=only.planned_distance_km or 0.0,
                total_duration_minutes=0,
            )

        if len(orders) > self.max_waypoints:
            message = (f"Route optimization limited to {self.max_waypoints} stops "
                       f"({len(orders)} requested)")
            logger.warning(message)
            return self._fallback(orders, message)

        try:
            route = self.provider.optimize_waypoints(start, [o.drop_point for o in orders])
            self._check_permutation(route, len(orders))
        except ProviderError as e:
            logger.warning(f"Route optimization failed, keeping original order: {e}")
            return self._fallback(orders, str(e))

        stops: List[RouteStop] = []
        for position, original_index in enumerate(route.waypoint_order):
            stops.append(RouteStop(
                order=orders[original_index].with_sequence(position + 1),
                sequence=position + 1,
                original_sequence=original_index + 1,
            ))

        total_distance = sum(leg.distance_km for leg in route.legs)
        total_duration = sum(leg.duration_minutes for leg in route.legs)
        original_distance = sum(baseline_distance_km(o) for o in orders)

        plan = OptimizedRoutePlan(
            ordered_stops=stops,
            total_distance_km=total_distance,
            total_duration_minutes=utils.round_half_up(total_duration),
            savings=calculate_savings(original_distance, total_distance),
        )
        logger.info(f"Optimized {len(orders)} stops: {total_distance:.2f} km, "
                    f"saved {plan.savings.distance_saved_km:.2f} km")
        return plan

    @staticmethod
    def _check_permutation(route: WaypointRoute, count: int) -> None:
        if sorted(route.waypoint_order) != list(range(count)):
            raise ProviderError(
                f"Provider returned an invalid waypoint order: {route.waypoint_order}",
                status="INVALID_RESPONSE",
            )

    @staticmethod
    def _fallback(orders: Sequence[Order], error: Optional[str]) -> OptimizedRoutePlan:
        """Original input order, sequence = input position, zero duration."""
        stops = [
            RouteStop(order=order.with_sequence(i + 1), sequence=i + 1, original_sequence=i + 1)
            for i, order in enumerate(orders)
        ]
        return OptimizedRoutePlan(
            ordered_stops=stops,
            total_distance_km=sum(baseline_distance_km(o) for o in orders),
            total_duration_minutes=0,
            savings=None,
            error=error,
            optimized=False,
        )
