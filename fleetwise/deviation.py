# fleetwise/fleetwise/deviation.py
"""
Deviation monitoring for tracked deliveries.

Turns a raw GPS trace into the authoritative actual-distance, fuel and
travel-time metrics for one order, and classifies the order as flagged when it
ran significantly longer than planned. These numbers drive billing and anomaly
review, so malformed input (out-of-order fixes, negative distances) fails with
ValidationError instead of being silently corrected.

The same functions serve two callers:
- Live display during an in-progress delivery (partial, still-growing trace)
- Final settlement at proof of delivery (complete trace, values then frozen)
"""

from __future__ import annotations

import logging
import math
from dataclasses import replace
from datetime import datetime
from typing import Optional, Sequence, Union

from . import utils
from .config import DeviationConfig
from .exceptions import InsufficientDataError, OrderStateError, ValidationError
from .models import (
    DeliveryMetrics,
    DeviationResult,
    GpsFix,
    Order,
    OrderStatus,
    VehicleType,
)

logger = logging.getLogger(__name__)


def _check_non_negative(name: str, value: float) -> None:
    if value is None or not math.isfinite(value) or value < 0:
        raise ValidationError(f"{name} must be a finite non-negative number, got {value!r}")


def _check_chronological(fixes: Sequence[GpsFix]) -> None:
    """Equal timestamps are allowed (duplicate samples), going backwards is not."""
    for prev, curr in zip(fixes, fixes[1:]):
        if curr.recorded_at < prev.recorded_at:
            raise ValidationError(
                f"GPS fixes are not time-ordered: {curr.recorded_at.isoformat()} "
                f"follows {prev.recorded_at.isoformat()}",
                details={"order_id": curr.order_id},
            )


class DeviationMonitor:
    """
    Computes actual-vs-planned metrics for a single order.

    Stateless apart from its thresholds, so one instance can serve all
    orders and threads.
    """

    def __init__(self, config: Optional[DeviationConfig] = None) -> None:
        self.config = config or DeviationConfig()

    def actual_distance(self, fixes: Sequence[GpsFix]) -> float:
        """
        Sum of great-circle distances between consecutive fixes.

        Returns 0 for 0 or 1 fixes: a trivially short or untracked trip is an
        expected early-lifecycle state, not an error. Distance only accumulates,
        so a longer prefix of the same trace never yields a smaller result.
        """
        if len(fixes) < 2:
            return 0.0
        _check_chronological(fixes)
        return sum(
            utils.distance_km(prev.location, curr.location)
            for prev, curr in zip(fixes, fixes[1:])
        )

    def km_per_liter(self, vehicle_type: Union[VehicleType, str, None]) -> float:
        """Efficiency for a vehicle class; unknown or missing types use the default."""
        if isinstance(vehicle_type, VehicleType):
            key = vehicle_type.value
        elif isinstance(vehicle_type, str):
            key = vehicle_type.strip().lower()
        else:
            key = None
        rate = self.config.km_per_liter.get(key) if key else None
        return rate if rate else self.config.default_km_per_liter

    def fuel_consumed(self, distance_km: float, vehicle_type: Union[VehicleType, str, None]) -> float:
        """Liters consumed over `distance_km` for the given vehicle class."""
        _check_non_negative("distance_km", distance_km)
        return distance_km / self.km_per_liter(vehicle_type)

    def classify_deviation(
        self,
        planned_km: float,
        actual_km: float,
        margin_fraction: Optional[float] = None,
    ) -> DeviationResult:
        """
        Flag an order whose actual distance exceeds plan by more than the margin.

        Example:
            planned=10, actual=12.1 -> flagged, "Route deviation: +2.1 km (+21.0%)"
            planned=10, actual=11.9 -> not flagged (within 20%)
        """
        margin = self.config.margin_fraction if margin_fraction is None else margin_fraction
        _check_non_negative("planned_km", planned_km)
        _check_non_negative("actual_km", actual_km)
        _check_non_negative("margin_fraction", margin)

        excess_km = actual_km - planned_km
        if planned_km == 0:
            if actual_km > 0:
                return DeviationResult(
                    is_flagged=True,
                    reason=f"Route deviation: {excess_km:+.1f} km (no planned baseline)",
                )
            return DeviationResult(is_flagged=False)

        if actual_km > planned_km * (1 + margin):
            excess_pct = excess_km / planned_km * 100
            return DeviationResult(
                is_flagged=True,
                reason=f"Route deviation: {excess_km:+.1f} km ({excess_pct:+.1f}%)",
            )
        return DeviationResult(is_flagged=False)

    def idle_minutes(
        self,
        fixes: Sequence[GpsFix],
        distance_threshold_m: Optional[float] = None,
        time_threshold_min: Optional[float] = None,
    ) -> int:
        """
        Total minutes the trace shows the driver not moving.

        A gap between consecutive fixes counts when they are closer than the
        distance threshold AND at least the time threshold apart. Gaps are
        summed first and rounded once, so per-segment rounding cannot compound.
        """
        if distance_threshold_m is None:
            distance_threshold_m = self.config.idle_distance_threshold_m
        if time_threshold_min is None:
            time_threshold_min = self.config.idle_time_threshold_mins
        if len(fixes) < 2:
            return 0
        _check_chronological(fixes)

        idle = 0.0
        for prev, curr in zip(fixes, fixes[1:]):
            moved_m = utils.distance_m(prev.location, curr.location)
            gap_min = utils.minutes_between(prev.recorded_at, curr.recorded_at)
            if moved_m < distance_threshold_m and gap_min >= time_threshold_min:
                idle += gap_min
        return utils.round_half_up(idle)

    def travel_time_minutes(
        self, started_at: Optional[datetime], completed_at: datetime
    ) -> Optional[int]:
        """Whole minutes from start to completion; None if tracking never started."""
        if started_at is None:
            return None
        elapsed = utils.minutes_between(started_at, completed_at)
        if elapsed < 0:
            raise ValidationError(
                f"completed_at {completed_at.isoformat()} is before started_at {started_at.isoformat()}"
            )
        return utils.round_half_up(elapsed)

    def live_metrics(self, order: Order, fixes: Sequence[GpsFix]) -> DeliveryMetrics:
        """Metrics for the trace so far. Safe to call repeatedly as fixes arrive."""
        actual = self.actual_distance(fixes)
        planned = order.planned_distance_km or 0.0
        return DeliveryMetrics(
            actual_distance_km=actual,
            fuel_consumed_liters=self.fuel_consumed(actual, order.vehicle_type),
            idle_minutes=self.idle_minutes(fixes),
            fix_count=len(fixes),
            deviation=self.classify_deviation(planned, actual),
        )

    def settle(
        self,
        order: Order,
        fixes: Sequence[GpsFix],
        completed_at: datetime,
        require_trace: bool = False,
    ) -> Order:
        """
        Finalize an assigned order at proof of delivery.

        Returns a delivered copy with every settlement field computed together,
        so a reader can never see `is_flagged` next to a stale `flag_reason`.
        The input order is left untouched.

        Raises:
            OrderStateError: If the order is not assigned
            InsufficientDataError: If require_trace is set and fewer than 2 fixes exist
        """
        if order.status is not OrderStatus.ASSIGNED:
            raise OrderStateError(order.id, order.status.value, "be delivered")
        if len(fixes) < 2:
            if require_trace:
                raise InsufficientDataError(
                    f"Order {order.id} has {len(fixes)} GPS fixes, at least 2 are required",
                    details={"order_id": order.id, "fix_count": len(fixes)},
                )
            logger.info(f"Order {order.id} settled with {len(fixes)} GPS fixes, distance is 0")

        metrics = self.live_metrics(order, fixes)
        if metrics.deviation.is_flagged:
            logger.warning(f"Order {order.id} flagged: {metrics.deviation.reason}")

        return replace(
            order,
            status=OrderStatus.DELIVERED,
            actual_distance_km=metrics.actual_distance_km,
            fuel_consumed_liters=metrics.fuel_consumed_liters,
            travel_time_minutes=self.travel_time_minutes(order.started_at, completed_at),
            is_flagged=metrics.deviation.is_flagged,
            flag_reason=metrics.deviation.reason,
            completed_at=completed_at,
            sequence=None,
        )
