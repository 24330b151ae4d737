# fleetwise/fleetwise/scoring.py
"""
Driver efficiency scoring for the leaderboard.

Folds each driver's delivered orders into a DriverPerformanceRecord:

    avg_fuel_efficiency_pct = total_actual / total_planned * 100
    fuel_efficiency_score   = clamp(100 - (avg_pct - 100), 0, 100)

Key Design Principles:
1. Matching the plan exactly scores 100
2. Driving further than planned loses score proportionally (1.5x plan -> 50)
3. Driving less than planned is not rewarded: the score caps at 100, since
   implausibly short actuals usually mean GPS gaps, not efficiency
4. Drivers with no delivered orders score 0 and rank last
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from .deviation import DeviationMonitor
from .models import DriverPerformanceRecord, GpsFix, Order

MAX_SCORE: float = 100.0
MIN_SCORE: float = 0.0


def efficiency_score(total_planned_km: float, total_actual_km: float) -> float:
    """
    Score a driver's actual-vs-planned distance on a 0-100 scale.

    Example:
        >>> efficiency_score(10.0, 15.0)
        50.0
    """
    avg_pct = efficiency_pct(total_planned_km, total_actual_km)
    return max(MIN_SCORE, min(MAX_SCORE, MAX_SCORE - (avg_pct - 100.0)))


def efficiency_pct(total_planned_km: float, total_actual_km: float) -> float:
    """Actual distance as a percentage of planned; no data defaults to 'as planned'."""
    if total_planned_km <= 0:
        return 100.0
    return total_actual_km / total_planned_km * 100.0


class DriverPerformanceAggregator:
    """
    Ranks drivers by delivery efficiency.

    Idle time is taken from the DeviationMonitor so idle thresholds stay
    consistent with live tracking.
    """

    def __init__(self, monitor: Optional[DeviationMonitor] = None) -> None:
        self.monitor = monitor or DeviationMonitor()

    def driver_performance(
        self,
        driver_id: str,
        orders: Iterable[Order],
        fixes_by_order: Mapping[str, Sequence[GpsFix]],
    ) -> DriverPerformanceRecord:
        """Aggregate one driver's delivered orders into a performance record."""
        delivered = [o for o in orders if o.is_delivered]
        if not delivered:
            return DriverPerformanceRecord(driver_id=driver_id)

        total_planned = sum(o.planned_distance_km or 0.0 for o in delivered)
        total_actual = sum(o.actual_distance_km or 0.0 for o in delivered)
        total_idle = sum(
            self.monitor.idle_minutes(fixes_by_order.get(o.id, ())) for o in delivered
        )

        return DriverPerformanceRecord(
            driver_id=driver_id,
            total_deliveries=len(delivered),
            total_planned_distance_km=total_planned,
            total_actual_distance_km=total_actual,
            total_idle_minutes=total_idle,
            avg_fuel_efficiency_pct=efficiency_pct(total_planned, total_actual),
            fuel_efficiency_score=efficiency_score(total_planned, total_actual),
            flagged_deliveries=sum(1 for o in delivered if o.is_flagged),
            total_fuel_consumed_liters=sum(o.fuel_consumed_liters or 0.0 for o in delivered),
        )

    def rank_drivers(
        self,
        drivers: Iterable[str],
        orders_by_driver: Mapping[str, Sequence[Order]],
        fixes_by_order: Mapping[str, Sequence[GpsFix]],
    ) -> List[DriverPerformanceRecord]:
        """
        Build a record per driver and sort them for the leaderboard.

        Args:
            drivers: Driver IDs to rank (drivers missing from orders_by_driver get empty records)
            orders_by_driver: driver_id -> that driver's orders (any status)
            fixes_by_order: order_id -> time-ordered GPS trace

        Returns:
            Records by descending fuel_efficiency_score; drivers without
            deliveries last. Ties keep the input driver order.
        """
        records: Dict[str, DriverPerformanceRecord] = {}
        for driver_id in drivers:
            if driver_id in records:
                continue
            records[driver_id] = self.driver_performance(
                driver_id, orders_by_driver.get(driver_id, ()), fixes_by_order
            )

        return sorted(
            records.values(),
            key=lambda r: (r.total_deliveries > 0, r.fuel_efficiency_score),
            reverse=True,
        )
