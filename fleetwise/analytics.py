# fleetwise/fleetwise/analytics.py
"""
Fleet-level reporting built on pandas.

Aggregates settled orders into dashboard statistics, fleet fuel statistics and
a leaderboard table. Fuel figures always go through the DeviationMonitor so the
efficiency table is applied the same way as at settlement.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict, Iterable, Optional, Union

import pandas as pd

from . import config
from .deviation import DeviationMonitor
from .models import DriverPerformanceRecord, Order, VehicleType

ORDER_COLUMNS = [
    "id", "driver_id", "status", "vehicle_type", "planned_distance_km",
    "actual_distance_km", "fuel_consumed_liters", "travel_time_minutes",
    "is_flagged", "flag_reason", "sequence",
]


@dataclass(frozen=True)
class FuelCost:
    liters_used: float
    cost: float
    km_per_liter: float


def fuel_cost(
    distance_km: float,
    vehicle_type: Union[VehicleType, str, None],
    price_per_liter: float = config.FUEL_PRICE_PER_LITER,
    monitor: Optional[DeviationMonitor] = None,
) -> FuelCost:
    """Liters and money spent driving `distance_km` with the given vehicle."""
    monitor = monitor or DeviationMonitor()
    liters = monitor.fuel_consumed(distance_km, vehicle_type)
    return FuelCost(
        liters_used=liters,
        cost=liters * price_per_liter,
        km_per_liter=monitor.km_per_liter(vehicle_type),
    )


def fuel_savings(
    planned_km: float,
    actual_km: float,
    vehicle_type: Union[VehicleType, str, None],
    price_per_liter: float = config.FUEL_PRICE_PER_LITER,
    monitor: Optional[DeviationMonitor] = None,
) -> Dict[str, float]:
    """
    Planned vs actual fuel cost. Positive savings mean the driver beat the plan.

    Returns:
        Dictionary with planned_cost, actual_cost, savings, savings_pct
    """
    planned = fuel_cost(planned_km, vehicle_type, price_per_liter, monitor)
    actual = fuel_cost(actual_km, vehicle_type, price_per_liter, monitor)
    savings = planned.cost - actual.cost
    return {
        "planned_cost": planned.cost,
        "actual_cost": actual.cost,
        "savings": savings,
        "savings_pct": (savings / planned.cost * 100) if planned.cost > 0 else 0.0,
    }


def orders_frame(orders: Iterable[Order]) -> pd.DataFrame:
    """One row per order with enum columns flattened to their string values."""
    rows = []
    for order in orders:
        rows.append({
            "id": order.id,
            "driver_id": order.driver_id,
            "status": order.status.value,
            "vehicle_type": order.vehicle_type.value if order.vehicle_type else None,
            "planned_distance_km": order.planned_distance_km,
            "actual_distance_km": order.actual_distance_km,
            "fuel_consumed_liters": order.fuel_consumed_liters,
            "travel_time_minutes": order.travel_time_minutes,
            "is_flagged": order.is_flagged,
            "flag_reason": order.flag_reason,
            "sequence": order.sequence,
        })
    return pd.DataFrame(rows, columns=ORDER_COLUMNS)


def dashboard_stats(orders: Iterable[Order], active_drivers: int = 0) -> Dict[str, Any]:
    """Headline numbers for the admin dashboard."""
    df = orders_frame(orders)
    return {
        "total_orders": int(len(df)),
        "delivered_orders": int((df["status"] == "delivered").sum()),
        "flagged_orders": int(df["is_flagged"].astype(bool).sum()),
        "active_drivers": active_drivers,
        "total_planned_distance_km": round(float(df["planned_distance_km"].fillna(0).sum()), 2),
        "total_actual_distance_km": round(float(df["actual_distance_km"].fillna(0).sum()), 2),
    }


def fuel_statistics(orders: Iterable[Order]) -> Dict[str, Any]:
    """
    Fleet fuel totals over delivered orders that have a fuel figure.

    avg_efficiency is total km per total liter (0 when no fuel was used).
    """
    df = orders_frame(orders)
    df = df[(df["status"] == "delivered") & df["fuel_consumed_liters"].notna()]
    total_fuel = float(df["fuel_consumed_liters"].sum())
    total_distance = float(df["actual_distance_km"].fillna(0).sum())
    return {
        "total_fuel_liters": round(total_fuel, 2),
        "total_distance_km": round(total_distance, 2),
        "avg_efficiency_km_per_liter": round(total_distance / total_fuel, 2) if total_fuel > 0 else 0.0,
        "total_orders": int(len(df)),
    }


def leaderboard_frame(records: Iterable[DriverPerformanceRecord]) -> pd.DataFrame:
    """Leaderboard table with a 1-based rank column, in the records' order."""
    df = pd.DataFrame([asdict(r) for r in records])
    if df.empty:
        return pd.DataFrame(columns=["rank", "driver_id", "fuel_efficiency_score"])
    df.insert(0, "rank", range(1, len(df) + 1))
    return df
