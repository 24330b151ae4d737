"""
Fleet reporting tests.
"""

import pytest

from conftest import make_order
from fleetwise import analytics
from fleetwise.models import DriverPerformanceRecord, OrderStatus, VehicleType


@pytest.fixture
def orders():
    return [
        make_order("O1", planned=10.0, status=OrderStatus.DELIVERED, actual_distance_km=12.0,
                   fuel_consumed_liters=0.8),
        make_order("O2", planned=5.0, status=OrderStatus.DELIVERED, actual_distance_km=7.0,
                   fuel_consumed_liters=0.7, is_flagged=True, flag_reason="Route deviation: +2.0 km (+40.0%)"),
        make_order("O3", planned=3.333, status=OrderStatus.PENDING),
    ]


def test_fuel_cost():
    cost = analytics.fuel_cost(30.0, VehicleType.CAR)
    assert cost.liters_used == pytest.approx(2.0)
    assert cost.cost == pytest.approx(200.0)
    assert cost.km_per_liter == 15.0

    assert analytics.fuel_cost(40.0, "bike", price_per_liter=90.0).cost == pytest.approx(90.0)


def test_fuel_savings():
    result = analytics.fuel_savings(planned_km=20.0, actual_km=15.0, vehicle_type=VehicleType.VAN)
    assert result["planned_cost"] == pytest.approx(200.0)
    assert result["actual_cost"] == pytest.approx(150.0)
    assert result["savings"] == pytest.approx(50.0)
    assert result["savings_pct"] == pytest.approx(25.0)

    assert analytics.fuel_savings(0.0, 1.0, VehicleType.VAN)["savings_pct"] == 0.0


def test_orders_frame(orders):
    df = analytics.orders_frame(orders)
    assert list(df.columns) == analytics.ORDER_COLUMNS
    assert df["status"].tolist() == ["delivered", "delivered", "pending"]
    assert df["vehicle_type"].tolist() == ["car", "car", "car"]


def test_dashboard_stats(orders):
    stats = analytics.dashboard_stats(orders, active_drivers=1)
    assert stats == {
        "total_orders": 3,
        "delivered_orders": 2,
        "flagged_orders": 1,
        "active_drivers": 1,
        "total_planned_distance_km": 18.33,
        "total_actual_distance_km": 19.0,
    }


def test_dashboard_stats_empty():
    stats = analytics.dashboard_stats([])
    assert stats["total_orders"] == 0
    assert stats["total_actual_distance_km"] == 0.0


def test_fuel_statistics(orders):
    stats = analytics.fuel_statistics(orders)
    assert stats["total_orders"] == 2
    assert stats["total_fuel_liters"] == 1.5
    assert stats["total_distance_km"] == 19.0
    assert stats["avg_efficiency_km_per_liter"] == pytest.approx(12.67)

    assert analytics.fuel_statistics([])["avg_efficiency_km_per_liter"] == 0.0


def test_leaderboard_frame():
    df = analytics.leaderboard_frame([
        DriverPerformanceRecord("D2", total_deliveries=3, fuel_efficiency_score=90.0),
        DriverPerformanceRecord("D1", total_deliveries=1, fuel_efficiency_score=40.0),
    ])
    assert df["rank"].tolist() == [1, 2]
    assert df["driver_id"].tolist() == ["D2", "D1"]

    empty = analytics.leaderboard_frame([])
    assert empty.empty
    assert "driver_id" in empty.columns
