"""
MultiStopOptimizer tests with a scripted directions provider.
"""

import pytest

from conftest import FakeDirections, make_order
from fleetwise.exceptions import ProviderError
from fleetwise.models import GeoPoint, RouteLeg, WaypointRoute
from fleetwise.optimizer import MultiStopOptimizer, baseline_distance_km, calculate_savings
from fleetwise.utils import distance_km

START = GeoPoint(12.97, 77.59)


def three_orders():
    return [
        make_order("A", pickup=(12.97, 77.59), drop=(12.98, 77.60), planned=10.0),
        make_order("B", pickup=(12.97, 77.59), drop=(12.99, 77.61), planned=10.0),
        make_order("C", pickup=(12.97, 77.59), drop=(12.96, 77.58), planned=10.0),
    ]


def test_optimized_plan_follows_provider_permutation():
    provider = FakeDirections(waypoint_route=WaypointRoute(
        waypoint_order=[2, 0, 1],
        legs=[RouteLeg(5, 10), RouteLeg(6, 12), RouteLeg(7, 14), RouteLeg(4, 8)],
    ))
    orders = three_orders()

    plan = MultiStopOptimizer(provider).optimize(START, orders)

    assert plan.optimized is True
    assert plan.error is None
    assert [s.order.id for s in plan.ordered_stops] == ["C", "A", "B"]
    assert [s.sequence for s in plan.ordered_stops] == [1, 2, 3]
    assert [s.original_sequence for s in plan.ordered_stops] == [3, 1, 2]
    assert [o.sequence for o in plan.orders] == [1, 2, 3]
    assert plan.total_distance_km == pytest.approx(22.0)
    assert plan.total_duration_minutes == 44
    assert plan.savings.distance_saved_km == pytest.approx(8.0)
    assert plan.savings.percent_saved == pytest.approx(26.667, abs=1e-3)
    assert plan.savings.time_saved_minutes == 16


def test_provider_receives_drop_points_in_input_order():
    provider = FakeDirections()
    orders = three_orders()
    MultiStopOptimizer(provider).optimize(START, orders)

    origin, waypoints = provider.optimize_calls[0]
    assert origin == START
    assert waypoints == [o.drop_point for o in orders]


def test_input_orders_are_not_mutated():
    orders = three_orders()
    MultiStopOptimizer(FakeDirections()).optimize(START, orders)
    assert all(o.sequence is None for o in orders)


def test_empty_queue():
    provider = FakeDirections()
    plan = MultiStopOptimizer(provider).optimize(START, [])
    assert plan.ordered_stops == []
    assert plan.total_distance_km == 0
    assert provider.optimize_calls == []


def test_single_order_skips_the_provider():
    provider = FakeDirections()
    order = make_order("ONLY", planned=7.5)

    plan = MultiStopOptimizer(provider).optimize(START, [order])

    assert provider.optimize_calls == []
    assert len(plan.ordered_stops) == 1
    assert plan.ordered_stops[0].sequence == 1
    assert plan.ordered_stops[0].order.sequence == 1
    assert plan.total_distance_km == 7.5
    assert plan.total_duration_minutes == 0


def test_single_unplanned_order_reports_zero_distance():
    order = make_order("ONLY", pickup=(0, 0), drop=(1, 0), planned=None)
    plan = MultiStopOptimizer(FakeDirections()).optimize(START, [order])
    assert plan.total_distance_km == 0.0
    assert plan.ordered_stops[0].sequence == 1


def test_provider_failure_falls_back_to_input_order():
    provider = FakeDirections(error=ProviderError("Provider error: OVER_QUERY_LIMIT", status="OVER_QUERY_LIMIT"))
    orders = three_orders()

    plan = MultiStopOptimizer(provider).optimize(START, orders)

    assert plan.optimized is False
    assert "OVER_QUERY_LIMIT" in plan.error
    assert [s.order.id for s in plan.ordered_stops] == ["A", "B", "C"]
    assert [s.sequence for s in plan.ordered_stops] == [1, 2, 3]
    assert plan.total_distance_km == pytest.approx(30.0)
    assert plan.total_duration_minutes == 0
    assert plan.savings is None


def test_invalid_permutation_falls_back():
    provider = FakeDirections(waypoint_route=WaypointRoute(waypoint_order=[0, 0, 1], legs=[]))
    plan = MultiStopOptimizer(provider).optimize(START, three_orders())
    assert plan.optimized is False
    assert "invalid waypoint order" in plan.error


def test_waypoint_limit_falls_back_without_calling_provider():
    provider = FakeDirections()
    orders = three_orders()

    plan = MultiStopOptimizer(provider, max_waypoints=2).optimize(START, orders)

    assert provider.optimize_calls == []
    assert plan.optimized is False
    assert plan.error == "Route optimization limited to 2 stops (3 requested)"
    assert [s.order.id for s in plan.ordered_stops] == ["A", "B", "C"]


def test_baseline_distance_uses_straight_line_without_plan():
    order = make_order(pickup=(0, 0), drop=(0.1, 0), planned=None)
    assert baseline_distance_km(order) == pytest.approx(distance_km(GeoPoint(0, 0), GeoPoint(0.1, 0)))
    assert baseline_distance_km(make_order(planned=3.0)) == 3.0


def test_calculate_savings():
    savings = calculate_savings(20.0, 15.0)
    assert savings.distance_saved_km == pytest.approx(5.0)
    assert savings.percent_saved == pytest.approx(25.0)
    assert savings.time_saved_minutes == 10

    assert calculate_savings(0.0, 0.0).percent_saved == 0.0
    # A longer optimized route reports negative savings rather than hiding it
    assert calculate_savings(10.0, 12.0).distance_saved_km == pytest.approx(-2.0)
