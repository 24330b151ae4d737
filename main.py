#!/usr/bin/env python3
# fleetwise/main.py
"""
Command-Line Interface for the Fleetwise route-efficiency engine.

Runs the engine over CSV exports of orders and GPS fixes: settles finished
deliveries, prints deviation and fleet reports, ranks drivers, proposes
en-route bundles and resequences a driver's queue.

Usage:
    python main.py                                  # Settle + reports + leaderboard
    python main.py --orders my_orders.csv --fixes my_fixes.csv
    python main.py --match ORD-001                  # Bundling candidates for an active order
    python main.py --optimize DRV-1 --start 12.97,77.59
    python main.py --verbose                        # Debug logging

Exit Codes:
    0: Success
    1: Data loading error
    2: Processing error
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import Dict, List, Optional

from dotenv import load_dotenv

from fleetwise import analytics, config, utils
from fleetwise.dataset import load_repositories
from fleetwise.deviation import DeviationMonitor
from fleetwise.exceptions import FleetError
from fleetwise.matching import RouteMatcher
from fleetwise.models import GeoPoint, Order, OrderStatus
from fleetwise.optimizer import MultiStopOptimizer
from fleetwise.providers import GoogleDirectionsProvider
from fleetwise.repository import GpsFixRepository, OrderRepository
from fleetwise.scoring import DriverPerformanceAggregator

logger = logging.getLogger("fleetwise.cli")

DEFAULT_ORDERS = "data/sample_orders.csv"
DEFAULT_FIXES = "data/sample_fixes.csv"


def print_header() -> None:
    """Print the CLI header."""
    print("\n" + "=" * 60)
    print("  FLEETWISE - Route Efficiency Engine")
    print("  Deviation Monitoring, Bundling and Driver Rankings")
    print("=" * 60 + "\n")


def parse_point(value: str) -> GeoPoint:
    """Parse 'lat,lng' into a GeoPoint (argparse type)."""
    try:
        lat, lng = (float(part) for part in value.split(","))
        return GeoPoint(lat, lng)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"Expected 'lat,lng', got '{value}': {e}")


def settle_finished(orders: OrderRepository, fixes: GpsFixRepository, monitor: DeviationMonitor) -> List[Order]:
    """
    Settle assigned orders that already carry a completion timestamp.

    Returns:
        The newly delivered orders
    """
    settled: List[Order] = []
    for order in orders.by_status(OrderStatus.ASSIGNED):
        if order.completed_at is None:
            continue
        completed_at = order.completed_at
        trace = fixes.for_order(order.id)
        settled.append(orders.transform(
            order.id, lambda current: monitor.settle(current, trace, completed_at)
        ))
    return settled


def print_deviation_report(settled: List[Order]) -> None:
    print("\n" + "=" * 60)
    print("  SETTLED DELIVERIES")
    print("=" * 60 + "\n")
    if not settled:
        print("  No deliveries waiting for settlement.")
        return

    print(f"| {'Order':<10} | {'Planned':>9} | {'Actual':>9} | {'Fuel (L)':>8} | {'Time':>7} | Flag")
    print("|" + "-" * 12 + "|" + "-" * 11 + "|" + "-" * 11 + "|" + "-" * 10 + "|" + "-" * 9 + "|" + "-" * 30)
    for order in settled:
        travel = utils.format_time_duration(order.travel_time_minutes) if order.travel_time_minutes is not None else "n/a"
        flag = order.flag_reason if order.is_flagged else "-"
        print(f"| {order.id:<10} | {order.planned_distance_km or 0:>7.2f}km | "
              f"{order.actual_distance_km:>7.2f}km | {order.fuel_consumed_liters:>8.2f} | "
              f"{travel:>7} | {flag}")


def print_fleet_stats(orders: List[Order]) -> None:
    drivers = {o.driver_id for o in orders if o.driver_id}
    stats = analytics.dashboard_stats(orders, active_drivers=len(drivers))
    fuel = analytics.fuel_statistics(orders)

    print("\n" + "=" * 60)
    print("  FLEET STATISTICS")
    print("=" * 60 + "\n")
    for label, value in [
        ("Total Orders", stats["total_orders"]),
        ("Delivered", stats["delivered_orders"]),
        ("Flagged", stats["flagged_orders"]),
        ("Drivers", stats["active_drivers"]),
        ("Planned Distance", f"{stats['total_planned_distance_km']:.2f} km"),
        ("Actual Distance", f"{stats['total_actual_distance_km']:.2f} km"),
        ("Fuel Used", f"{fuel['total_fuel_liters']:.2f} L"),
        ("Avg Efficiency", f"{fuel['avg_efficiency_km_per_liter']:.2f} km/L"),
    ]:
        print(f"  {label:<20} {value}")


def print_leaderboard(orders: OrderRepository, fixes: GpsFixRepository, monitor: DeviationMonitor) -> None:
    all_orders = orders.all()
    driver_ids = list(dict.fromkeys(o.driver_id for o in all_orders if o.driver_id))
    by_driver: Dict[str, List[Order]] = {d: orders.by_driver(d) for d in driver_ids}
    traces = fixes.traces(o.id for o in all_orders)

    records = DriverPerformanceAggregator(monitor).rank_drivers(driver_ids, by_driver, traces)
    table = analytics.leaderboard_frame(records)

    print("\n" + "=" * 60)
    print("  DRIVER LEADERBOARD")
    print("=" * 60 + "\n")
    if table.empty:
        print("  No drivers found.")
        return
    columns = ["rank", "driver_id", "total_deliveries", "fuel_efficiency_score",
               "total_idle_minutes", "flagged_deliveries"]
    print(table[columns].to_string(index=False, float_format=lambda v: f"{v:.1f}"))


def print_matches(orders: OrderRepository, order_id: str, limit: int) -> int:
    active = orders.get(order_id)
    if active.driver_id is None:
        print(f"ERROR: Order {order_id} has no driver")
        return 2
    pending = orders.by_driver(active.driver_id, OrderStatus.PENDING)
    candidates = RouteMatcher().find_candidates(active, pending, limit=limit)

    print(f"\nBundling candidates for {order_id} (driver {active.driver_id}):")
    if not candidates:
        print("  None found along this route.")
    for c in candidates:
        kind = "RETURN TRIP" if c.is_return_trip else f"detour {c.total_detour_km:.2f} km"
        print(f"  {c.order.id:<10} {kind:<20} saves {c.savings.distance_saved_km:.2f} km "
              f"({c.savings.percent_saved:.0f}%)")
    return 0


def print_optimization(orders: OrderRepository, driver_id: str, start: GeoPoint) -> int:
    queue = [o for o in orders.by_driver(driver_id) if not o.is_delivered]
    optimizer = MultiStopOptimizer(GoogleDirectionsProvider(config.ProviderConfig.from_env()))
    plan = optimizer.optimize(start, queue)

    print(f"\nRoute for driver {driver_id} ({len(queue)} stops):")
    if plan.error:
        print(f"  Optimization unavailable: {plan.error}")
    for stop in plan.ordered_stops:
        print(f"  {stop.sequence:>2}. {stop.order.id:<10} (was #{stop.original_sequence}) "
              f"{stop.order.drop.address}")
    print(f"  Total: {plan.total_distance_km:.2f} km, {plan.total_duration_minutes} min")
    if plan.savings is not None:
        print(f"  Saved: {plan.savings.distance_saved_km:.2f} km ({plan.savings.percent_saved:.1f}%), "
              f"~{plan.savings.time_saved_minutes} min")
    return 0


def main() -> int:
    """
    Main entry point for the CLI.

    Returns:
        Exit code (0 for success, non-zero for error)
    """
    load_dotenv(Path(__file__).resolve().parent / ".env")

    parser = argparse.ArgumentParser(
        description="Fleetwise route-efficiency engine CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py                                   # Default sample data, all reports
  python main.py --match ORD-001                   # Bundling candidates
  python main.py --optimize DRV-1 --start 12.97,77.59
        """
    )
    parser.add_argument("--orders", "-o", default=DEFAULT_ORDERS,
                        help=f"Orders CSV (default: {DEFAULT_ORDERS})")
    parser.add_argument("--fixes", "-f", default=DEFAULT_FIXES,
                        help=f"GPS fixes CSV (default: {DEFAULT_FIXES})")
    parser.add_argument("--match", "-m", metavar="ORDER_ID",
                        help="Show bundling candidates for an active order")
    parser.add_argument("--limit", type=int, default=config.MAX_ROUTE_SUGGESTIONS,
                        help=f"Max bundling candidates (default: {config.MAX_ROUTE_SUGGESTIONS})")
    parser.add_argument("--optimize", metavar="DRIVER_ID",
                        help="Resequence a driver's queue (needs GOOGLE_MAPS_API_KEY)")
    parser.add_argument("--start", type=parse_point,
                        help="Route start as 'lat,lng' (required with --optimize)")
    parser.add_argument("--margin", type=float, default=config.DEVIATION_MARGIN_FRACTION,
                        help="Deviation margin before flagging (default: 0.20)")
    parser.add_argument("--verbose", "-v", action="store_true",
                        help="Show debug logging")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.optimize and args.start is None:
        parser.error("--optimize requires --start")

    print_header()

    fix_file: Optional[str] = args.fixes if os.path.exists(args.fixes) else None
    if fix_file is None:
        print(f"WARN: GPS fix file not found ({args.fixes}), traces will be empty")
    try:
        orders, fixes = load_repositories(args.orders, fix_file)
    except (FileNotFoundError, FleetError) as e:
        print(f"ERROR: Failed to load data: {e}")
        return 1
    print(f"Loaded {len(orders)} orders")

    monitor = DeviationMonitor(config.DeviationConfig(margin_fraction=args.margin))
    try:
        if args.match:
            return print_matches(orders, args.match, args.limit)
        if args.optimize:
            return print_optimization(orders, args.optimize, args.start)

        settled = settle_finished(orders, fixes, monitor)
        print_deviation_report(settled)
        print_fleet_stats(orders.all())
        print_leaderboard(orders, fixes, monitor)
    except FleetError as e:
        logger.exception("Processing failed")
        print(f"ERROR: {e}")
        return 2

    print("\n" + "=" * 60 + "\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
