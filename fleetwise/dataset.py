# fleetwise/fleetwise/dataset.py
"""
CSV loaders for order and GPS fix exports.

Orders file columns:
    order_id, pickup_lat, pickup_lng, pickup_address, drop_lat, drop_lng,
    drop_address, driver_id, vehicle_type, status, planned_distance_km,
    actual_distance_km, started_at, completed_at

GPS fixes file columns:
    driver_id, order_id, latitude, longitude, recorded_at

Timestamps are ISO 8601. Values without an offset are read as UTC, matching
the timezone-aware UTC timestamps the service stamps on live events. Empty
cells mean "not set".
"""

from __future__ import annotations

import csv
import os
from collections import defaultdict
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from .exceptions import ValidationError
from .models import GeoPoint, GpsFix, Location, Order, OrderStatus, VehicleType
from .repository import GpsFixRepository, OrderRepository


def _optional(row: Dict[str, str], key: str) -> Optional[str]:
    value = (row.get(key) or "").strip()
    return value or None


def _optional_float(row: Dict[str, str], key: str) -> Optional[float]:
    value = _optional(row, key)
    return float(value) if value is not None else None


def _parse_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed


def _optional_datetime(row: Dict[str, str], key: str) -> Optional[datetime]:
    value = _optional(row, key)
    return _parse_timestamp(value) if value is not None else None


def _vehicle_type(value: Optional[str]) -> Optional[VehicleType]:
    """Unknown vehicle strings become None (the fuel estimate then uses the default rate)."""
    if value is None:
        return None
    try:
        return VehicleType(value.lower())
    except ValueError:
        return None


def load_orders(order_file: str) -> List[Order]:
    """
    Load orders from a CSV export.

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValidationError: If a row is malformed
    """
    if not os.path.exists(order_file):
        raise FileNotFoundError(f"Order file not found: {order_file}")

    orders: List[Order] = []
    with open(order_file, "r", newline="") as f:
        reader = csv.DictReader(f)
        for line_no, row in enumerate(reader, start=2):
            try:
                status = OrderStatus((_optional(row, "status") or "pending").lower())
                orders.append(Order(
                    id=row["order_id"],
                    pickup=Location(
                        point=GeoPoint(float(row["pickup_lat"]), float(row["pickup_lng"])),
                        address=_optional(row, "pickup_address") or "",
                    ),
                    drop=Location(
                        point=GeoPoint(float(row["drop_lat"]), float(row["drop_lng"])),
                        address=_optional(row, "drop_address") or "",
                    ),
                    planned_distance_km=_optional_float(row, "planned_distance_km"),
                    vehicle_type=_vehicle_type(_optional(row, "vehicle_type")),
                    driver_id=_optional(row, "driver_id"),
                    status=status,
                    actual_distance_km=_optional_float(row, "actual_distance_km"),
                    started_at=_optional_datetime(row, "started_at"),
                    completed_at=_optional_datetime(row, "completed_at"),
                ))
            except (KeyError, ValueError) as e:
                raise ValidationError(f"Invalid order data in {order_file} line {line_no}: {e}") from e
    return orders


def load_fixes(fix_file: str) -> Dict[str, List[GpsFix]]:
    """
    Load GPS fixes grouped by order, each trace sorted by recorded_at.

    Fixes without an order_id are dropped: they belong to no trace.
    """
    if not os.path.exists(fix_file):
        raise FileNotFoundError(f"GPS fix file not found: {fix_file}")

    traces: Dict[str, List[GpsFix]] = defaultdict(list)
    with open(fix_file, "r", newline="") as f:
        reader = csv.DictReader(f)
        for line_no, row in enumerate(reader, start=2):
            try:
                order_id = _optional(row, "order_id")
                if order_id is None:
                    continue
                traces[order_id].append(GpsFix(
                    driver_id=row["driver_id"],
                    order_id=order_id,
                    location=GeoPoint(float(row["latitude"]), float(row["longitude"])),
                    recorded_at=_parse_timestamp(row["recorded_at"].strip()),
                ))
            except (KeyError, ValueError) as e:
                raise ValidationError(f"Invalid GPS fix data in {fix_file} line {line_no}: {e}") from e

    for trace in traces.values():
        trace.sort(key=lambda fix: fix.recorded_at)
    return dict(traces)


def load_repositories(order_file: str, fix_file: Optional[str] = None) -> Tuple[OrderRepository, GpsFixRepository]:
    """Load both exports straight into in-memory repositories."""
    orders = OrderRepository(load_orders(order_file))
    fixes = GpsFixRepository()
    if fix_file is not None:
        for trace in load_fixes(fix_file).values():
            for fix in trace:
                fixes.append(fix)
    return orders, fixes
