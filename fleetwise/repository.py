# fleetwise/fleetwise/repository.py
"""
In-memory order and GPS fix repositories.

Reference implementations of the storage collaborators, used by the CLI and
the tests. A hosted backend can stand in for them as long as it keeps the same
two guarantees:
- Order updates are applied atomically per order (one replace under a lock),
  and settlement fields are only ever written by DeviationMonitor.settle
- GPS fixes are append-only and time-ordered within an order
"""

from __future__ import annotations

import copy
import threading
from collections import defaultdict
from typing import Callable, Dict, Iterable, List, Optional

from .exceptions import OrderNotFoundError, ValidationError
from .models import GpsFix, Order, OrderStatus


class OrderRepository:
    """
    Thread-safe order store.

    Callers always receive copies, so mutating a returned order never changes
    stored state behind the lock.
    """

    def __init__(self, orders: Optional[Iterable[Order]] = None) -> None:
        self._lock = threading.RLock()
        self._orders: Dict[str, Order] = {}
        for order in orders or ():
            self.save(order)

    def __len__(self) -> int:
        with self._lock:
            return len(self._orders)

    def get(self, order_id: str) -> Order:
        with self._lock:
            if order_id not in self._orders:
                raise OrderNotFoundError(order_id)
            return copy.copy(self._orders[order_id])

    def save(self, order: Order) -> Order:
        """Insert or replace a whole order."""
        with self._lock:
            self._orders[order.id] = copy.copy(order)
            return copy.copy(order)

    def transform(self, order_id: str, fn: Callable[[Order], Order]) -> Order:
        """
        Replace an order with `fn(current)` while holding the lock.

        If `fn` raises, the stored order is left unchanged.
        """
        with self._lock:
            if order_id not in self._orders:
                raise OrderNotFoundError(order_id)
            updated = fn(copy.copy(self._orders[order_id]))
            self._orders[order_id] = copy.copy(updated)
            return updated

    def assign_sequences(self, sequences: Dict[str, int]) -> List[str]:
        """
        Write a resequenced queue (order_id -> sequence) under one lock acquisition.

        Orders delivered since the plan was computed keep no sequence and are
        skipped.

        Returns:
            IDs of the orders that were resequenced
        """
        with self._lock:
            missing = [oid for oid in sequences if oid not in self._orders]
            if missing:
                raise OrderNotFoundError(missing[0])
            written: List[str] = []
            for order_id, sequence in sequences.items():
                order = self._orders[order_id]
                if order.is_delivered:
                    continue
                self._orders[order_id] = order.with_sequence(sequence)
                written.append(order_id)
            return written

    def all(self) -> List[Order]:
        with self._lock:
            return [copy.copy(o) for o in self._orders.values()]

    def by_driver(self, driver_id: str, status: Optional[OrderStatus] = None) -> List[Order]:
        """A driver's orders, optionally filtered by status, in insertion order."""
        with self._lock:
            return [
                copy.copy(o) for o in self._orders.values()
                if o.driver_id == driver_id and (status is None or o.status is status)
            ]

    def by_status(self, status: OrderStatus) -> List[Order]:
        with self._lock:
            return [copy.copy(o) for o in self._orders.values() if o.status is status]


class GpsFixRepository:
    """Append-only GPS fix store with ordered reads per order."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._by_order: Dict[str, List[GpsFix]] = defaultdict(list)
        self._unlinked: List[GpsFix] = []

    def append(self, fix: GpsFix) -> None:
        """
        Store a fix. Fixes for the same order must arrive in time order.

        Raises:
            ValidationError: If the fix is older than the order's last fix
        """
        with self._lock:
            if fix.order_id is None:
                self._unlinked.append(fix)
                return
            trace = self._by_order[fix.order_id]
            if trace and fix.recorded_at < trace[-1].recorded_at:
                raise ValidationError(
                    f"Fix at {fix.recorded_at.isoformat()} is older than the last fix "
                    f"for order {fix.order_id}",
                    details={"order_id": fix.order_id},
                )
            trace.append(fix)

    def for_order(self, order_id: str) -> List[GpsFix]:
        """Time-ordered trace snapshot for one order."""
        with self._lock:
            return list(self._by_order.get(order_id, ()))

    def traces(self, order_ids: Iterable[str]) -> Dict[str, List[GpsFix]]:
        """order_id -> trace snapshot, for several orders at once."""
        with self._lock:
            return {oid: list(self._by_order.get(oid, ())) for oid in order_ids}

    def last_for_driver(self, driver_id: str) -> Optional[GpsFix]:
        """Most recent fix for a driver across all orders, or None."""
        with self._lock:
            candidates = [f for f in self._unlinked if f.driver_id == driver_id]
            for trace in self._by_order.values():
                candidates.extend(f for f in trace if f.driver_id == driver_id)
            if not candidates:
                return None
            return max(candidates, key=lambda f: f.recorded_at)

    def latest_by_driver(self) -> Dict[str, GpsFix]:
        """driver_id -> most recent fix, across the whole fleet."""
        with self._lock:
            latest: Dict[str, GpsFix] = {}
            fixes = list(self._unlinked)
            for trace in self._by_order.values():
                fixes.extend(trace)
            for fix in fixes:
                current = latest.get(fix.driver_id)
                if current is None or fix.recorded_at > current.recorded_at:
                    latest[fix.driver_id] = fix
            return latest
