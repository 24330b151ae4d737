# fleetwise/fleetwise/matching.py
"""
En-route order matching.

When a driver accepts an order (pickup A, drop B), the RouteMatcher looks at
the driver's other pending orders (pickup C, drop D) and ranks the ones that
are cheap to bundle into the same trip:

1. **Return trip**: C sits near B and D sits near A. The driver was heading
   back empty anyway, so the whole order is free to fulfill.
2. **Along route**: inserting C or D between A and B costs a small detour.

Return trips always rank ahead of any detour, regardless of detour size.
Pure and state-free: no I/O, all data is fetched by the caller.
"""

from __future__ import annotations

import heapq
from typing import List, Optional, Sequence, Tuple

from . import utils
from .config import MatchingConfig
from .models import GeoPoint, Order, RouteMatchCandidate, Savings


def detour_km(start: GeoPoint, end: GeoPoint, via: GeoPoint) -> float:
    """Extra distance of going start -> via -> end instead of start -> end."""
    direct = utils.distance_km(start, end)
    through = utils.distance_km(start, via) + utils.distance_km(via, end)
    return through - direct


class RouteMatcher:
    """
    Finds pending orders that can ride along with a driver's active order.

    Attributes:
        config: Detour and return-trip thresholds
    """

    def __init__(self, config: Optional[MatchingConfig] = None) -> None:
        self.config = config or MatchingConfig()

    def is_return_trip(self, active: Order, candidate: Order) -> bool:
        """
        Return trip if the candidate mirrors the active order's endpoints.

        Either both mirrored endpoints are within the strict threshold, or one
        is a near-perfect match and both are within the loose threshold. The
        two ranges overlap without nesting; both rules are kept as-is since
        tightening either changes which orders get bundled.
        """
        cfg = self.config
        pickup_near_drop = utils.distance_km(active.drop_point, candidate.pickup_point)
        drop_near_pickup = utils.distance_km(active.pickup_point, candidate.drop_point)

        strict = (pickup_near_drop <= cfg.return_trip_strict_km
                  and drop_near_pickup <= cfg.return_trip_strict_km)
        perfect_match = (pickup_near_drop < cfg.return_trip_perfect_match_km
                         or drop_near_pickup < cfg.return_trip_perfect_match_km)
        loose = (perfect_match
                 and pickup_near_drop <= cfg.return_trip_loose_km
                 and drop_near_pickup <= cfg.return_trip_loose_km)
        return strict or loose

    def evaluate(self, active: Order, candidate: Order) -> Optional[RouteMatchCandidate]:
        """Score one pending order against the active trip; None if it does not fit."""
        if self.is_return_trip(active, candidate):
            return RouteMatchCandidate(
                order=candidate,
                pickup_detour_km=0.0,
                drop_detour_km=0.0,
                total_detour_km=0.0,
                is_return_trip=True,
                savings=Savings(
                    distance_saved_km=utils.distance_km(candidate.pickup_point, candidate.drop_point),
                    percent_saved=100.0,
                ),
            )

        # Both endpoints are measured against the active A -> B leg
        start, end = active.pickup_point, active.drop_point
        pickup_detour = detour_km(start, end, candidate.pickup_point)
        drop_detour = detour_km(start, end, candidate.drop_point)
        pickup_along = pickup_detour <= self.config.along_route_detour_km
        drop_along = drop_detour <= self.config.along_route_detour_km
        if not (pickup_along or drop_along):
            return None

        total = pickup_detour + drop_detour
        planned = candidate.planned_distance_km or 0.0
        saved = planned - total
        return RouteMatchCandidate(
            order=candidate,
            pickup_detour_km=pickup_detour,
            drop_detour_km=drop_detour,
            total_detour_km=total,
            is_return_trip=False,
            is_pickup_along=pickup_along,
            is_drop_along=drop_along,
            savings=Savings(
                distance_saved_km=saved,
                percent_saved=(saved / planned * 100) if planned > 0 else 0.0,
            ),
        )

    def find_candidates(
        self,
        active: Order,
        pending: Sequence[Order],
        limit: Optional[int] = None,
    ) -> List[RouteMatchCandidate]:
        """
        Rank pending orders that can be bundled into the active trip.

        Args:
            active: The order the driver is currently running
            pending: The driver's other pending orders
            limit: Keep only the best N candidates (None keeps all)

        Returns:
            Return-trip candidates first (input order), then the rest by
            ascending total detour (ties keep input order)
        """
        if limit is not None and limit <= 0:
            return []

        ranked: List[Tuple[Tuple[bool, float, int], RouteMatchCandidate]] = []
        for index, order in enumerate(pending):
            if order.id == active.id:
                continue
            candidate = self.evaluate(active, order)
            if candidate is not None:
                key = (not candidate.is_return_trip, candidate.total_detour_km, index)
                ranked.append((key, candidate))

        if limit is not None and limit < len(ranked):
            best = heapq.nsmallest(limit, ranked, key=lambda item: item[0])
        else:
            best = sorted(ranked, key=lambda item: item[0])
        return [candidate for _, candidate in best]
