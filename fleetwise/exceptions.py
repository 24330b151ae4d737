# fleetwise/fleetwise/exceptions.py
"""
Error taxonomy for the Fleetwise engine.

Pure components (geo math, deviation classification, route matching) raise
these loudly on bad input. Components with an external dependency attach a
ProviderError to their result instead of raising where a safe fallback exists.
"""

from typing import Any, Dict, Optional


class FleetError(Exception):
    """Base exception for the engine."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ValidationError(FleetError, ValueError):
    """Malformed input: non-finite coordinates, out-of-order GPS fixes, negative distances."""


class OrderStateError(ValidationError):
    """Raised when an order lifecycle transition is not allowed from its current status."""

    def __init__(self, order_id: Any, current: str, attempted: str):
        super().__init__(
            message=f"Order {order_id} cannot {attempted} while {current}",
            details={"order_id": order_id, "status": current, "action": attempted},
        )


class ProviderError(FleetError):
    """External routing/geocoding call failed or returned a non-success status."""

    def __init__(self, message: str, status: Optional[str] = None):
        self.status = status
        super().__init__(message=message, details={"status": status})


class InsufficientDataError(FleetError):
    """Fewer than 2 GPS fixes. Normally treated as zero distance rather than raised."""


class OrderNotFoundError(FleetError, KeyError):
    """Raised when a repository lookup misses."""

    def __init__(self, order_id: Any):
        super().__init__(
            message=f"Order with ID {order_id} not found",
            details={"resource": "order", "id": order_id},
        )

    def __str__(self) -> str:
        return self.message
