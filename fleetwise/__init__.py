# fleetwise/fleetwise/__init__.py

from .models import (
    GeoPoint,
    Location,
    Order,
    OrderStatus,
    VehicleType,
    GpsFix,
    DriverLocation,
    RouteMatchCandidate,
    OptimizedRoutePlan,
    DriverPerformanceRecord,
)
from .config import DeviationConfig, MatchingConfig, ProviderConfig
from .exceptions import (
    FleetError,
    ValidationError,
    OrderStateError,
    ProviderError,
    InsufficientDataError,
    OrderNotFoundError,
)
from .utils import distance_km
from .deviation import DeviationMonitor
from .matching import RouteMatcher
from .optimizer import MultiStopOptimizer
from .scoring import DriverPerformanceAggregator
from .service import DeliveryService

__version__ = "1.0.0"

__all__ = [
    # Models
    "GeoPoint",
    "Location",
    "Order",
    "OrderStatus",
    "VehicleType",
    "GpsFix",
    "DriverLocation",
    "RouteMatchCandidate",
    "OptimizedRoutePlan",
    "DriverPerformanceRecord",
    # Core
    "DeviationMonitor",
    "RouteMatcher",
    "MultiStopOptimizer",
    "DriverPerformanceAggregator",
    "DeliveryService",
    # Functions
    "distance_km",
    # Config
    "DeviationConfig",
    "MatchingConfig",
    "ProviderConfig",
    # Errors
    "FleetError",
    "ValidationError",
    "OrderStateError",
    "ProviderError",
    "InsufficientDataError",
    "OrderNotFoundError",
]
