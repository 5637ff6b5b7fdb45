"""Data models for the dispatch engine."""

from courier_dispatch.models.delivery import (
    Address,
    CancelledBy,
    CustomerRating,
    Delivery,
    DeliveryIssue,
    DeliveryStatus,
    IssueReporter,
    IssueType,
    LocationPoint,
    PODType,
    ProofOfDelivery,
    StatusHistoryEntry,
)
from courier_dispatch.models.driver import (
    DeliveryDriver,
    DriverLocation,
    DriverStats,
    DriverStatus,
    ShiftStatus,
    VehicleType,
)
from courier_dispatch.models.geo import CachedLocation, Location, LocationUpdate
from courier_dispatch.models.order import FulfillmentType, Order, Restaurant
from courier_dispatch.models.tracking import (
    DeliveryEstimate,
    DeliveryETA,
    DeliveryStats,
    LocationUpdateResult,
    NearbyDriver,
    PublicTracking,
    TrackingData,
    TrackingEvent,
)

__all__ = [
    # Geo
    "Location",
    "LocationUpdate",
    "CachedLocation",
    # Delivery
    "Address",
    "CancelledBy",
    "CustomerRating",
    "Delivery",
    "DeliveryIssue",
    "DeliveryStatus",
    "IssueReporter",
    "IssueType",
    "LocationPoint",
    "PODType",
    "ProofOfDelivery",
    "StatusHistoryEntry",
    # Driver
    "DeliveryDriver",
    "DriverLocation",
    "DriverStats",
    "DriverStatus",
    "ShiftStatus",
    "VehicleType",
    # Order
    "FulfillmentType",
    "Order",
    "Restaurant",
    # Tracking
    "DeliveryEstimate",
    "DeliveryETA",
    "DeliveryStats",
    "LocationUpdateResult",
    "NearbyDriver",
    "PublicTracking",
    "TrackingData",
    "TrackingEvent",
]
