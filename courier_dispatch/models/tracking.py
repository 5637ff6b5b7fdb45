"""Read models returned by the tracking and reporting operations."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field

from courier_dispatch.models.delivery import DeliveryStatus, StatusHistoryEntry
from courier_dispatch.models.driver import VehicleType
from courier_dispatch.models.geo import Location


class LocationUpdateResult(BaseModel):
    """Outcome of one driver location update."""

    driver_id: UUID
    accepted: bool
    delivery_id: UUID | None = None
    status: DeliveryStatus | None = None
    history_recorded: bool = False
    distance_km: float | None = None
    eta_minutes: int | None = None
    arrived_at_restaurant: bool = False
    arrived_at_customer: bool = False


class TrackingData(BaseModel):
    """Live snapshot of a delivery in progress."""

    delivery_id: UUID
    driver_id: UUID
    driver_name: str
    driver_photo: str | None = None
    driver_phone: str | None = None
    vehicle_type: VehicleType
    rating: float
    current_location: Location
    pickup_location: Location
    delivery_location: Location
    status: DeliveryStatus
    estimated_arrival: datetime
    eta_minutes: int
    distance_remaining: float
    is_picked_up: bool


class DeliveryETA(BaseModel):
    """Customer-facing ETA."""

    estimated_arrival: datetime
    minutes_remaining: int
    status: DeliveryStatus


class EstimateBreakdown(BaseModel):
    prep_time: int
    pickup_time: int
    delivery_time: int


class DeliveryEstimate(BaseModel):
    """Pre-assignment delivery time estimate."""

    estimated_minutes: int
    distance_km: float
    breakdown: EstimateBreakdown


class NearbyDriver(BaseModel):
    """Driver shown on the dispatch map."""

    driver_id: UUID
    location: Location
    vehicle_type: VehicleType
    is_available: bool
    distance_km: float


class PublicTracking(BaseModel):
    """What an unauthenticated tracking-code lookup may see."""

    delivery_number: str
    status: DeliveryStatus
    status_history: list[StatusHistoryEntry]
    estimated_delivery_time: datetime | None = None
    destination_city: str
    destination_postal_code: str
    driver_location: Location | None = None


class DeliveryTimeStats(BaseModel):
    avg_time: float = 0.0
    min_time: float = 0.0
    max_time: float = 0.0


class DeliveryStats(BaseModel):
    """Aggregated delivery figures for a restaurant or the whole fleet."""

    total: int
    completed: int
    cancelled: int
    active: int
    completion_rate: float
    status_breakdown: dict[str, int] = Field(default_factory=dict)
    delivery_time: DeliveryTimeStats = Field(default_factory=DeliveryTimeStats)


class TrackingEvent(BaseModel):
    """Internal event published after a tracked location update."""

    type: str
    delivery_id: UUID
    driver_id: UUID
    location: Location | None = None
    destination: Location | None = None
    distance_km: float | None = None
    eta_minutes: int | None = None
    status: DeliveryStatus | None = None
    occurred_at: datetime
    metadata: dict[str, Any] = Field(default_factory=dict)
