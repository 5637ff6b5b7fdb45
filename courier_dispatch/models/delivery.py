"""Delivery models."""

import secrets
from datetime import datetime
from enum import Enum
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from courier_dispatch.models.geo import Location, utcnow


class DeliveryStatus(str, Enum):
    """Delivery lifecycle states."""

    PENDING = "pending"
    ASSIGNED = "assigned"
    ACCEPTED = "accepted"
    PICKED_UP = "picked_up"
    IN_TRANSIT = "in_transit"
    ARRIVED = "arrived"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset({DeliveryStatus.DELIVERED, DeliveryStatus.CANCELLED})

# Statuses during which the driver's location updates are tracked
TRACKED_STATUSES = frozenset(
    {DeliveryStatus.ACCEPTED, DeliveryStatus.PICKED_UP, DeliveryStatus.IN_TRANSIT}
)

BEFORE_PICKUP_STATUSES = frozenset(
    {DeliveryStatus.PENDING, DeliveryStatus.ASSIGNED, DeliveryStatus.ACCEPTED}
)

PICKED_UP_STATUSES = frozenset(
    {DeliveryStatus.PICKED_UP, DeliveryStatus.IN_TRANSIT, DeliveryStatus.ARRIVED}
)


class CancelledBy(str, Enum):
    """Who cancelled a delivery."""

    CUSTOMER = "customer"
    DRIVER = "driver"
    RESTAURANT = "restaurant"
    SYSTEM = "system"


class PODType(str, Enum):
    """Kind of proof collected at hand-off."""

    PHOTO = "photo"
    SIGNATURE = "signature"
    CUSTOMER_CONFIRM = "customer_confirm"


class IssueType(str, Enum):
    """Problems reported during a delivery."""

    WRONG_ADDRESS = "wrong_address"
    CUSTOMER_UNAVAILABLE = "customer_unavailable"
    CUSTOMER_REFUSED = "customer_refused"
    ORDER_DAMAGED = "order_damaged"
    ITEMS_MISSING = "items_missing"
    TRAFFIC_DELAY = "traffic_delay"
    VEHICLE_ISSUE = "vehicle_issue"
    WEATHER = "weather"
    OTHER = "other"


class IssueReporter(str, Enum):
    """Who reported a delivery issue."""

    DRIVER = "driver"
    CUSTOMER = "customer"
    RESTAURANT = "restaurant"
    SYSTEM = "system"


class Address(BaseModel):
    """Postal address with coordinates."""

    street: str = ""
    city: str = ""
    postal_code: str = ""
    country: str = "France"
    instructions: str | None = None
    coordinates: Location


class StatusHistoryEntry(BaseModel):
    """One entry of a delivery's status history."""

    event: str
    timestamp: datetime
    note: str | None = None
    location: Location | None = None


class LocationPoint(BaseModel):
    """Persisted point of a delivery's location history."""

    lat: float
    lng: float
    timestamp: datetime
    accuracy: float


class ProofOfDelivery(BaseModel):
    """Evidence submitted by the driver when completing a delivery."""

    photo_url: str | None = None
    signature_url: str | None = None
    recipient_name: str | None = None
    delivery_notes: str | None = None
    gps_coordinates: Location | None = None
    completed_at: datetime | None = None

    @property
    def type(self) -> PODType:
        if self.photo_url:
            return PODType.PHOTO
        if self.signature_url:
            return PODType.SIGNATURE
        return PODType.CUSTOMER_CONFIRM

    @property
    def has_evidence(self) -> bool:
        return bool(self.photo_url or self.signature_url or self.recipient_name)

    @property
    def gps_verified(self) -> bool:
        return self.gps_coordinates is not None


class CustomerRating(BaseModel):
    """Customer feedback on a completed delivery."""

    rating: int = Field(ge=1, le=5)
    comment: str | None = None
    rated_at: datetime


class DeliveryIssue(BaseModel):
    """Problem reported against a delivery. Reporting never changes the status."""

    type: IssueType
    description: str
    reported_by: IssueReporter
    reported_at: datetime
    photos: list[str] = Field(default_factory=list)


def generate_tracking_code() -> str:
    """Opaque code for unauthenticated tracking lookups."""
    return secrets.token_urlsafe(9)


def generate_delivery_number(now: datetime | None = None) -> str:
    """Human readable reference, e.g. ``DLV-20261019-3FA29C``."""
    now = now or utcnow()
    return f"DLV-{now:%Y%m%d}-{secrets.token_hex(3).upper()}"


class Delivery(BaseModel):
    """Fulfillment record tracking one order's door-to-door journey."""

    id: UUID = Field(default_factory=uuid4)
    delivery_number: str = Field(default_factory=generate_delivery_number)
    tracking_code: str = Field(default_factory=generate_tracking_code)

    # References
    order_id: UUID
    restaurant_id: UUID
    customer_id: UUID | None = None
    driver_id: UUID | None = None

    # Status
    status: DeliveryStatus = DeliveryStatus.PENDING
    status_history: list[StatusHistoryEntry] = Field(default_factory=list)

    # Assignment
    rejected_driver_ids: list[UUID] = Field(default_factory=list)
    is_priority: bool = False

    # Addresses
    pickup_address: Address
    delivery_address: Address
    delivery_instructions: str | None = None

    # Static estimate taken at creation
    estimated_distance: float = 0.0  # km
    estimated_duration: int = 0  # minutes
    estimated_delivery_time: datetime | None = None

    # Milestones
    assigned_at: datetime | None = None
    accepted_at: datetime | None = None
    arrived_at_restaurant_at: datetime | None = None
    actual_pickup_time: datetime | None = None
    arrived_at_customer_at: datetime | None = None
    actual_delivery_time: datetime | None = None

    # Tracking
    location_history: list[LocationPoint] = Field(default_factory=list)

    # Completion
    proof_of_delivery: ProofOfDelivery | None = None
    customer_rating: CustomerRating | None = None
    delivery_fee: float = Field(default=0.0, ge=0)
    tip_amount: float | None = None
    tip_added_at: datetime | None = None

    # Issues
    issues: list[DeliveryIssue] = Field(default_factory=list)

    # Cancellation
    cancel_reason: str | None = None
    cancelled_at: datetime | None = None
    cancelled_by: CancelledBy | None = None

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    # Optimistic concurrency counter, bumped by the store on every save
    version: int = 0

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def is_picked_up(self) -> bool:
        return self.status in PICKED_UP_STATUSES

    @property
    def destination(self) -> Address:
        """Where the driver is currently heading."""
        if self.status in BEFORE_PICKUP_STATUSES:
            return self.pickup_address
        return self.delivery_address

    @property
    def last_location_point(self) -> LocationPoint | None:
        return self.location_history[-1] if self.location_history else None

    def add_history(
        self,
        event: str,
        timestamp: datetime,
        note: str | None = None,
        location: Location | None = None,
    ) -> None:
        self.status_history.append(
            StatusHistoryEntry(event=event, timestamp=timestamp, note=note, location=location)
        )
