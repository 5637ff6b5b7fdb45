"""Driver models."""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from pydantic import BaseModel, EmailStr, Field, computed_field

from courier_dispatch.models.geo import Location, utcnow


class VehicleType(str, Enum):
    """Courier vehicle types."""

    BICYCLE = "bicycle"
    SCOOTER = "scooter"
    MOTORCYCLE = "motorcycle"
    CAR = "car"


class DriverStatus(str, Enum):
    """Driver verification states."""

    PENDING = "pending"
    VERIFIED = "verified"
    SUSPENDED = "suspended"
    DEACTIVATED = "deactivated"


class ShiftStatus(str, Enum):
    """Driver shift states."""

    OFFLINE = "offline"
    ONLINE = "online"
    ON_DELIVERY = "on_delivery"


class DriverLocation(Location):
    """Last known position persisted on the driver record."""

    updated_at: datetime
    accuracy: float | None = None


class DriverStats(BaseModel):
    """Lifetime aggregates, updated when a delivery ends."""

    total_deliveries: int = 0
    completed_deliveries: int = 0
    cancelled_deliveries: int = 0
    completion_rate: float = 0.0
    average_rating: float = 0.0
    total_ratings: int = 0
    total_earnings: float = 0.0
    total_tips: float = 0.0


class DeliveryDriver(BaseModel):
    """Delivery driver profile."""

    id: UUID = Field(default_factory=uuid4)
    first_name: str
    last_name: str
    email: EmailStr | None = None
    phone: str | None = None
    profile_photo: str | None = None
    restaurant_ids: list[UUID] = Field(default_factory=list)

    vehicle_type: VehicleType = VehicleType.SCOOTER
    vehicle_plate: str | None = None

    status: DriverStatus = DriverStatus.PENDING
    verified_at: datetime | None = None

    shift_status: ShiftStatus = ShiftStatus.OFFLINE
    shift_started_at: datetime | None = None
    current_location: DriverLocation | None = None
    current_delivery_id: UUID | None = None

    stats: DriverStats = Field(default_factory=DriverStats)
    current_balance: float = 0.0

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    version: int = 0

    @computed_field  # type: ignore[prop-decorator]
    @property
    def is_available(self) -> bool:
        """Check if driver can be assigned a new delivery."""
        return (
            self.status == DriverStatus.VERIFIED
            and self.shift_status == ShiftStatus.ONLINE
            and self.current_delivery_id is None
        )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def display_info(self) -> dict[str, Any]:
        """Public driver details shown to the customer."""
        return {
            "name": self.full_name,
            "photo": self.profile_photo,
            "vehicle_type": self.vehicle_type.value,
            "rating": self.stats.average_rating,
        }
