"""Order and restaurant records supplied by the ordering platform."""

from enum import Enum
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from courier_dispatch.models.delivery import Address


class FulfillmentType(str, Enum):
    """How an order reaches the customer."""

    DELIVERY = "delivery"
    PICKUP = "pickup"
    DINE_IN = "dine_in"


class Order(BaseModel):
    """The subset of an order the dispatch engine reads."""

    id: UUID = Field(default_factory=uuid4)
    restaurant_id: UUID
    customer_id: UUID | None = None
    fulfillment_type: FulfillmentType = FulfillmentType.DELIVERY
    delivery_address: Address | None = None
    delivery_instructions: str | None = None
    prep_time_minutes: int | None = Field(default=None, ge=0)
    delivery_fee: float = Field(default=0.0, ge=0)

    # Back-reference written by the dispatch engine
    delivery_id: UUID | None = None


class Restaurant(BaseModel):
    """Pickup point of a delivery."""

    id: UUID = Field(default_factory=uuid4)
    name: str
    address: Address
