"""HTTP routes for dispatch and tracking."""

from datetime import datetime
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Header, Query, Request, status
from pydantic import BaseModel, EmailStr, Field

from courier_dispatch.engine import DispatchEngine
from courier_dispatch.errors import NotFoundError, UnauthorizedError
from courier_dispatch.models import (
    CancelledBy,
    Delivery,
    DeliveryDriver,
    DeliveryEstimate,
    DeliveryETA,
    DeliveryStats,
    DeliveryStatus,
    IssueReporter,
    Location,
    LocationPoint,
    LocationUpdateResult,
    NearbyDriver,
    ProofOfDelivery,
    PublicTracking,
    TrackingData,
    VehicleType,
)
from courier_dispatch.models.geo import utcnow
from courier_dispatch.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter()


# Request Models


class CreateDeliveryRequest(BaseModel):
    """Request to create the delivery of an order."""

    order_id: UUID
    delivery_fee: float | None = Field(default=None, ge=0)
    is_priority: bool = False


class AssignDriverRequest(BaseModel):
    """Driver to assign. Omit to pick the best scored available one."""

    driver_id: UUID | None = None


class RejectDeliveryRequest(BaseModel):
    reason: str | None = None


class UpdateStatusRequest(BaseModel):
    """Generic status update along the happy path."""

    status: str
    note: str | None = None
    location: dict[str, Any] | None = None


class CancelDeliveryRequest(BaseModel):
    reason: str = ""
    cancelled_by: CancelledBy = CancelledBy.RESTAURANT


class RateDeliveryRequest(BaseModel):
    rating: Any
    comment: str | None = None


class TipRequest(BaseModel):
    amount: Any


class ReportIssueRequest(BaseModel):
    type: str
    description: str = ""
    photos: list[str] = []


class EstimateRequest(BaseModel):
    """Pre-assignment estimate between two points."""

    restaurant_location: dict[str, Any]
    customer_location: dict[str, Any]
    prep_minutes: int | None = Field(default=None, ge=0)


class RegisterDriverRequest(BaseModel):
    first_name: str
    last_name: str
    email: EmailStr | None = None
    phone: str | None = None
    vehicle_type: VehicleType = VehicleType.SCOOTER
    vehicle_plate: str | None = None
    restaurant_ids: list[UUID] = []


# Dependencies


def get_engine(request: Request) -> DispatchEngine:
    """Get the engine attached to the running app."""
    return request.app.state.engine


async def require_driver(x_driver_id: UUID | None = Header(default=None)) -> UUID:
    """Acting driver, authenticated upstream."""
    if x_driver_id is None:
        raise UnauthorizedError("Driver identity required", code="driver_required")
    return x_driver_id


async def require_staff(x_staff_scope: str | None = Header(default=None)) -> str:
    """Acting restaurant staff scope, authenticated upstream."""
    if not x_staff_scope:
        raise UnauthorizedError("Staff scope required", code="staff_required")
    return x_staff_scope


async def optional_driver(x_driver_id: UUID | None = Header(default=None)) -> UUID | None:
    return x_driver_id


# Delivery routes


@router.post(
    "/deliveries",
    response_model=Delivery,
    status_code=status.HTTP_201_CREATED,
)
async def create_delivery(
    request: CreateDeliveryRequest,
    staff: str = Depends(require_staff),
    engine: DispatchEngine = Depends(get_engine),
) -> Delivery:
    """Create the pending delivery of an order."""
    delivery = await engine.deliveries.create_delivery(
        request.order_id,
        delivery_fee=request.delivery_fee,
        is_priority=request.is_priority,
    )
    logger.info("delivery_create_requested", delivery_id=str(delivery.id), staff_scope=staff)
    return delivery


@router.get("/deliveries", response_model=list[Delivery])
async def list_deliveries(
    status_filter: list[DeliveryStatus] | None = Query(default=None, alias="status"),
    restaurant_id: UUID | None = None,
    driver_id: UUID | None = None,
    engine: DispatchEngine = Depends(get_engine),
) -> list[Delivery]:
    """List deliveries, newest first."""
    return await engine.deliveries.list_deliveries(
        status=status_filter,
        restaurant_id=restaurant_id,
        driver_id=driver_id,
    )


@router.get("/deliveries/active", response_model=list[Delivery])
async def list_active_deliveries(
    restaurant_id: UUID | None = None,
    engine: DispatchEngine = Depends(get_engine),
) -> list[Delivery]:
    """Deliveries not yet delivered or cancelled, for the live dashboard."""
    return await engine.deliveries.list_active_deliveries(restaurant_id)


@router.get("/deliveries/stats", response_model=DeliveryStats)
async def get_delivery_stats(
    restaurant_id: UUID | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    engine: DispatchEngine = Depends(get_engine),
) -> DeliveryStats:
    return await engine.deliveries.get_stats(restaurant_id, start, end)


@router.post("/deliveries/estimate", response_model=DeliveryEstimate)
async def estimate_delivery(
    request: EstimateRequest,
    engine: DispatchEngine = Depends(get_engine),
) -> DeliveryEstimate:
    """Estimate delivery minutes before any driver is assigned."""
    return engine.tracker.estimate_delivery_time(
        request.restaurant_location,
        request.customer_location,
        prep_minutes=request.prep_minutes,
    )


@router.get("/deliveries/track/{tracking_code}", response_model=PublicTracking)
async def track_by_code(
    tracking_code: str,
    engine: DispatchEngine = Depends(get_engine),
) -> PublicTracking:
    """Public tracking page lookup."""
    return await engine.deliveries.get_by_tracking_code(tracking_code)


@router.get("/deliveries/{delivery_id}", response_model=Delivery)
async def get_delivery(
    delivery_id: UUID,
    engine: DispatchEngine = Depends(get_engine),
) -> Delivery:
    return await engine.deliveries.get_delivery(delivery_id)


@router.post("/deliveries/{delivery_id}/assign", response_model=Delivery)
async def assign_driver(
    delivery_id: UUID,
    request: AssignDriverRequest = AssignDriverRequest(),
    staff: str = Depends(require_staff),
    engine: DispatchEngine = Depends(get_engine),
) -> Delivery:
    return await engine.deliveries.assign_driver(delivery_id, request.driver_id)


@router.post("/deliveries/{delivery_id}/accept", response_model=Delivery)
async def accept_delivery(
    delivery_id: UUID,
    driver_id: UUID = Depends(require_driver),
    engine: DispatchEngine = Depends(get_engine),
) -> Delivery:
    return await engine.deliveries.accept_delivery(delivery_id, driver_id)


@router.post("/deliveries/{delivery_id}/reject", response_model=Delivery)
async def reject_delivery(
    delivery_id: UUID,
    request: RejectDeliveryRequest = RejectDeliveryRequest(),
    driver_id: UUID = Depends(require_driver),
    engine: DispatchEngine = Depends(get_engine),
) -> Delivery:
    return await engine.deliveries.reject_delivery(delivery_id, driver_id, reason=request.reason)


@router.patch("/deliveries/{delivery_id}/status", response_model=Delivery)
async def update_delivery_status(
    delivery_id: UUID,
    request: UpdateStatusRequest,
    driver_id: UUID | None = Depends(optional_driver),
    x_staff_scope: str | None = Header(default=None),
    engine: DispatchEngine = Depends(get_engine),
) -> Delivery:
    """
    Move a delivery to its next status.

    Drivers may only update their own deliveries. Staff may update any.
    """
    if driver_id is None and not x_staff_scope:
        raise UnauthorizedError("Driver or staff identity required", code="principal_required")

    return await engine.deliveries.update_status(
        delivery_id,
        request.status,
        driver_id=driver_id,
        note=request.note,
        location=request.location,
    )


@router.post("/deliveries/{delivery_id}/complete", response_model=Delivery)
async def complete_delivery(
    delivery_id: UUID,
    proof: ProofOfDelivery,
    driver_id: UUID = Depends(require_driver),
    engine: DispatchEngine = Depends(get_engine),
) -> Delivery:
    return await engine.deliveries.complete_delivery(delivery_id, driver_id, proof)


@router.post("/deliveries/{delivery_id}/cancel", response_model=Delivery)
async def cancel_delivery(
    delivery_id: UUID,
    request: CancelDeliveryRequest,
    staff: str = Depends(require_staff),
    engine: DispatchEngine = Depends(get_engine),
) -> Delivery:
    return await engine.deliveries.cancel_delivery(
        delivery_id,
        request.reason,
        cancelled_by=request.cancelled_by,
    )


@router.post("/deliveries/{delivery_id}/rate", response_model=Delivery)
async def rate_delivery(
    delivery_id: UUID,
    request: RateDeliveryRequest,
    engine: DispatchEngine = Depends(get_engine),
) -> Delivery:
    return await engine.deliveries.rate_delivery(delivery_id, request.rating, request.comment)


@router.post("/deliveries/{delivery_id}/tip", response_model=Delivery)
async def add_tip(
    delivery_id: UUID,
    request: TipRequest,
    engine: DispatchEngine = Depends(get_engine),
) -> Delivery:
    return await engine.deliveries.add_tip(delivery_id, request.amount)


@router.post("/deliveries/{delivery_id}/issues", response_model=Delivery)
async def report_issue(
    delivery_id: UUID,
    request: ReportIssueRequest,
    driver_id: UUID | None = Depends(optional_driver),
    x_staff_scope: str | None = Header(default=None),
    engine: DispatchEngine = Depends(get_engine),
) -> Delivery:
    """
    Report a problem with a delivery.

    The reporter is the driver or the restaurant staff when their identity is
    present, otherwise the customer.
    """
    if driver_id is not None:
        reported_by = IssueReporter.DRIVER
    elif x_staff_scope:
        reported_by = IssueReporter.RESTAURANT
    else:
        reported_by = IssueReporter.CUSTOMER

    return await engine.deliveries.report_issue(
        delivery_id,
        request.type,
        request.description,
        reported_by=reported_by,
        photos=request.photos,
    )


# Tracking routes


@router.get("/deliveries/{delivery_id}/tracking", response_model=TrackingData)
async def get_tracking_data(
    delivery_id: UUID,
    engine: DispatchEngine = Depends(get_engine),
) -> TrackingData:
    """Live driver position, distance and ETA for a delivery."""
    tracking = await engine.tracker.get_tracking_data(delivery_id)
    if tracking is None:
        raise NotFoundError("Tracking is not available yet", code="tracking_unavailable")
    return tracking


@router.get("/deliveries/{delivery_id}/eta", response_model=DeliveryETA)
async def get_delivery_eta(
    delivery_id: UUID,
    engine: DispatchEngine = Depends(get_engine),
) -> DeliveryETA:
    eta = await engine.tracker.get_delivery_eta(delivery_id)
    if eta is None:
        raise NotFoundError("ETA is not available yet", code="tracking_unavailable")
    return eta


@router.get("/deliveries/{delivery_id}/location-history", response_model=list[LocationPoint])
async def get_location_history(
    delivery_id: UUID,
    engine: DispatchEngine = Depends(get_engine),
) -> list[LocationPoint]:
    return await engine.tracker.get_location_history(delivery_id)


# Driver routes


@router.post("/drivers/location", response_model=LocationUpdateResult)
async def update_driver_location(
    payload: dict[str, Any] = Body(...),
    driver_id: UUID = Depends(require_driver),
    engine: DispatchEngine = Depends(get_engine),
) -> LocationUpdateResult:
    """Ingest a location fix from the driver's device."""
    return await engine.tracker.update_driver_location(driver_id, payload)


@router.get("/drivers/nearby", response_model=list[NearbyDriver])
async def get_nearby_drivers(
    lat: float,
    lng: float,
    radius_km: float | None = Query(default=None, gt=0),
    engine: DispatchEngine = Depends(get_engine),
) -> list[NearbyDriver]:
    return await engine.tracker.get_nearby_drivers({"lat": lat, "lng": lng}, radius_km)


@router.post(
    "/drivers",
    response_model=DeliveryDriver,
    status_code=status.HTTP_201_CREATED,
)
async def register_driver(
    request: RegisterDriverRequest,
    engine: DispatchEngine = Depends(get_engine),
) -> DeliveryDriver:
    driver = DeliveryDriver(**request.model_dump())
    return await engine.drivers.register_driver(driver)


@router.post("/drivers/me/online", response_model=DeliveryDriver)
async def go_online(
    driver_id: UUID = Depends(require_driver),
    engine: DispatchEngine = Depends(get_engine),
) -> DeliveryDriver:
    return await engine.drivers.go_online(driver_id)


@router.post("/drivers/me/offline", response_model=DeliveryDriver)
async def go_offline(
    driver_id: UUID = Depends(require_driver),
    engine: DispatchEngine = Depends(get_engine),
) -> DeliveryDriver:
    return await engine.drivers.go_offline(driver_id)


@router.get("/drivers/{driver_id}", response_model=DeliveryDriver)
async def get_driver(
    driver_id: UUID,
    engine: DispatchEngine = Depends(get_engine),
) -> DeliveryDriver:
    return await engine.drivers.get_driver(driver_id)


@router.post("/drivers/{driver_id}/verify", response_model=DeliveryDriver)
async def verify_driver(
    driver_id: UUID,
    staff: str = Depends(require_staff),
    engine: DispatchEngine = Depends(get_engine),
) -> DeliveryDriver:
    return await engine.drivers.verify_driver(driver_id)


@router.get("/drivers/{driver_id}/location", response_model=Location)
async def get_driver_location(
    driver_id: UUID,
    engine: DispatchEngine = Depends(get_engine),
) -> Location:
    """Latest known position, cached first."""
    driver = await engine.drivers.get_driver(driver_id)
    position = await engine.tracker.driver_position(driver, utcnow())
    if position is None:
        raise NotFoundError("Driver location unknown", code="location_unknown")
    return position
