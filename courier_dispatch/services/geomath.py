"""Great-circle distance and ETA estimation."""

import math
from collections.abc import Mapping
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from courier_dispatch.errors import InvalidInputError
from courier_dispatch.models.driver import VehicleType
from courier_dispatch.models.geo import Location

LocationT = TypeVar("LocationT", bound=Location)

EARTH_RADIUS_KM = 6371.0

# Base speeds in km/h
VEHICLE_SPEEDS_KMH: dict[str, float] = {
    VehicleType.BICYCLE.value: 15.0,
    VehicleType.SCOOTER.value: 25.0,
    VehicleType.MOTORCYCLE.value: 35.0,
    VehicleType.CAR.value: 30.0,
}
DEFAULT_SPEED_KMH = 25.0
TRAFFIC_FACTOR = 0.7


def distance_km(a: Location, b: Location) -> float:
    """Haversine distance between two points in km."""
    lat1, lng1 = math.radians(a.lat), math.radians(a.lng)
    lat2, lng2 = math.radians(b.lat), math.radians(b.lng)

    dlat = lat2 - lat1
    dlng = lng2 - lng1

    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlng / 2) ** 2
    # Rounding can push h a hair outside [0, 1] for antipodal points
    h = min(1.0, max(0.0, h))
    c = 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))

    return EARTH_RADIUS_KM * c


def eta_minutes(
    distance: float,
    vehicle_type: VehicleType | str | None,
    in_traffic: bool = True,
    traffic_factor: float = TRAFFIC_FACTOR,
) -> int:
    """
    Estimate travel minutes for a distance.

    Args:
        distance: Distance in km
        vehicle_type: Driver vehicle, unknown types use 25 km/h
        in_traffic: Apply the traffic slowdown
        traffic_factor: Speed multiplier used when in traffic

    Returns:
        Whole minutes, rounded up. Zero, negative or non-finite distance gives 0.
    """
    if not math.isfinite(distance) or distance <= 0:
        return 0

    key = vehicle_type.value if isinstance(vehicle_type, VehicleType) else vehicle_type
    speed = VEHICLE_SPEEDS_KMH.get(key or "", DEFAULT_SPEED_KMH)

    if in_traffic:
        speed *= traffic_factor

    return math.ceil(distance / speed * 60)


def round_km(distance: float) -> float:
    """Distance rounded to 100 m for display."""
    return round(distance * 10) / 10


def coerce_location(
    value: BaseModel | Mapping[str, Any],
    model: type[LocationT] = Location,  # type: ignore[assignment]
) -> LocationT:
    """Validate a location payload, raising InvalidInputError when malformed."""
    payload = value.model_dump() if isinstance(value, BaseModel) else value

    try:
        location = model.model_validate(payload)
    except ValidationError as e:
        raise InvalidInputError(
            "Malformed coordinates",
            code="invalid_coordinates",
            errors=[error["msg"] for error in e.errors()],
        ) from e

    if not (math.isfinite(location.lat) and math.isfinite(location.lng)):
        raise InvalidInputError("Coordinates must be finite numbers", code="invalid_coordinates")

    return location
