"""Dispatch tracker - live driver locations, ETAs and arrival detection."""

from collections.abc import Mapping
from datetime import datetime, timedelta
from typing import Any
from uuid import UUID

from courier_dispatch.config import Settings, get_settings
from courier_dispatch.errors import ConcurrentUpdateError, InvalidTransitionError, NotFoundError
from courier_dispatch.models.delivery import Delivery, DeliveryStatus, LocationPoint, TRACKED_STATUSES
from courier_dispatch.models.driver import DeliveryDriver, DriverLocation, DriverStatus, ShiftStatus
from courier_dispatch.models.geo import Location, LocationUpdate, utcnow
from courier_dispatch.models.tracking import (
    DeliveryEstimate,
    DeliveryETA,
    EstimateBreakdown,
    LocationUpdateResult,
    NearbyDriver,
    TrackingData,
    TrackingEvent,
)
from courier_dispatch.services.events import LOCATION_UPDATED, EventBus
from courier_dispatch.services.geomath import coerce_location, distance_km, eta_minutes, round_km
from courier_dispatch.services.state_machine import Action, apply_transition
from courier_dispatch.state.location_cache import LocationCache
from courier_dispatch.state.store import DispatchStore
from courier_dispatch.utils.logging import DispatchLogger
from courier_dispatch.utils.tracing import TrackingTracer


class DispatchTracker:
    """
    Processes driver location updates end to end.

    Responsibilities:
    - Keep the location cache and the driver's persisted location current
    - Record throttled location history on the active delivery
    - Compute live distance and ETA to the current destination
    - Detect arrival at the restaurant and at the customer
    - Publish location events for the broadcaster
    """

    def __init__(
        self,
        store: DispatchStore,
        cache: LocationCache,
        event_bus: EventBus,
        settings: Settings | None = None,
    ):
        self.store = store
        self.cache = cache
        self.event_bus = event_bus
        self.settings = settings or get_settings()
        self.logger = DispatchLogger("tracker")

    def _eta(self, distance: float, driver: DeliveryDriver) -> int:
        return eta_minutes(
            distance,
            driver.vehicle_type,
            in_traffic=True,
            traffic_factor=self.settings.traffic_factor,
        )

    async def update_driver_location(
        self,
        driver_id: UUID,
        location: LocationUpdate | Mapping[str, Any],
        now: datetime | None = None,
    ) -> LocationUpdateResult:
        """
        Ingest one location fix from a driver's device.

        Args:
            driver_id: Reporting driver
            location: Coordinates with optional accuracy and device timestamp
            now: Receipt time, defaults to the current time

        Returns:
            What the update changed. ``accepted`` is False when the fix was
            older than the one already cached and nothing was written.
        """
        now = now or utcnow()
        update = coerce_location(location, LocationUpdate)
        tracer = TrackingTracer(str(driver_id))

        driver = await self.store.get_driver(driver_id)
        if driver is None:
            raise NotFoundError(f"Driver {driver_id} not found", code="driver_not_found")

        with tracer.trace_step("cache_write"):
            accepted = await self.cache.put(str(driver_id), update, now)

        if not accepted:
            self.logger.logger.info(
                "location_update_ignored",
                driver_id=str(driver_id),
                reason="older_than_cached",
            )
            return LocationUpdateResult(driver_id=driver_id, accepted=False)

        with tracer.trace_step("driver_write"):
            await self.store.set_driver_location(
                driver_id,
                DriverLocation(
                    lat=update.lat,
                    lng=update.lng,
                    accuracy=update.accuracy,
                    updated_at=now,
                ),
            )

        with tracer.trace_step("resolve_delivery"):
            delivery = await self._active_delivery(driver_id)

        if delivery is None:
            self.logger.log_location_update(str(driver_id), True, duration_ms=tracer.elapsed_ms)
            return LocationUpdateResult(driver_id=driver_id, accepted=True)

        with tracer.trace_step("history"):
            history_recorded = await self._record_history(delivery, update, now)

        destination = delivery.destination.coordinates
        distance = distance_km(update, destination)
        eta = self._eta(distance, driver)

        with tracer.trace_step("arrival"):
            delivery, at_restaurant, at_customer = await self._detect_arrival(
                delivery, distance, now, update
            )

        with tracer.trace_step("publish"):
            self.event_bus.publish(
                TrackingEvent(
                    type=LOCATION_UPDATED,
                    delivery_id=delivery.id,
                    driver_id=driver_id,
                    location=Location(lat=update.lat, lng=update.lng),
                    destination=destination,
                    distance_km=distance,
                    eta_minutes=eta,
                    status=delivery.status,
                    occurred_at=now,
                )
            )

        self.logger.log_location_update(
            str(driver_id),
            True,
            delivery_id=str(delivery.id),
            duration_ms=tracer.elapsed_ms,
            history_recorded=history_recorded,
            distance_km=round_km(distance),
            eta_minutes=eta,
        )

        return LocationUpdateResult(
            driver_id=driver_id,
            accepted=True,
            delivery_id=delivery.id,
            status=delivery.status,
            history_recorded=history_recorded,
            distance_km=round_km(distance),
            eta_minutes=eta,
            arrived_at_restaurant=at_restaurant,
            arrived_at_customer=at_customer,
        )

    async def _active_delivery(self, driver_id: UUID) -> Delivery | None:
        deliveries = await self.store.find_deliveries(
            statuses=TRACKED_STATUSES,
            driver_id=driver_id,
        )
        if not deliveries:
            return None

        if len(deliveries) > 1:
            self.logger.logger.warning(
                "multiple_active_deliveries",
                driver_id=str(driver_id),
                delivery_ids=[str(d.id) for d in deliveries],
            )
        return deliveries[0]

    async def _record_history(
        self,
        delivery: Delivery,
        update: LocationUpdate,
        now: datetime,
    ) -> bool:
        last = delivery.last_location_point
        interval = self.settings.location_history_interval_seconds

        if last is not None and (now - last.timestamp).total_seconds() < interval:
            return False

        point = LocationPoint(
            lat=update.lat,
            lng=update.lng,
            timestamp=now,
            accuracy=update.accuracy if update.accuracy is not None
            else self.settings.default_accuracy_meters,
        )
        await self.store.append_location_point(delivery.id, point)
        delivery.location_history.append(point)
        return True

    async def _detect_arrival(
        self,
        delivery: Delivery,
        distance: float,
        now: datetime,
        update: LocationUpdate,
    ) -> tuple[Delivery, bool, bool]:
        if distance * 1000 > self.settings.arrival_threshold_meters:
            return delivery, False, False

        if delivery.status == DeliveryStatus.ACCEPTED:
            if delivery.arrived_at_restaurant_at is not None:
                return delivery, False, False

            updated = delivery.model_copy(deep=True)
            updated.arrived_at_restaurant_at = now
            saved = await self._save_arrival(updated)
            if saved is None:
                return delivery, False, False

            self.logger.logger.info(
                "arrival_detected",
                delivery_id=str(delivery.id),
                destination="restaurant",
            )
            return saved, True, False

        if delivery.status == DeliveryStatus.IN_TRANSIT:
            try:
                updated = apply_transition(
                    delivery,
                    Action.ARRIVE,
                    now,
                    note="Arrival detected from driver location",
                    location=Location(lat=update.lat, lng=update.lng),
                )
            except InvalidTransitionError:
                return delivery, False, False

            saved = await self._save_arrival(updated)
            if saved is None:
                return delivery, False, False

            self.logger.log_transition(
                str(delivery.id),
                Action.ARRIVE.value,
                delivery.status.value,
                saved.status.value,
                source="geofence",
            )
            return saved, False, True

        return delivery, False, False

    async def _save_arrival(self, delivery: Delivery) -> Delivery | None:
        try:
            return await self.store.save_delivery(delivery)
        except ConcurrentUpdateError:
            # The next location fix retries against the fresh record
            self.logger.logger.info("arrival_save_conflict", delivery_id=str(delivery.id))
            return None

    async def driver_position(self, driver: DeliveryDriver, now: datetime) -> Location | None:
        """Fresh cached position, else the driver's persisted one."""
        return await self.cache.get(str(driver.id), now, fallback=driver.current_location)

    async def get_tracking_data(
        self,
        delivery_id: UUID,
        now: datetime | None = None,
    ) -> TrackingData | None:
        """Live snapshot for the customer map. None when tracking is unavailable."""
        now = now or utcnow()

        delivery = await self.store.get_delivery(delivery_id)
        if delivery is None:
            raise NotFoundError(f"Delivery {delivery_id} not found", code="delivery_not_found")

        if delivery.driver_id is None:
            return None

        driver = await self.store.get_driver(delivery.driver_id)
        if driver is None:
            return None

        current = await self.driver_position(driver, now)
        if current is None:
            return None

        destination = delivery.destination.coordinates
        distance = distance_km(current, destination)
        eta = self._eta(distance, driver)

        return TrackingData(
            delivery_id=delivery.id,
            driver_id=driver.id,
            driver_name=driver.full_name,
            driver_photo=driver.profile_photo,
            driver_phone=driver.phone,
            vehicle_type=driver.vehicle_type,
            rating=driver.stats.average_rating,
            current_location=current,
            pickup_location=delivery.pickup_address.coordinates,
            delivery_location=delivery.delivery_address.coordinates,
            status=delivery.status,
            estimated_arrival=now + timedelta(minutes=eta),
            eta_minutes=eta,
            distance_remaining=round_km(distance),
            is_picked_up=delivery.is_picked_up,
        )

    async def get_delivery_eta(
        self,
        delivery_id: UUID,
        now: datetime | None = None,
    ) -> DeliveryETA | None:
        """Customer-facing ETA derived from the tracking snapshot."""
        now = now or utcnow()
        tracking = await self.get_tracking_data(delivery_id, now)
        if tracking is None:
            return None

        minutes_remaining = round((tracking.estimated_arrival - now).total_seconds() / 60)
        return DeliveryETA(
            estimated_arrival=tracking.estimated_arrival,
            minutes_remaining=max(0, minutes_remaining),
            status=tracking.status,
        )

    async def get_location_history(self, delivery_id: UUID) -> list[LocationPoint]:
        delivery = await self.store.get_delivery(delivery_id)
        if delivery is None:
            raise NotFoundError(f"Delivery {delivery_id} not found", code="delivery_not_found")
        return delivery.location_history

    def estimate_delivery_time(
        self,
        restaurant_location: Location | Mapping[str, Any],
        customer_location: Location | Mapping[str, Any],
        prep_minutes: int | None = None,
    ) -> DeliveryEstimate:
        """
        Estimate total minutes before any driver is assigned.

        Assumes a scooter about two kilometres from the restaurant.
        """
        restaurant = coerce_location(restaurant_location)
        customer = coerce_location(customer_location)
        if prep_minutes is None:
            prep_minutes = self.settings.default_prep_minutes

        distance = distance_km(restaurant, customer)
        factor = self.settings.traffic_factor
        pickup_time = eta_minutes(self.settings.pickup_leg_km, "scooter", traffic_factor=factor)
        delivery_time = eta_minutes(distance, "scooter", traffic_factor=factor)

        return DeliveryEstimate(
            estimated_minutes=prep_minutes + pickup_time + delivery_time,
            distance_km=round_km(distance),
            breakdown=EstimateBreakdown(
                prep_time=prep_minutes,
                pickup_time=pickup_time,
                delivery_time=delivery_time,
            ),
        )

    async def get_nearby_drivers(
        self,
        location: Location | Mapping[str, Any],
        radius_km: float | None = None,
    ) -> list[NearbyDriver]:
        """
        Verified, on-shift drivers within a radius, closest first.

        Linear scan over the fleet.
        """
        center = coerce_location(location)
        if radius_km is None:
            radius_km = self.settings.default_nearby_radius_km

        drivers = await self.store.find_drivers(
            statuses=[DriverStatus.VERIFIED],
            shift_statuses=[ShiftStatus.ONLINE, ShiftStatus.ON_DELIVERY],
        )

        nearby = []
        for driver in drivers:
            if driver.current_location is None:
                continue

            position = Location(lat=driver.current_location.lat, lng=driver.current_location.lng)
            distance = distance_km(center, position)
            if distance <= radius_km:
                nearby.append(
                    NearbyDriver(
                        driver_id=driver.id,
                        location=position,
                        vehicle_type=driver.vehicle_type,
                        is_available=driver.is_available,
                        distance_km=round(distance, 3),
                    )
                )

        nearby.sort(key=lambda d: d.distance_km)
        return nearby
