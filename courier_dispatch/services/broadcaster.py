"""Customer-facing tracking notifications."""

from datetime import timedelta
from typing import Any, Protocol
from uuid import UUID

from courier_dispatch.models.delivery import Delivery, DeliveryStatus
from courier_dispatch.models.geo import Location, utcnow
from courier_dispatch.models.tracking import TrackingEvent
from courier_dispatch.services.geomath import round_km
from courier_dispatch.state.location_cache import LocationCache
from courier_dispatch.state.store import DispatchStore
from courier_dispatch.utils.logging import DispatchLogger


class Notifier(Protocol):
    """Push transport to a customer's devices."""

    async def emit_to_customer(self, customer_id: str, payload: dict[str, Any]) -> None: ...


class NullNotifier:
    """Notifier that drops everything."""

    async def emit_to_customer(self, customer_id: str, payload: dict[str, Any]) -> None:
        return None


class Broadcaster:
    """
    Stateless fan-out of tracking updates to the customer of an order.

    A missing order, customer or driver skips the push. Notifier errors are
    logged and never reach the caller.
    """

    def __init__(self, store: DispatchStore, notifier: Notifier, cache: LocationCache):
        self.store = store
        self.notifier = notifier
        self.cache = cache
        self.logger = DispatchLogger("broadcaster")

    async def handle_event(self, event: TrackingEvent) -> None:
        """Event bus subscriber for location updates."""
        if event.location is None or event.destination is None:
            return

        await self.broadcast_location(
            delivery_id=event.delivery_id,
            driver_id=event.driver_id,
            location=event.location,
            destination=event.destination,
            distance=event.distance_km or 0.0,
            eta=event.eta_minutes or 0,
            status=event.status,
        )

    async def broadcast_location(
        self,
        delivery_id: UUID,
        driver_id: UUID,
        location: Location,
        destination: Location,
        distance: float,
        eta: int,
        status: DeliveryStatus | None = None,
    ) -> bool:
        """
        Push the live position to the customer. Returns True when sent.

        ``status`` is the delivery status the position was recorded under and
        defaults to the stored one.
        """
        delivery = await self.store.get_delivery(delivery_id)
        if delivery is None:
            return False

        driver = await self.store.get_driver(driver_id)
        if driver is None:
            return False

        customer_id = await self._customer_for(delivery)
        if customer_id is None:
            return False

        payload = {
            "type": "tracking:location",
            "title": "Location Update",
            "message": "Driver location updated",
            "data": {
                "delivery_id": str(delivery.id),
                "driver_location": {"lat": location.lat, "lng": location.lng},
                "destination": {"lat": destination.lat, "lng": destination.lng},
                "distance_km": round_km(distance),
                "eta_minutes": eta,
                "estimated_arrival": (utcnow() + timedelta(minutes=eta)).isoformat(),
                "status": (status or delivery.status).value,
                "driver_info": driver.display_info(),
            },
        }
        return await self._emit(customer_id, payload, delivery_id=str(delivery.id))

    async def start_tracking(self, delivery_id: UUID) -> bool:
        """Tell the customer live tracking is available."""
        delivery = await self.store.get_delivery(delivery_id)
        if delivery is None:
            return False

        customer_id = await self._customer_for(delivery)
        if customer_id is None:
            return False

        payload = {
            "type": "tracking:started",
            "title": "Live Tracking",
            "message": "Live tracking is now available for your order",
            "data": {"delivery_id": str(delivery.id)},
        }
        return await self._emit(customer_id, payload, delivery_id=str(delivery.id))

    async def stop_tracking(self, delivery_id: UUID, driver_id: UUID | None = None) -> bool:
        """Tell the customer tracking ended and drop the driver's cached location."""
        delivery = await self.store.get_delivery(delivery_id)
        if delivery is None:
            return False

        driver_id = driver_id or delivery.driver_id
        if driver_id is not None:
            await self.cache.evict(str(driver_id))

        customer_id = await self._customer_for(delivery)
        if customer_id is None:
            return False

        payload = {
            "type": "tracking:ended",
            "title": "Tracking Ended",
            "message": "Delivery tracking has ended",
            "data": {"delivery_id": str(delivery.id), "status": delivery.status.value},
        }
        return await self._emit(customer_id, payload, delivery_id=str(delivery.id))

    async def _customer_for(self, delivery: Delivery) -> str | None:
        order = await self.store.get_order(delivery.order_id)
        if order is None or order.customer_id is None:
            return None
        return str(order.customer_id)

    async def _emit(self, customer_id: str, payload: dict[str, Any], **context: Any) -> bool:
        try:
            await self.notifier.emit_to_customer(customer_id, payload)
        except Exception as e:
            self.logger.log_broadcast_error(
                payload["type"],
                str(e),
                customer_id=customer_id,
                **context,
            )
            return False
        return True
