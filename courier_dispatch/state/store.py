"""Document store seam for deliveries, drivers, orders and restaurants."""

from abc import ABC, abstractmethod
from collections.abc import Iterable
from uuid import UUID

from courier_dispatch.errors import ConcurrentUpdateError, ConflictError, NotFoundError
from courier_dispatch.models.delivery import Delivery, DeliveryStatus, LocationPoint
from courier_dispatch.models.driver import DeliveryDriver, DriverLocation, DriverStatus, ShiftStatus
from courier_dispatch.models.geo import utcnow
from courier_dispatch.models.order import Order, Restaurant
from courier_dispatch.utils.logging import get_logger

logger = get_logger(__name__)


class DispatchStore(ABC):
    """
    Persistence capability consumed by the dispatch engine.

    Saves of deliveries and drivers are compare-and-swap on ``version``: the
    write only lands if the stored version still equals the one that was read,
    and the stored version is then bumped. History appends and driver location
    writes are single-field atomic updates that leave ``version`` alone.
    """

    # Deliveries

    @abstractmethod
    async def get_delivery(self, delivery_id: UUID) -> Delivery | None: ...

    @abstractmethod
    async def find_deliveries(
        self,
        *,
        statuses: Iterable[DeliveryStatus] | None = None,
        driver_id: UUID | None = None,
        restaurant_id: UUID | None = None,
        order_id: UUID | None = None,
    ) -> list[Delivery]: ...

    @abstractmethod
    async def find_delivery_by_tracking_code(self, tracking_code: str) -> Delivery | None: ...

    @abstractmethod
    async def insert_delivery(self, delivery: Delivery) -> Delivery:
        """Insert a new delivery. Raises ConflictError if the order already has a live one."""

    @abstractmethod
    async def save_delivery(self, delivery: Delivery) -> Delivery: ...

    @abstractmethod
    async def append_location_point(self, delivery_id: UUID, point: LocationPoint) -> None: ...

    # Drivers

    @abstractmethod
    async def get_driver(self, driver_id: UUID) -> DeliveryDriver | None: ...

    @abstractmethod
    async def find_drivers(
        self,
        *,
        statuses: Iterable[DriverStatus] | None = None,
        shift_statuses: Iterable[ShiftStatus] | None = None,
    ) -> list[DeliveryDriver]: ...

    @abstractmethod
    async def insert_driver(self, driver: DeliveryDriver) -> DeliveryDriver: ...

    @abstractmethod
    async def save_driver(self, driver: DeliveryDriver) -> DeliveryDriver: ...

    @abstractmethod
    async def set_driver_location(self, driver_id: UUID, location: DriverLocation) -> bool:
        """Write the driver's current location. Returns False for unknown drivers."""

    # Orders and restaurants

    @abstractmethod
    async def get_order(self, order_id: UUID) -> Order | None: ...

    @abstractmethod
    async def insert_order(self, order: Order) -> Order: ...

    @abstractmethod
    async def set_order_delivery_id(self, order_id: UUID, delivery_id: UUID) -> None: ...

    @abstractmethod
    async def get_restaurant(self, restaurant_id: UUID) -> Restaurant | None: ...

    @abstractmethod
    async def insert_restaurant(self, restaurant: Restaurant) -> Restaurant: ...


class InMemoryStore(DispatchStore):
    """
    Dict-backed store.

    Documents are deep-copied on the way in and out so callers never share
    state with the store. None of the methods awaits between reading and
    writing, so each one is atomic on the event loop.
    """

    def __init__(self) -> None:
        self._deliveries: dict[UUID, Delivery] = {}
        self._drivers: dict[UUID, DeliveryDriver] = {}
        self._orders: dict[UUID, Order] = {}
        self._restaurants: dict[UUID, Restaurant] = {}

    # Deliveries

    async def get_delivery(self, delivery_id: UUID) -> Delivery | None:
        delivery = self._deliveries.get(delivery_id)
        return delivery.model_copy(deep=True) if delivery else None

    async def find_deliveries(
        self,
        *,
        statuses: Iterable[DeliveryStatus] | None = None,
        driver_id: UUID | None = None,
        restaurant_id: UUID | None = None,
        order_id: UUID | None = None,
    ) -> list[Delivery]:
        wanted = set(statuses) if statuses is not None else None
        results = []
        for delivery in self._deliveries.values():
            if wanted is not None and delivery.status not in wanted:
                continue
            if driver_id is not None and delivery.driver_id != driver_id:
                continue
            if restaurant_id is not None and delivery.restaurant_id != restaurant_id:
                continue
            if order_id is not None and delivery.order_id != order_id:
                continue
            results.append(delivery.model_copy(deep=True))

        results.sort(key=lambda d: d.created_at, reverse=True)
        return results

    async def find_delivery_by_tracking_code(self, tracking_code: str) -> Delivery | None:
        for delivery in self._deliveries.values():
            if delivery.tracking_code == tracking_code:
                return delivery.model_copy(deep=True)
        return None

    async def insert_delivery(self, delivery: Delivery) -> Delivery:
        if delivery.id in self._deliveries:
            raise ConflictError(f"Delivery {delivery.id} already exists", code="duplicate_id")

        for existing in self._deliveries.values():
            if existing.order_id == delivery.order_id and existing.status != DeliveryStatus.CANCELLED:
                raise ConflictError(
                    "A delivery already exists for this order",
                    code="delivery_exists",
                    delivery_id=str(existing.id),
                )

        stored = delivery.model_copy(deep=True)
        stored.version = 1
        self._deliveries[stored.id] = stored
        return stored.model_copy(deep=True)

    async def save_delivery(self, delivery: Delivery) -> Delivery:
        current = self._deliveries.get(delivery.id)
        if current is None:
            raise NotFoundError(f"Delivery {delivery.id} not found", code="delivery_not_found")

        if current.version != delivery.version:
            raise ConcurrentUpdateError(
                "Delivery was modified concurrently, reload and retry",
                expected_version=delivery.version,
                actual_version=current.version,
            )

        stored = delivery.model_copy(deep=True)
        # location_history is only ever written by append_location_point
        stored.location_history = [p.model_copy() for p in current.location_history]
        stored.version = current.version + 1
        stored.updated_at = utcnow()
        self._deliveries[stored.id] = stored
        return stored.model_copy(deep=True)

    async def append_location_point(self, delivery_id: UUID, point: LocationPoint) -> None:
        current = self._deliveries.get(delivery_id)
        if current is None:
            raise NotFoundError(f"Delivery {delivery_id} not found", code="delivery_not_found")
        current.location_history.append(point.model_copy())

    # Drivers

    async def get_driver(self, driver_id: UUID) -> DeliveryDriver | None:
        driver = self._drivers.get(driver_id)
        return driver.model_copy(deep=True) if driver else None

    async def find_drivers(
        self,
        *,
        statuses: Iterable[DriverStatus] | None = None,
        shift_statuses: Iterable[ShiftStatus] | None = None,
    ) -> list[DeliveryDriver]:
        wanted_status = set(statuses) if statuses is not None else None
        wanted_shift = set(shift_statuses) if shift_statuses is not None else None
        return [
            driver.model_copy(deep=True)
            for driver in self._drivers.values()
            if (wanted_status is None or driver.status in wanted_status)
            and (wanted_shift is None or driver.shift_status in wanted_shift)
        ]

    async def insert_driver(self, driver: DeliveryDriver) -> DeliveryDriver:
        if driver.id in self._drivers:
            raise ConflictError(f"Driver {driver.id} already exists", code="duplicate_id")
        stored = driver.model_copy(deep=True)
        stored.version = 1
        self._drivers[stored.id] = stored
        return stored.model_copy(deep=True)

    async def save_driver(self, driver: DeliveryDriver) -> DeliveryDriver:
        current = self._drivers.get(driver.id)
        if current is None:
            raise NotFoundError(f"Driver {driver.id} not found", code="driver_not_found")

        if current.version != driver.version:
            raise ConcurrentUpdateError(
                "Driver was modified concurrently, reload and retry",
                expected_version=driver.version,
                actual_version=current.version,
            )

        stored = driver.model_copy(deep=True)
        # The tracker owns current_location; a stale read must not roll it back
        stored.current_location = (
            current.current_location.model_copy() if current.current_location else None
        )
        stored.version = current.version + 1
        stored.updated_at = utcnow()
        self._drivers[stored.id] = stored
        return stored.model_copy(deep=True)

    async def set_driver_location(self, driver_id: UUID, location: DriverLocation) -> bool:
        current = self._drivers.get(driver_id)
        if current is None:
            return False
        current.current_location = location.model_copy()
        return True

    # Orders and restaurants

    async def get_order(self, order_id: UUID) -> Order | None:
        order = self._orders.get(order_id)
        return order.model_copy(deep=True) if order else None

    async def insert_order(self, order: Order) -> Order:
        self._orders[order.id] = order.model_copy(deep=True)
        return order.model_copy(deep=True)

    async def set_order_delivery_id(self, order_id: UUID, delivery_id: UUID) -> None:
        order = self._orders.get(order_id)
        if order is None:
            raise NotFoundError(f"Order {order_id} not found", code="order_not_found")
        order.delivery_id = delivery_id

    async def get_restaurant(self, restaurant_id: UUID) -> Restaurant | None:
        restaurant = self._restaurants.get(restaurant_id)
        return restaurant.model_copy(deep=True) if restaurant else None

    async def insert_restaurant(self, restaurant: Restaurant) -> Restaurant:
        self._restaurants[restaurant.id] = restaurant.model_copy(deep=True)
        return restaurant.model_copy(deep=True)
