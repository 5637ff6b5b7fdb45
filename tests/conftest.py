"""Pytest configuration and fixtures."""

from datetime import datetime, timezone
from typing import Any, AsyncGenerator, Awaitable, Callable
from uuid import UUID, uuid4

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from courier_dispatch.config import Settings
from courier_dispatch.engine import DispatchEngine
from courier_dispatch.main import create_app
from courier_dispatch.models import (
    Address,
    Delivery,
    DeliveryDriver,
    DriverLocation,
    DriverStats,
    DriverStatus,
    FulfillmentType,
    Location,
    Order,
    Restaurant,
    ShiftStatus,
    VehicleType,
)
from courier_dispatch.state.location_cache import InMemoryLocationCache
from courier_dispatch.state.store import InMemoryStore


class RecordingNotifier:
    """Notifier that keeps every payload, or fails on demand."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, dict[str, Any]]] = []
        self.fail = False

    async def emit_to_customer(self, customer_id: str, payload: dict[str, Any]) -> None:
        if self.fail:
            raise ConnectionError("push gateway unavailable")
        self.sent.append((customer_id, payload))

    def types(self) -> list[str]:
        return [payload["type"] for _, payload in self.sent]


@pytest.fixture
def settings() -> Settings:
    """Default settings with the in-memory cache."""
    return Settings(location_cache_backend="memory", log_format="text")


@pytest.fixture
def now() -> datetime:
    """Fixed reference time."""
    return datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def restaurant_location() -> Location:
    return Location(lat=48.8566, lng=2.3522)


@pytest.fixture
def customer_location() -> Location:
    """About 2.5 km due north of the restaurant."""
    return Location(lat=48.8791, lng=2.3522)


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def cache(settings: Settings) -> InMemoryLocationCache:
    return InMemoryLocationCache(staleness_seconds=settings.location_staleness_seconds)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest_asyncio.fixture
async def engine(
    store: InMemoryStore,
    cache: InMemoryLocationCache,
    notifier: RecordingNotifier,
    settings: Settings,
) -> AsyncGenerator[DispatchEngine, None]:
    """Create a started dispatch engine."""
    engine = DispatchEngine(store, cache, notifier=notifier, settings=settings)
    await engine.start()
    yield engine
    await engine.stop()


@pytest_asyncio.fixture
async def test_client(engine: DispatchEngine) -> AsyncGenerator[AsyncClient, None]:
    """Create a test HTTP client around the engine."""
    app = create_app(engine)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client


# Sample data fixtures


@pytest_asyncio.fixture
async def restaurant(store: InMemoryStore, restaurant_location: Location) -> Restaurant:
    """Create a sample restaurant."""
    return await store.insert_restaurant(
        Restaurant(
            name="Chez Test",
            address=Address(
                street="1 Place de l'Hotel de Ville",
                city="Paris",
                postal_code="75004",
                coordinates=restaurant_location,
            ),
        )
    )


@pytest.fixture
def make_order(
    store: InMemoryStore,
    restaurant: Restaurant,
    customer_location: Location,
) -> Callable[..., Awaitable[Order]]:
    """Factory for delivery orders of the sample restaurant."""

    async def _make(
        fulfillment_type: FulfillmentType = FulfillmentType.DELIVERY,
        delivery_fee: float = 5.0,
    ) -> Order:
        return await store.insert_order(
            Order(
                restaurant_id=restaurant.id,
                customer_id=uuid4(),
                fulfillment_type=fulfillment_type,
                delivery_address=Address(
                    street="12 Rue Custine",
                    city="Paris",
                    postal_code="75018",
                    instructions="Code 1234",
                    coordinates=customer_location,
                ),
                prep_time_minutes=15,
                delivery_fee=delivery_fee,
            )
        )

    return _make


@pytest_asyncio.fixture
async def order(make_order: Callable[..., Awaitable[Order]]) -> Order:
    """Create a sample delivery order."""
    return await make_order()


@pytest.fixture
def make_driver(store: InMemoryStore, now: datetime) -> Callable[..., Awaitable[DeliveryDriver]]:
    """Factory for drivers, verified and online unless told otherwise."""

    async def _make(
        lat: float = 48.8570,
        lng: float = 2.3530,
        verified: bool = True,
        online: bool = True,
        vehicle_type: VehicleType = VehicleType.SCOOTER,
        first_name: str = "Test",
        restaurant_ids: list[UUID] | None = None,
        average_rating: float = 0.0,
    ) -> DeliveryDriver:
        return await store.insert_driver(
            DeliveryDriver(
                first_name=first_name,
                last_name="Driver",
                email="driver@example.com",
                phone="+33600000000",
                vehicle_type=vehicle_type,
                status=DriverStatus.VERIFIED if verified else DriverStatus.PENDING,
                shift_status=ShiftStatus.ONLINE if online else ShiftStatus.OFFLINE,
                current_location=DriverLocation(lat=lat, lng=lng, updated_at=now),
                restaurant_ids=restaurant_ids or [],
                stats=DriverStats(
                    average_rating=average_rating,
                    total_ratings=10 if average_rating else 0,
                ),
            )
        )

    return _make


@pytest_asyncio.fixture
async def driver(make_driver: Callable[..., Awaitable[DeliveryDriver]]) -> DeliveryDriver:
    """Create a sample driver standing next to the restaurant."""
    return await make_driver()


@pytest_asyncio.fixture
async def delivery(engine: DispatchEngine, order: Order) -> Delivery:
    """Create a pending delivery for the sample order."""
    return await engine.deliveries.create_delivery(order.id)


@pytest_asyncio.fixture
async def accepted_delivery(
    engine: DispatchEngine,
    delivery: Delivery,
    driver: DeliveryDriver,
) -> Delivery:
    """Create a delivery assigned to and accepted by the sample driver."""
    await engine.deliveries.assign_driver(delivery.id, driver.id)
    return await engine.deliveries.accept_delivery(delivery.id, driver.id)


async def advance(engine: DispatchEngine, delivery_id: UUID, *statuses: str) -> Delivery:
    """Walk a delivery through generic status updates as staff."""
    result = await engine.deliveries.get_delivery(delivery_id)
    for status in statuses:
        result = await engine.deliveries.update_status(delivery_id, status)
    return result


@pytest.fixture
def walk() -> Callable[..., Awaitable[Delivery]]:
    """Expose ``advance`` to tests."""
    return advance
