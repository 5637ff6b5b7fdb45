"""Seed a restaurant, drivers and orders, then walk one delivery end to end."""

import asyncio

from courier_dispatch.config import Settings
from courier_dispatch.engine import DispatchEngine
from courier_dispatch.models import (
    Address,
    DeliveryDriver,
    DriverLocation,
    Location,
    Order,
    ProofOfDelivery,
    Restaurant,
    VehicleType,
)
from courier_dispatch.models.geo import utcnow
from courier_dispatch.state.location_cache import InMemoryLocationCache
from courier_dispatch.state.store import InMemoryStore

RESTAURANT = Location(lat=48.8566, lng=2.3522)
CUSTOMERS = [
    ("12 Rue Custine", "75018", Location(lat=48.8791, lng=2.3522)),
    ("3 Rue de Rivoli", "75004", Location(lat=48.8556, lng=2.3600)),
    ("40 Rue Monge", "75005", Location(lat=48.8450, lng=2.3520)),
]


async def seed_restaurant(engine: DispatchEngine) -> Restaurant:
    """Seed the restaurant."""
    print("Seeding restaurant...")

    restaurant = await engine.store.insert_restaurant(
        Restaurant(
            name="Chez Marcel",
            address=Address(
                street="1 Place de l'Hotel de Ville",
                city="Paris",
                postal_code="75004",
                coordinates=RESTAURANT,
            ),
        )
    )
    print(f"  ✓ Added {restaurant.name}\n")
    return restaurant


async def seed_drivers(engine: DispatchEngine) -> list[DeliveryDriver]:
    """Register, verify and start the shift of a few drivers."""
    print("Seeding drivers...")

    candidates = [
        ("Ana", "Lopez", VehicleType.BICYCLE, Location(lat=48.8570, lng=2.3530)),
        ("Marc", "Dubois", VehicleType.SCOOTER, Location(lat=48.8600, lng=2.3450)),
        ("Sofia", "Rossi", VehicleType.CAR, Location(lat=48.8650, lng=2.3700)),
    ]

    drivers = []
    for first_name, last_name, vehicle_type, location in candidates:
        driver = await engine.drivers.register_driver(
            DeliveryDriver(first_name=first_name, last_name=last_name, vehicle_type=vehicle_type)
        )
        await engine.drivers.verify_driver(driver.id)
        await engine.store.set_driver_location(
            driver.id, DriverLocation(lat=location.lat, lng=location.lng, updated_at=utcnow())
        )
        driver = await engine.drivers.go_online(driver.id)
        drivers.append(driver)
        print(f"  ✓ Added {driver.full_name} ({vehicle_type.value})")

    print("✓ Drivers seeded successfully\n")
    return drivers


async def seed_orders(engine: DispatchEngine, restaurant: Restaurant) -> list[Order]:
    """Seed delivery orders."""
    print("Seeding orders...")

    orders = []
    for street, postal_code, location in CUSTOMERS:
        order = await engine.store.insert_order(
            Order(
                restaurant_id=restaurant.id,
                delivery_address=Address(
                    street=street,
                    city="Paris",
                    postal_code=postal_code,
                    coordinates=location,
                ),
                delivery_fee=4.5,
            )
        )
        orders.append(order)
        print(f"  ✓ Added order to {street}")

    print("✓ Orders seeded successfully\n")
    return orders


async def walk_delivery(engine: DispatchEngine, order: Order) -> None:
    """Run one order from creation to hand-off."""
    print("Walking one delivery...")

    delivery = await engine.deliveries.create_delivery(order.id)
    print(f"  ✓ Created {delivery.delivery_number} ({delivery.estimated_duration} min estimate)")

    delivery = await engine.deliveries.assign_driver(delivery.id)
    driver_id = delivery.driver_id
    driver = await engine.drivers.get_driver(driver_id)
    print(f"  ✓ Auto-assigned {driver.full_name}")

    await engine.deliveries.accept_delivery(delivery.id, driver_id)
    await engine.deliveries.update_status(delivery.id, "picked_up", driver_id=driver_id)
    await engine.deliveries.update_status(delivery.id, "in_transit", driver_id=driver_id)

    destination = order.delivery_address.coordinates
    start = RESTAURANT
    for step in range(1, 5):
        fraction = step / 4
        result = await engine.tracker.update_driver_location(
            driver_id,
            {
                "lat": start.lat + (destination.lat - start.lat) * fraction,
                "lng": start.lng + (destination.lng - start.lng) * fraction,
            },
        )
        print(
            f"  • {result.distance_km} km to go, ETA {result.eta_minutes} min"
            + (" (arrived)" if result.arrived_at_customer else "")
        )

    delivery = await engine.deliveries.complete_delivery(
        delivery.id, driver_id, ProofOfDelivery(recipient_name="Customer")
    )
    print(f"  ✓ {delivery.delivery_number} is {delivery.status.value}\n")


async def main() -> None:
    """Run all seed functions."""
    print("\n" + "=" * 50)
    print("  Seeding Courier Dispatch Data")
    print("=" * 50 + "\n")

    settings = Settings(location_cache_backend="memory")
    engine = DispatchEngine(
        InMemoryStore(),
        InMemoryLocationCache(settings.location_staleness_seconds),
        settings=settings,
    )
    await engine.start()
    try:
        restaurant = await seed_restaurant(engine)
        await seed_drivers(engine)
        orders = await seed_orders(engine, restaurant)
        await walk_delivery(engine, orders[0])

        stats = await engine.deliveries.get_stats(restaurant.id)
        print(f"Completed {stats.completed}/{stats.total}, completion rate {stats.completion_rate}%")
    finally:
        await engine.stop()

    print("=" * 50)
    print("  ✓ All data seeded successfully!")
    print("=" * 50 + "\n")


if __name__ == "__main__":
    asyncio.run(main())
