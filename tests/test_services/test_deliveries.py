"""Tests for the delivery lifecycle service."""

import re
from datetime import datetime, timedelta
from uuid import uuid4

import pytest

from courier_dispatch.engine import DispatchEngine
from courier_dispatch.errors import (
    ConflictError,
    InvalidInputError,
    InvalidTransitionError,
    NotFoundError,
    UnauthorizedError,
)
from courier_dispatch.models import (
    CancelledBy,
    Delivery,
    DeliveryDriver,
    DeliveryStatus,
    FulfillmentType,
    IssueReporter,
    IssueType,
    Order,
    PODType,
    ShiftStatus,
)


# Creation


@pytest.mark.asyncio
async def test_create_delivery(engine: DispatchEngine, order: Order) -> None:
    """Test that a pending delivery is created from the order."""
    delivery = await engine.deliveries.create_delivery(order.id)

    assert delivery.status == DeliveryStatus.PENDING
    assert delivery.order_id == order.id
    assert delivery.customer_id == order.customer_id
    assert delivery.delivery_fee == 5.0
    assert delivery.estimated_distance == 2.5
    assert delivery.estimated_duration == 31
    assert delivery.delivery_address.instructions == "Code 1234"
    assert [e.event for e in delivery.status_history] == ["created"]
    assert re.fullmatch(r"DLV-\d{8}-[0-9A-F]{6}", delivery.delivery_number)

    stored_order = await engine.store.get_order(order.id)
    assert stored_order.delivery_id == delivery.id


@pytest.mark.asyncio
async def test_create_rejects_second_live_delivery(
    engine: DispatchEngine,
    order: Order,
    delivery: Delivery,
) -> None:
    """Test that an order has at most one non-cancelled delivery."""
    with pytest.raises(ConflictError) as exc_info:
        await engine.deliveries.create_delivery(order.id)

    assert exc_info.value.code == "delivery_exists"
    assert len(await engine.deliveries.list_deliveries()) == 1


@pytest.mark.asyncio
async def test_create_after_cancel(
    engine: DispatchEngine,
    order: Order,
    delivery: Delivery,
) -> None:
    """Test that a cancelled delivery can be replaced and the order relinked."""
    await engine.deliveries.cancel_delivery(delivery.id, "Kitchen closed")

    replacement = await engine.deliveries.create_delivery(order.id)

    stored_order = await engine.store.get_order(order.id)
    assert stored_order.delivery_id == replacement.id


@pytest.mark.asyncio
async def test_create_for_pickup_order(engine: DispatchEngine, make_order) -> None:
    """Test that only delivery orders get a delivery."""
    order = await make_order(fulfillment_type=FulfillmentType.PICKUP)

    with pytest.raises(InvalidInputError) as exc_info:
        await engine.deliveries.create_delivery(order.id)

    assert exc_info.value.code == "not_delivery_order"


@pytest.mark.asyncio
async def test_create_for_unknown_order(engine: DispatchEngine) -> None:
    """Test that an unknown order is NotFound."""
    with pytest.raises(NotFoundError):
        await engine.deliveries.create_delivery(uuid4())


# Assignment


@pytest.mark.asyncio
async def test_assign_driver(
    engine: DispatchEngine,
    delivery: Delivery,
    driver: DeliveryDriver,
) -> None:
    """Test that assigning puts the driver on the delivery."""
    assigned = await engine.deliveries.assign_driver(delivery.id, driver.id)

    assert assigned.status == DeliveryStatus.ASSIGNED
    assert assigned.driver_id == driver.id
    assert assigned.assigned_at is not None

    stored_driver = await engine.store.get_driver(driver.id)
    assert stored_driver.shift_status == ShiftStatus.ON_DELIVERY
    assert stored_driver.current_delivery_id == delivery.id
    assert stored_driver.is_available is False


@pytest.mark.asyncio
async def test_assign_unavailable_driver(
    engine: DispatchEngine,
    delivery: Delivery,
    make_driver,
) -> None:
    """Test that offline or unknown drivers cannot be assigned."""
    offline = await make_driver(online=False)

    with pytest.raises(NotFoundError):
        await engine.deliveries.assign_driver(delivery.id, offline.id)
    with pytest.raises(NotFoundError):
        await engine.deliveries.assign_driver(delivery.id, uuid4())

    stored = await engine.store.get_delivery(delivery.id)
    assert stored.status == DeliveryStatus.PENDING


@pytest.mark.asyncio
async def test_driver_cannot_take_two_deliveries(
    engine: DispatchEngine,
    delivery: Delivery,
    driver: DeliveryDriver,
    make_order,
) -> None:
    """Test that a busy driver is not available for another delivery."""
    await engine.deliveries.assign_driver(delivery.id, driver.id)
    other = await engine.deliveries.create_delivery((await make_order()).id)

    with pytest.raises(NotFoundError):
        await engine.deliveries.assign_driver(other.id, driver.id)


@pytest.mark.asyncio
async def test_auto_assign_nearest(
    engine: DispatchEngine,
    delivery: Delivery,
    make_driver,
) -> None:
    """Test that among equally rated drivers the nearest one is picked."""
    await make_driver(lat=48.8566 + 0.02, first_name="Far")
    near = await make_driver(lat=48.8566 + 0.002, first_name="Near")
    await make_driver(lat=48.8566 + 0.3, first_name="OutOfRange")

    assigned = await engine.deliveries.assign_driver(delivery.id)

    assert assigned.driver_id == near.id


@pytest.mark.asyncio
async def test_auto_assign_skips_drivers_who_rejected(
    engine: DispatchEngine,
    delivery: Delivery,
    make_driver,
) -> None:
    """Test that a driver who declined is not offered the delivery again."""
    far = await make_driver(lat=48.8566 + 0.02, first_name="Far")
    near = await make_driver(lat=48.8566 + 0.002, first_name="Near")

    await engine.deliveries.assign_driver(delivery.id)
    await engine.deliveries.reject_delivery(delivery.id, near.id)
    reassigned = await engine.deliveries.assign_driver(delivery.id)

    assert reassigned.driver_id == far.id
    assert reassigned.rejected_driver_ids == [near.id]


@pytest.mark.asyncio
async def test_auto_assign_without_drivers(engine: DispatchEngine, delivery: Delivery) -> None:
    """Test that auto-assign fails when nobody is around."""
    with pytest.raises(NotFoundError) as exc_info:
        await engine.deliveries.assign_driver(delivery.id)

    assert exc_info.value.code == "no_driver_available"


# Accept and reject


@pytest.mark.asyncio
async def test_accept_starts_tracking(
    engine: DispatchEngine,
    accepted_delivery: Delivery,
    notifier,
) -> None:
    """Test that accepting notifies the customer that tracking started."""
    assert accepted_delivery.status == DeliveryStatus.ACCEPTED
    assert accepted_delivery.accepted_at is not None
    assert notifier.sent[-1][0] == str(accepted_delivery.customer_id)
    assert notifier.types() == ["tracking:started"]


@pytest.mark.asyncio
async def test_only_assigned_driver_can_accept(
    engine: DispatchEngine,
    delivery: Delivery,
    driver: DeliveryDriver,
) -> None:
    """Test that another driver cannot accept."""
    await engine.deliveries.assign_driver(delivery.id, driver.id)

    with pytest.raises(UnauthorizedError) as exc_info:
        await engine.deliveries.accept_delivery(delivery.id, uuid4())

    assert exc_info.value.code == "driver_not_assigned"


@pytest.mark.asyncio
async def test_reject_then_reassign(
    engine: DispatchEngine,
    accepted_delivery: Delivery,
    driver: DeliveryDriver,
    make_driver,
) -> None:
    """Test that assign, accept, reject returns to pending and allows a new driver."""
    rejected = await engine.deliveries.reject_delivery(accepted_delivery.id, driver.id, "Flat tyre")

    assert rejected.status == DeliveryStatus.PENDING
    assert rejected.driver_id is None
    assert rejected.status_history[-1].note == "Flat tyre"

    freed = await engine.store.get_driver(driver.id)
    assert freed.is_available is True

    other = await make_driver(first_name="Other")
    reassigned = await engine.deliveries.assign_driver(accepted_delivery.id, other.id)
    assert reassigned.status == DeliveryStatus.ASSIGNED
    assert reassigned.driver_id == other.id


# Status updates


@pytest.mark.asyncio
async def test_skipping_ahead_is_rejected(engine: DispatchEngine, delivery: Delivery) -> None:
    """Test that pending cannot jump to delivered and nothing is written."""
    with pytest.raises(InvalidTransitionError):
        await engine.deliveries.update_status(delivery.id, "delivered")

    stored = await engine.store.get_delivery(delivery.id)
    assert stored.status == DeliveryStatus.PENDING
    assert stored.version == delivery.version
    assert len(stored.status_history) == 1


@pytest.mark.asyncio
async def test_unknown_status(engine: DispatchEngine, delivery: Delivery) -> None:
    """Test that an unknown target status is invalid input."""
    with pytest.raises(InvalidInputError):
        await engine.deliveries.update_status(delivery.id, "lost")


@pytest.mark.asyncio
async def test_happy_path_through_status_updates(
    engine: DispatchEngine,
    accepted_delivery: Delivery,
    driver: DeliveryDriver,
    now: datetime,
) -> None:
    """Test the driver walking a delivery to delivered step by step."""
    steps = ["picked_up", "in_transit", "arrived", "delivered"]
    for offset, status in enumerate(steps):
        updated = await engine.deliveries.update_status(
            accepted_delivery.id,
            status,
            driver_id=driver.id,
            location={"lat": 48.87, "lng": 2.35},
            now=now + timedelta(minutes=offset * 5),
        )
        assert updated.status.value == status

    assert updated.actual_pickup_time == now
    assert updated.arrived_at_customer_at == now + timedelta(minutes=10)
    assert updated.actual_delivery_time == now + timedelta(minutes=15)
    assert updated.status_history[-1].location.lat == 48.87

    stored_driver = await engine.store.get_driver(driver.id)
    assert stored_driver.is_available is True
    assert stored_driver.stats.completed_deliveries == 1
    assert stored_driver.stats.total_earnings == pytest.approx(4.0)


@pytest.mark.asyncio
async def test_driver_cannot_update_other_delivery(
    engine: DispatchEngine,
    accepted_delivery: Delivery,
) -> None:
    """Test that drivers only update their own deliveries."""
    with pytest.raises(UnauthorizedError):
        await engine.deliveries.update_status(accepted_delivery.id, "picked_up", driver_id=uuid4())


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "location",
    [{"lat": 999, "lng": 2.0}, {"lat": 48.8}, {"lat": "north", "lng": 2.0}],
)
async def test_status_update_with_bad_location(
    engine: DispatchEngine,
    accepted_delivery: Delivery,
    location,
) -> None:
    """Test that a malformed status location is invalid input and nothing is written."""
    with pytest.raises(InvalidInputError) as exc_info:
        await engine.deliveries.update_status(accepted_delivery.id, "picked_up", location=location)

    assert exc_info.value.code == "invalid_coordinates"

    stored = await engine.store.get_delivery(accepted_delivery.id)
    assert stored.status == DeliveryStatus.ACCEPTED
    assert stored.version == accepted_delivery.version


# Completion


@pytest.mark.asyncio
async def test_complete_requires_evidence(
    engine: DispatchEngine,
    accepted_delivery: Delivery,
    driver: DeliveryDriver,
    walk,
) -> None:
    """Test that a proof without photo, signature or name is refused."""
    await walk(engine, accepted_delivery.id, "picked_up", "in_transit")

    with pytest.raises(InvalidInputError) as exc_info:
        await engine.deliveries.complete_delivery(
            accepted_delivery.id, driver.id, {"delivery_notes": "Left at door"}
        )

    assert exc_info.value.code == "proof_required"
    stored = await engine.store.get_delivery(accepted_delivery.id)
    assert stored.status == DeliveryStatus.IN_TRANSIT


@pytest.mark.asyncio
async def test_complete_delivery(
    engine: DispatchEngine,
    accepted_delivery: Delivery,
    driver: DeliveryDriver,
    notifier,
    now: datetime,
    walk,
) -> None:
    """Test completion with proof frees the driver and ends tracking."""
    await walk(engine, accepted_delivery.id, "picked_up", "in_transit")
    await engine.tracker.update_driver_location(driver.id, {"lat": 48.87, "lng": 2.35}, now)
    await engine.event_bus.join()

    completed = await engine.deliveries.complete_delivery(
        accepted_delivery.id,
        driver.id,
        {"recipient_name": "Jane", "gps_coordinates": {"lat": 48.8791, "lng": 2.3522}},
        now=now,
    )

    assert completed.status == DeliveryStatus.DELIVERED
    assert completed.actual_delivery_time == now
    assert completed.proof_of_delivery.type == PODType.CUSTOMER_CONFIRM
    assert completed.proof_of_delivery.completed_at == now
    assert completed.driver_id == driver.id

    assert notifier.types()[-2:] == ["tracking:location", "tracking:ended"]
    assert await engine.cache.peek(str(driver.id)) is None

    stored_driver = await engine.store.get_driver(driver.id)
    assert stored_driver.shift_status == ShiftStatus.ONLINE
    assert stored_driver.current_delivery_id is None
    assert stored_driver.stats.total_deliveries == 1
    assert stored_driver.stats.completion_rate == 100


@pytest.mark.asyncio
async def test_complete_before_transit(
    engine: DispatchEngine,
    accepted_delivery: Delivery,
    driver: DeliveryDriver,
) -> None:
    """Test that completion needs the order on its way."""
    with pytest.raises(InvalidTransitionError):
        await engine.deliveries.complete_delivery(
            accepted_delivery.id, driver.id, {"photo_url": "https://cdn.example.com/pod.jpg"}
        )


# Cancellation


@pytest.mark.asyncio
@pytest.mark.parametrize("steps", [[], ["assign"], ["assign", "accept", "picked_up", "in_transit"]])
async def test_cancel(
    engine: DispatchEngine,
    delivery: Delivery,
    driver: DeliveryDriver,
    steps: list[str],
) -> None:
    """Test cancelling from pending, assigned and in transit."""
    for step in steps:
        if step == "assign":
            await engine.deliveries.assign_driver(delivery.id, driver.id)
        elif step == "accept":
            await engine.deliveries.accept_delivery(delivery.id, driver.id)
        else:
            await engine.deliveries.update_status(delivery.id, step)

    cancelled = await engine.deliveries.cancel_delivery(
        delivery.id, "  Customer unreachable  ", cancelled_by=CancelledBy.CUSTOMER
    )

    assert cancelled.status == DeliveryStatus.CANCELLED
    assert cancelled.cancel_reason == "Customer unreachable"
    assert cancelled.cancelled_by == CancelledBy.CUSTOMER
    assert cancelled.driver_id is None

    stored_driver = await engine.store.get_driver(driver.id)
    assert stored_driver.is_available is True
    assert stored_driver.stats.cancelled_deliveries == (1 if steps else 0)


@pytest.mark.asyncio
async def test_cancel_requires_reason(engine: DispatchEngine, delivery: Delivery) -> None:
    """Test that a blank reason is refused."""
    with pytest.raises(InvalidInputError) as exc_info:
        await engine.deliveries.cancel_delivery(delivery.id, "   ")

    assert exc_info.value.code == "reason_required"


@pytest.mark.asyncio
async def test_cancel_terminal_delivery(engine: DispatchEngine, delivery: Delivery) -> None:
    """Test that cancelled deliveries cannot be cancelled again."""
    await engine.deliveries.cancel_delivery(delivery.id, "Duplicate order")

    with pytest.raises(ConflictError):
        await engine.deliveries.cancel_delivery(delivery.id, "Again")


# Rating and tips


async def _deliver(engine: DispatchEngine, delivery: Delivery, driver: DeliveryDriver) -> Delivery:
    for status in ("picked_up", "in_transit"):
        await engine.deliveries.update_status(delivery.id, status)
    return await engine.deliveries.complete_delivery(
        delivery.id, driver.id, {"signature_url": "https://cdn.example.com/sig.png"}
    )


@pytest.mark.asyncio
async def test_rate_and_tip_need_delivered(
    engine: DispatchEngine,
    accepted_delivery: Delivery,
) -> None:
    """Test that feedback before delivery is a conflict."""
    with pytest.raises(ConflictError):
        await engine.deliveries.rate_delivery(accepted_delivery.id, 5)
    with pytest.raises(ConflictError):
        await engine.deliveries.add_tip(accepted_delivery.id, 2.0)


@pytest.mark.asyncio
async def test_rate_once(
    engine: DispatchEngine,
    accepted_delivery: Delivery,
    driver: DeliveryDriver,
) -> None:
    """Test that a delivery is rated once and the driver average follows."""
    await _deliver(engine, accepted_delivery, driver)

    rated = await engine.deliveries.rate_delivery(accepted_delivery.id, 4, "Quick")
    assert rated.customer_rating.rating == 4
    assert rated.customer_rating.comment == "Quick"

    with pytest.raises(ConflictError) as exc_info:
        await engine.deliveries.rate_delivery(accepted_delivery.id, 5)
    assert exc_info.value.code == "already_rated"

    stored_driver = await engine.store.get_driver(driver.id)
    assert stored_driver.stats.average_rating == 4.0
    assert stored_driver.stats.total_ratings == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("rating", [0, 6, 4.5, True, "5"])
async def test_rate_out_of_range(
    engine: DispatchEngine,
    accepted_delivery: Delivery,
    driver: DeliveryDriver,
    rating,
) -> None:
    """Test that ratings must be integers from 1 to 5."""
    await _deliver(engine, accepted_delivery, driver)

    with pytest.raises(InvalidInputError):
        await engine.deliveries.rate_delivery(accepted_delivery.id, rating)


@pytest.mark.asyncio
async def test_tip_once_and_independent_of_rating(
    engine: DispatchEngine,
    accepted_delivery: Delivery,
    driver: DeliveryDriver,
) -> None:
    """Test that a tip is accepted once, whether or not the delivery was rated."""
    await _deliver(engine, accepted_delivery, driver)

    tipped = await engine.deliveries.add_tip(accepted_delivery.id, 3.0)
    assert tipped.tip_amount == 3.0
    assert tipped.tip_added_at is not None

    with pytest.raises(ConflictError) as exc_info:
        await engine.deliveries.add_tip(accepted_delivery.id, 1.0)
    assert exc_info.value.code == "already_tipped"

    rated = await engine.deliveries.rate_delivery(accepted_delivery.id, 5)
    assert rated.tip_amount == 3.0

    stored_driver = await engine.store.get_driver(driver.id)
    assert stored_driver.stats.total_tips == 3.0
    assert stored_driver.stats.total_earnings == pytest.approx(4.0 + 3.0)
    assert stored_driver.current_balance == pytest.approx(7.0)


@pytest.mark.asyncio
async def test_zero_tip_counts_once(
    engine: DispatchEngine,
    accepted_delivery: Delivery,
    driver: DeliveryDriver,
) -> None:
    """Test that a zero tip still closes the tip."""
    await _deliver(engine, accepted_delivery, driver)

    await engine.deliveries.add_tip(accepted_delivery.id, 0)

    with pytest.raises(ConflictError):
        await engine.deliveries.add_tip(accepted_delivery.id, 2.0)


@pytest.mark.asyncio
async def test_negative_tip(
    engine: DispatchEngine,
    accepted_delivery: Delivery,
    driver: DeliveryDriver,
) -> None:
    """Test that a negative tip is invalid input."""
    await _deliver(engine, accepted_delivery, driver)

    with pytest.raises(InvalidInputError):
        await engine.deliveries.add_tip(accepted_delivery.id, -1)


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", [True, False, "3", float("nan"), float("inf")])
async def test_tip_must_be_a_number(
    engine: DispatchEngine,
    accepted_delivery: Delivery,
    driver: DeliveryDriver,
    amount,
) -> None:
    """Test that booleans and non-finite values are not accepted as tips."""
    await _deliver(engine, accepted_delivery, driver)

    with pytest.raises(InvalidInputError) as exc_info:
        await engine.deliveries.add_tip(accepted_delivery.id, amount)
    assert exc_info.value.code == "invalid_tip"

    stored = await engine.store.get_delivery(accepted_delivery.id)
    assert stored.tip_amount is None


# Issues


@pytest.mark.asyncio
async def test_report_issue(
    engine: DispatchEngine,
    accepted_delivery: Delivery,
    now: datetime,
) -> None:
    """Test that an issue is recorded without moving the delivery."""
    reported = await engine.deliveries.report_issue(
        accepted_delivery.id,
        "customer_unavailable",
        "  Nobody answers the intercom ",
        reported_by="driver",
        photos=["https://cdn.example.com/door.jpg"],
        now=now,
    )

    assert reported.status == DeliveryStatus.ACCEPTED
    assert reported.version == accepted_delivery.version + 1

    issue = reported.issues[-1]
    assert issue.type == IssueType.CUSTOMER_UNAVAILABLE
    assert issue.description == "Nobody answers the intercom"
    assert issue.reported_by == IssueReporter.DRIVER
    assert issue.reported_at == now
    assert issue.photos == ["https://cdn.example.com/door.jpg"]

    entry = reported.status_history[-1]
    assert entry.event == "issue_reported"
    assert entry.note == "customer_unavailable: Nobody answers the intercom"


@pytest.mark.asyncio
async def test_issues_accumulate(engine: DispatchEngine, delivery: Delivery) -> None:
    """Test that every report is kept, including from other reporters."""
    await engine.deliveries.report_issue(delivery.id, IssueType.TRAFFIC_DELAY, "Road closed")
    reported = await engine.deliveries.report_issue(
        delivery.id, IssueType.ORDER_DAMAGED, "Bag torn", reported_by=IssueReporter.RESTAURANT
    )

    assert [i.type for i in reported.issues] == [IssueType.TRAFFIC_DELAY, IssueType.ORDER_DAMAGED]
    assert reported.issues[0].reported_by == IssueReporter.DRIVER
    assert reported.issues[1].photos == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "issue_type, description, reported_by, code",
    [
        ("flat_tyre", "Stuck", "driver", "unknown_issue_type"),
        ("other", "   ", "driver", "description_required"),
        ("other", "Lost", "courier", "unknown_reporter"),
    ],
)
async def test_report_issue_rejects_bad_input(
    engine: DispatchEngine,
    delivery: Delivery,
    issue_type: str,
    description: str,
    reported_by: str,
    code: str,
) -> None:
    """Test that malformed reports are invalid input and nothing is written."""
    with pytest.raises(InvalidInputError) as exc_info:
        await engine.deliveries.report_issue(
            delivery.id, issue_type, description, reported_by=reported_by
        )

    assert exc_info.value.code == code
    stored = await engine.store.get_delivery(delivery.id)
    assert stored.issues == []
    assert stored.version == delivery.version


@pytest.mark.asyncio
async def test_report_issue_unknown_delivery(engine: DispatchEngine) -> None:
    """Test that reporting on an unknown delivery is not found."""
    with pytest.raises(NotFoundError):
        await engine.deliveries.report_issue(uuid4(), "other", "Lost")


# Queries


@pytest.mark.asyncio
async def test_public_tracking(
    engine: DispatchEngine,
    accepted_delivery: Delivery,
    driver: DeliveryDriver,
    now: datetime,
) -> None:
    """Test the reduced view behind a tracking code."""
    public = await engine.deliveries.get_by_tracking_code(accepted_delivery.tracking_code, now)

    assert public.delivery_number == accepted_delivery.delivery_number
    assert public.status == DeliveryStatus.ACCEPTED
    assert public.destination_city == "Paris"
    assert public.destination_postal_code == "75018"
    assert public.driver_location.lat == driver.current_location.lat
    assert "customer_id" not in public.model_dump()


@pytest.mark.asyncio
async def test_public_tracking_unknown_code(engine: DispatchEngine) -> None:
    """Test that an unknown code is NotFound."""
    with pytest.raises(NotFoundError):
        await engine.deliveries.get_by_tracking_code("nope")


@pytest.mark.asyncio
async def test_list_and_active(
    engine: DispatchEngine,
    delivery: Delivery,
    make_order,
) -> None:
    """Test listing filters and the active dashboard view."""
    second = await engine.deliveries.create_delivery((await make_order()).id)
    await engine.deliveries.cancel_delivery(second.id, "Out of stock")

    everything = await engine.deliveries.list_deliveries()
    pending = await engine.deliveries.list_deliveries(status="pending")
    several = await engine.deliveries.list_deliveries(status=["pending", "cancelled"])
    active = await engine.deliveries.list_active_deliveries(delivery.restaurant_id)

    assert len(everything) == 2
    assert [d.id for d in pending] == [delivery.id]
    assert len(several) == 2
    assert [d.id for d in active] == [delivery.id]

    with pytest.raises(InvalidInputError):
        await engine.deliveries.list_deliveries(status="vanished")


@pytest.mark.asyncio
async def test_stats(
    engine: DispatchEngine,
    accepted_delivery: Delivery,
    driver: DeliveryDriver,
    make_order,
    now: datetime,
) -> None:
    """Test counts, completion rate and pickup-to-delivery times."""
    await engine.deliveries.update_status(accepted_delivery.id, "picked_up", now=now)
    await engine.deliveries.update_status(accepted_delivery.id, "in_transit", now=now)
    await engine.deliveries.complete_delivery(
        accepted_delivery.id,
        driver.id,
        {"photo_url": "https://cdn.example.com/pod.jpg"},
        now=now + timedelta(minutes=18),
    )

    cancelled = await engine.deliveries.create_delivery((await make_order()).id)
    await engine.deliveries.cancel_delivery(cancelled.id, "Customer request")
    await engine.deliveries.create_delivery((await make_order()).id)

    stats = await engine.deliveries.get_stats(accepted_delivery.restaurant_id)

    assert stats.total == 3
    assert stats.completed == 1
    assert stats.cancelled == 1
    assert stats.active == 1
    assert stats.completion_rate == 33.3
    assert stats.status_breakdown == {"delivered": 1, "cancelled": 1, "pending": 1}
    assert stats.delivery_time.avg_time == 18.0
    assert stats.delivery_time.min_time == 18.0
    assert stats.delivery_time.max_time == 18.0


@pytest.mark.asyncio
async def test_stats_empty_period(engine: DispatchEngine, delivery: Delivery) -> None:
    """Test that a period with no deliveries reports zeros."""
    stats = await engine.deliveries.get_stats(end=delivery.created_at - timedelta(days=1))

    assert stats.total == 0
    assert stats.completion_rate == 0
    assert stats.delivery_time.avg_time == 0
