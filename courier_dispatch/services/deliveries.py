"""Delivery lifecycle operations."""

import math
from collections.abc import Callable, Iterable, Mapping
from datetime import datetime, timedelta
from typing import Any
from uuid import UUID

from courier_dispatch.config import Settings, get_settings
from courier_dispatch.errors import (
    ConcurrentUpdateError,
    ConflictError,
    DispatchError,
    InvalidInputError,
    NotFoundError,
    UnauthorizedError,
)
from courier_dispatch.models.delivery import (
    CancelledBy,
    CustomerRating,
    Delivery,
    DeliveryIssue,
    DeliveryStatus,
    IssueReporter,
    IssueType,
    ProofOfDelivery,
    TERMINAL_STATUSES,
)
from courier_dispatch.models.driver import DeliveryDriver, DriverStatus, ShiftStatus, VehicleType
from courier_dispatch.models.geo import Location, utcnow
from courier_dispatch.models.order import FulfillmentType
from courier_dispatch.models.tracking import DeliveryStats, DeliveryTimeStats, PublicTracking
from courier_dispatch.services.broadcaster import Broadcaster
from courier_dispatch.services.geomath import coerce_location, distance_km
from courier_dispatch.services.state_machine import (
    Action,
    action_for_status,
    apply_transition,
    ensure_can_apply,
)
from courier_dispatch.services.tracker import DispatchTracker
from courier_dispatch.state.store import DispatchStore
from courier_dispatch.utils.logging import DispatchLogger

ACTIVE_STATUSES = frozenset(set(DeliveryStatus) - TERMINAL_STATUSES)

# Driver record updates retried on version conflicts before giving up
DRIVER_SAVE_ATTEMPTS = 3

# Auto-assign ranking: each factor is scaled to 0..1 before weighting
SCORING_WEIGHTS = {
    "proximity": 0.4,
    "rating": 0.3,
    "completion": 0.2,
    "vehicle": 0.1,
}

VEHICLE_PRIORITY = {
    VehicleType.MOTORCYCLE: 1.0,
    VehicleType.SCOOTER: 0.9,
    VehicleType.CAR: 0.7,
    VehicleType.BICYCLE: 0.5,
}

DEFAULT_RATING = 3.0
DEFAULT_COMPLETION = 0.8


def score_driver(driver: DeliveryDriver, distance: float, max_distance: float) -> float:
    """
    Rank a candidate for auto-assignment, from 0 to 1.

    A driver without ratings or completed deliveries gets the neutral
    defaults for those factors.
    """
    proximity = 1 - min(distance / max_distance, 1) if max_distance > 0 else 0.0
    rating = (driver.stats.average_rating or DEFAULT_RATING) / 5
    completion = driver.stats.completion_rate / 100 or DEFAULT_COMPLETION
    vehicle = VEHICLE_PRIORITY.get(driver.vehicle_type, 0.5)

    score = (
        SCORING_WEIGHTS["proximity"] * proximity
        + SCORING_WEIGHTS["rating"] * rating
        + SCORING_WEIGHTS["completion"] * completion
        + SCORING_WEIGHTS["vehicle"] * vehicle
    )
    return round(score, 2)


class DeliveryService:
    """
    Owns every status change of a delivery.

    Each operation loads the delivery, runs all of its guards, applies the
    transition to a copy and saves it with a version check. A guard failure or
    a lost race leaves the stored record as it was.
    """

    def __init__(
        self,
        store: DispatchStore,
        tracker: DispatchTracker,
        broadcaster: Broadcaster,
        settings: Settings | None = None,
    ):
        self.store = store
        self.tracker = tracker
        self.broadcaster = broadcaster
        self.settings = settings or get_settings()
        self.logger = DispatchLogger("deliveries")

    # Guards

    def _rejected(self, action: str, error: DispatchError, **context: Any) -> DispatchError:
        self.logger.log_rejected_action(action, error.code, error.message, **context)
        return error

    async def _load(self, delivery_id: UUID) -> Delivery:
        delivery = await self.store.get_delivery(delivery_id)
        if delivery is None:
            raise NotFoundError(f"Delivery {delivery_id} not found", code="delivery_not_found")
        return delivery

    def _ensure_action(self, delivery: Delivery, action: Action) -> None:
        try:
            ensure_can_apply(delivery, action)
        except DispatchError as e:
            raise self._rejected(action.value, e, delivery_id=str(delivery.id)) from None

    def _ensure_assigned_driver(self, delivery: Delivery, driver_id: UUID, action: Action) -> None:
        if delivery.driver_id != driver_id:
            raise self._rejected(
                action.value,
                UnauthorizedError(
                    "Only the assigned driver can perform this action",
                    code="driver_not_assigned",
                ),
                delivery_id=str(delivery.id),
                driver_id=str(driver_id),
            )

    async def _save(self, before: Delivery, after: Delivery, action: Action, **context: Any) -> Delivery:
        try:
            saved = await self.store.save_delivery(after)
        except ConcurrentUpdateError as e:
            raise self._rejected(action.value, e, delivery_id=str(before.id)) from None

        self.logger.log_transition(
            str(saved.id),
            action.value,
            before.status.value,
            saved.status.value,
            **context,
        )
        return saved

    # Driver bookkeeping

    async def _update_driver(
        self,
        driver_id: UUID,
        mutate: Callable[[DeliveryDriver], bool],
    ) -> DeliveryDriver | None:
        """
        Read-modify-write a driver record, retrying on version conflicts.

        ``mutate`` edits the driver in place and returns False to skip the save.
        """
        for attempt in range(1, DRIVER_SAVE_ATTEMPTS + 1):
            driver = await self.store.get_driver(driver_id)
            if driver is None:
                return None
            if not mutate(driver):
                return driver
            try:
                return await self.store.save_driver(driver)
            except ConcurrentUpdateError:
                if attempt == DRIVER_SAVE_ATTEMPTS:
                    raise
                self.logger.logger.info(
                    "driver_save_retry",
                    driver_id=str(driver_id),
                    attempt=attempt,
                )
        return None

    @staticmethod
    def _free(driver: DeliveryDriver, delivery_id: UUID) -> None:
        if driver.current_delivery_id == delivery_id:
            driver.current_delivery_id = None
            if driver.shift_status == ShiftStatus.ON_DELIVERY:
                driver.shift_status = ShiftStatus.ONLINE

    async def _release_driver(
        self,
        driver_id: UUID,
        delivery_id: UUID,
        outcome: DeliveryStatus | None = None,
        earnings: float = 0.0,
    ) -> None:
        def mutate(driver: DeliveryDriver) -> bool:
            self._free(driver, delivery_id)

            stats = driver.stats
            if outcome == DeliveryStatus.DELIVERED:
                stats.total_deliveries += 1
                stats.completed_deliveries += 1
                stats.total_earnings += earnings
                driver.current_balance += earnings
            elif outcome == DeliveryStatus.CANCELLED:
                stats.total_deliveries += 1
                stats.cancelled_deliveries += 1

            if stats.total_deliveries:
                stats.completion_rate = stats.completed_deliveries / stats.total_deliveries * 100
            return True

        await self._update_driver(driver_id, mutate)

    # Creation

    async def create_delivery(
        self,
        order_id: UUID,
        delivery_fee: float | None = None,
        is_priority: bool = False,
        now: datetime | None = None,
    ) -> Delivery:
        """
        Create the pending delivery of an order.

        Raises:
            NotFoundError: Unknown order or restaurant
            InvalidInputError: Order is not a delivery order or has no address
            ConflictError: The order already has a live delivery
        """
        now = now or utcnow()

        order = await self.store.get_order(order_id)
        if order is None:
            raise NotFoundError(f"Order {order_id} not found", code="order_not_found")

        if order.fulfillment_type != FulfillmentType.DELIVERY:
            raise self._rejected(
                "create",
                InvalidInputError("Order is not a delivery order", code="not_delivery_order"),
                order_id=str(order_id),
            )

        if order.delivery_address is None:
            raise self._rejected(
                "create",
                InvalidInputError("Order has no delivery address", code="missing_address"),
                order_id=str(order_id),
            )

        restaurant = await self.store.get_restaurant(order.restaurant_id)
        if restaurant is None:
            raise NotFoundError(
                f"Restaurant {order.restaurant_id} not found",
                code="restaurant_not_found",
            )

        estimate = self.tracker.estimate_delivery_time(
            restaurant.address.coordinates,
            order.delivery_address.coordinates,
            prep_minutes=order.prep_time_minutes,
        )

        delivery = Delivery(
            order_id=order.id,
            restaurant_id=restaurant.id,
            customer_id=order.customer_id,
            pickup_address=restaurant.address,
            delivery_address=order.delivery_address,
            delivery_instructions=order.delivery_instructions,
            estimated_distance=estimate.distance_km,
            estimated_duration=estimate.estimated_minutes,
            estimated_delivery_time=now + timedelta(minutes=estimate.estimated_minutes),
            delivery_fee=order.delivery_fee if delivery_fee is None else delivery_fee,
            is_priority=is_priority,
            created_at=now,
            updated_at=now,
        )
        delivery.add_history("created", now, note="Delivery created")

        try:
            created = await self.store.insert_delivery(delivery)
        except ConflictError as e:
            raise self._rejected("create", e, order_id=str(order_id)) from None

        if await self._should_link_order(order.delivery_id):
            await self.store.set_order_delivery_id(order.id, created.id)

        self.logger.logger.info(
            "delivery_created",
            delivery_id=str(created.id),
            delivery_number=created.delivery_number,
            order_id=str(order.id),
            estimated_minutes=estimate.estimated_minutes,
        )
        return created

    async def _should_link_order(self, current_delivery_id: UUID | None) -> bool:
        if current_delivery_id is None:
            return True
        current = await self.store.get_delivery(current_delivery_id)
        return current is None or current.status == DeliveryStatus.CANCELLED

    # Assignment

    async def assign_driver(
        self,
        delivery_id: UUID,
        driver_id: UUID | None = None,
        now: datetime | None = None,
    ) -> Delivery:
        """
        Assign a driver to a pending delivery.

        Without a driver id the best scored available driver around the pickup
        is picked. Drivers who already declined this delivery or who only work
        for other restaurants are skipped.
        """
        now = now or utcnow()
        delivery = await self._load(delivery_id)
        self._ensure_action(delivery, Action.ASSIGN)

        if driver_id is None:
            driver = await self._best_available_driver(delivery)
        else:
            driver = await self.store.get_driver(driver_id)
            if driver is None or not driver.is_available:
                raise self._rejected(
                    Action.ASSIGN.value,
                    NotFoundError("Driver not available", code="driver_not_available"),
                    delivery_id=str(delivery.id),
                    driver_id=str(driver_id),
                )

        updated = apply_transition(
            delivery,
            Action.ASSIGN,
            now,
            note=f"Assigned to {driver.full_name}",
        )
        updated.driver_id = driver.id

        # Claim the driver first so two deliveries cannot both take them
        driver.shift_status = ShiftStatus.ON_DELIVERY
        driver.current_delivery_id = delivery.id
        try:
            await self.store.save_driver(driver)
        except ConcurrentUpdateError as e:
            raise self._rejected(
                Action.ASSIGN.value, e, delivery_id=str(delivery.id), driver_id=str(driver.id)
            ) from None

        try:
            return await self._save(delivery, updated, Action.ASSIGN, driver_id=str(driver.id))
        except ConcurrentUpdateError:
            await self._release_driver(driver.id, delivery.id)
            raise

    async def _best_available_driver(self, delivery: Delivery) -> DeliveryDriver:
        pickup = delivery.pickup_address.coordinates
        radius = self.settings.auto_assign_radius_km
        candidates = await self.store.find_drivers(
            statuses=[DriverStatus.VERIFIED],
            shift_statuses=[ShiftStatus.ONLINE],
        )

        ranked: list[tuple[float, float, DeliveryDriver]] = []
        for driver in candidates:
            if not driver.is_available or driver.id in delivery.rejected_driver_ids:
                continue
            if driver.restaurant_ids and delivery.restaurant_id not in driver.restaurant_ids:
                continue
            if driver.current_location is None:
                continue

            distance = distance_km(pickup, driver.current_location)
            if distance <= radius:
                ranked.append((score_driver(driver, distance, radius), distance, driver))

        if not ranked:
            raise self._rejected(
                Action.ASSIGN.value,
                NotFoundError("No available driver near the pickup", code="no_driver_available"),
                delivery_id=str(delivery.id),
            )

        # Highest score first, nearest on ties
        ranked.sort(key=lambda item: (-item[0], item[1]))
        score, distance, best = ranked[0]
        self.logger.logger.info(
            "driver_selected",
            delivery_id=str(delivery.id),
            driver_id=str(best.id),
            score=score,
            distance_km=round(distance, 2),
            candidates=len(ranked),
        )
        return best

    async def accept_delivery(
        self,
        delivery_id: UUID,
        driver_id: UUID,
        now: datetime | None = None,
    ) -> Delivery:
        now = now or utcnow()
        delivery = await self._load(delivery_id)
        self._ensure_action(delivery, Action.ACCEPT)
        self._ensure_assigned_driver(delivery, driver_id, Action.ACCEPT)

        updated = apply_transition(delivery, Action.ACCEPT, now, note="Accepted by driver")
        saved = await self._save(delivery, updated, Action.ACCEPT, driver_id=str(driver_id))

        await self.broadcaster.start_tracking(saved.id)
        return saved

    async def reject_delivery(
        self,
        delivery_id: UUID,
        driver_id: UUID,
        reason: str | None = None,
        now: datetime | None = None,
    ) -> Delivery:
        """Hand the delivery back to dispatch. The driver is not offered it again automatically."""
        now = now or utcnow()
        delivery = await self._load(delivery_id)
        self._ensure_action(delivery, Action.REJECT)
        self._ensure_assigned_driver(delivery, driver_id, Action.REJECT)

        updated = apply_transition(
            delivery,
            Action.REJECT,
            now,
            note=reason or "Rejected by driver",
        )
        if driver_id not in updated.rejected_driver_ids:
            updated.rejected_driver_ids.append(driver_id)

        saved = await self._save(delivery, updated, Action.REJECT, driver_id=str(driver_id))
        await self._release_driver(driver_id, delivery.id)
        return saved

    # Progress

    async def update_status(
        self,
        delivery_id: UUID,
        status: DeliveryStatus | str,
        driver_id: UUID | None = None,
        note: str | None = None,
        location: Location | Mapping[str, Any] | None = None,
        now: datetime | None = None,
    ) -> Delivery:
        """
        Move the delivery one step along the happy path.

        A driver may only update their own delivery. Without a driver id the
        caller is restaurant staff.
        """
        now = now or utcnow()
        try:
            action = action_for_status(status)
        except DispatchError as e:
            raise self._rejected("update_status", e, delivery_id=str(delivery_id)) from None

        delivery = await self._load(delivery_id)
        self._ensure_action(delivery, action)
        if driver_id is not None:
            self._ensure_assigned_driver(delivery, driver_id, action)

        position = None
        if location is not None:
            try:
                position = coerce_location(location)
            except DispatchError as e:
                raise self._rejected(action.value, e, delivery_id=str(delivery.id)) from None

        updated = apply_transition(delivery, action, now, note=note, location=position)
        saved = await self._save(delivery, updated, action)

        if saved.status == DeliveryStatus.DELIVERED:
            await self._finish_delivered(saved)
        return saved

    async def complete_delivery(
        self,
        delivery_id: UUID,
        driver_id: UUID,
        proof: ProofOfDelivery | Mapping[str, Any],
        now: datetime | None = None,
    ) -> Delivery:
        """
        Hand-off with proof of delivery.

        The proof needs a photo, a signature or the recipient's name.
        """
        now = now or utcnow()
        delivery = await self._load(delivery_id)
        self._ensure_action(delivery, Action.COMPLETE)
        self._ensure_assigned_driver(delivery, driver_id, Action.COMPLETE)

        pod = proof if isinstance(proof, ProofOfDelivery) else ProofOfDelivery.model_validate(proof)
        if not pod.has_evidence:
            raise self._rejected(
                Action.COMPLETE.value,
                InvalidInputError(
                    "Proof of delivery needs a photo, a signature or the recipient name",
                    code="proof_required",
                ),
                delivery_id=str(delivery.id),
            )

        updated = apply_transition(
            delivery,
            Action.COMPLETE,
            now,
            note="Delivered with proof",
            location=pod.gps_coordinates,
        )
        updated.proof_of_delivery = pod.model_copy(update={"completed_at": now})

        saved = await self._save(
            delivery,
            updated,
            Action.COMPLETE,
            pod_type=pod.type.value,
            gps_verified=pod.gps_verified,
        )
        await self._finish_delivered(saved)
        return saved

    async def _finish_delivered(self, delivery: Delivery) -> None:
        if delivery.driver_id is not None:
            earnings = delivery.delivery_fee * self.settings.driver_earnings_share
            await self._release_driver(
                delivery.driver_id,
                delivery.id,
                outcome=DeliveryStatus.DELIVERED,
                earnings=earnings,
            )
        await self.broadcaster.stop_tracking(delivery.id, delivery.driver_id)

    async def cancel_delivery(
        self,
        delivery_id: UUID,
        reason: str,
        cancelled_by: CancelledBy = CancelledBy.RESTAURANT,
        now: datetime | None = None,
    ) -> Delivery:
        now = now or utcnow()
        delivery = await self._load(delivery_id)
        self._ensure_action(delivery, Action.CANCEL)

        if not reason or not reason.strip():
            raise self._rejected(
                Action.CANCEL.value,
                InvalidInputError("A cancellation reason is required", code="reason_required"),
                delivery_id=str(delivery.id),
            )

        previous_driver_id = delivery.driver_id
        updated = apply_transition(delivery, Action.CANCEL, now, note=reason.strip())
        updated.cancel_reason = reason.strip()
        updated.cancelled_by = cancelled_by

        saved = await self._save(
            delivery,
            updated,
            Action.CANCEL,
            cancelled_by=cancelled_by.value,
        )

        if previous_driver_id is not None:
            await self._release_driver(
                previous_driver_id,
                delivery.id,
                outcome=DeliveryStatus.CANCELLED,
            )
        await self.broadcaster.stop_tracking(saved.id, previous_driver_id)
        return saved

    # Feedback

    async def rate_delivery(
        self,
        delivery_id: UUID,
        rating: int,
        comment: str | None = None,
        now: datetime | None = None,
    ) -> Delivery:
        now = now or utcnow()
        delivery = await self._load(delivery_id)

        if delivery.status != DeliveryStatus.DELIVERED:
            raise self._rejected(
                "rate",
                ConflictError("Only delivered deliveries can be rated", code="not_delivered"),
                delivery_id=str(delivery.id),
            )
        if delivery.customer_rating is not None:
            raise self._rejected(
                "rate",
                ConflictError("Delivery has already been rated", code="already_rated"),
                delivery_id=str(delivery.id),
            )
        if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
            raise self._rejected(
                "rate",
                InvalidInputError("Rating must be an integer from 1 to 5", code="invalid_rating"),
                delivery_id=str(delivery.id),
            )

        updated = delivery.model_copy(deep=True)
        updated.customer_rating = CustomerRating(rating=rating, comment=comment, rated_at=now)
        saved = await self._save_feedback(delivery, updated, "rate")

        if saved.driver_id is not None:
            def mutate(driver: DeliveryDriver) -> bool:
                stats = driver.stats
                total = stats.average_rating * stats.total_ratings + rating
                stats.total_ratings += 1
                stats.average_rating = round(total / stats.total_ratings, 1)
                return True

            await self._update_driver(saved.driver_id, mutate)

        self.logger.logger.info("delivery_rated", delivery_id=str(saved.id), rating=rating)
        return saved

    async def add_tip(
        self,
        delivery_id: UUID,
        amount: float,
        now: datetime | None = None,
    ) -> Delivery:
        """Tips go entirely to the driver."""
        now = now or utcnow()
        delivery = await self._load(delivery_id)

        if delivery.status != DeliveryStatus.DELIVERED:
            raise self._rejected(
                "tip",
                ConflictError("Tips can only be added after delivery", code="not_delivered"),
                delivery_id=str(delivery.id),
            )
        if delivery.tip_amount is not None:
            raise self._rejected(
                "tip",
                ConflictError("A tip has already been added", code="already_tipped"),
                delivery_id=str(delivery.id),
            )
        if (
            isinstance(amount, bool)
            or not isinstance(amount, (int, float))
            or not math.isfinite(amount)
            or amount < 0
        ):
            raise self._rejected(
                "tip",
                InvalidInputError("Tip amount must be zero or more", code="invalid_tip"),
                delivery_id=str(delivery.id),
            )

        updated = delivery.model_copy(deep=True)
        updated.tip_amount = float(amount)
        updated.tip_added_at = now
        saved = await self._save_feedback(delivery, updated, "tip")

        if saved.driver_id is not None and amount > 0:
            def mutate(driver: DeliveryDriver) -> bool:
                driver.stats.total_tips += amount
                driver.stats.total_earnings += amount
                driver.current_balance += amount
                return True

            await self._update_driver(saved.driver_id, mutate)

        self.logger.logger.info("delivery_tipped", delivery_id=str(saved.id), amount=amount)
        return saved

    async def report_issue(
        self,
        delivery_id: UUID,
        issue_type: IssueType | str,
        description: str,
        reported_by: IssueReporter | str = IssueReporter.DRIVER,
        photos: Iterable[str] | None = None,
        now: datetime | None = None,
    ) -> Delivery:
        """
        Record a problem on the delivery without changing its status.

        Damaged orders are logged as urgent for the support team.
        """
        now = now or utcnow()
        delivery = await self._load(delivery_id)

        try:
            issue_type = IssueType(issue_type)
        except ValueError:
            raise self._rejected(
                "report_issue",
                InvalidInputError(f"Unknown issue type: {issue_type}", code="unknown_issue_type"),
                delivery_id=str(delivery.id),
            ) from None
        try:
            reported_by = IssueReporter(reported_by)
        except ValueError:
            raise self._rejected(
                "report_issue",
                InvalidInputError(f"Unknown reporter: {reported_by}", code="unknown_reporter"),
                delivery_id=str(delivery.id),
            ) from None
        if not description or not description.strip():
            raise self._rejected(
                "report_issue",
                InvalidInputError("An issue description is required", code="description_required"),
                delivery_id=str(delivery.id),
            )

        issue = DeliveryIssue(
            type=issue_type,
            description=description.strip(),
            reported_by=reported_by,
            reported_at=now,
            photos=list(photos or []),
        )
        updated = delivery.model_copy(deep=True)
        updated.issues.append(issue)
        updated.add_history(
            "issue_reported",
            now,
            note=f"{issue_type.value}: {issue.description}",
        )
        saved = await self._save_feedback(delivery, updated, "report_issue")

        self.logger.logger.warning(
            "delivery_issue_reported",
            delivery_id=str(saved.id),
            restaurant_id=str(saved.restaurant_id),
            issue_type=issue_type.value,
            reported_by=reported_by.value,
            urgent=issue_type == IssueType.ORDER_DAMAGED,
        )
        return saved

    async def _save_feedback(self, before: Delivery, after: Delivery, action: str) -> Delivery:
        try:
            return await self.store.save_delivery(after)
        except ConcurrentUpdateError as e:
            raise self._rejected(action, e, delivery_id=str(before.id)) from None

    # Queries

    async def get_delivery(self, delivery_id: UUID) -> Delivery:
        return await self._load(delivery_id)

    async def list_deliveries(
        self,
        status: DeliveryStatus | str | Iterable[DeliveryStatus | str] | None = None,
        restaurant_id: UUID | None = None,
        driver_id: UUID | None = None,
    ) -> list[Delivery]:
        """Deliveries matching every given filter, newest first."""
        return await self.store.find_deliveries(
            statuses=_parse_statuses(status),
            restaurant_id=restaurant_id,
            driver_id=driver_id,
        )

    async def list_active_deliveries(self, restaurant_id: UUID | None = None) -> list[Delivery]:
        return await self.store.find_deliveries(
            statuses=ACTIVE_STATUSES,
            restaurant_id=restaurant_id,
        )

    async def get_by_tracking_code(
        self,
        tracking_code: str,
        now: datetime | None = None,
    ) -> PublicTracking:
        """Reduced view for unauthenticated tracking pages."""
        now = now or utcnow()
        delivery = await self.store.find_delivery_by_tracking_code(tracking_code)
        if delivery is None:
            raise NotFoundError("Delivery not found", code="delivery_not_found")

        driver_location = None
        if delivery.driver_id is not None and not delivery.is_terminal:
            driver = await self.store.get_driver(delivery.driver_id)
            if driver is not None:
                driver_location = await self.tracker.driver_position(driver, now)

        return PublicTracking(
            delivery_number=delivery.delivery_number,
            status=delivery.status,
            status_history=delivery.status_history,
            estimated_delivery_time=delivery.estimated_delivery_time,
            destination_city=delivery.delivery_address.city,
            destination_postal_code=delivery.delivery_address.postal_code,
            driver_location=driver_location,
        )

    async def get_stats(
        self,
        restaurant_id: UUID | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> DeliveryStats:
        """Counts by status and pickup-to-delivery times for a period."""
        deliveries = [
            d
            for d in await self.store.find_deliveries(restaurant_id=restaurant_id)
            if (start is None or d.created_at >= start) and (end is None or d.created_at <= end)
        ]

        breakdown: dict[str, int] = {}
        for delivery in deliveries:
            breakdown[delivery.status.value] = breakdown.get(delivery.status.value, 0) + 1

        total = len(deliveries)
        completed = breakdown.get(DeliveryStatus.DELIVERED.value, 0)
        cancelled = breakdown.get(DeliveryStatus.CANCELLED.value, 0)

        durations = [
            (d.actual_delivery_time - d.actual_pickup_time).total_seconds() / 60
            for d in deliveries
            if d.status == DeliveryStatus.DELIVERED
            and d.actual_pickup_time is not None
            and d.actual_delivery_time is not None
        ]
        times = DeliveryTimeStats()
        if durations:
            times = DeliveryTimeStats(
                avg_time=round(sum(durations) / len(durations), 1),
                min_time=round(min(durations), 1),
                max_time=round(max(durations), 1),
            )

        return DeliveryStats(
            total=total,
            completed=completed,
            cancelled=cancelled,
            active=total - completed - cancelled,
            completion_rate=round(completed / total * 100, 1) if total else 0.0,
            status_breakdown=breakdown,
            delivery_time=times,
        )


def _parse_statuses(
    status: DeliveryStatus | str | Iterable[DeliveryStatus | str] | None,
) -> list[DeliveryStatus] | None:
    if status is None:
        return None
    values = [status] if isinstance(status, (str, DeliveryStatus)) else list(status)
    try:
        return [DeliveryStatus(v) for v in values]
    except ValueError as e:
        raise InvalidInputError(f"Unknown delivery status in {values}", code="unknown_status") from e
