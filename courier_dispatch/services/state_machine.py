"""Delivery status transitions.

The whole lifecycle is the ``TRANSITIONS`` table: each action names the
statuses it may start from and the status it ends in. Every status change in
the engine goes through ``apply_transition``.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from courier_dispatch.errors import InvalidInputError, InvalidTransitionError
from courier_dispatch.models.delivery import TERMINAL_STATUSES, Delivery, DeliveryStatus
from courier_dispatch.models.geo import Location


class Action(str, Enum):
    """Actions that move a delivery between statuses."""

    ASSIGN = "assign"
    ACCEPT = "accept"
    REJECT = "reject"
    PICK_UP = "pick_up"
    DEPART = "depart"
    ARRIVE = "arrive"
    DELIVER = "deliver"
    COMPLETE = "complete"
    CANCEL = "cancel"


@dataclass(frozen=True)
class Transition:
    sources: frozenset[DeliveryStatus]
    target: DeliveryStatus
    event: str
    # Reported when the action is attempted from any other status
    violation: str


_S = DeliveryStatus

TRANSITIONS: dict[Action, Transition] = {
    Action.ASSIGN: Transition(
        frozenset({_S.PENDING}),
        _S.ASSIGNED,
        "assigned",
        "Delivery already has a driver assigned",
    ),
    Action.ACCEPT: Transition(
        frozenset({_S.ASSIGNED}),
        _S.ACCEPTED,
        "accepted",
        "Only an assigned delivery can be accepted",
    ),
    Action.REJECT: Transition(
        frozenset({_S.ASSIGNED, _S.ACCEPTED}),
        _S.PENDING,
        "rejected",
        "Only a delivery not yet picked up can be rejected",
    ),
    Action.PICK_UP: Transition(
        frozenset({_S.ACCEPTED}),
        _S.PICKED_UP,
        "picked_up",
        "Order can only be picked up once the driver has accepted",
    ),
    Action.DEPART: Transition(
        frozenset({_S.PICKED_UP}),
        _S.IN_TRANSIT,
        "in_transit",
        "Delivery can only leave for the customer after pickup",
    ),
    Action.ARRIVE: Transition(
        frozenset({_S.IN_TRANSIT}),
        _S.ARRIVED,
        "arrived",
        "Driver can only arrive at the customer while in transit",
    ),
    Action.DELIVER: Transition(
        frozenset({_S.ARRIVED}),
        _S.DELIVERED,
        "delivered",
        "Delivery can only be handed off after arriving",
    ),
    Action.COMPLETE: Transition(
        frozenset({_S.IN_TRANSIT, _S.ARRIVED}),
        _S.DELIVERED,
        "delivered",
        "Delivery can only be completed in transit or after arriving",
    ),
    Action.CANCEL: Transition(
        frozenset({
            _S.PENDING,
            _S.ASSIGNED,
            _S.ACCEPTED,
            _S.PICKED_UP,
            _S.IN_TRANSIT,
            _S.ARRIVED,
        }),
        _S.CANCELLED,
        "cancelled",
        "Delivery is already finished",
    ),
}

# Targets accepted by the generic status update, each one step along the happy path
STATUS_UPDATE_ACTIONS: dict[DeliveryStatus, Action] = {
    _S.PICKED_UP: Action.PICK_UP,
    _S.IN_TRANSIT: Action.DEPART,
    _S.ARRIVED: Action.ARRIVE,
    _S.DELIVERED: Action.DELIVER,
}


def can_apply(action: Action, status: DeliveryStatus) -> bool:
    return status in TRANSITIONS[action].sources


def allowed_actions(status: DeliveryStatus) -> set[Action]:
    return {action for action, transition in TRANSITIONS.items() if status in transition.sources}


def reachable_statuses(status: DeliveryStatus) -> set[DeliveryStatus]:
    return {TRANSITIONS[action].target for action in allowed_actions(status)}


def action_for_status(target: DeliveryStatus | str) -> Action:
    """Map a generic status update target to its action."""
    try:
        status = DeliveryStatus(target)
    except ValueError as e:
        raise InvalidInputError(f"Unknown delivery status: {target}", code="unknown_status") from e

    action = STATUS_UPDATE_ACTIONS.get(status)
    if action is None:
        allowed = ", ".join(s.value for s in STATUS_UPDATE_ACTIONS)
        raise InvalidTransitionError(
            f"Status '{status.value}' cannot be set directly, expected one of: {allowed}",
            target=status.value,
        )
    return action


def ensure_can_apply(delivery: Delivery, action: Action) -> Transition:
    transition = TRANSITIONS[action]
    if delivery.status not in transition.sources:
        if delivery.status in TERMINAL_STATUSES:
            reason = f"Delivery is already {delivery.status.value}"
        else:
            reason = transition.violation
        raise InvalidTransitionError(
            f"{reason} (cannot {action.value} from {delivery.status.value})",
            action=action.value,
            current_status=delivery.status.value,
            target_status=transition.target.value,
        )
    return transition


def apply_transition(
    delivery: Delivery,
    action: Action,
    now: datetime,
    note: str | None = None,
    location: Location | None = None,
) -> Delivery:
    """
    Return a copy of the delivery with the action applied.

    The input is left untouched, so a rejected transition leaves no trace.
    Raises InvalidTransitionError when the action is not allowed from the
    current status.
    """
    transition = ensure_can_apply(delivery, action)

    updated = delivery.model_copy(deep=True)
    updated.status = transition.target
    updated.add_history(transition.event, now, note=note, location=location)

    if action == Action.ASSIGN:
        updated.assigned_at = now
    elif action == Action.ACCEPT:
        updated.accepted_at = now
    elif action == Action.REJECT:
        updated.driver_id = None
        updated.assigned_at = None
        updated.accepted_at = None
    elif action == Action.PICK_UP:
        updated.actual_pickup_time = now
    elif action == Action.ARRIVE:
        if updated.arrived_at_customer_at is None:
            updated.arrived_at_customer_at = now
    elif action in (Action.DELIVER, Action.COMPLETE):
        updated.actual_delivery_time = now
    elif action == Action.CANCEL:
        updated.cancelled_at = now
        updated.driver_id = None

    return updated
