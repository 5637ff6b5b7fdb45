"""Dispatch services."""

from courier_dispatch.services.broadcaster import Broadcaster, Notifier, NullNotifier
from courier_dispatch.services.deliveries import DeliveryService
from courier_dispatch.services.drivers import DriverService
from courier_dispatch.services.events import LOCATION_UPDATED, EventBus
from courier_dispatch.services.tracker import DispatchTracker

__all__ = [
    "Broadcaster",
    "Notifier",
    "NullNotifier",
    "DeliveryService",
    "DriverService",
    "EventBus",
    "LOCATION_UPDATED",
    "DispatchTracker",
]
