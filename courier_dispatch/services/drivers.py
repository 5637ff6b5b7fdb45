"""Driver registration and shift management."""

from datetime import datetime
from uuid import UUID

from courier_dispatch.errors import ConflictError, NotFoundError, UnauthorizedError
from courier_dispatch.models.delivery import TERMINAL_STATUSES, DeliveryStatus
from courier_dispatch.models.driver import DeliveryDriver, DriverStatus, ShiftStatus
from courier_dispatch.models.geo import utcnow
from courier_dispatch.state.store import DispatchStore
from courier_dispatch.utils.logging import get_logger

logger = get_logger(__name__)

_ACTIVE_STATUSES = frozenset(set(DeliveryStatus) - TERMINAL_STATUSES)


class DriverService:
    """Driver lifecycle: registered, verified, then on and off shift."""

    def __init__(self, store: DispatchStore):
        self.store = store

    async def register_driver(self, driver: DeliveryDriver) -> DeliveryDriver:
        driver = driver.model_copy(
            update={
                "status": DriverStatus.PENDING,
                "shift_status": ShiftStatus.OFFLINE,
                "current_delivery_id": None,
                "verified_at": None,
            }
        )
        created = await self.store.insert_driver(driver)
        logger.info("driver_registered", driver_id=str(created.id), vehicle_type=created.vehicle_type.value)
        return created

    async def get_driver(self, driver_id: UUID) -> DeliveryDriver:
        driver = await self.store.get_driver(driver_id)
        if driver is None:
            raise NotFoundError(f"Driver {driver_id} not found", code="driver_not_found")
        return driver

    async def verify_driver(self, driver_id: UUID, now: datetime | None = None) -> DeliveryDriver:
        driver = await self.get_driver(driver_id)
        if driver.status == DriverStatus.VERIFIED:
            return driver
        if driver.status == DriverStatus.DEACTIVATED:
            raise ConflictError("Deactivated drivers cannot be verified", code="driver_deactivated")

        driver.status = DriverStatus.VERIFIED
        driver.verified_at = now or utcnow()
        saved = await self.store.save_driver(driver)
        logger.info("driver_verified", driver_id=str(driver_id))
        return saved

    async def go_online(self, driver_id: UUID, now: datetime | None = None) -> DeliveryDriver:
        """Start a shift. Only verified drivers can work."""
        driver = await self.get_driver(driver_id)
        if driver.status != DriverStatus.VERIFIED:
            logger.warning("go_online_refused", driver_id=str(driver_id), status=driver.status.value)
            raise UnauthorizedError("Driver is not verified", code="driver_not_verified")

        if driver.shift_status != ShiftStatus.OFFLINE:
            return driver

        driver.shift_status = ShiftStatus.ONLINE
        driver.shift_started_at = now or utcnow()
        saved = await self.store.save_driver(driver)
        logger.info("driver_online", driver_id=str(driver_id))
        return saved

    async def go_offline(self, driver_id: UUID) -> DeliveryDriver:
        """
        End a shift.

        Active deliveries are read from the store, never from the location cache.
        """
        driver = await self.get_driver(driver_id)

        active = await self.store.find_deliveries(statuses=_ACTIVE_STATUSES, driver_id=driver_id)
        if active or driver.current_delivery_id is not None:
            logger.warning(
                "go_offline_refused",
                driver_id=str(driver_id),
                delivery_ids=[str(d.id) for d in active],
            )
            raise UnauthorizedError(
                "Finish the current delivery before going offline",
                code="active_delivery",
            )

        if driver.shift_status == ShiftStatus.OFFLINE:
            return driver

        driver.shift_status = ShiftStatus.OFFLINE
        driver.shift_started_at = None
        saved = await self.store.save_driver(driver)
        logger.info("driver_offline", driver_id=str(driver_id))
        return saved
