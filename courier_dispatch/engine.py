"""Wires the dispatch components together."""

from courier_dispatch.config import Settings, get_settings
from courier_dispatch.services.broadcaster import Broadcaster, Notifier, NullNotifier
from courier_dispatch.services.deliveries import DeliveryService
from courier_dispatch.services.drivers import DriverService
from courier_dispatch.services.events import LOCATION_UPDATED, EventBus
from courier_dispatch.services.tracker import DispatchTracker
from courier_dispatch.state.location_cache import (
    InMemoryLocationCache,
    LocationCache,
    RedisLocationCache,
)
from courier_dispatch.state.manager import StateManager, get_state_manager
from courier_dispatch.state.store import DispatchStore, InMemoryStore
from courier_dispatch.utils.logging import get_logger

logger = get_logger(__name__)


class DispatchEngine:
    """One instance of every component, sharing a store, cache and event bus."""

    def __init__(
        self,
        store: DispatchStore,
        cache: LocationCache,
        notifier: Notifier | None = None,
        settings: Settings | None = None,
        state_manager: StateManager | None = None,
    ):
        self.settings = settings or get_settings()
        self.store = store
        self.cache = cache
        self.notifier = notifier or NullNotifier()
        self.state_manager = state_manager

        self.event_bus = EventBus()
        self.broadcaster = Broadcaster(store, self.notifier, cache)
        self.tracker = DispatchTracker(store, cache, self.event_bus, self.settings)
        self.deliveries = DeliveryService(store, self.tracker, self.broadcaster, self.settings)
        self.drivers = DriverService(store)

        self.event_bus.subscribe(LOCATION_UPDATED, self.broadcaster.handle_event)

    async def start(self) -> None:
        await self.event_bus.start()
        logger.info(
            "dispatch_engine_started",
            cache_backend=type(self.cache).__name__,
            store=type(self.store).__name__,
        )

    async def stop(self) -> None:
        await self.event_bus.stop()
        if self.state_manager is not None:
            await self.state_manager.disconnect()
        logger.info("dispatch_engine_stopped")


async def build_engine(
    settings: Settings | None = None,
    store: DispatchStore | None = None,
    notifier: Notifier | None = None,
) -> DispatchEngine:
    """Build an engine with the location cache backend chosen in settings."""
    settings = settings or get_settings()

    state_manager = None
    cache: LocationCache
    if settings.location_cache_backend == "redis":
        state_manager = await get_state_manager()
        cache = RedisLocationCache(
            state_manager,
            staleness_seconds=settings.location_staleness_seconds,
            key_ttl_seconds=settings.cache_key_ttl_seconds,
        )
    else:
        cache = InMemoryLocationCache(staleness_seconds=settings.location_staleness_seconds)

    return DispatchEngine(
        store=store or InMemoryStore(),
        cache=cache,
        notifier=notifier,
        settings=settings,
        state_manager=state_manager,
    )
