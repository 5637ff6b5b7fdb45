"""Short-lived cache of each driver's latest reported location."""

import json
from abc import ABC, abstractmethod
from datetime import datetime, timezone

from courier_dispatch.models.geo import CachedLocation, Location, LocationUpdate
from courier_dispatch.state.manager import StateManager
from courier_dispatch.utils.logging import get_logger

logger = get_logger(__name__)


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


class LocationCache(ABC):
    """
    Latest location per driver, used to avoid store reads during a tracking burst.

    Entries are not durable. A cached entry younger than the staleness window
    wins over the driver record; anything older falls back to it.
    """

    def __init__(self, staleness_seconds: float = 60):
        self.staleness_seconds = staleness_seconds

    @staticmethod
    def build_entry(location: LocationUpdate, now: datetime) -> CachedLocation:
        return CachedLocation(
            lat=location.lat,
            lng=location.lng,
            accuracy=location.accuracy,
            reported_at=_aware(location.timestamp or now),
            updated_at=now,
        )

    @abstractmethod
    async def put(self, driver_id: str, location: LocationUpdate, now: datetime) -> bool:
        """
        Overwrite the driver's entry.

        Returns False without writing when the update was reported before the
        cached one. The comparison and the write are a single atomic step.
        """

    @abstractmethod
    async def peek(self, driver_id: str) -> CachedLocation | None:
        """Return the raw entry regardless of age."""

    @abstractmethod
    async def evict(self, driver_id: str) -> None:
        """Drop the driver's entry."""

    async def get(
        self,
        driver_id: str,
        now: datetime,
        fallback: Location | None = None,
    ) -> Location | None:
        """Fresh cached location, else the fallback."""
        entry = await self.peek(driver_id)
        if entry is not None and entry.is_fresh(now, self.staleness_seconds):
            return Location(lat=entry.lat, lng=entry.lng)

        if fallback is not None:
            return Location(lat=fallback.lat, lng=fallback.lng)

        return None


class InMemoryLocationCache(LocationCache):
    """Process-local cache. Only valid for a single serving process."""

    def __init__(self, staleness_seconds: float = 60):
        super().__init__(staleness_seconds)
        self._entries: dict[str, CachedLocation] = {}

    async def put(self, driver_id: str, location: LocationUpdate, now: datetime) -> bool:
        entry = self.build_entry(location, now)

        # No await between the read and the write keeps this atomic on the loop
        current = self._entries.get(driver_id)
        if current is not None and entry.reported_at < current.reported_at:
            return False

        self._entries[driver_id] = entry
        return True

    async def peek(self, driver_id: str) -> CachedLocation | None:
        return self._entries.get(driver_id)

    async def evict(self, driver_id: str) -> None:
        self._entries.pop(driver_id, None)

    def __len__(self) -> int:
        return len(self._entries)


# KEYS[1] = cache key
# ARGV[1] = encoded entry, ARGV[2] = reported_at epoch seconds, ARGV[3] = ttl
COMPARE_AND_SET_SCRIPT = """
local current = redis.call('GET', KEYS[1])
if current then
    local decoded = cjson.decode(current)
    if tonumber(decoded['reported_ts']) > tonumber(ARGV[2]) then
        return 0
    end
end
redis.call('SET', KEYS[1], ARGV[1], 'EX', tonumber(ARGV[3]))
return 1
"""


class RedisLocationCache(LocationCache):
    """Cache shared by every serving process, one Redis key per driver."""

    key_prefix = "driver_location"

    def __init__(
        self,
        state_manager: StateManager,
        staleness_seconds: float = 60,
        key_ttl_seconds: int = 3600,
    ):
        super().__init__(staleness_seconds)
        self.state = state_manager
        self.key_ttl_seconds = key_ttl_seconds

    def _key(self, driver_id: str) -> str:
        return f"{self.key_prefix}:{driver_id}"

    async def put(self, driver_id: str, location: LocationUpdate, now: datetime) -> bool:
        entry = self.build_entry(location, now)
        payload = entry.model_dump(mode="json")
        payload["reported_ts"] = entry.reported_at.timestamp()

        written = await self.state.run_script(
            COMPARE_AND_SET_SCRIPT,
            keys=[self._key(driver_id)],
            args=[json.dumps(payload), payload["reported_ts"], self.key_ttl_seconds],
        )
        if not written:
            logger.debug("cached_location_newer", driver_id=driver_id)
        return bool(written)

    async def peek(self, driver_id: str) -> CachedLocation | None:
        data = await self.state.get(self._key(driver_id))
        if not data:
            return None
        return CachedLocation.model_validate(data)

    async def evict(self, driver_id: str) -> None:
        await self.state.delete(self._key(driver_id))

    async def clear(self) -> int:
        keys = await self.state.scan_keys(f"{self.key_prefix}:*")
        return await self.state.delete(*keys)
