"""Clear cached driver locations from Redis (useful for testing)."""

import asyncio

from courier_dispatch.config import get_settings
from courier_dispatch.state.location_cache import RedisLocationCache
from courier_dispatch.state.manager import StateManager


async def reset_location_cache() -> None:
    """Delete every cached driver location."""
    print("\n⚠️  WARNING: This will delete all cached driver locations!")
    response = input("Are you sure? (yes/no): ")

    if response.lower() != "yes":
        print("Cancelled.")
        return

    print("\nResetting location cache...")

    settings = get_settings()
    state_manager = StateManager(settings.redis_url)
    await state_manager.connect()

    cache = RedisLocationCache(state_manager)
    deleted = await cache.clear()

    await state_manager.disconnect()

    print(f"✓ Removed {deleted} cached locations\n")


if __name__ == "__main__":
    asyncio.run(reset_location_cache())
