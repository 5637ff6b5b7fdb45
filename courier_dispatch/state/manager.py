"""Redis-based state manager for state shared across serving processes."""

import json
from typing import Any

import redis.asyncio as redis

from courier_dispatch.config import get_settings
from courier_dispatch.utils.logging import get_logger

logger = get_logger(__name__)


class StateManager:
    """Thin async wrapper around a Redis connection."""

    def __init__(
        self,
        redis_url: str | None = None,
        client: redis.Redis | None = None,
    ) -> None:
        self.redis_client: redis.Redis | None = client
        self.redis_url = redis_url or get_settings().redis_url

    async def connect(self) -> None:
        """Establish Redis connection."""
        if self.redis_client is None:
            self.redis_client = redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
            )
            logger.info("redis_connected", url=self.redis_url)

    async def disconnect(self) -> None:
        """Close Redis connection."""
        if self.redis_client:
            await self.redis_client.aclose()
            self.redis_client = None
            logger.info("redis_disconnected")

    async def _client(self) -> redis.Redis:
        if not self.redis_client:
            await self.connect()
        assert self.redis_client is not None
        return self.redis_client

    async def get(self, key: str) -> Any:
        """Get a value from Redis, decoding JSON when possible."""
        client = await self._client()

        value = await client.get(key)

        if value:
            try:
                return json.loads(value)
            except (json.JSONDecodeError, TypeError):
                return value

        return None

    async def delete(self, *keys: str) -> int:
        """Delete keys from Redis."""
        if not keys:
            return 0
        client = await self._client()

        deleted = await client.delete(*keys)
        logger.debug("state_deleted", keys=list(keys))
        return int(deleted)

    async def scan_keys(self, pattern: str) -> list[str]:
        """Collect keys matching a pattern without blocking the server."""
        client = await self._client()
        return [key async for key in client.scan_iter(match=pattern)]

    async def run_script(self, script: str, keys: list[str], args: list[Any]) -> Any:
        """Run a Lua script atomically on the server."""
        client = await self._client()
        return await client.eval(script, len(keys), *keys, *args)


# Global state manager instance
_state_manager: StateManager | None = None


async def get_state_manager() -> StateManager:
    """Get the global state manager instance."""
    global _state_manager
    if _state_manager is None:
        _state_manager = StateManager()
        await _state_manager.connect()
    return _state_manager
