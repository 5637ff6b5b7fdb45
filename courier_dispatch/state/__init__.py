"""State management modules."""

from courier_dispatch.state.location_cache import (
    InMemoryLocationCache,
    LocationCache,
    RedisLocationCache,
)
from courier_dispatch.state.manager import StateManager
from courier_dispatch.state.store import DispatchStore, InMemoryStore

__all__ = [
    "StateManager",
    "LocationCache",
    "InMemoryLocationCache",
    "RedisLocationCache",
    "DispatchStore",
    "InMemoryStore",
]
