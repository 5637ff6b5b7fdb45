"""Step timing for location updates."""

import time
from contextlib import contextmanager
from typing import Any, Generator

from courier_dispatch.utils.logging import get_logger

logger = get_logger(__name__)


class TrackingTracer:
    """Times the steps of one driver location update."""

    def __init__(self, driver_id: str):
        self.driver_id = driver_id
        self.start_time = time.perf_counter()

    @contextmanager
    def trace_step(self, step: str, **metadata: Any) -> Generator[None, None, None]:
        """Context manager to time a step."""
        start = time.perf_counter()
        try:
            yield
        finally:
            logger.debug(
                "trace_step",
                driver_id=self.driver_id,
                step=step,
                duration_ms=(time.perf_counter() - start) * 1000,
                **metadata,
            )

    @property
    def elapsed_ms(self) -> float:
        return (time.perf_counter() - self.start_time) * 1000
