"""Utility modules."""

from courier_dispatch.utils.logging import DispatchLogger, get_logger, setup_logging
from courier_dispatch.utils.tracing import TrackingTracer

__all__ = ["setup_logging", "get_logger", "DispatchLogger", "TrackingTracer"]
