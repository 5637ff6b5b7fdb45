"""Structured logging configuration."""

import logging
import sys
from typing import Any

import structlog
from pythonjsonlogger import jsonlogger

from courier_dispatch.config import get_settings


def setup_logging() -> None:
    """Configure structured logging for the application."""
    settings = get_settings()

    log_level = getattr(logging, settings.log_level)

    if settings.log_format == "json":
        handler = logging.StreamHandler(sys.stdout)
        formatter = jsonlogger.JsonFormatter(
            fmt="%(timestamp)s %(level)s %(name)s %(message)s",
            rename_fields={"levelname": "level", "asctime": "timestamp"},
        )
        handler.setFormatter(formatter)
    else:
        handler = logging.StreamHandler(sys.stdout)
        formatter = logging.Formatter(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()
    root_logger.addHandler(handler)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.JSONRenderer() if settings.log_format == "json"
            else structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)


class DispatchLogger:
    """Logger for the recurring dispatch and tracking events."""

    def __init__(self, component: str):
        self.component = component
        self.logger = get_logger(component)

    def log_transition(
        self,
        delivery_id: str,
        action: str,
        from_status: str,
        to_status: str,
        **kwargs: Any,
    ) -> None:
        """Log a delivery status transition."""
        self.logger.info(
            "delivery_transition",
            component=self.component,
            delivery_id=delivery_id,
            action=action,
            from_status=from_status,
            to_status=to_status,
            **kwargs,
        )

    def log_rejected_action(
        self,
        action: str,
        error_code: str,
        message: str,
        **kwargs: Any,
    ) -> None:
        """Log a guard violation that stopped an action before any write."""
        self.logger.warning(
            "delivery_action_rejected",
            component=self.component,
            action=action,
            error_code=error_code,
            message=message,
            **kwargs,
        )

    def log_location_update(
        self,
        driver_id: str,
        accepted: bool,
        delivery_id: str | None = None,
        duration_ms: float | None = None,
        **kwargs: Any,
    ) -> None:
        """Log the outcome of a driver location update."""
        log_data: dict[str, Any] = {
            "component": self.component,
            "driver_id": driver_id,
            "accepted": accepted,
        }

        if delivery_id is not None:
            log_data["delivery_id"] = delivery_id
        if duration_ms is not None:
            log_data["duration_ms"] = duration_ms

        log_data.update(kwargs)
        self.logger.debug("location_update", **log_data)

    def log_broadcast_error(
        self,
        event_type: str,
        error: str,
        **kwargs: Any,
    ) -> None:
        """Log a notifier failure. These never reach the caller."""
        self.logger.error(
            "broadcast_failed",
            component=self.component,
            event_type=event_type,
            error=error,
            **kwargs,
        )
