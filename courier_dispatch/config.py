"""Configuration management for the dispatch engine."""

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Redis Configuration
    redis_url: str = Field(default="redis://localhost:6379/0", description="Redis URL")

    # API Configuration
    api_port: int = Field(default=8000, description="API server port")
    api_host: str = Field(default="0.0.0.0", description="API server host")

    # Environment
    environment: Literal["development", "staging", "production"] = Field(
        default="development"
    )

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: Literal["json", "text"] = Field(default="json", description="Log format")

    # Location Cache
    location_cache_backend: Literal["memory", "redis"] = Field(
        default="memory", description="Where live driver locations are cached"
    )
    location_staleness_seconds: int = Field(
        default=60, description="Cached locations older than this fall back to the driver record"
    )
    cache_key_ttl_seconds: int = Field(
        default=3600, description="Redis TTL for cached driver locations"
    )

    # Tracking
    location_history_interval_seconds: int = Field(
        default=30, description="Minimum gap between persisted location history points"
    )
    arrival_threshold_meters: float = Field(
        default=100.0, description="Radius that counts as arrival at pickup or drop-off"
    )
    traffic_factor: float = Field(
        default=0.7, gt=0, le=1, description="Speed multiplier applied in traffic"
    )
    default_accuracy_meters: float = Field(
        default=10.0, description="Accuracy recorded when the device sends none"
    )

    # Dispatch
    default_nearby_radius_km: float = Field(
        default=5.0, description="Radius for nearby driver lookups"
    )
    auto_assign_radius_km: float = Field(
        default=10.0, description="Max pickup distance when a driver is picked automatically"
    )
    default_prep_minutes: int = Field(
        default=15, description="Preparation time used when the order has none"
    )
    pickup_leg_km: float = Field(
        default=2.0, description="Assumed driver distance to the restaurant before assignment"
    )

    # Earnings
    driver_earnings_share: float = Field(
        default=0.8, ge=0, le=1, description="Share of the delivery fee paid to the driver"
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is valid."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Log level must be one of {valid_levels}")
        return v_upper


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
