"""Coordinate models."""

from datetime import datetime, timezone

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


class Location(BaseModel):
    """Geographic location."""

    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)


class LocationUpdate(Location):
    """A position reported by a driver's device."""

    accuracy: float | None = Field(default=None, ge=0, description="Meters")
    speed: float | None = Field(default=None, ge=0, description="km/h")
    heading: float | None = Field(default=None, ge=0, lt=360)
    timestamp: datetime | None = Field(
        default=None, description="Device time of the fix, if the app sends one"
    )


class CachedLocation(Location):
    """Latest location held in the location cache for one driver."""

    accuracy: float | None = None
    reported_at: datetime
    updated_at: datetime

    def is_fresh(self, now: datetime, staleness_seconds: float) -> bool:
        return (now - self.updated_at).total_seconds() < staleness_seconds
