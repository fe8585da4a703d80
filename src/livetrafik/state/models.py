"""Value types produced and consumed by the vehicle state cache."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from livetrafik.ingestion.normalize import sanitize_key_part


@dataclass(frozen=True, slots=True)
class CacheKey:
    """Sanitized (region, vehicle type) pair."""

    region: str
    vehicle_type: str

    @classmethod
    def from_parts(cls, region: Any, vehicle_type: Any) -> CacheKey | None:
        """Build a key, or ``None`` when either part is blank after sanitizing."""
        clean_region = sanitize_key_part(region)
        clean_type = sanitize_key_part(vehicle_type)
        if not clean_region or not clean_type:
            return None
        return cls(clean_region, clean_type)


class CacheMetrics(BaseModel):
    """Outcome of one delta application."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    removed: int = 0
    updated: int = 0
    cleaned: int = 0
    resulting_size: int = 0


class VehicleSnapshot(BaseModel):
    """Combined point-in-time view of a region."""

    model_config = ConfigDict(extra="forbid")

    vehicles: list[dict[str, Any]] = Field(default_factory=list)
    region: str
    timestamp: int = 0
    """Most recent update time of the merged keys, epoch milliseconds."""

    def as_dict(self) -> dict[str, Any]:
        return self.model_dump()
