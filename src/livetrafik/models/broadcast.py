"""Vehicle delta payload model."""

from __future__ import annotations

from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from livetrafik.ingestion.normalize import safe_int


class VehicleBroadcastPayload(BaseModel):
    """Incremental vehicle update emitted on a realtime channel.

    ``vehicles`` are upserts, ``removed_vehicle_ids`` are explicit removals.
    Region and vehicle type are optional on the wire; the dispatcher fills
    them in from the channel name via :meth:`backfill_region_and_type`.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
    )

    vehicles: list[dict[str, Any]] = Field(default_factory=list)
    """Vehicle records to insert or replace, in message order."""

    removed_vehicle_ids: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("removed_vehicle_ids", "removedVehicleIds"),
    )
    """Vehicle ids to drop before the upserts are applied."""

    region: str | None = None
    vehicle_type: str | None = Field(default=None, validation_alias=AliasChoices("vehicle_type", "vehicleType"))
    timestamp: int | None = None
    """Producer timestamp in epoch milliseconds."""

    @field_validator("vehicles", mode="before")
    @classmethod
    def _coerce_vehicles(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, list):
            return [item for item in value if isinstance(item, dict)]
        return value

    @field_validator("removed_vehicle_ids", mode="before")
    @classmethod
    def _coerce_removed(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, list):
            return [str(item) for item in value if item is not None]
        return value

    @field_validator("region", "vehicle_type", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> str | None:
        if value is None:
            return None
        return str(value)

    @field_validator("timestamp", mode="before")
    @classmethod
    def _coerce_timestamp(cls, value: Any) -> int | None:
        return safe_int(value)

    def backfill_region_and_type(self, region: str | None, vehicle_type: str | None) -> VehicleBroadcastPayload:
        """Return a copy with blank region/vehicle type replaced by the fallbacks."""
        update: dict[str, Any] = {}
        if self.region is None or not self.region.strip():
            update["region"] = region
        if self.vehicle_type is None or not self.vehicle_type.strip():
            update["vehicle_type"] = vehicle_type
        if not update:
            return self
        return self.model_copy(update=update)
