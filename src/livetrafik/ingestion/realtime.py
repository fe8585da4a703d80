"""Realtime broadcast ingestion.

Translates the inner payload of a ``vehicles`` broadcast into a
:class:`VehicleBroadcastPayload` ready for the state cache.
"""

from __future__ import annotations

from typing import Any

from livetrafik.channels import ChannelDescriptor
from livetrafik.models.broadcast import VehicleBroadcastPayload


def build_delta_from_broadcast(payload: Any, descriptor: ChannelDescriptor) -> VehicleBroadcastPayload:
    """Decode *payload* and fill region/type from the channel descriptor.

    A missing payload decodes to an empty delta. Raises
    :class:`pydantic.ValidationError` when the payload is not an object.
    """
    delta = VehicleBroadcastPayload.model_validate({} if payload is None else payload)
    return delta.backfill_region_and_type(descriptor.region, descriptor.vehicle_type)
