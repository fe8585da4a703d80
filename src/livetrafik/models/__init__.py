"""Wire models for the upstream realtime protocol."""

from livetrafik.models.broadcast import VehicleBroadcastPayload
from livetrafik.models.phoenix import (
    PhoenixEnvelope,
    build_heartbeat_frame,
    build_join_frame,
    parse_frame,
)

__all__ = [
    "PhoenixEnvelope",
    "VehicleBroadcastPayload",
    "build_heartbeat_frame",
    "build_join_frame",
    "parse_frame",
]
