"""livetrafik - Supabase Realtime vehicle relay with an in-memory state cache."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("livetrafik")
except PackageNotFoundError:
    __version__ = "0+local"

from livetrafik.channels import ChannelDescriptor, resolve_channel
from livetrafik.config import MonitoringConfig, RelayConfig, resolve_channel_names
from livetrafik.connection import ConnectionState, RealtimeConnection
from livetrafik.dispatcher import MessageDispatcher
from livetrafik.downstream import ConnectionTracker, DownstreamSink, WebSocketBroadcaster
from livetrafik.exceptions import (
    LivetrafikError,
    RelayConfigError,
    RelayProtocolError,
    RelayTransportError,
)
from livetrafik.models import PhoenixEnvelope, VehicleBroadcastPayload
from livetrafik.state.models import CacheKey, CacheMetrics, VehicleSnapshot
from livetrafik.state.store import VehicleStateCache

__all__ = [
    "__version__",
    "CacheKey",
    "CacheMetrics",
    "ChannelDescriptor",
    "ConnectionState",
    "ConnectionTracker",
    "DownstreamSink",
    "LivetrafikError",
    "MessageDispatcher",
    "MonitoringConfig",
    "PhoenixEnvelope",
    "RealtimeConnection",
    "RelayConfig",
    "RelayConfigError",
    "RelayProtocolError",
    "RelayTransportError",
    "VehicleBroadcastPayload",
    "VehicleSnapshot",
    "VehicleStateCache",
    "WebSocketBroadcaster",
    "resolve_channel",
    "resolve_channel_names",
]
