"""Internal constants shared across the library."""

REALTIME_TOPIC_PREFIX = "realtime:"
DOWNSTREAM_TOPIC_PREFIX = "/topic/"
PHOENIX_PROTOCOL_VERSION = "1.0.0"

# ------------------------------------------------------------------
# Phoenix channel events
# ------------------------------------------------------------------

EVENT_JOIN = "phx_join"
EVENT_REPLY = "phx_reply"
EVENT_HEARTBEAT = "heartbeat"
EVENT_BROADCAST = "broadcast"
BROADCAST_EVENT_VEHICLES = "vehicles"
HEARTBEAT_TOPIC = "phoenix"

# ------------------------------------------------------------------
# Timing
# ------------------------------------------------------------------

HEARTBEAT_INTERVAL_SECONDS: float = 30.0
RECONNECT_DELAY_SECONDS: float = 5.0
CACHE_CLEANUP_INTERVAL_SECONDS: float = 60.0
DEFAULT_CACHE_TTL_MINUTES: float = 5.0
MIN_PROXY_HEARTBEAT_INTERVAL_SECONDS: int = 15

# ------------------------------------------------------------------
# Channel defaults
# ------------------------------------------------------------------

DEFAULT_REGIONS: tuple[str, ...] = ("ul", "sl")
DEFAULT_VEHICLE_TYPES: tuple[str, ...] = ("bus", "train")
DEFAULT_CHANNEL_REGION = "ul"
DEFAULT_CHANNEL_VEHICLE_TYPE = "bus"

#: Vehicle types merged into the combined per-region snapshot.
SNAPSHOT_VEHICLE_TYPES: tuple[str, ...] = ("bus", "train")
