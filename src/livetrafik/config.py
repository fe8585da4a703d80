"""Relay configuration for livetrafik."""

from __future__ import annotations

import dataclasses
import os
from datetime import timedelta
from importlib.metadata import PackageNotFoundError, version
from typing import Any

from livetrafik._constants import (
    DEFAULT_CACHE_TTL_MINUTES,
    DEFAULT_REGIONS,
    DEFAULT_VEHICLE_TYPES,
    MIN_PROXY_HEARTBEAT_INTERVAL_SECONDS,
    PHOENIX_PROTOCOL_VERSION,
)
from livetrafik.exceptions import RelayConfigError


def _package_version() -> str:
    try:
        return version("livetrafik")
    except PackageNotFoundError:
        return "0+local"


def split_csv(value: str | None, default: tuple[str, ...] = ()) -> list[str]:
    """Split a comma-separated setting into trimmed, non-empty entries.

    Falls back to *default* when the value is unset, blank, or contains only
    separators.
    """
    if value is None or not value.strip():
        return list(default)
    items = [item.strip() for item in value.split(",")]
    items = [item for item in items if item]
    return items if items else list(default)


def _parse_number(env_key: str, raw: str, kind: type[int] | type[float]) -> int | float:
    try:
        return kind(raw.strip())
    except ValueError as exc:
        raise RelayConfigError(f"{env_key} must be a number, got {raw!r}") from exc


@dataclasses.dataclass(frozen=True)
class MonitoringConfig:
    """Settings for the outbound proxy heartbeat.

    Parameters
    ----------
    server_id : str
        Identifier reported to the heartbeat endpoint.
    version : str
        Relay version reported to the heartbeat endpoint.
    heartbeat_url : str or None
        Endpoint receiving the heartbeat POST. ``None`` disables reporting.
    heartbeat_interval_seconds : int
        Seconds between heartbeats. Values below 15 are raised to 15.
    """

    server_id: str = "pi-proxy-1"
    version: str = dataclasses.field(default_factory=_package_version)
    heartbeat_url: str | None = None
    heartbeat_interval_seconds: int = 30

    @property
    def effective_interval_seconds(self) -> int:
        return max(MIN_PROXY_HEARTBEAT_INTERVAL_SECONDS, self.heartbeat_interval_seconds)


@dataclasses.dataclass(frozen=True)
class RelayConfig:
    """Relay configuration.

    Parameters
    ----------
    supabase_url : str
        Realtime websocket endpoint, e.g.
        ``wss://<project>.supabase.co/realtime/v1/websocket``.
    supabase_anon_key : str
        API key sent as the ``apikey`` query parameter.
    channels : str
        Optional explicit comma-separated channel list. When set it replaces
        the region x vehicle type matrix.
    regions : str
        Comma-separated regions used to build channel names.
    vehicle_types : str
        Comma-separated vehicle types used to build channel names.
    cache_ttl_minutes : float
        Vehicles not updated within this window are evicted from the cache.
    host : str
        Bind address of the downstream HTTP/websocket server.
    port : int
        Bind port of the downstream HTTP/websocket server.
    monitoring : MonitoringConfig
        Proxy heartbeat settings.
    """

    supabase_url: str
    supabase_anon_key: str
    channels: str = ""
    regions: str = ",".join(DEFAULT_REGIONS)
    vehicle_types: str = ",".join(DEFAULT_VEHICLE_TYPES)
    cache_ttl_minutes: float = DEFAULT_CACHE_TTL_MINUTES
    host: str = "0.0.0.0"
    port: int = 8080
    monitoring: MonitoringConfig = dataclasses.field(default_factory=MonitoringConfig)

    def __post_init__(self) -> None:
        if not self.supabase_url or not self.supabase_url.strip():
            raise RelayConfigError("supabase_url is required")
        if not self.supabase_anon_key or not self.supabase_anon_key.strip():
            raise RelayConfigError("supabase_anon_key is required")
        if self.cache_ttl_minutes < 0:
            raise RelayConfigError(f"cache_ttl_minutes must not be negative, got {self.cache_ttl_minutes}")

    @property
    def cache_ttl(self) -> timedelta:
        return timedelta(minutes=self.cache_ttl_minutes)

    @property
    def region_list(self) -> list[str]:
        return split_csv(self.regions, DEFAULT_REGIONS)

    @property
    def vehicle_type_list(self) -> list[str]:
        return split_csv(self.vehicle_types, DEFAULT_VEHICLE_TYPES)

    def endpoint_url(self) -> str:
        """Websocket URL including the API key and protocol version."""
        base = self.supabase_url.strip()
        separator = "&" if "?" in base else "?"
        return f"{base}{separator}apikey={self.supabase_anon_key}&vsn={PHOENIX_PROTOCOL_VERSION}"

    @classmethod
    def from_env(cls, **overrides: Any) -> RelayConfig:
        """Create configuration from environment variables.

        Reads ``SUPABASE_URL``, ``SUPABASE_ANON_KEY`` and the optional
        ``SUPABASE_*``, ``VEHICLE_CACHE_*``, ``LIVETRAFIK_*`` and
        ``MONITORING_*`` variables. Explicit keyword arguments override
        environment values.
        """
        env = os.environ

        monitoring_kwargs: dict[str, Any] = {}
        _ENV_MONITORING_MAP = {
            "MONITORING_SERVER_ID": "server_id",
            "MONITORING_VERSION": "version",
            "MONITORING_HEARTBEAT_URL": "heartbeat_url",
        }
        for env_key, field_name in _ENV_MONITORING_MAP.items():
            val = env.get(env_key)
            if val is not None and val.strip():
                monitoring_kwargs[field_name] = val.strip()
        interval_env = env.get("MONITORING_HEARTBEAT_INTERVAL_SECONDS")
        if interval_env is not None and interval_env.strip():
            monitoring_kwargs["heartbeat_interval_seconds"] = int(
                _parse_number("MONITORING_HEARTBEAT_INTERVAL_SECONDS", interval_env, int)
            )

        monitoring_overrides = overrides.pop("monitoring", None)
        if isinstance(monitoring_overrides, dict):
            monitoring_kwargs.update(monitoring_overrides)
        elif isinstance(monitoring_overrides, MonitoringConfig):
            monitoring_kwargs = dataclasses.asdict(monitoring_overrides)

        _ENV_CONFIG_MAP = {
            "SUPABASE_URL": "supabase_url",
            "SUPABASE_ANON_KEY": "supabase_anon_key",
            "SUPABASE_CHANNEL": "channels",
            "SUPABASE_REGIONS": "regions",
            "SUPABASE_VEHICLE_TYPES": "vehicle_types",
            "LIVETRAFIK_HOST": "host",
        }
        config_kwargs: dict[str, Any] = {"monitoring": MonitoringConfig(**monitoring_kwargs)}
        for env_key, field_name in _ENV_CONFIG_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        ttl_env = env.get("VEHICLE_CACHE_TTL_MINUTES")
        if ttl_env is not None and ttl_env.strip() and "cache_ttl_minutes" not in overrides:
            config_kwargs["cache_ttl_minutes"] = float(_parse_number("VEHICLE_CACHE_TTL_MINUTES", ttl_env, float))

        port_env = env.get("LIVETRAFIK_PORT")
        if port_env is not None and port_env.strip() and "port" not in overrides:
            config_kwargs["port"] = int(_parse_number("LIVETRAFIK_PORT", port_env, int))

        config_kwargs.update(overrides)
        config_kwargs.setdefault("supabase_url", "")
        config_kwargs.setdefault("supabase_anon_key", "")

        return cls(**config_kwargs)


def resolve_channel_names(config: RelayConfig) -> list[str]:
    """Channels to join upstream.

    An explicit channel list wins verbatim; otherwise one
    ``<region>/vehicles/<type>`` channel per region and vehicle type.
    """
    explicit = split_csv(config.channels)
    if explicit:
        return explicit
    return [f"{region}/vehicles/{vehicle_type}" for region in config.region_list for vehicle_type in config.vehicle_type_list]
