"""Channel name decoding.

Upstream channels carry the feed identity in their name:

* ``<region>/vehicles/<type>``: one typed feed per region and vehicle type.
* ``<region>/vehicles``: combined region feed without a vehicle type.
* ``vehicles-...-<region>-<type>``: legacy dash-separated names.
"""

from __future__ import annotations

from dataclasses import dataclass

from livetrafik._constants import (
    DEFAULT_CHANNEL_REGION,
    DEFAULT_CHANNEL_VEHICLE_TYPE,
    DOWNSTREAM_TOPIC_PREFIX,
    REALTIME_TOPIC_PREFIX,
)


@dataclass(frozen=True, slots=True)
class ChannelDescriptor:
    """Region and vehicle type derived from a channel name.

    ``vehicle_type`` is ``None`` for combined feeds, which are relayed but
    never cached.
    """

    region: str
    vehicle_type: str | None

    @property
    def is_combined(self) -> bool:
        return self.vehicle_type is None


def resolve_channel(channel: str | None) -> ChannelDescriptor:
    """Map a channel name to its :class:`ChannelDescriptor`."""
    if channel is None or not channel.strip():
        return ChannelDescriptor(DEFAULT_CHANNEL_REGION, DEFAULT_CHANNEL_VEHICLE_TYPE)

    slash_parts = channel.split("/")
    if len(slash_parts) >= 3:
        # slash_parts[1] is the literal "vehicles"
        return ChannelDescriptor(slash_parts[0], slash_parts[2])
    if len(slash_parts) == 2:
        return ChannelDescriptor(slash_parts[0], None)

    dash_parts = channel.split("-")
    if len(dash_parts) >= 3:
        return ChannelDescriptor(dash_parts[2], dash_parts[-1])
    return ChannelDescriptor(dash_parts[0], DEFAULT_CHANNEL_VEHICLE_TYPE)


def extract_channel(topic: str | None) -> str | None:
    """Strip the ``realtime:`` prefix from an upstream topic.

    Only a missing topic yields ``None``. A blank channel comes back as ``""``,
    which :func:`resolve_channel` maps to the default feed.
    """
    if topic is None:
        return None
    if topic.startswith(REALTIME_TOPIC_PREFIX):
        return topic[len(REALTIME_TOPIC_PREFIX) :]
    return topic


def realtime_topic(channel: str) -> str:
    return f"{REALTIME_TOPIC_PREFIX}{channel}"


def downstream_topic(channel: str) -> str:
    return f"{DOWNSTREAM_TOPIC_PREFIX}{channel}"
