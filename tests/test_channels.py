from __future__ import annotations

import pytest

from livetrafik.channels import ChannelDescriptor, downstream_topic, extract_channel, resolve_channel


@pytest.mark.parametrize(
    ("channel", "expected"),
    [
        ("ul/vehicles/bus", ChannelDescriptor("ul", "bus")),
        ("sl/vehicles/train", ChannelDescriptor("sl", "train")),
        ("ul/vehicles/bus/extra", ChannelDescriptor("ul", "bus")),
        ("ul/vehicles", ChannelDescriptor("ul", None)),
        ("", ChannelDescriptor("ul", "bus")),
        ("   ", ChannelDescriptor("ul", "bus")),
        (None, ChannelDescriptor("ul", "bus")),
        ("legacy-foo-ul-bus", ChannelDescriptor("ul", "bus")),
        ("vehicles-sl-train", ChannelDescriptor("train", "train")),
        ("otraf", ChannelDescriptor("otraf", "bus")),
        ("vehicles-ul", ChannelDescriptor("vehicles", "bus")),
    ],
)
def test_resolve_channel(channel: str | None, expected: ChannelDescriptor) -> None:
    assert resolve_channel(channel) == expected


def test_two_segment_channel_is_combined_feed() -> None:
    assert resolve_channel("ul/vehicles").is_combined is True
    assert resolve_channel("ul/vehicles/bus").is_combined is False


def test_extract_channel_strips_realtime_prefix() -> None:
    assert extract_channel("realtime:ul/vehicles/bus") == "ul/vehicles/bus"
    assert extract_channel("ul/vehicles/bus") == "ul/vehicles/bus"
    assert extract_channel("realtime:") == ""
    assert extract_channel("") == ""
    assert extract_channel(None) is None


def test_downstream_topic() -> None:
    assert downstream_topic("ul/vehicles/bus") == "/topic/ul/vehicles/bus"
