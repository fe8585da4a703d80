"""Inbound frame classification and fan-out.

Owns:
- decoding upstream Phoenix frames
- relaying vehicle broadcasts to the downstream sink
- translating typed-feed broadcasts into cache deltas
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from pydantic import ValidationError

from livetrafik._constants import BROADCAST_EVENT_VEHICLES, EVENT_BROADCAST, EVENT_REPLY
from livetrafik._redact import redact_for_log
from livetrafik.channels import downstream_topic, extract_channel, resolve_channel
from livetrafik.downstream import DownstreamSink
from livetrafik.exceptions import RelayProtocolError
from livetrafik.ingestion.normalize import now_ms as _now_ms
from livetrafik.ingestion.normalize import safe_int
from livetrafik.ingestion.realtime import build_delta_from_broadcast
from livetrafik.models.phoenix import parse_frame
from livetrafik.state.store import VehicleStateCache

_logger = logging.getLogger(__name__)


class MessageDispatcher:
    """Routes upstream frames to the cache and the downstream sink.

    Frames are expected one at a time, in arrival order. Nothing raised while
    handling a frame escapes :meth:`handle`.
    """

    def __init__(
        self,
        *,
        cache: VehicleStateCache,
        sink: DownstreamSink,
        clock_ms: Callable[[], int] = _now_ms,
    ) -> None:
        self._cache = cache
        self._sink = sink
        self._clock_ms = clock_ms
        self._received_payloads = 0
        self._relayed_messages = 0
        self._last_latency_ms: int | None = None

    @property
    def received_payloads(self) -> int:
        """Vehicle broadcasts received from upstream."""
        return self._received_payloads

    @property
    def relayed_messages(self) -> int:
        """Vehicle broadcasts forwarded to the downstream sink."""
        return self._relayed_messages

    @property
    def last_latency_ms(self) -> int | None:
        """Producer-to-relay latency of the most recent timestamped broadcast."""
        return self._last_latency_ms

    def handle(self, raw_frame: str | bytes) -> None:
        try:
            envelope = parse_frame(raw_frame)
        except RelayProtocolError as exc:
            _logger.warning("Dropping malformed frame (%s): %s", exc, redact_for_log(exc.frame, max_string=256))
            return

        try:
            if envelope.event == EVENT_BROADCAST:
                if envelope.broadcast_event == BROADCAST_EVENT_VEHICLES:
                    vehicle_payload = envelope.broadcast_payload
                    self._received_payloads += 1
                    self._record_latency(vehicle_payload)
                    self.dispatch_vehicle_payload(envelope.topic, vehicle_payload)
            elif envelope.event == EVENT_REPLY:
                _logger.debug("Channel join status: %s (%s)", envelope.reply_status, envelope.topic)
        except Exception:
            _logger.error("Error handling frame on topic %s", envelope.topic, exc_info=True)

    def _record_latency(self, vehicle_payload: Any) -> None:
        if not isinstance(vehicle_payload, dict):
            return
        timestamp = safe_int(vehicle_payload.get("timestamp"))
        if timestamp is None or timestamp <= 0:
            return
        diff = self._clock_ms() - timestamp
        if diff >= 0:
            self._last_latency_ms = diff
            _logger.debug("Upstream payload latency %d ms", diff)

    def dispatch_vehicle_payload(self, topic: str, vehicle_payload: Any) -> None:
        """Relay one vehicle payload and, for typed feeds, merge it into the cache."""
        channel = extract_channel(topic)
        if channel is None:
            _logger.warning("Unable to extract channel from topic %r", topic)
            return

        # Relay to subscribers regardless of what the payload contains.
        target = downstream_topic(channel)
        try:
            self._sink.publish(target, vehicle_payload)
        except Exception:
            _logger.error("Downstream publish to %s failed", target, exc_info=True)
        else:
            self._relayed_messages += 1
            _logger.debug("Forwarded payload to %s", target)

        descriptor = resolve_channel(channel)
        if descriptor.is_combined:
            # Combined region feed: relayed only, caching it would double count.
            return

        try:
            delta = build_delta_from_broadcast(vehicle_payload, descriptor)
        except ValidationError as exc:
            _logger.warning("Ignoring undecodable vehicle payload on %s: %s", channel, exc.error_count())
            return

        metrics = self._cache.apply_delta(delta)
        _logger.debug(
            "vehicles update: region=%s type=%s received=%d removed=%d cache_size=%d",
            delta.region,
            delta.vehicle_type,
            len(delta.vehicles),
            len(delta.removed_vehicle_ids),
            metrics.resulting_size,
        )
