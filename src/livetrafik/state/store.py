"""In-memory vehicle state cache.

This is the only component allowed to merge vehicle deltas. State is kept
per :class:`CacheKey`; each key owns its own lock so deltas for different
keys never contend and a delta for one key is applied atomically.
"""

from __future__ import annotations

import copy
import logging
import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

from livetrafik._constants import DEFAULT_CACHE_TTL_MINUTES, SNAPSHOT_VEHICLE_TYPES
from livetrafik.ingestion.normalize import datetime_to_ms, parse_timestamp_ms, sanitize_key_part
from livetrafik.models.broadcast import VehicleBroadcastPayload
from livetrafik.state.models import CacheKey, CacheMetrics, VehicleSnapshot

_logger = logging.getLogger(__name__)

VEHICLE_ID_FIELD = "vehicle_id"
UPDATED_AT_FIELD = "updated_at"


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _vehicle_id(record: dict[str, Any]) -> str | None:
    value = record.get(VEHICLE_ID_FIELD)
    if value is None:
        return None
    text = str(value).strip()
    return text or None


@dataclass(frozen=True, slots=True)
class _CachedVehicle:
    record: dict[str, Any]
    updated_ms: int


@dataclass
class _KeyState:
    lock: threading.Lock = field(default_factory=threading.Lock)
    vehicles: dict[str, _CachedVehicle] = field(default_factory=dict)
    last_update_ms: int = 0


class VehicleStateCache:
    """Per-(region, vehicle type) vehicle maps fed by deltas.

    Deltas are merged remove-first: explicit removals are applied, then the
    upserts, then entries older than ``ttl`` are swept from the touched key.
    """

    def __init__(
        self,
        *,
        ttl: timedelta = timedelta(minutes=DEFAULT_CACHE_TTL_MINUTES),
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        if ttl < timedelta(0):
            raise ValueError(f"ttl must not be negative, got {ttl}")
        self._ttl_ms = int(ttl.total_seconds() * 1000)
        self._clock = clock
        self._registry_lock = threading.Lock()
        self._states: dict[CacheKey, _KeyState] = {}

    def _now_ms(self) -> int:
        return datetime_to_ms(self._clock())

    def _state(self, key: CacheKey) -> _KeyState:
        state = self._states.get(key)
        if state is None:
            with self._registry_lock:
                state = self._states.setdefault(key, _KeyState())
        return state

    def apply_delta(self, payload: VehicleBroadcastPayload) -> CacheMetrics:
        """Merge one delta into the cache."""
        key = CacheKey.from_parts(payload.region, payload.vehicle_type)
        if key is None:
            _logger.warning(
                "Rejecting vehicle delta without region/type: region=%r type=%r",
                payload.region,
                payload.vehicle_type,
            )
            return CacheMetrics()

        state = self._state(key)
        with state.lock:
            now_ms = self._now_ms()

            removed = 0
            for vehicle_id in payload.removed_vehicle_ids:
                clean_id = vehicle_id.strip()
                if clean_id and state.vehicles.pop(clean_id, None) is not None:
                    removed += 1

            updated = 0
            for record in payload.vehicles:
                vehicle_id = _vehicle_id(record)
                if vehicle_id is None:
                    continue
                updated_ms = parse_timestamp_ms(record.get(UPDATED_AT_FIELD))
                state.vehicles[vehicle_id] = _CachedVehicle(
                    record=copy.deepcopy(record),
                    updated_ms=now_ms if updated_ms is None else updated_ms,
                )
                updated += 1

            cleaned = self._sweep(state, now_ms)
            state.last_update_ms = now_ms
            size = len(state.vehicles)

        _logger.debug(
            "Applied delta region=%s type=%s removed=%d updated=%d cleaned=%d size=%d",
            key.region,
            key.vehicle_type,
            removed,
            updated,
            cleaned,
            size,
        )
        return CacheMetrics(removed=removed, updated=updated, cleaned=cleaned, resulting_size=size)

    def _sweep(self, state: _KeyState, now_ms: int) -> int:
        cutoff = now_ms - self._ttl_ms
        expired = [vehicle_id for vehicle_id, cached in state.vehicles.items() if cached.updated_ms < cutoff]
        for vehicle_id in expired:
            del state.vehicles[vehicle_id]
        return len(expired)

    def cleanup_expired(self) -> int:
        """Sweep every key; returns the number of evicted vehicles."""
        with self._registry_lock:
            states = list(self._states.items())
        total = 0
        for key, state in states:
            with state.lock:
                cleaned = self._sweep(state, self._now_ms())
            if cleaned:
                _logger.debug("Evicted %d stale vehicles from %s/%s", cleaned, key.region, key.vehicle_type)
            total += cleaned
        return total

    def get_snapshot(self, region: str | None) -> VehicleSnapshot:
        """Combined bus and train vehicles for *region*."""
        clean_region = sanitize_key_part(region)
        return self._snapshot(clean_region, SNAPSHOT_VEHICLE_TYPES)

    def _snapshot(self, region: str, vehicle_types: Iterable[str]) -> VehicleSnapshot:
        vehicles: list[dict[str, Any]] = []
        timestamp = 0
        if not region:
            return VehicleSnapshot(vehicles=vehicles, region=region, timestamp=timestamp)

        for vehicle_type in vehicle_types:
            state = self._states.get(CacheKey(region, vehicle_type))
            if state is None:
                continue
            with state.lock:
                if not state.vehicles:
                    continue
                vehicles.extend(copy.deepcopy(cached.record) for cached in state.vehicles.values())
                timestamp = max(timestamp, state.last_update_ms)

        return VehicleSnapshot(vehicles=vehicles, region=region, timestamp=timestamp)

    def size(self, region: str, vehicle_type: str) -> int:
        key = CacheKey.from_parts(region, vehicle_type)
        if key is None:
            return 0
        state = self._states.get(key)
        if state is None:
            return 0
        with state.lock:
            return len(state.vehicles)

    def keys(self) -> list[CacheKey]:
        with self._registry_lock:
            return list(self._states)
