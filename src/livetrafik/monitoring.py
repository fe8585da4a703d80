"""Outbound proxy heartbeat.

Periodically reports relay health (upstream connectivity, relayed message
count, connected downstream clients) to an external HTTP endpoint.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from typing import Any, Protocol

import aiohttp

from livetrafik._redact import redact_url
from livetrafik.config import RelayConfig
from livetrafik.downstream import ConnectionTracker

_logger = logging.getLogger(__name__)


class RelayStatus(Protocol):
    @property
    def is_connected(self) -> bool: ...

    @property
    def relayed_message_count(self) -> int: ...


class ProxyHeartbeatReporter:
    """POSTs a status document every ``heartbeat_interval_seconds``."""

    def __init__(
        self,
        config: RelayConfig,
        status: RelayStatus,
        tracker: ConnectionTracker,
        http_session: aiohttp.ClientSession,
        *,
        request_timeout: float = 10.0,
    ) -> None:
        self._config = config
        self._monitoring = config.monitoring
        self._status = status
        self._tracker = tracker
        self._http = http_session
        self._timeout = aiohttp.ClientTimeout(total=request_timeout)
        self._started_at = time.monotonic()
        self._task: asyncio.Task[None] | None = None

    @property
    def enabled(self) -> bool:
        return bool(self._monitoring.heartbeat_url)

    def build_heartbeat_payload(self, uptime_seconds: int) -> dict[str, Any]:
        return {
            "server_id": self._monitoring.server_id,
            "uptime_seconds": uptime_seconds,
            "connected_clients": self._tracker.connected_clients,
            "version": self._monitoring.version,
            "supabase_connected": self._status.is_connected,
            "messages_relayed": self._status.relayed_message_count,
        }

    async def send_heartbeat(self) -> bool:
        """Send one heartbeat; returns whether the endpoint acknowledged it."""
        url = self._monitoring.heartbeat_url
        if not url:
            return False
        uptime = int(time.monotonic() - self._started_at)
        payload = self.build_heartbeat_payload(uptime)
        key = self._config.supabase_anon_key
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {key}",
            "apikey": key,
        }
        try:
            async with self._http.post(url, json=payload, headers=headers, timeout=self._timeout) as resp:
                body = await resp.text()
                if resp.status != 200:
                    _logger.warning("Heartbeat failed: %s - %s", resp.status, body[:200])
                    return False
                _logger.debug("Heartbeat acknowledged: %s", body[:200])
                return True
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            _logger.warning("Heartbeat error to %s: %s", redact_url(url), exc)
            return False

    async def _run(self) -> None:
        interval = self._monitoring.effective_interval_seconds
        while True:
            try:
                await self.send_heartbeat()
            except asyncio.CancelledError:
                raise
            except Exception:
                _logger.error("Failed to send heartbeat", exc_info=True)
            await asyncio.sleep(interval)

    def start(self) -> None:
        if not self.enabled:
            _logger.info("Proxy heartbeat disabled (no heartbeat URL configured)")
            return
        if self._task is not None:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())
        _logger.info("Proxy heartbeat scheduled every %ds", self._monitoring.effective_interval_seconds)

    async def stop(self) -> None:
        task = self._task
        self._task = None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
