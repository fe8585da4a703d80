"""Composition root wiring the relay together."""

from __future__ import annotations

import asyncio
import contextlib
import logging

import aiohttp
from aiohttp import web

from livetrafik._constants import CACHE_CLEANUP_INTERVAL_SECONDS
from livetrafik.config import RelayConfig
from livetrafik.connection import RealtimeConnection, aiohttp_socket_factory
from livetrafik.dispatcher import MessageDispatcher
from livetrafik.downstream import ConnectionTracker, WebSocketBroadcaster
from livetrafik.monitoring import ProxyHeartbeatReporter
from livetrafik.server import build_app
from livetrafik.state.store import VehicleStateCache

_logger = logging.getLogger(__name__)


class RelayRuntime:
    """Owns every long-lived relay component.

    Usage::

        async with RelayRuntime(config) as runtime:
            await runtime.wait_closed()
    """

    def __init__(
        self,
        config: RelayConfig,
        *,
        session: aiohttp.ClientSession | None = None,
        cleanup_interval: float = CACHE_CLEANUP_INTERVAL_SECONDS,
    ) -> None:
        self._config = config
        self._external_session = session is not None
        self._http_session = session
        self._cleanup_interval = cleanup_interval

        self.cache = VehicleStateCache(ttl=config.cache_ttl)
        self.tracker = ConnectionTracker()
        self.broadcaster = WebSocketBroadcaster(tracker=self.tracker)
        self.dispatcher = MessageDispatcher(cache=self.cache, sink=self.broadcaster)
        self.connection: RealtimeConnection | None = None
        self.reporter: ProxyHeartbeatReporter | None = None
        self.app: web.Application = build_app(cache=self.cache, status=self, broadcaster=self.broadcaster)

        self._runner: web.AppRunner | None = None
        self._cleanup_task: asyncio.Task[None] | None = None
        self._closed = asyncio.Event()

    # RelayStatus, usable before the upstream connection exists.

    @property
    def is_connected(self) -> bool:
        return self.connection is not None and self.connection.is_connected

    @property
    def relayed_message_count(self) -> int:
        return self.dispatcher.relayed_messages

    async def __aenter__(self) -> RelayRuntime:
        await self.start()
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.stop()

    async def start(self, *, serve_http: bool = True) -> None:
        if self._http_session is None:
            self._http_session = aiohttp.ClientSession()

        self.connection = RealtimeConnection(
            self._config,
            self.dispatcher,
            socket_factory=aiohttp_socket_factory(self._http_session),
        )
        self.reporter = ProxyHeartbeatReporter(self._config, self, self.tracker, self._http_session)

        if serve_http:
            self._runner = web.AppRunner(self.app)
            await self._runner.setup()
            site = web.TCPSite(self._runner, self._config.host, self._config.port)
            await site.start()
            _logger.info("Relay listening on %s:%d", self._config.host, self._config.port)

        await self.connection.connect()
        self.reporter.start()
        self._cleanup_task = asyncio.get_running_loop().create_task(self._cleanup_loop())

    async def _cleanup_loop(self) -> None:
        while True:
            await asyncio.sleep(self._cleanup_interval)
            try:
                evicted = self.cache.cleanup_expired()
            except Exception:
                _logger.error("Vehicle cache cleanup failed", exc_info=True)
                continue
            if evicted:
                _logger.info("Evicted %d stale vehicles", evicted)

    async def wait_closed(self) -> None:
        await self._closed.wait()

    async def stop(self) -> None:
        if self.reporter is not None:
            await self.reporter.stop()

        task = self._cleanup_task
        self._cleanup_task = None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

        if self.connection is not None:
            await self.connection.shutdown()

        await self.broadcaster.close()
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None

        if self._http_session is not None and not self._external_session:
            await self._http_session.close()
            self._http_session = None
        self._closed.set()
