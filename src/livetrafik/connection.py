"""Upstream Supabase Realtime connection.

Owns:
- the single websocket to the realtime endpoint
- the Phoenix join handshake and heartbeat
- reconnection after close or error
"""

from __future__ import annotations

import asyncio
import contextlib
import itertools
import logging
from collections.abc import AsyncIterator, Awaitable, Callable, Coroutine
from enum import StrEnum
from typing import Any, Protocol

import aiohttp

from livetrafik._constants import HEARTBEAT_INTERVAL_SECONDS, RECONNECT_DELAY_SECONDS
from livetrafik._redact import redact_url
from livetrafik.config import RelayConfig, resolve_channel_names
from livetrafik.dispatcher import MessageDispatcher
from livetrafik.exceptions import RelayTransportError
from livetrafik.models.phoenix import build_heartbeat_frame, build_join_frame

_logger = logging.getLogger(__name__)


class ConnectionState(StrEnum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"
    RECONNECTING = "reconnecting"
    CLOSED = "closed"


class RealtimeSocket(Protocol):
    """The subset of :class:`aiohttp.ClientWebSocketResponse` the relay uses."""

    @property
    def closed(self) -> bool: ...

    async def send_str(self, data: str) -> None: ...

    async def close(self) -> Any: ...

    def exception(self) -> BaseException | None: ...

    def __aiter__(self) -> AsyncIterator[Any]: ...


class Cancellable(Protocol):
    def cancel(self) -> None: ...


SocketFactory = Callable[[str], Awaitable[RealtimeSocket]]
Scheduler = Callable[[float, Callable[[], None]], Cancellable]


def aiohttp_socket_factory(session: aiohttp.ClientSession) -> SocketFactory:
    """Open realtime sockets through *session*."""

    async def _open(url: str) -> RealtimeSocket:
        try:
            return await session.ws_connect(url, autoping=True)
        except aiohttp.WSServerHandshakeError as exc:
            raise RelayTransportError(
                f"Realtime handshake rejected: HTTP {exc.status}",
                status_code=exc.status,
                url=redact_url(url),
            ) from exc
        except (aiohttp.ClientError, OSError, asyncio.TimeoutError) as exc:
            raise RelayTransportError(f"Realtime connect failed: {exc}", url=redact_url(url)) from exc

    return _open


class RealtimeConnection:
    """Single long-lived websocket to Supabase Realtime.

    Usage::

        connection = RealtimeConnection(config, dispatcher, socket_factory=aiohttp_socket_factory(session))
        await connection.connect()
        ...
        await connection.shutdown()

    Every frame received is handed to the dispatcher in arrival order. When
    the socket closes or fails, exactly one reconnect is scheduled after
    ``reconnect_delay`` seconds; retries continue indefinitely at that fixed
    cadence.
    """

    def __init__(
        self,
        config: RelayConfig,
        dispatcher: MessageDispatcher,
        *,
        socket_factory: SocketFactory,
        scheduler: Scheduler | None = None,
        heartbeat_interval: float = HEARTBEAT_INTERVAL_SECONDS,
        reconnect_delay: float = RECONNECT_DELAY_SECONDS,
    ) -> None:
        self._config = config
        self._dispatcher = dispatcher
        self._socket_factory = socket_factory
        self._scheduler = scheduler
        self._heartbeat_interval = heartbeat_interval
        self._reconnect_delay = reconnect_delay
        self._channels = resolve_channel_names(config)

        self._state = ConnectionState.DISCONNECTED
        self._socket: RealtimeSocket | None = None
        self._opened = False
        self._refs = itertools.count(1)
        self._generation = 0
        self._heartbeat_task: asyncio.Task[None] | None = None
        self._reader_task: asyncio.Task[None] | None = None
        self._reconnect_handle: Cancellable | None = None
        self._background: set[asyncio.Task[Any]] = set()
        self._shutdown = False

    # ------------------------------------------------------------------
    # Signals
    # ------------------------------------------------------------------

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def channels(self) -> list[str]:
        return list(self._channels)

    @property
    def is_connected(self) -> bool:
        """True while the socket is open and its open handshake has run."""
        socket = self._socket
        return self._opened and socket is not None and not socket.closed

    @property
    def relayed_message_count(self) -> int:
        return self._dispatcher.relayed_messages

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_handle is not None

    def _next_ref(self) -> int:
        return next(self._refs)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """Open a fresh socket, join every channel and start the heartbeat.

        Any previous socket is abandoned first. Failures are logged and turn
        into a scheduled reconnect; this method never raises for them. When
        calls overlap, only the most recent one installs its socket.
        """
        if self._shutdown:
            return
        self._generation += 1
        generation = self._generation
        self._cancel_reconnect()
        await self._abandon_socket()
        if generation != self._generation:
            return

        self._state = ConnectionState.CONNECTING
        url = self._config.endpoint_url()
        _logger.info("Connecting to Supabase Realtime at %s", redact_url(url))
        try:
            socket = await self._socket_factory(url)
        except Exception:
            if generation != self._generation:
                _logger.debug("Superseded realtime connect failed", exc_info=True)
                return
            _logger.error("Failed to open realtime websocket", exc_info=True)
            self._state = ConnectionState.DISCONNECTED
            self._schedule_reconnect()
            return

        if self._shutdown or generation != self._generation:
            _logger.debug("Discarding superseded realtime socket")
            await socket.close()
            return

        self._socket = socket
        await self._on_open(socket)

    async def _on_open(self, socket: RealtimeSocket) -> None:
        _logger.info("Connected to Supabase Realtime")
        self._state = ConnectionState.OPEN
        self._opened = True
        await self._join_channels(socket)
        if socket is not self._socket:
            return
        self._heartbeat_task = self._spawn(self._heartbeat_loop(socket))
        self._reader_task = self._spawn(self._read_loop(socket))

    async def _join_channels(self, socket: RealtimeSocket) -> None:
        for channel in self._channels:
            await self._send(socket, build_join_frame(channel, self._next_ref()))
            _logger.info("Sent join request for channel: %s", channel)
        _logger.info("Supabase Realtime: subscribing to %d channels", len(self._channels))

    async def send_heartbeat(self) -> bool:
        """Send one heartbeat if the socket is open; returns whether it was sent."""
        socket = self._socket
        if socket is None or socket.closed:
            return False
        await self._send(socket, build_heartbeat_frame(self._next_ref()))
        _logger.debug("Sent heartbeat")
        return True

    async def _heartbeat_loop(self, socket: RealtimeSocket) -> None:
        while True:
            await asyncio.sleep(self._heartbeat_interval)
            if socket is not self._socket:
                return
            await self.send_heartbeat()

    async def _send(self, socket: RealtimeSocket, frame: str) -> None:
        try:
            await socket.send_str(frame)
        except Exception:
            _logger.error("Failed to send realtime frame", exc_info=True)

    async def _read_loop(self, socket: RealtimeSocket) -> None:
        try:
            async for message in socket:
                if message.type == aiohttp.WSMsgType.TEXT:
                    self._dispatcher.handle(message.data)
                elif message.type == aiohttp.WSMsgType.BINARY:
                    self._dispatcher.handle(message.data)
                elif message.type == aiohttp.WSMsgType.ERROR:
                    _logger.error("WebSocket error: %s", socket.exception())
                    break
        except asyncio.CancelledError:
            raise
        except Exception:
            _logger.error("WebSocket read failed", exc_info=True)

        if socket is self._socket:
            self._on_closed(socket)

    def _on_closed(self, socket: RealtimeSocket) -> None:
        close_code = getattr(socket, "close_code", None)
        _logger.warning("WebSocket closed: %s. Reconnecting...", close_code)
        self._opened = False
        self._stop_heartbeat()
        self._reader_task = None
        if self._shutdown:
            return
        self._state = ConnectionState.RECONNECTING
        self._schedule_reconnect()

    # ------------------------------------------------------------------
    # Reconnect scheduling
    # ------------------------------------------------------------------

    def _schedule_reconnect(self) -> None:
        if self._shutdown or self._reconnect_handle is not None:
            return
        self._state = ConnectionState.RECONNECTING
        scheduler = self._scheduler or asyncio.get_running_loop().call_later
        self._reconnect_handle = scheduler(self._reconnect_delay, self._fire_reconnect)
        _logger.debug("Reconnect scheduled in %.1fs", self._reconnect_delay)

    def _fire_reconnect(self) -> None:
        self._reconnect_handle = None
        if self._shutdown:
            return
        _logger.info("Attempting to reconnect...")
        self._spawn(self.connect())

    def _cancel_reconnect(self) -> None:
        handle = self._reconnect_handle
        self._reconnect_handle = None
        if handle is not None:
            handle.cancel()

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> asyncio.Task[None]:
        task = asyncio.get_running_loop().create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    def _stop_heartbeat(self) -> None:
        task = self._heartbeat_task
        self._heartbeat_task = None
        if task is not None and task is not asyncio.current_task():
            task.cancel()

    async def _abandon_socket(self) -> None:
        socket = self._socket
        self._socket = None
        self._opened = False
        self._stop_heartbeat()

        reader = self._reader_task
        self._reader_task = None
        if reader is not None and reader is not asyncio.current_task():
            reader.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await reader

        if socket is not None and not socket.closed:
            self._state = ConnectionState.CLOSING
            try:
                await socket.close()
            except Exception:
                _logger.debug("Closing previous realtime socket failed", exc_info=True)

    async def shutdown(self) -> None:
        """Stop the heartbeat and close the socket. Safe to call repeatedly."""
        if self._shutdown and self._socket is None:
            return
        self._shutdown = True
        self._cancel_reconnect()
        await self._abandon_socket()
        for task in list(self._background):
            if task is not asyncio.current_task():
                task.cancel()
        self._state = ConnectionState.CLOSED
        _logger.info("Supabase Realtime connection shut down")
