"""Downstream fan-out to locally connected websocket clients.

Clients connect to the relay's ``/ws`` endpoint and manage their topic
subscriptions with small JSON commands::

    {"action": "subscribe", "topic": "/topic/ul/vehicles/bus"}
    {"action": "unsubscribe", "topic": "/topic/ul/vehicles/bus"}

``"*"`` subscribes to every topic. Each published message is delivered as
``{"topic": <topic>, "payload": <payload as relayed>}``.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

from aiohttp import WSMsgType, web

_logger = logging.getLogger(__name__)

WILDCARD_TOPIC = "*"


class DownstreamSink(Protocol):
    """Structural publish interface used by the dispatcher.

    Implementations must accept the decoded payload object as-is and must not
    block the caller.
    """

    def publish(self, topic: str, payload: Any) -> None: ...


class ConnectionTracker:
    """Counts connected downstream clients."""

    def __init__(self) -> None:
        self._connected = 0

    @property
    def connected_clients(self) -> int:
        return self._connected

    def connected(self) -> int:
        self._connected += 1
        _logger.debug("Client connected. Total clients: %d", self._connected)
        return self._connected

    def disconnected(self) -> int:
        self._connected = max(0, self._connected - 1)
        _logger.debug("Client disconnected. Total clients: %d", self._connected)
        return self._connected


@dataclass(eq=False)
class _Subscriber:
    ws: web.WebSocketResponse
    queue: asyncio.Queue[str]
    topics: set[str] = field(default_factory=set)
    writer: asyncio.Task[None] | None = None

    def wants(self, topic: str) -> bool:
        return WILDCARD_TOPIC in self.topics or topic in self.topics


def _encode(message: dict[str, Any]) -> str:
    return json.dumps(message, separators=(",", ":"))


class WebSocketBroadcaster:
    """aiohttp websocket endpoint implementing :class:`DownstreamSink`.

    Every client gets its own bounded queue drained by a writer task, so
    publishing never awaits and delivery order per client matches publish
    order. A client whose queue overflows is disconnected.
    """

    def __init__(
        self,
        *,
        tracker: ConnectionTracker | None = None,
        max_queue: int = 1000,
        heartbeat: float | None = 30.0,
    ) -> None:
        self._tracker = tracker or ConnectionTracker()
        self._max_queue = max_queue
        self._heartbeat = heartbeat
        self._subscribers: set[_Subscriber] = set()
        self._closing: set[asyncio.Task[Any]] = set()

    @property
    def tracker(self) -> ConnectionTracker:
        return self._tracker

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def publish(self, topic: str, payload: Any) -> None:
        message: str | None = None
        for subscriber in list(self._subscribers):
            if not subscriber.wants(topic):
                continue
            if message is None:
                message = _encode({"topic": topic, "payload": payload})
            self._enqueue(subscriber, message)

    def _enqueue(self, subscriber: _Subscriber, message: str) -> None:
        try:
            subscriber.queue.put_nowait(message)
        except asyncio.QueueFull:
            _logger.warning("Downstream client too slow, disconnecting (queue=%d)", self._max_queue)
            self._drop(subscriber)

    def _drop(self, subscriber: _Subscriber) -> None:
        self._subscribers.discard(subscriber)
        if subscriber.writer is not None:
            subscriber.writer.cancel()
        if not subscriber.ws.closed:
            task = asyncio.get_running_loop().create_task(subscriber.ws.close())
            self._closing.add(task)
            task.add_done_callback(self._closing.discard)

    async def handle(self, request: web.Request) -> web.WebSocketResponse:
        """aiohttp handler for the downstream websocket route."""
        ws = web.WebSocketResponse(heartbeat=self._heartbeat)
        await ws.prepare(request)

        subscriber = _Subscriber(ws=ws, queue=asyncio.Queue(maxsize=self._max_queue))
        initial = request.query.get("topic")
        if initial:
            subscriber.topics.add(initial)
        subscriber.writer = asyncio.create_task(self._write_loop(subscriber))
        self._subscribers.add(subscriber)
        self._tracker.connected()

        try:
            async for msg in ws:
                if msg.type == WSMsgType.TEXT:
                    self._handle_command(subscriber, msg.data)
                elif msg.type == WSMsgType.ERROR:
                    _logger.warning("Downstream websocket error: %s", ws.exception())
                    break
        finally:
            self._subscribers.discard(subscriber)
            if subscriber.writer is not None:
                subscriber.writer.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await subscriber.writer
            self._tracker.disconnected()
        return ws

    def _handle_command(self, subscriber: _Subscriber, data: str) -> None:
        try:
            command = json.loads(data)
        except json.JSONDecodeError:
            self._enqueue(subscriber, _encode({"error": "invalid json"}))
            return
        if not isinstance(command, dict):
            self._enqueue(subscriber, _encode({"error": "command must be an object"}))
            return

        action = command.get("action")
        topic = command.get("topic")
        if not isinstance(topic, str) or not topic.strip():
            self._enqueue(subscriber, _encode({"error": "topic is required"}))
            return
        topic = topic.strip()

        if action == "subscribe":
            subscriber.topics.add(topic)
            self._enqueue(subscriber, _encode({"event": "subscribed", "topic": topic}))
        elif action == "unsubscribe":
            subscriber.topics.discard(topic)
            self._enqueue(subscriber, _encode({"event": "unsubscribed", "topic": topic}))
        else:
            self._enqueue(subscriber, _encode({"error": f"unknown action {action!r}"}))

    async def _write_loop(self, subscriber: _Subscriber) -> None:
        while True:
            message = await subscriber.queue.get()
            try:
                await subscriber.ws.send_str(message)
            except (ConnectionError, RuntimeError):
                _logger.debug("Downstream send failed; dropping client", exc_info=True)
                self._subscribers.discard(subscriber)
                await subscriber.ws.close()
                return

    async def close(self) -> None:
        """Disconnect every client."""
        subscribers = list(self._subscribers)
        self._subscribers.clear()
        for subscriber in subscribers:
            if subscriber.writer is not None:
                subscriber.writer.cancel()
            await subscriber.ws.close(code=1001, message=b"Server shutdown")
        if self._closing:
            await asyncio.gather(*self._closing, return_exceptions=True)
