"""Test doubles shared across the test modules."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Callable
from types import SimpleNamespace
from typing import Any

import aiohttp


class RecordingSink:
    """Downstream sink capturing every publish."""

    def __init__(self) -> None:
        self.published: list[tuple[str, Any]] = []

    def publish(self, topic: str, payload: Any) -> None:
        self.published.append((topic, payload))


class FakeSocket:
    """In-memory stand-in for aiohttp's client websocket."""

    def __init__(self) -> None:
        self.sent: list[str] = []
        self.closed = False
        self.close_code: int | None = None
        self._inbox: asyncio.Queue[Any] = asyncio.Queue()

    async def send_str(self, data: str) -> None:
        if self.closed:
            raise ConnectionResetError("socket closed")
        self.sent.append(data)

    async def close(self) -> bool:
        self.closed = True
        self._inbox.put_nowait(None)
        return True

    def exception(self) -> BaseException | None:
        return None

    def feed(self, frame: dict[str, Any] | str) -> None:
        data = frame if isinstance(frame, str) else json.dumps(frame)
        self._inbox.put_nowait(SimpleNamespace(type=aiohttp.WSMsgType.TEXT, data=data))

    def fail(self) -> None:
        self._inbox.put_nowait(SimpleNamespace(type=aiohttp.WSMsgType.ERROR, data=None))

    def drop(self, code: int = 1006) -> None:
        """Simulate the server closing the connection."""
        self.closed = True
        self.close_code = code
        self._inbox.put_nowait(None)

    def frames(self) -> list[dict[str, Any]]:
        return [json.loads(raw) for raw in self.sent]

    def __aiter__(self) -> FakeSocket:
        return self

    async def __anext__(self) -> Any:
        message = await self._inbox.get()
        if message is None:
            raise StopAsyncIteration
        return message


class FakeHandle:
    def __init__(self, delay: float, callback: Callable[[], None]) -> None:
        self.delay = delay
        self.callback = callback
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeScheduler:
    """Records reconnect requests instead of running a timer."""

    def __init__(self) -> None:
        self.handles: list[FakeHandle] = []

    def __call__(self, delay: float, callback: Callable[[], None]) -> FakeHandle:
        handle = FakeHandle(delay, callback)
        self.handles.append(handle)
        return handle

    @property
    def pending(self) -> list[FakeHandle]:
        return [handle for handle in self.handles if not handle.cancelled and not handle.fired]

    def fire(self, handle: FakeHandle) -> None:
        """Run a scheduled callback as the event loop timer would."""
        handle.fired = True
        handle.callback()


async def drain(rounds: int = 10) -> None:
    """Let background tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


def vehicles_frame(channel: str, payload: dict[str, Any]) -> dict[str, Any]:
    return {
        "event": "broadcast",
        "topic": f"realtime:{channel}",
        "payload": {"event": "vehicles", "payload": payload},
    }

