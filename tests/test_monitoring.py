from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any

import aiohttp
import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from livetrafik.config import MonitoringConfig, RelayConfig
from livetrafik.downstream import ConnectionTracker
from livetrafik.monitoring import ProxyHeartbeatReporter


@dataclass
class _Status:
    is_connected: bool = True
    relayed_message_count: int = 42


@dataclass
class _Endpoint:
    status: int = 200
    received: list[tuple[dict[str, str], dict[str, Any]]] = field(default_factory=list)

    async def handler(self, request: web.Request) -> web.Response:
        self.received.append((dict(request.headers), await request.json()))
        return web.Response(status=self.status, text="ok" if self.status == 200 else "nope")


def _config(heartbeat_url: str | None) -> RelayConfig:
    return RelayConfig(
        supabase_url="wss://example.supabase.co/realtime/v1/websocket",
        supabase_anon_key="anon-key",
        monitoring=MonitoringConfig(server_id="pi-test", version="1.2.3", heartbeat_url=heartbeat_url),
    )


async def _serve(endpoint: _Endpoint) -> TestServer:
    app = web.Application()
    app.router.add_post("/heartbeat", endpoint.handler)
    server = TestServer(app)
    await server.start_server()
    return server


def test_payload_shape() -> None:
    tracker = ConnectionTracker()
    tracker.connected()
    tracker.connected()
    reporter = ProxyHeartbeatReporter(_config(None), _Status(), tracker, http_session=None)  # type: ignore[arg-type]

    assert reporter.build_heartbeat_payload(12) == {
        "server_id": "pi-test",
        "uptime_seconds": 12,
        "connected_clients": 2,
        "version": "1.2.3",
        "supabase_connected": True,
        "messages_relayed": 42,
    }
    assert reporter.enabled is False


@pytest.mark.asyncio
async def test_send_heartbeat_posts_status_with_api_key() -> None:
    endpoint = _Endpoint()
    server = await _serve(endpoint)
    try:
        async with aiohttp.ClientSession() as session:
            config = _config(str(server.make_url("/heartbeat")))
            reporter = ProxyHeartbeatReporter(config, _Status(), ConnectionTracker(), session)

            assert await reporter.send_heartbeat() is True
    finally:
        await server.close()

    headers, body = endpoint.received[0]
    assert headers["Authorization"] == "Bearer anon-key"
    assert headers["apikey"] == "anon-key"
    assert body["server_id"] == "pi-test"
    assert body["messages_relayed"] == 42
    assert body["connected_clients"] == 0


@pytest.mark.asyncio
async def test_non_200_response_is_reported_as_failure() -> None:
    endpoint = _Endpoint(status=503)
    server = await _serve(endpoint)
    try:
        async with aiohttp.ClientSession() as session:
            reporter = ProxyHeartbeatReporter(
                _config(str(server.make_url("/heartbeat"))), _Status(), ConnectionTracker(), session
            )
            assert await reporter.send_heartbeat() is False
    finally:
        await server.close()

    assert len(endpoint.received) == 1


@pytest.mark.asyncio
async def test_unreachable_endpoint_does_not_raise() -> None:
    async with aiohttp.ClientSession() as session:
        reporter = ProxyHeartbeatReporter(
            _config("http://127.0.0.1:1/heartbeat"), _Status(), ConnectionTracker(), session, request_timeout=2
        )
        assert await reporter.send_heartbeat() is False


@pytest.mark.asyncio
async def test_disabled_reporter_never_starts() -> None:
    async with aiohttp.ClientSession() as session:
        reporter = ProxyHeartbeatReporter(_config(None), _Status(), ConnectionTracker(), session)

        reporter.start()
        assert await reporter.send_heartbeat() is False
        await reporter.stop()


@pytest.mark.asyncio
async def test_start_sends_first_heartbeat_immediately() -> None:
    endpoint = _Endpoint()
    server = await _serve(endpoint)
    try:
        async with aiohttp.ClientSession() as session:
            reporter = ProxyHeartbeatReporter(
                _config(str(server.make_url("/heartbeat"))), _Status(), ConnectionTracker(), session
            )
            reporter.start()
            for _ in range(200):
                if endpoint.received:
                    break
                await asyncio.sleep(0.01)
            await reporter.stop()
    finally:
        await server.close()

    assert len(endpoint.received) == 1
