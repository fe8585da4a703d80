from __future__ import annotations

import asyncio
import json

import pytest
from aiohttp import WSMsgType, web
from aiohttp.test_utils import TestClient, TestServer

from livetrafik.downstream import ConnectionTracker, WebSocketBroadcaster


def _app(broadcaster: WebSocketBroadcaster) -> web.Application:
    app = web.Application()
    app.router.add_get("/ws", broadcaster.handle)
    return app


async def _wait_for_subscribers(broadcaster: WebSocketBroadcaster, count: int) -> None:
    for _ in range(100):
        if broadcaster.subscriber_count == count:
            return
        await asyncio.sleep(0.01)
    raise AssertionError(f"expected {count} subscribers, have {broadcaster.subscriber_count}")


def test_tracker_never_goes_negative() -> None:
    tracker = ConnectionTracker()

    assert tracker.connected() == 1
    assert tracker.disconnected() == 0
    assert tracker.disconnected() == 0
    assert tracker.connected_clients == 0


def test_publish_without_subscribers_is_a_no_op() -> None:
    WebSocketBroadcaster().publish("/topic/ul/vehicles/bus", {"vehicles": []})


@pytest.mark.asyncio
async def test_subscribed_client_receives_published_payload() -> None:
    broadcaster = WebSocketBroadcaster()
    async with TestClient(TestServer(_app(broadcaster))) as client:
        ws = await client.ws_connect("/ws")
        await ws.send_str(json.dumps({"action": "subscribe", "topic": "/topic/ul/vehicles/bus"}))
        assert await ws.receive_json(timeout=2) == {"event": "subscribed", "topic": "/topic/ul/vehicles/bus"}

        broadcaster.publish("/topic/ul/vehicles/train", {"vehicles": [{"vehicle_id": "t1"}]})
        broadcaster.publish("/topic/ul/vehicles/bus", {"vehicles": [{"vehicle_id": "b1"}]})

        message = await ws.receive_json(timeout=2)
        assert message == {"topic": "/topic/ul/vehicles/bus", "payload": {"vehicles": [{"vehicle_id": "b1"}]}}
        await ws.close()


@pytest.mark.asyncio
async def test_initial_topic_query_and_connection_tracking() -> None:
    tracker = ConnectionTracker()
    broadcaster = WebSocketBroadcaster(tracker=tracker)
    async with TestClient(TestServer(_app(broadcaster))) as client:
        ws = await client.ws_connect("/ws", params={"topic": "*"})
        await _wait_for_subscribers(broadcaster, 1)
        assert tracker.connected_clients == 1

        broadcaster.publish("/topic/sl/vehicles", {"n": 1})
        broadcaster.publish("/topic/ul/vehicles/bus", {"n": 2})

        first = await ws.receive_json(timeout=2)
        second = await ws.receive_json(timeout=2)
        assert [first["payload"]["n"], second["payload"]["n"]] == [1, 2]

        await ws.close()
        await _wait_for_subscribers(broadcaster, 0)
        for _ in range(100):
            if tracker.connected_clients == 0:
                break
            await asyncio.sleep(0.01)
        assert tracker.connected_clients == 0


@pytest.mark.asyncio
async def test_unsubscribe_and_invalid_commands() -> None:
    broadcaster = WebSocketBroadcaster()
    async with TestClient(TestServer(_app(broadcaster))) as client:
        ws = await client.ws_connect("/ws", params={"topic": "/topic/ul/vehicles/bus"})

        await ws.send_str("not json")
        assert await ws.receive_json(timeout=2) == {"error": "invalid json"}

        await ws.send_str(json.dumps({"action": "subscribe"}))
        assert await ws.receive_json(timeout=2) == {"error": "topic is required"}

        await ws.send_str(json.dumps({"action": "jump", "topic": "x"}))
        assert "unknown action" in (await ws.receive_json(timeout=2))["error"]

        await ws.send_str(json.dumps({"action": "unsubscribe", "topic": "/topic/ul/vehicles/bus"}))
        assert await ws.receive_json(timeout=2) == {"event": "unsubscribed", "topic": "/topic/ul/vehicles/bus"}

        broadcaster.publish("/topic/ul/vehicles/bus", {"dropped": True})
        await ws.send_str(json.dumps({"action": "subscribe", "topic": "/topic/ul/vehicles/train"}))
        # Only the ack arrives; the bus publish was filtered out.
        assert await ws.receive_json(timeout=2) == {"event": "subscribed", "topic": "/topic/ul/vehicles/train"}
        await ws.close()


@pytest.mark.asyncio
async def test_close_disconnects_clients() -> None:
    broadcaster = WebSocketBroadcaster()
    async with TestClient(TestServer(_app(broadcaster))) as client:
        ws = await client.ws_connect("/ws")
        await _wait_for_subscribers(broadcaster, 1)

        await broadcaster.close()

        message = await ws.receive(timeout=2)
        assert message.type.name in {"CLOSE", "CLOSED"}
        assert broadcaster.subscriber_count == 0


@pytest.mark.asyncio
async def test_client_with_full_queue_is_disconnected() -> None:
    broadcaster = WebSocketBroadcaster(max_queue=1)
    async with TestClient(TestServer(_app(broadcaster))) as client:
        ws = await client.ws_connect("/ws", params={"topic": "*"})
        await _wait_for_subscribers(broadcaster, 1)

        # No await between publishes, so the writer cannot drain the queue.
        broadcaster.publish("/topic/ul/vehicles/bus", {"n": 1})
        broadcaster.publish("/topic/ul/vehicles/bus", {"n": 2})
        assert broadcaster.subscriber_count == 0

        message = await ws.receive(timeout=2)
        while message.type is WSMsgType.TEXT:
            message = await ws.receive(timeout=2)
        assert message.type in {WSMsgType.CLOSE, WSMsgType.CLOSED}
        await broadcaster.close()
