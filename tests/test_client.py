"""Tests for the reconnecting WebSocket client against a live test server."""

import asyncio
import socket

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from agritwin.client.client import TwinClient
from agritwin.client.reconnect import ConnectionState, ReconnectPolicy
from agritwin.realtime.hub import ChannelHub
from agritwin.realtime.server import RealtimeServer


def unused_port():
    with socket.socket() as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


@pytest.mark.asyncio
async def test_client_auto_subscribes_and_dispatches(seeded_store):
    server = RealtimeServer(seeded_store, ChannelHub())
    async with TestServer(server.build_app()) as test_server:
        client = TwinClient(str(test_server.make_url("/ws")))
        seen = []
        done = asyncio.Event()

        async def on_alerts(data):
            seen.append("alerts:current")
            done.set()

        client.on("sensor-data:current", lambda data: seen.append("sensor-data:current"))
        client.on("alerts:current", on_alerts)

        run = asyncio.ensure_future(client.run())
        await asyncio.wait_for(done.wait(), 5)
        assert client.state == ConnectionState.CONNECTED
        await client.close()
        final = await asyncio.wait_for(run, 5)

    assert seen == ["sensor-data:current", "alerts:current"]
    assert final == ConnectionState.DISCONNECTED


@pytest.mark.asyncio
async def test_server_initiated_close_does_not_reconnect():
    connections = []

    async def handler(request):
        ws = web.WebSocketResponse()
        await ws.prepare(request)
        connections.append(ws)
        await ws.send_json({"event": "connected", "data": {}})
        await ws.close()
        return ws

    app = web.Application()
    app.router.add_get("/ws", handler)
    async with TestServer(app) as test_server:
        client = TwinClient(
            str(test_server.make_url("/ws")),
            ReconnectPolicy(base_delay=0.01, max_delay=0.02),
        )
        final = await asyncio.wait_for(client.run(), 5)

    assert len(connections) == 1
    assert final == ConnectionState.DISCONNECTED


@pytest.mark.asyncio
async def test_gives_up_after_max_attempts():
    url = f"http://127.0.0.1:{unused_port()}/ws"
    client = TwinClient(url, ReconnectPolicy(base_delay=0.01, max_delay=0.02, max_attempts=3))
    final = await asyncio.wait_for(client.run(), 5)
    assert final == ConnectionState.FAILED
    assert client.policy.attempts == 3


@pytest.mark.asyncio
async def test_handler_errors_are_contained(seeded_store):
    server = RealtimeServer(seeded_store, ChannelHub())
    async with TestServer(server.build_app()) as test_server:
        client = TwinClient(str(test_server.make_url("/ws")))
        done = asyncio.Event()

        def broken(data):
            raise RuntimeError("handler bug")

        client.on("connected", broken)
        client.on("alerts:current", lambda data: done.set())

        run = asyncio.ensure_future(client.run())
        await asyncio.wait_for(done.wait(), 5)
        await client.close()
        await asyncio.wait_for(run, 5)


@pytest.mark.asyncio
async def test_send_requires_connection():
    client = TwinClient("http://127.0.0.1:1/ws")
    with pytest.raises(ConnectionError):
        await client.send("subscribe:alerts")
