"""End-to-end tests for XmrClient against a local websocket relay."""

from __future__ import annotations

import asyncio
import json
from datetime import datetime, timezone
from typing import Any

import aiohttp
import pytest
import pytest_asyncio
from aiohttp import web

from xmr_client import XmrClient, XmrEvent


@pytest_asyncio.fixture
async def relay_server(unused_tcp_port_factory):
    inits: list[dict[str, Any]] = []
    closed = asyncio.Event()

    async def websocket_handler(request: web.Request):
        ws = web.WebSocketResponse()
        await ws.prepare(request)

        inits.append(await ws.receive_json())
        await ws.send_str("H")
        await ws.send_str(
            json.dumps(
                {
                    "action": "commandAction",
                    "createdDt": datetime.now(timezone.utc).isoformat(),
                    "ttl": 120,
                    "commandCode": "showStatusWindow|45",
                }
            )
        )

        async for _ in ws:
            pass
        closed.set()
        return ws

    app = web.Application()
    app.router.add_get("/xmr", websocket_handler)

    runner = web.AppRunner(app)
    await runner.setup()

    port = unused_tcp_port_factory()
    site = web.TCPSite(runner, "127.0.0.1", port)
    await site.start()

    class _Server:
        def __init__(self, server_port: int):
            self.url = f"ws://127.0.0.1:{server_port}/xmr"
            self.inits = inits
            self.closed = closed

    try:
        yield _Server(port)
    finally:
        await runner.cleanup()


@pytest.mark.asyncio
async def test_client_handshakes_and_dispatches_commands(relay_server):
    client = XmrClient("display-1")
    timeouts: list[int] = []
    statuses: list[str] = []
    received = asyncio.Event()

    def on_status_window(timeout: int) -> None:
        timeouts.append(timeout)
        received.set()

    client.on(XmrEvent.SHOW_STATUS_WINDOW, on_status_window)
    client.on(XmrEvent.STATUS_CHANGE, statuses.append)

    await client.init()
    await client.start(relay_server.url, "cms-key")
    await asyncio.wait_for(received.wait(), timeout=2.0)

    assert relay_server.inits == [
        {"type": "init", "key": "cms-key", "channel": "display-1"}
    ]
    assert timeouts == [45]
    assert len(statuses) == 2
    assert client.is_active() is True
    assert client.status()["watchdogRunning"] is True

    await client.aclose()
    await asyncio.wait_for(relay_server.closed.wait(), timeout=2.0)

    assert client.is_active() is False
    assert client.watchdog.running is False


@pytest.mark.asyncio
async def test_client_reports_disconnect_when_relay_closes(unused_tcp_port_factory):
    async def websocket_handler(request: web.Request):
        ws = web.WebSocketResponse()
        await ws.prepare(request)
        await ws.receive_json()
        await ws.close()
        return ws

    app = web.Application()
    app.router.add_get("/xmr", websocket_handler)
    runner = web.AppRunner(app)
    await runner.setup()
    port = unused_tcp_port_factory()
    site = web.TCPSite(runner, "127.0.0.1", port)
    await site.start()

    client = XmrClient("display-1")
    disconnected = asyncio.Event()
    client.on(XmrEvent.DISCONNECTED, disconnected.set)

    try:
        await client.start(f"ws://127.0.0.1:{port}/xmr", "cms-key")
        await asyncio.wait_for(disconnected.wait(), timeout=2.0)
        assert client.connection.connected is False
        assert client.connection.connection_wanted is True
    finally:
        await client.aclose()
        await runner.cleanup()


@pytest.mark.asyncio
async def test_invalid_url_emits_failed_to_connect():
    client = XmrClient("display-1")
    errors: list[str] = []
    client.on(XmrEvent.ERROR, errors.append)

    try:
        await client.start("ftp://relay.example.com", "cms-key")
    finally:
        await client.aclose()

    assert errors == ["Failed to connect"]


@pytest.mark.asyncio
async def test_unreachable_relay_emits_error_then_disconnected(unused_tcp_port):
    client = XmrClient("display-1")
    events: list[str] = []
    done = asyncio.Event()
    client.on(XmrEvent.ERROR, lambda message: events.append(f"error:{message}"))

    def on_disconnected() -> None:
        events.append("disconnected")
        done.set()

    client.on(XmrEvent.DISCONNECTED, on_disconnected)

    try:
        await client.start(f"ws://127.0.0.1:{unused_tcp_port}/xmr", "cms-key")
        await asyncio.wait_for(done.wait(), timeout=5.0)
    finally:
        await client.aclose()

    assert events == ["error:error", "disconnected"]
    assert client.is_active() is False


@pytest.mark.asyncio
async def test_client_with_unknown_channel_never_connects(transports):
    client = XmrClient("unknown", transport_factory=transports)

    async with client:
        await client.start("wss://cms.example.com/xmr", "cms-key")

    assert transports.created == []
    assert client.status()["connectionWanted"] is False


@pytest.mark.asyncio
async def test_closed_host_session_is_not_replaced():
    session = aiohttp.ClientSession()
    await session.close()
    client = XmrClient("display-1", session=session)
    errors: list[str] = []
    client.on(XmrEvent.ERROR, errors.append)

    try:
        await client.start("wss://cms.example.com/xmr", "cms-key")
    finally:
        await client.aclose()

    assert errors == ["Failed to connect"]
    assert client._session is session
    assert client.connection.connected is False
