from __future__ import annotations

import asyncio
import json
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import aiohttp
import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from pyhab.client import HabClient
from pyhab.config import HabConfig
from pyhab.exceptions import HabError, HabStreamClosedError, HabSyncError
from pyhab.subscriptions import StreamState


@dataclass
class FakeHabBackend:
    states: dict[str, str] = field(default_factory=lambda: {"Temp": "20", "Light": "OFF"})
    items: list[dict[str, str]] = field(
        default_factory=lambda: [{"name": "Temp", "type": "Number"}, {"name": "Light", "type": "Switch"}]
    )
    calls: dict[str, int] = field(default_factory=dict)
    stream_topics: list[str] = field(default_factory=list)
    # Pending pushes per stream; None closes the stream.
    pushes: asyncio.Queue[str | None] | None = None

    def _record(self, name: str) -> None:
        self.calls[name] = self.calls.get(name, 0) + 1

    async def list_items(self, request: web.Request) -> web.Response:
        self._record("list")
        if request.query.get("fields") == "name,type":
            return web.json_response(self.items)
        return web.json_response([])

    async def get_state(self, request: web.Request) -> web.Response:
        item = request.match_info["item"]
        self._record(f"get:{item}")
        if item not in self.states:
            return web.Response(status=404)
        return web.Response(text=self.states[item])

    async def post_command(self, request: web.Request) -> web.Response:
        item = request.match_info["item"]
        self.states[item] = await request.text()
        return web.Response()

    async def events(self, request: web.Request) -> web.StreamResponse:
        self.stream_topics.append(request.query.get("topics", ""))
        assert self.pushes is not None
        resp = web.StreamResponse()
        resp.content_type = "text/event-stream"
        await resp.prepare(request)
        while True:
            value = await self.pushes.get()
            if value is None:
                return resp
            payload = json.dumps({"type": "Decimal", "value": value})
            data = json.dumps(
                {"topic": "smarthome/items/Temp/statechanged", "type": "ItemStateChangedEvent", "payload": payload}
            )
            await resp.write(f"data: {data}\n\n".encode())

    def app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/rest/items", self.list_items)
        app.router.add_get("/rest/items/{item}/state", self.get_state)
        app.router.add_post("/rest/items/{item}", self.post_command)
        app.router.add_get("/rest/events", self.events)
        return app


async def _wait_for(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.01)


@pytest.mark.asyncio
async def test_client_requires_context_manager() -> None:
    client = HabClient(HabConfig(base_url="http://openhab.local"))

    with pytest.raises(HabError):
        await client.get_state("Temp")


@pytest.mark.asyncio
async def test_read_through_write_invalidate_and_types() -> None:
    backend = FakeHabBackend()
    async with TestServer(backend.app()) as server:
        config = HabConfig.from_host(server.host, server.port)
        async with HabClient(config) as client:
            assert await client.is_online() is True

            assert await client.sync_item_types() == 2
            assert client.get_item_type("Light") == "Switch"

            assert await client.get_state("Temp") == "20"
            assert await client.get_state("Temp") == "20"
            assert backend.calls["get:Temp"] == 1

            await client.send_command("Temp", "25")
            assert client.get_cached_state("Temp") is None
            assert await client.get_state("Temp") == "25"
            assert backend.calls["get:Temp"] == 2

            assert await client.get_state_fresh("Temp") == "25"
            assert backend.calls["get:Temp"] == 3


@pytest.mark.asyncio
async def test_sync_with_no_items_raises() -> None:
    backend = FakeHabBackend(items=[])
    async with TestServer(backend.app()) as server:
        async with HabClient(HabConfig.from_host(server.host, server.port)) as client:
            with pytest.raises(HabSyncError):
                await client.sync_item_types()
            assert client.get_item_type("Temp") is None


@pytest.mark.asyncio
async def test_subscription_pushes_values_and_reconnects() -> None:
    backend = FakeHabBackend(pushes=asyncio.Queue())
    received: list[tuple[Any, str]] = []

    async with TestServer(backend.app()) as server:
        config = HabConfig.from_host(server.host, server.port, reconnect_delay=0.05)
        async with aiohttp.ClientSession() as session:
            async with HabClient(config, session=session) as client:
                client.subscribe("Temp", lambda value, item: received.append((value, item)))
                client.start_subscriptions()
                await _wait_for(lambda: client.subscription_state("Temp") is StreamState.OPEN)

                assert backend.pushes is not None
                await backend.pushes.put("21")
                await _wait_for(lambda: len(received) == 1)
                assert received == [("21", "Temp")]
                assert client.get_cached_state("Temp") == "21"

                await backend.pushes.put(None)
                await _wait_for(lambda: len(backend.stream_topics) == 2)
                assert isinstance(received[1][0], HabStreamClosedError)

                await backend.pushes.put("22")
                await _wait_for(lambda: len(received) == 3)
                assert received[2] == ("22", "Temp")
                assert backend.calls.get("get:Temp") is None

            assert not session.closed

        # Release the server-side stream handler still waiting for pushes.
        await backend.pushes.put(None)

    assert backend.stream_topics == ["smarthome/items/Temp/statechanged"] * 2
