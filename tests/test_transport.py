from __future__ import annotations

from collections.abc import AsyncIterator
from dataclasses import dataclass, field

import aiohttp
import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from pyhab._transport import RestTransport
from pyhab.config import HabConfig
from pyhab.exceptions import (
    HabEmptyResponseError,
    HabInvalidInputError,
    HabNotFoundError,
    HabTransportError,
)


@dataclass
class FakeHabServer:
    states: dict[str, str] = field(default_factory=lambda: {"Temp": "20", "Empty": ""})
    items: list[dict[str, object]] = field(
        default_factory=lambda: [
            {"name": "Temp", "type": "Number"},
            {"name": "Light", "type": "Switch"},
            {"type": "Broken"},
        ]
    )
    writes: list[tuple[str, str, str]] = field(default_factory=list)
    listing_queries: list[dict[str, str]] = field(default_factory=list)
    listing_status: int = 200

    async def get_state(self, request: web.Request) -> web.Response:
        item = request.match_info["item"]
        if item == "Broken":
            return web.Response(status=500, text="internal")
        if item == "Garbled":
            return web.Response(body=b"\xff\xfe caf\xe9", content_type="text/plain", charset="utf-8")
        if item not in self.states:
            return web.Response(status=404)
        return web.Response(text=self.states[item])

    async def _write(self, request: web.Request, kind: str) -> web.Response:
        item = request.match_info["item"]
        body = await request.text()
        if item not in self.states:
            return web.Response(status=404)
        if body == "bogus":
            return web.Response(status=400)
        self.writes.append((kind, item, body))
        return web.Response(status=200 if kind == "command" else 202)

    async def post_command(self, request: web.Request) -> web.Response:
        return await self._write(request, "command")

    async def put_state(self, request: web.Request) -> web.Response:
        return await self._write(request, "state")

    async def list_items(self, request: web.Request) -> web.Response:
        self.listing_queries.append(dict(request.query))
        if self.listing_status != 200:
            return web.Response(status=self.listing_status)
        return web.json_response(self.items)

    def app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/rest/items", self.list_items)
        app.router.add_get("/rest/items/{item}/state", self.get_state)
        app.router.add_put("/rest/items/{item}/state", self.put_state)
        app.router.add_post("/rest/items/{item}", self.post_command)
        return app


@pytest.fixture
def fake_server() -> FakeHabServer:
    return FakeHabServer()


@pytest_asyncio.fixture
async def transport(fake_server: FakeHabServer) -> AsyncIterator[RestTransport]:
    async with TestServer(fake_server.app()) as server, aiohttp.ClientSession() as session:
        config = HabConfig.from_host(server.host, server.port)
        yield RestTransport(config, session)


@pytest.mark.asyncio
async def test_fetch_value_returns_body(transport: RestTransport) -> None:
    assert await transport.fetch_value("Temp") == "20"


@pytest.mark.asyncio
async def test_fetch_value_error_mapping(transport: RestTransport) -> None:
    with pytest.raises(HabNotFoundError) as exc_info:
        await transport.fetch_value("Missing")
    assert exc_info.value.item == "Missing"

    with pytest.raises(HabEmptyResponseError):
        await transport.fetch_value("Empty")

    with pytest.raises(HabTransportError) as transport_exc:
        await transport.fetch_value("Broken")
    assert transport_exc.value.status_code == 500


@pytest.mark.asyncio
async def test_fetch_value_with_undecodable_body_raises_transport_error(transport: RestTransport) -> None:
    with pytest.raises(HabTransportError) as exc_info:
        await transport.fetch_value("Garbled")

    assert exc_info.value.status_code == 200
    assert isinstance(exc_info.value.__cause__, UnicodeDecodeError)


@pytest.mark.asyncio
async def test_send_command_and_update_state(transport: RestTransport, fake_server: FakeHabServer) -> None:
    await transport.send_command("Temp", "21")
    await transport.update_state("Temp", "22")

    assert fake_server.writes == [("command", "Temp", "21"), ("state", "Temp", "22")]


@pytest.mark.asyncio
async def test_write_error_mapping(transport: RestTransport) -> None:
    with pytest.raises(HabNotFoundError):
        await transport.send_command("Missing", "ON")
    with pytest.raises(HabNotFoundError):
        await transport.update_state("Missing", "ON")
    with pytest.raises(HabInvalidInputError):
        await transport.send_command("Temp", "bogus")
    with pytest.raises(HabInvalidInputError):
        await transport.update_state("Temp", "bogus")


@pytest.mark.asyncio
async def test_fetch_item_types_skips_malformed_entries(
    transport: RestTransport, fake_server: FakeHabServer
) -> None:
    items = await transport.fetch_item_types()

    assert [(i.name, i.type) for i in items] == [("Temp", "Number"), ("Light", "Switch")]
    assert fake_server.listing_queries == [{"recursive": "false", "fields": "name,type"}]


@pytest.mark.asyncio
async def test_fetch_item_types_non_200_raises(transport: RestTransport, fake_server: FakeHabServer) -> None:
    fake_server.listing_status = 503

    with pytest.raises(HabTransportError) as exc_info:
        await transport.fetch_item_types()
    assert exc_info.value.status_code == 503


@pytest.mark.asyncio
async def test_is_online(transport: RestTransport, fake_server: FakeHabServer) -> None:
    assert await transport.is_online() is True

    fake_server.listing_status = 500
    assert await transport.is_online() is False


@pytest.mark.asyncio
async def test_unreachable_server_raises_transport_error() -> None:
    async with aiohttp.ClientSession() as session:
        transport = RestTransport(HabConfig(base_url="http://127.0.0.1:1", request_timeout=2.0), session)

        with pytest.raises(HabTransportError):
            await transport.fetch_value("Temp")
        assert await transport.is_online() is False
