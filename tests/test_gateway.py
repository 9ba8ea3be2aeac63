import asyncio
import json
import os

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from waitroom.display.gateway import GatewayError, HttpGateway, LocalGateway
from waitroom.display.plan import PlayCursor


def test_local_gateway_reads_store_and_wraps_errors(store):
    with open(os.path.join(store.contents_dir, "tips.json"), "w", encoding="utf-8") as f:
        json.dump({"items": [{"title": "a"}]}, f)
    gateway = LocalGateway(store)

    async def scenario():
        assert (await gateway.fetch_settings())["interval"] == 20
        assert await gateway.list_contents() == ["tips.json"]
        assert (await gateway.fetch_content("tips.json"))["items"][0]["title"] == "a"
        with pytest.raises(GatewayError):
            await gateway.fetch_content("missing.json")
        with pytest.raises(GatewayError):
            await gateway.save_cursor(PlayCursor(-1, 0))
        await gateway.save_cursor(PlayCursor(2, 1))
        assert await gateway.fetch_cursor() == PlayCursor(2, 1)

    asyncio.run(scenario())


def test_http_gateway_against_a_live_server():
    saved = []

    async def settings(request):
        return web.json_response({"interval": 30, "showTips": True})

    async def contents(request):
        return web.json_response({"files": [{"filename": "a.json"}, {"filename": "b.json"}]})

    async def playlist(request):
        return web.json_response({"hasPlaylist": False, "currentPlaylistIndex": 1, "currentFileIndex": 3})

    async def cursor(request):
        saved.append(await request.json())
        return web.json_response({"success": True})

    async def broken(request):
        return web.Response(status=500, text="oops")

    async def scenario():
        app = web.Application()
        app.router.add_get("/settings", settings)
        app.router.add_get("/contents", contents)
        app.router.add_get("/playlist", playlist)
        app.router.add_post("/playlist/cursor", cursor)
        app.router.add_get("/message", broken)
        server = TestServer(app)
        await server.start_server()
        gateway = HttpGateway(str(server.make_url("/")))
        try:
            assert (await gateway.fetch_settings())["interval"] == 30
            assert await gateway.list_contents() == ["a.json", "b.json"]
            assert await gateway.fetch_cursor() == PlayCursor(1, 3)
            await gateway.save_cursor(PlayCursor(0, 2))
            with pytest.raises(GatewayError):
                await gateway.fetch_message()
            with pytest.raises(GatewayError):
                await gateway.fetch_status()
        finally:
            await gateway.close()
            await server.close()

    asyncio.run(scenario())
    assert saved == [{"currentPlaylistIndex": 0, "currentFileIndex": 2}]
