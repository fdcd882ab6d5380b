"""RemoteRepository tests against a local aiohttp server."""

from __future__ import annotations

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer as AiohttpTestServer

from charsheet.client import RemoteRepository
from charsheet.client.errors import RemoteError


async def _login(request: web.Request) -> web.Response:
    body = await request.json()
    if body.get("password") != "pw123456":
        return web.json_response({"error": "Invalid email or password"}, status=401)
    return web.json_response({"message": "Login successful", "user": {}, "token": "tok-1"})


async def _characters(request: web.Request) -> web.Response:
    if request.headers.get("Authorization") != "Bearer tok-1":
        return web.json_response({"error": "No token provided"}, status=401)
    body = await request.json()
    request.app["posted"].append(body)
    return web.json_response({"character": {"id": body.get("characterId") or "new-id", "name": body.get("name")}})


async def _active(request: web.Request) -> web.Response:
    return web.json_response({"error": "No active character found"}, status=404)


async def _update(request: web.Request) -> web.Response:
    body = await request.json()
    request.app["updated"].append(body)
    character = {"id": request.match_info["character_id"], "name": body.get("name", "Thistle")}
    if "isShared" in body:
        character["is_shared"] = body["isShared"]
        character["share_token"] = "share-1" if body["isShared"] else None
    if "characterData" in body:
        character["character_data"] = body["characterData"]
    return web.json_response({"character": character})


async def _shared(request: web.Request) -> web.Response:
    request.app["shared_auth"].append(request.headers.get("Authorization"))
    if request.match_info["token"] != "share-1":
        return web.json_response({"error": "Shared character not found"}, status=404)
    return web.json_response({"character": {"name": "Thistle", "owner_username": "alice"}})


async def _saves(request: web.Request) -> web.Response:
    limit = int(request.query.get("limit", "20"))
    saves = [{"save_type": "auto", "save_data": {"level": n}} for n in range(30)]
    return web.json_response({"saves": saves[:limit]})


@pytest_asyncio.fixture
async def server():
    app = web.Application()
    app["posted"] = []
    app["updated"] = []
    app["shared_auth"] = []
    app.router.add_post("/auth/login", _login)
    app.router.add_post("/characters", _characters)
    app.router.add_get("/characters/active", _active)
    app.router.add_get("/characters/shared/{token}", _shared)
    app.router.add_put("/characters/{character_id}", _update)
    app.router.add_get("/characters/{character_id}/saves", _saves)
    test_server = AiohttpTestServer(app)
    await test_server.start_server()
    yield test_server
    await test_server.close()


@pytest_asyncio.fixture
async def repo(server):
    repository = RemoteRepository(str(server.make_url("")))
    yield repository
    await repository.close()


class TestRemoteRepository:
    @pytest.mark.asyncio
    async def test_login_stores_token(self, repo):
        await repo.login("alice@example.com", "pw123456")

        assert repo.token == "tok-1"

    @pytest.mark.asyncio
    async def test_error_body_becomes_remote_error(self, repo):
        with pytest.raises(RemoteError) as exc_info:
            await repo.login("alice@example.com", "wrong")

        assert exc_info.value.status == 401
        assert str(exc_info.value) == "Invalid email or password"

    @pytest.mark.asyncio
    async def test_autosave_payload(self, repo, server):
        await repo.login("alice@example.com", "pw123456")

        await repo.autosave("abc", {"level": 2})

        assert server.app["posted"][-1] == {"characterId": "abc", "characterData": {"level": 2}}

    @pytest.mark.asyncio
    async def test_missing_active_is_none(self, repo):
        assert await repo.get_active() is None

    @pytest.mark.asyncio
    async def test_unreachable_server_has_no_status(self):
        repository = RemoteRepository("http://127.0.0.1:9", timeout=0.5)
        try:
            with pytest.raises(RemoteError) as exc_info:
                await repository.list_characters()
        finally:
            await repository.close()

        assert exc_info.value.status is None

    @pytest.mark.asyncio
    async def test_update_character_sends_only_given_fields(self, repo, server):
        await repo.login("alice@example.com", "pw123456")

        character = await repo.update_character("abc", character_data={"level": 4})

        assert server.app["updated"][-1] == {"characterData": {"level": 4}}
        assert character["character_data"] == {"level": 4}

    @pytest.mark.asyncio
    async def test_set_shared_then_fetch_without_auth(self, repo, server):
        await repo.login("alice@example.com", "pw123456")

        character = await repo.set_shared("abc", True)
        shared = await repo.get_shared(character["share_token"])

        assert server.app["updated"][-1] == {"isShared": True}
        assert shared["owner_username"] == "alice"
        assert server.app["shared_auth"] == [None]

    @pytest.mark.asyncio
    async def test_unknown_share_token_is_404(self, repo):
        with pytest.raises(RemoteError) as exc_info:
            await repo.get_shared("nope")

        assert exc_info.value.status == 404

    @pytest.mark.asyncio
    async def test_list_saves_passes_limit(self, repo):
        saves = await repo.list_saves("abc", limit=3)

        assert [s["save_data"]["level"] for s in saves] == [0, 1, 2]
