"""Tests for the remote procedure client."""

import json
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from warera.client import RemoteClient, clean_params, unwrap_envelope
from warera.credentials import ApiKeyStore, check_api_key
from warera.errors import RemoteError

ENDPOINT = "https://api.test/trpc"


def make_client(handler, credentials=None) -> RemoteClient:
    return RemoteClient(endpoint=ENDPOINT, credentials=credentials, transport=httpx.MockTransport(handler))


def sent_input(request: httpx.Request) -> dict:
    query = parse_qs(urlparse(str(request.url)).query)
    return json.loads(query["input"][0])


class TestHelpers:
    """Tests for parameter cleaning and envelope unwrapping."""

    def test_clean_params_drops_none(self):
        assert clean_params({"a": 1, "b": None, "c": 0, "d": ""}) == {"a": 1, "c": 0, "d": ""}

    def test_unwrap_envelope(self):
        assert unwrap_envelope({"result": {"data": [1, 2]}}) == [1, 2]

    def test_unwrap_envelope_with_null_data(self):
        assert unwrap_envelope({"result": {"data": None}}) is None

    def test_unwrap_bare_body(self):
        assert unwrap_envelope({"items": []}) == {"items": []}
        assert unwrap_envelope([1]) == [1]


class TestCall:
    """Tests for RemoteClient.call."""

    @pytest.mark.asyncio
    async def test_request_shape(self):
        captured = {}

        def handler(request):
            captured["request"] = request
            return httpx.Response(200, json={"result": {"data": {"ok": True}}})

        async with make_client(handler) as client:
            data = await client.call("user.getUserLite", {"userId": "u1", "cursor": None})

        request = captured["request"]
        assert data == {"ok": True}
        assert request.method == "GET"
        assert request.url.path == "/trpc/user.getUserLite"
        assert sent_input(request) == {"userId": "u1"}
        assert request.headers["Content-Type"] == "application/json"
        assert "X-API-Key" not in request.headers

    @pytest.mark.asyncio
    async def test_input_is_compact_json(self):
        captured = {}

        def handler(request):
            captured["query"] = parse_qs(urlparse(str(request.url)).query)["input"][0]
            return httpx.Response(200, json={})

        async with make_client(handler) as client:
            await client.call("x.y", {"a": [1, 2], "b": "c"})

        assert captured["query"] == '{"a":[1,2],"b":"c"}'

    @pytest.mark.asyncio
    async def test_body_without_envelope(self):
        async with make_client(lambda request: httpx.Response(200, json=[1, 2, 3])) as client:
            assert await client.call("x.y") == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_explicit_api_key_header(self):
        captured = {}

        def handler(request):
            captured["key"] = request.headers.get("X-API-Key")
            return httpx.Response(200, json={})

        async with make_client(handler) as client:
            await client.call("x.y", api_key="secret")

        assert captured["key"] == "secret"

    @pytest.mark.asyncio
    async def test_api_key_from_store(self, temp_settings):
        captured = {}

        def handler(request):
            captured["key"] = request.headers.get("X-API-Key")
            return httpx.Response(200, json={})

        store = ApiKeyStore(temp_settings, session_key="from-session")
        async with make_client(handler, credentials=store) as client:
            await client.call("x.y")

        assert captured["key"] == "from-session"

    @pytest.mark.asyncio
    async def test_error_message_from_body(self):
        def handler(request):
            return httpx.Response(404, json={"error": {"message": "User not found"}})

        async with make_client(handler) as client:
            with pytest.raises(RemoteError) as exc_info:
                await client.call("user.getUserLite", {"userId": "x"})

        assert exc_info.value.status == 404
        assert exc_info.value.message == "User not found"

    @pytest.mark.asyncio
    async def test_unparseable_error_body_uses_generic_message(self):
        async with make_client(lambda request: httpx.Response(500, text="<html>oops</html>")) as client:
            with pytest.raises(RemoteError) as exc_info:
                await client.call("x.y")

        assert exc_info.value.status == 500
        assert exc_info.value.message == "HTTP 500"

    @pytest.mark.asyncio
    async def test_invalid_json_on_success_raises(self):
        async with make_client(lambda request: httpx.Response(200, text="not json")) as client:
            with pytest.raises(RemoteError):
                await client.call("x.y")

    @pytest.mark.asyncio
    async def test_transport_failure_raises_remote_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        async with make_client(handler) as client:
            with pytest.raises(RemoteError) as exc_info:
                await client.call("x.y")

        assert exc_info.value.status is None


class TestCheckApiKey:
    """Tests for API key probing."""

    @pytest.mark.asyncio
    async def test_accepted_key(self):
        async with make_client(lambda request: httpx.Response(200, json={"result": {"data": {"items": []}}})) as client:
            assert await check_api_key(client, "good", "u1") is True

    @pytest.mark.asyncio
    async def test_unauthorized_key(self):
        async with make_client(lambda request: httpx.Response(401, json={"error": {"message": "bad key"}})) as client:
            assert await check_api_key(client, "bad") is False

    @pytest.mark.asyncio
    async def test_other_errors_mean_key_accepted(self):
        async with make_client(lambda request: httpx.Response(404, json={"error": {"message": "no user"}})) as client:
            assert await check_api_key(client, "good", "missing-user") is True

    @pytest.mark.asyncio
    async def test_unreachable_server(self):
        def handler(request):
            raise httpx.ConnectError("down", request=request)

        async with make_client(handler) as client:
            assert await check_api_key(client, "any") is False

    @pytest.mark.asyncio
    async def test_probe_sends_candidate_key(self):
        captured = {}

        def handler(request):
            captured["key"] = request.headers.get("X-API-Key")
            captured["input"] = sent_input(request)
            return httpx.Response(200, json={})

        async with make_client(handler) as client:
            await check_api_key(client, "candidate")

        assert captured["key"] == "candidate"
        assert "userId" not in captured["input"]
