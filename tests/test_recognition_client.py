"""
Tests for the recognition backend client.
"""

import json

import httpx
import pytest

from faceguard.clients.recognition_client import RecognitionClient, UpstreamResponse
from faceguard.exceptions import UpstreamUnavailableError


def make_client(handler) -> RecognitionClient:
    return RecognitionClient("http://recognizer:3001/", timeout=2.0, transport=httpx.MockTransport(handler))


class TestRecognitionClient:
    """Test cases for RecognitionClient."""

    def test_init_strips_trailing_slash(self):
        client = make_client(lambda request: httpx.Response(200, json={}))

        assert client.base_url == "http://recognizer:3001"
        assert client.timeout == 2.0

    @pytest.mark.asyncio
    async def test_register_relays_body(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["payload"] = json.loads(request.content)
            return httpx.Response(200, json={"success": True, "user": {"id": "abc", "name": "Alice"}})

        async with make_client(handler) as client:
            response = await client.register({"name": "Alice", "image": "data"})

        assert seen == {"path": "/api/register", "payload": {"name": "Alice", "image": "data"}}
        assert response.ok
        assert response.body["user"]["name"] == "Alice"

    @pytest.mark.asyncio
    async def test_error_status_is_relayed(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(400, json={"error": "NoFaceDetectedError"})

        async with make_client(handler) as client:
            response = await client.recognize({"image": "data"})

        assert response.status_code == 400
        assert not response.ok
        assert response.body == {"error": "NoFaceDetectedError"}

    @pytest.mark.asyncio
    async def test_non_json_body(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(502, text="Bad Gateway")

        async with make_client(handler) as client:
            response = await client.recognize({"image": "data"})

        assert response.status_code == 502
        assert response.body == {"error": "Bad Gateway"}

    @pytest.mark.asyncio
    async def test_connection_refused(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        async with make_client(handler) as client:
            with pytest.raises(UpstreamUnavailableError, match="not running") as exc_info:
                await client.recognize({"image": "data"})

        assert exc_info.value.details == {"upstream": "http://recognizer:3001"}

    @pytest.mark.asyncio
    async def test_timeout(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("read timed out", request=request)

        async with make_client(handler) as client:
            with pytest.raises(UpstreamUnavailableError, match="timed out"):
                await client.register({"name": "Alice", "image": "data"})


def test_upstream_response_ok():
    assert UpstreamResponse(204, None).ok
    assert not UpstreamResponse(503, {}).ok
