"""Tests for prxs_mesh.transport."""

from __future__ import annotations

import json

import httpx
import pytest

from prxs_mesh.exceptions import ConfigurationError, TimeoutError, TransportError
from prxs_mesh.transport import get_json, post_json


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestGetJson:
    @pytest.mark.asyncio
    async def test_decodes_body(self):
        client = _client(lambda request: httpx.Response(200, json={"ok": True}))
        assert await get_json("http://registry.example/api/v1/registry/info", client=client) == {"ok": True}

    @pytest.mark.asyncio
    async def test_malformed_url(self):
        with pytest.raises(ConfigurationError, match="Invalid URL"):
            await get_json("http://[::1")

    @pytest.mark.asyncio
    async def test_malformed_url_with_shared_client(self):
        client = _client(lambda request: httpx.Response(200, json={}))
        with pytest.raises(ConfigurationError, match="Invalid URL"):
            await get_json("http://[::1", client=client)

    @pytest.mark.asyncio
    async def test_connect_error(self):
        def handler(request):
            raise httpx.ConnectError("refused")

        with pytest.raises(TransportError, match="failed"):
            await get_json("http://registry.example/x", client=_client(handler))


class TestPostJson:
    @pytest.mark.asyncio
    async def test_sends_json_body(self):
        seen: list[httpx.Request] = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"result": "0x"})

        result = await post_json("https://rpc.example", {"id": 1}, client=_client(handler))

        assert result == {"result": "0x"}
        assert seen[0].headers["Content-Type"] == "application/json"
        assert json.loads(seen[0].content) == {"id": 1}

    @pytest.mark.asyncio
    async def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("slow")

        with pytest.raises(TimeoutError, match="timed out after 5.0s"):
            await post_json("https://rpc.example", {}, client=_client(handler))
