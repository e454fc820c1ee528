"""Tests for prxs_mesh.plugin."""

from __future__ import annotations

import json
from typing import Any

import httpx
import pytest

from prxs_mesh.exceptions import ServiceNotFoundError
from prxs_mesh.plugin import MeshPlugin
from prxs_mesh.shell import TargetShell

BOOTSTRAP = "/ip4/203.0.113.7/tcp/4001/p2p/QmRegistry"

SERVICES_FULL = {
    "services": {
        "MathOracle": {
            "card": {"name": "MathOracle", "description": "Adds numbers", "inputs": ["a", "b"]},
            "providers": [{"ID": "QmProviderA", "Addrs": ["/ip4/10.0.0.5/tcp/6010"]}],
        },
        "Echo": {"card": {"name": "Echo"}, "providers": []},
        "echo": {"card": {"name": "echo"}, "providers": []},
    }
}

BUILTIN_TOOLS = {
    "prxs_registry_info",
    "prxs_list_services",
    "prxs_get_service",
    "prxs_search_services",
    "prxs_semantic_search",
    "prxs_sync_tools",
    "prxs_prepare_call",
    "prxs_prepare_spawn_provider",
    "prxs_parse_node_output",
    "prxs_erc8004_get_agent",
    "prxs_erc8004_verify_service",
    "prxs_erc8004_fetch_agent_card",
}


def _http(routes: dict[str, Any] | None = None) -> httpx.AsyncClient:
    routes = routes if routes is not None else {
        "/api/v1/services_full": SERVICES_FULL,
        "/api/v1/registry/info": {"peer_id": "QmRegistry", "bootstraps": [BOOTSTRAP]},
        "/api/v1/services/search": {"results": [{"name": "MathOracle"}]},
        "/api/v1/services/semantic_search": {"results": []},
    }

    def handler(request: httpx.Request) -> httpx.Response:
        value = routes.get(request.url.path)
        if value is None:
            return httpx.Response(404, text="not found")
        return httpx.Response(200, json=value)

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def _plugin(config: dict[str, Any] | None = None, **kwargs: Any) -> MeshPlugin:
    config = {"registryUrl": "http://registry.example:8080", **(config or {})}
    kwargs.setdefault("http_client", _http())
    kwargs.setdefault("target_shell", TargetShell.POSIX)
    return MeshPlugin.from_config(config, **kwargs)


def _payload(result: dict[str, Any]) -> Any:
    return json.loads(result["content"][0]["text"])


class TestPluginInit:
    def test_builtin_tools_registered(self):
        assert set(_plugin().tools.names) == BUILTIN_TOOLS

    def test_options_from_config(self):
        plugin = _plugin({"devMode": False})
        assert plugin.options.dev_mode is False
        assert plugin.registry.base_url == "http://registry.example:8080/api/v1"

    def test_repr(self):
        assert "registry.example" in repr(_plugin())

    @pytest.mark.asyncio
    async def test_injected_client_left_open(self):
        http = _http()
        async with _plugin(http_client=http):
            pass
        assert not http.is_closed

    @pytest.mark.asyncio
    async def test_owned_client_closed(self):
        plugin = MeshPlugin()
        await plugin.close()
        assert plugin._http.is_closed


class TestStart:
    @pytest.mark.asyncio
    async def test_auto_sync(self):
        plugin = _plugin()
        await plugin.start()
        assert "prxs_mathoracle" in plugin.tools

    @pytest.mark.asyncio
    async def test_auto_sync_disabled(self):
        plugin = _plugin({"autoSyncTools": False})
        await plugin.start()
        assert set(plugin.tools.names) == BUILTIN_TOOLS

    @pytest.mark.asyncio
    async def test_sync_failure_does_not_raise(self, caplog):
        plugin = _plugin(http_client=_http({}))
        await plugin.start()
        assert "Tool sync failed" in caplog.text


class TestSyncServiceTools:
    @pytest.mark.asyncio
    async def test_collision_uses_svc_suffix(self):
        plugin = _plugin()
        result = await plugin.sync_service_tools()

        assert result == {"added": 3, "total": 3}
        assert "prxs_echo" in plugin.tools
        assert "prxs_echo__svc" in plugin.tools

    @pytest.mark.asyncio
    async def test_resync_skips_existing(self):
        plugin = _plugin()
        await plugin.sync_service_tools()
        result = await plugin.sync_service_tools()
        assert result["added"] == 1  # only prxs_mathoracle__svc is still free

    @pytest.mark.asyncio
    async def test_limit(self):
        plugin = _plugin({"maxServiceTools": 1})
        result = await plugin.sync_service_tools()
        assert result == {"added": 1, "total": 3}

    @pytest.mark.asyncio
    async def test_float_limit_from_config(self):
        plugin = _plugin({"maxServiceTools": 2.0})
        await plugin.start()
        assert "prxs_mathoracle" in plugin.tools
        assert "prxs_echo" in plugin.tools
        assert "prxs_echo__svc" not in plugin.tools

    @pytest.mark.asyncio
    async def test_custom_prefix(self):
        plugin = _plugin({"toolNamePrefix": "mesh"})
        await plugin.sync_service_tools()
        assert "mesh_mathoracle" in plugin.tools

    @pytest.mark.asyncio
    async def test_service_tool_schema_and_call(self):
        plugin = _plugin()
        await plugin.sync_service_tools()

        definition = plugin.tools.get("prxs_mathoracle")
        assert definition.input_schema["required"] == ["a", "b"]
        assert definition.description == "Adds numbers"

        payload = _payload(await plugin.tools.call("prxs_mathoracle", {"b": "2", "a": "1"}))
        assert payload["exec"]["command"].endswith("-args '[\"1\",\"2\"]'")
        assert payload["bootstrap"] == BOOTSTRAP


class TestBuiltinTools:
    @pytest.mark.asyncio
    async def test_registry_info(self):
        payload = _payload(await _plugin().tools.call("prxs_registry_info"))
        assert payload["info"]["peer_id"] == "QmRegistry"
        assert payload["registry"]["baseUrl"].endswith("/api/v1")

    @pytest.mark.asyncio
    async def test_list_services(self):
        payload = _payload(await _plugin().tools.call("prxs_list_services"))
        assert payload["count"] == 3

    @pytest.mark.asyncio
    async def test_get_service(self):
        payload = _payload(await _plugin().tools.call("prxs_get_service", {"serviceName": "mathoracle"}))
        assert payload["service"]["name"] == "MathOracle"
        assert payload["providerCount"] == 1
        assert "10.0.0.5" not in json.dumps(payload)

    @pytest.mark.asyncio
    async def test_get_service_missing(self):
        with pytest.raises(ServiceNotFoundError):
            await _plugin().tools.call("prxs_get_service", {"serviceName": "Nope"})

    @pytest.mark.asyncio
    async def test_search(self):
        payload = _payload(await _plugin().tools.call("prxs_search_services", {"query": "math"}))
        assert payload == {"results": [{"name": "MathOracle"}]}

    @pytest.mark.asyncio
    async def test_semantic_search_default_k(self):
        payload = _payload(await _plugin().tools.call("prxs_semantic_search", {"query": "add"}))
        assert payload == {"results": []}

    @pytest.mark.asyncio
    async def test_sync_tools(self):
        payload = _payload(await _plugin().tools.call("prxs_sync_tools", {"limit": 2}))
        assert payload["added"] == 2
        assert payload["total"] == 3

    @pytest.mark.asyncio
    async def test_prepare_call(self):
        plugin = _plugin({"devMode": False})
        payload = _payload(await plugin.tools.call(
            "prxs_prepare_call", {"serviceName": "MathOracle", "argsJson": "[7, 8]"}
        ))
        assert payload["exec"]["command"] == (
            f"./bin/node -mode client -bootstrap {BOOTSTRAP} -query MathOracle -args '[7,8]' -dev=false"
        )
        assert payload["exec"]["ask"] == "always"

    @pytest.mark.asyncio
    async def test_prepare_spawn_provider(self):
        payload = _payload(await _plugin().tools.call(
            "prxs_prepare_spawn_provider", {"agentPath": "agents/calc.py", "port": 7001}
        ))
        assert "-port 7001" in payload["exec"]["command"]
        assert payload["exec"]["background"] is True

    @pytest.mark.asyncio
    async def test_parse_node_output(self):
        payload = _payload(await _plugin().tools.call(
            "prxs_parse_node_output", {"stdout": "--- RESULT ---\n{\"sum\": 3}\n--------------"}
        ))
        assert payload == {"result": {"sum": 3}}

    @pytest.mark.asyncio
    async def test_verify_service_without_anchor(self):
        payload = _payload(await _plugin().tools.call("prxs_erc8004_verify_service", {"serviceName": "Echo"}))
        assert payload["erc8004"] == {"status": "missing_agent_id"}
