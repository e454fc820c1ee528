"""Agent-host plugin wiring for prxs-mesh.

:class:`MeshPlugin` builds the cache, registry client, identity resolver
and planner from one :class:`~prxs_mesh.options.MeshOptions`, and registers
the ``prxs_*`` tools a host exposes to its agent.

Usage::

    async with MeshPlugin.from_config({"registryUrl": "http://registry:8080"}) as plugin:
        await plugin.start()
        result = await plugin.tools.call("prxs_prepare_call", {"serviceName": "MathOracle"})
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping
from typing import Any

import httpx

from prxs_mesh.cache import TTLCache
from prxs_mesh.exceptions import PrxsError, ToolError
from prxs_mesh.identity import IdentityResolver
from prxs_mesh.options import MeshOptions
from prxs_mesh.output import parse_node_output
from prxs_mesh.plan import Planner, ProviderSpawn
from prxs_mesh.registry import RegistryClient
from prxs_mesh.shell import TargetShell
from prxs_mesh.tools import (
    ToolDefinition,
    ToolRegistry,
    build_parameters_from_inputs,
    sanitize_tool_suffix,
    text_result,
)
from prxs_mesh.types import ServiceDescriptor, non_empty_str

logger = logging.getLogger(__name__)

_SERVICE_NAME_SCHEMA: dict[str, Any] = {
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "serviceName": {"type": "string", "description": "Service name (case-insensitive match supported)."},
    },
    "required": ["serviceName"],
}

_AGENT_ID_SCHEMA: dict[str, Any] = {
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "agentId": {"type": "integer", "minimum": 1, "description": "ERC-8004 Agent ID (ERC-721 tokenId)."},
        "identityRegistry": {
            "type": "string",
            "description": "Optional override for the Identity Registry contract address.",
        },
    },
    "required": ["agentId"],
}

_PREPARE_CALL_SCHEMA: dict[str, Any] = {
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "serviceName": {"type": "string", "description": "Exact service name (case-insensitive match supported)."},
        "args": {
            "type": "object",
            "description": "Arguments object (string values recommended).",
            "additionalProperties": True,
        },
        "argsJson": {"type": "string", "description": "Raw JSON payload string. If set, overrides args."},
    },
    "required": ["serviceName"],
}

_SPAWN_PROVIDER_SCHEMA: dict[str, Any] = {
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "agentPath": {"type": "string", "description": "Path to a Python agent (e.g. sample_agents/calc.py)."},
        "port": {"type": "integer", "minimum": 1, "maximum": 65535, "description": "libp2p listen port."},
        "keyFile": {"type": "string", "description": "Optional key file path (e.g. node.key)."},
        "stakeMode": {"type": "string", "enum": ["mock", "evm"], "description": "mock or evm"},
        "stakeProofPath": {"type": "string", "description": "Stake proof file path."},
        "stakeWebPort": {"type": "integer", "minimum": 1, "maximum": 65535, "description": "Staking helper UI port."},
        "stakeAmount": {"type": "number", "description": "Mock stake amount (mock mode only)."},
        "stakeChain": {"type": "string", "description": "Mock chain id (mock mode only)."},
        "stakeAddress": {"type": "string", "description": "Display address for staking UI (mock mode only)."},
        "evmChainId": {"type": "integer", "description": "EVM chain id (evm mode only)."},
        "stakingContract": {"type": "string", "description": "Staking contract address (evm mode only)."},
    },
    "required": ["agentPath"],
}


def _agent_id(params: Mapping[str, Any]) -> int:
    value = params.get("agentId")
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    return int(value)


class MeshPlugin:
    """Composition root wiring prxs-mesh components into host tools.

    Parameters
    ----------
    options:
        Plugin configuration. Defaults to :class:`MeshOptions` defaults.
    http_client:
        Shared :class:`httpx.AsyncClient` for all requests. When omitted the
        plugin creates one and closes it in :meth:`close`; an injected
        client is left open for its owner.
    clock:
        Time source for the registry cache.
    target_shell:
        Force a shell dialect instead of detecting it from the host OS.
    """

    def __init__(
        self,
        options: MeshOptions | None = None,
        *,
        http_client: httpx.AsyncClient | None = None,
        clock: Callable[[], float] = time.time,
        target_shell: TargetShell | None = None,
    ) -> None:
        self._options = options or MeshOptions()
        self._owns_http = http_client is None
        http_client = http_client or httpx.AsyncClient()
        self._http = http_client
        self._cache = TTLCache(self._options.cache_ttl_seconds, clock=clock)
        self._registry = RegistryClient(
            self._options.registry_url,
            cache=self._cache,
            bootstrap_override=self._options.bootstrap_multiaddr,
            http_client=http_client,
            timeout=self._options.http_timeout,
        )
        self._identity = IdentityResolver(
            self._options.rpc_url,
            self._options.identity_registry,
            http_client=http_client,
            timeout=self._options.rpc_timeout,
        )
        self._planner = Planner(self._options, self._registry, self._identity, target_shell=target_shell)
        self._tools = ToolRegistry()
        self._register_builtin_tools()

    @classmethod
    def from_config(cls, config: Mapping[str, Any] | None, **kwargs: Any) -> MeshPlugin:
        """Create a plugin from a host's camelCase plugin config."""
        return cls(MeshOptions.from_dict(config), **kwargs)

    # -- Properties ----------------------------------------------------------

    @property
    def options(self) -> MeshOptions:
        return self._options

    @property
    def registry(self) -> RegistryClient:
        return self._registry

    @property
    def identity(self) -> IdentityResolver:
        return self._identity

    @property
    def planner(self) -> Planner:
        return self._planner

    @property
    def tools(self) -> ToolRegistry:
        return self._tools

    # -- Lifecycle -----------------------------------------------------------

    async def start(self) -> None:
        """Register per-service tools if ``auto_sync_tools`` is on.

        A failed sync is logged and does not prevent startup.
        """
        if not self._options.auto_sync_tools:
            return
        try:
            result = await self.sync_service_tools()
        except PrxsError as exc:
            logger.warning("Tool sync failed: %s", exc)
            return
        logger.info("Synced %d/%d service tools", result["added"], result["total"])

    async def close(self) -> None:
        """Close the HTTP client if this plugin created it."""
        if self._owns_http:
            await self._http.aclose()

    async def __aenter__(self) -> MeshPlugin:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    # -- Per-service tools ---------------------------------------------------

    def _service_tool(self, name: str, svc: ServiceDescriptor) -> ToolDefinition:
        service_name = svc.card.name

        async def handler(params: dict[str, Any]) -> dict[str, Any]:
            prepared = await self._planner.prepare_call(service_name, params)
            return text_result(prepared.to_tool_payload())

        return ToolDefinition(
            name=name,
            description=svc.card.description or f"PRXS service '{service_name}'",
            handler=handler,
            input_schema=build_parameters_from_inputs(svc.card),
        )

    async def sync_service_tools(self, limit: int | None = None) -> dict[str, int]:
        """Register one ``<prefix><service>`` tool per registry service.

        A name collision retries once with a ``__svc`` suffix, then skips.
        """
        services = list((await self._registry.get_services()).values())
        cap = max(0, int(limit if limit is not None else self._options.max_service_tools))
        prefix = self._options.tool_name_prefix

        added = 0
        for svc in services[:cap]:
            suffix = sanitize_tool_suffix(svc.card.name)
            name = f"{prefix}{suffix}"
            if name in self._tools:
                name = f"{prefix}{suffix}__svc"
            if name in self._tools:
                continue
            try:
                self._tools.register(self._service_tool(name, svc))
            except ToolError as exc:
                logger.warning("Failed to register tool %s: %s", name, exc)
                continue
            added += 1

        return {"added": added, "total": len(services)}

    # -- Built-in tools ------------------------------------------------------

    def _register_builtin_tools(self) -> None:
        tools = self._tools
        base = {"baseUrl": self._registry.base_url}

        @tools.tool("prxs_registry_info", description="Fetch PRXS registry info (/api/v1/registry/info).")
        async def registry_info(params: dict[str, Any]) -> dict[str, Any]:
            info = await self._registry.get_registry_info()
            return text_result({"registry": base, "info": info.to_dict()})

        @tools.tool("prxs_list_services", description="List PRXS services from the registry (prefers /services_full).")
        async def list_services(params: dict[str, Any]) -> dict[str, Any]:
            services = await self._registry.get_services()
            cards = [svc.card.to_dict() for svc in services.values()]
            return text_result({"registry": base, "count": len(cards), "services": cards})

        @tools.tool(
            "prxs_get_service",
            description=(
                "Get PRXS service details by service name. To CALL the service, use "
                "prxs_prepare_call or the per-service tool (prxs_<ServiceName>)."
            ),
            input_schema=_SERVICE_NAME_SCHEMA,
        )
        async def get_service(params: dict[str, Any]) -> dict[str, Any]:
            svc = await self._registry.resolve_service(str(params.get("serviceName") or ""))
            return text_result({
                "registry": base,
                "service": svc.card.to_dict(),
                "providerCount": len(svc.providers),
                "instruction": (
                    "To call this service, use prxs_prepare_call or the per-service tool. "
                    "Do NOT make HTTP requests to provider addresses."
                ),
            })

        @tools.tool(
            "prxs_search_services",
            description="Search PRXS services by name (partial match) via /services/search?q=...",
            input_schema={
                "type": "object",
                "additionalProperties": False,
                "properties": {"query": {"type": "string", "description": "Search query."}},
                "required": ["query"],
            },
        )
        async def search_services(params: dict[str, Any]) -> dict[str, Any]:
            return text_result(await self._registry.search_services(str(params.get("query") or "")))

        @tools.tool(
            "prxs_semantic_search",
            description="Semantic search PRXS services via /services/semantic_search?q=...&k=...",
            input_schema={
                "type": "object",
                "additionalProperties": False,
                "properties": {
                    "query": {"type": "string", "description": "Natural language query."},
                    "k": {"type": "integer", "minimum": 1, "maximum": 50, "description": "Number of results."},
                },
                "required": ["query"],
            },
        )
        async def semantic_search(params: dict[str, Any]) -> dict[str, Any]:
            k = params.get("k")
            if isinstance(k, bool) or not isinstance(k, int):
                k = self._options.default_top_k
            return text_result(await self._registry.semantic_search(str(params.get("query") or ""), k))

        @tools.tool(
            "prxs_sync_tools",
            description="Fetch services from the PRXS registry and register per-service tools (prxs_<serviceName>).",
            input_schema={
                "type": "object",
                "additionalProperties": False,
                "properties": {
                    "limit": {"type": "integer", "minimum": 0, "maximum": 5000,
                              "description": "Max number of service tools to register."},
                },
            },
        )
        async def sync_tools(params: dict[str, Any]) -> dict[str, Any]:
            limit = params.get("limit")
            if isinstance(limit, bool) or not isinstance(limit, int):
                limit = None
            result = await self.sync_service_tools(limit)
            return text_result({
                "registry": base,
                **result,
                "note": "Call a prxs_<service> tool to prepare an exec request, then run it via the exec tool.",
            })

        @tools.tool(
            "prxs_prepare_call",
            description=(
                "Prepare a PRXS mesh service call and return an exec request "
                "(run it via the built-in exec tool for approvals)."
            ),
            input_schema=_PREPARE_CALL_SCHEMA,
        )
        async def prepare_call(params: dict[str, Any]) -> dict[str, Any]:
            prepared = await self._planner.prepare_call(
                str(params.get("serviceName") or ""),
                params.get("args") if params.get("args") is not None else {},
                args_json=non_empty_str(params.get("argsJson")),
            )
            return text_result(prepared.to_tool_payload())

        @tools.tool(
            "prxs_prepare_spawn_provider",
            description="Prepare a command to start a PRXS provider node (long-running; run via exec approvals).",
            input_schema=_SPAWN_PROVIDER_SCHEMA,
        )
        async def prepare_spawn_provider(params: dict[str, Any]) -> dict[str, Any]:
            prepared = await self._planner.prepare_spawn_provider(ProviderSpawn.from_params(params))
            return text_result(prepared.to_tool_payload())

        @tools.tool(
            "prxs_parse_node_output",
            description="Parse node stdout and extract the --- RESULT --- block (JSON-decodes when possible).",
            input_schema={
                "type": "object",
                "additionalProperties": False,
                "properties": {"stdout": {"type": "string", "description": "stdout from the exec tool."}},
                "required": ["stdout"],
            },
        )
        async def parse_output(params: dict[str, Any]) -> dict[str, Any]:
            return text_result(parse_node_output(str(params.get("stdout") or "")))

        @tools.tool(
            "prxs_erc8004_get_agent",
            description="Fetch ERC-8004 agent identity info (owner, agentURI, agentWallet) via eth_call.",
            input_schema=_AGENT_ID_SCHEMA,
        )
        async def get_agent(params: dict[str, Any]) -> dict[str, Any]:
            anchor = await self._identity.resolve_agent(
                _agent_id(params), non_empty_str(params.get("identityRegistry"))
            )
            return text_result(anchor.to_dict())

        @tools.tool(
            "prxs_erc8004_verify_service",
            description=(
                "Verify a PRXS service's ERC-8004 identity anchor using "
                "service.card.agent_id (+ optional agent_registry/agent_uri)."
            ),
            input_schema=_SERVICE_NAME_SCHEMA,
        )
        async def verify_service(params: dict[str, Any]) -> dict[str, Any]:
            svc = await self._registry.resolve_service(str(params.get("serviceName") or ""))
            result = await self._identity.verify_card(svc.card)
            return text_result({"service": svc.card.to_dict(), "erc8004": result})

        @tools.tool(
            "prxs_erc8004_fetch_agent_card",
            description="Fetch an ERC-8004 agentURI (tokenURI) and download the agent card JSON (http/https only).",
            input_schema=_AGENT_ID_SCHEMA,
        )
        async def fetch_agent_card(params: dict[str, Any]) -> dict[str, Any]:
            result = await self._identity.fetch_agent_card(
                _agent_id(params), non_empty_str(params.get("identityRegistry"))
            )
            return text_result(result)

    def __repr__(self) -> str:
        return f"MeshPlugin(registry={self._registry.base_url!r}, tools={len(self._tools)})"
