"""Configuration for prxs-mesh.

Provides the ``MeshOptions`` dataclass. Hosts pass plugin configuration
as a camelCase JSON object; :meth:`MeshOptions.from_dict` accepts that
shape (or snake_case keys) and replaces any mistyped value with its
default rather than failing.
"""

from __future__ import annotations

import math
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from prxs_mesh.policy import ExecPolicy
from prxs_mesh.types import non_empty_str

DEFAULT_REGISTRY_URL = "http://localhost:8080"
DEFAULT_NODE_BINARY = "./bin/node"
DEFAULT_TOOL_PREFIX = "prxs_"


def sanitize_tool_prefix(prefix: str | None) -> str:
    """Normalize a tool-name prefix to ``[a-z0-9_]`` ending in ``_``."""
    cleaned = re.sub(r"[^a-z0-9_]+", "_", str(prefix or "").lower())
    cleaned = re.sub(r"_+", "_", cleaned.strip("_"))
    if not cleaned:
        return DEFAULT_TOOL_PREFIX
    if cleaned[0].isdigit():
        cleaned = f"p_{cleaned}"
    return cleaned if cleaned.endswith("_") else f"{cleaned}_"


def _bool(value: Any, default: bool) -> bool:
    return value if isinstance(value, bool) else default


def _number(value: Any, default: float) -> Any:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    return value if math.isfinite(value) else default


def _int(value: Any, default: int) -> int:
    return int(_number(value, default))


@dataclass
class MeshOptions:
    """Settings for the registry, execution plan and identity checks.

    Parameters
    ----------
    registry_url:
        Registry base URL. A bare host, the ``/api/v1`` base, or any
        endpoint under it are all accepted.
    node_binary:
        Path of the external execution binary placed first in every argv.
    bootstrap_multiaddr:
        Explicit bootstrap multiaddr. When set it is used verbatim and the
        registry is never asked.
    dev_mode:
        When ``False``, ``-dev=false`` is appended to every argv.
    default_top_k:
        Result count for semantic search when the caller gives none.
    cache_ttl_seconds:
        Lifetime of cached registry info and service listings.
    auto_sync_tools:
        Register one tool per service when the plugin starts.
    max_service_tools:
        Upper bound on per-service tools registered by a sync.
    tool_name_prefix:
        Prefix for per-service tool names (sanitized).
    exec_policy:
        Host / security / approval tags for prepared commands.
    rpc_url:
        JSON-RPC endpoint for identity registry reads.
    identity_registry:
        Identity registry contract address.
    verify_identity_on_prepare:
        Resolve the service's identity anchor while preparing a call.
    http_timeout:
        Timeout in seconds for registry requests.
    rpc_timeout:
        Timeout in seconds for JSON-RPC and agent card requests.
    """

    registry_url: str = DEFAULT_REGISTRY_URL
    node_binary: str = DEFAULT_NODE_BINARY
    bootstrap_multiaddr: str | None = None
    dev_mode: bool = True
    default_top_k: int = 5
    cache_ttl_seconds: float = 10
    auto_sync_tools: bool = True
    max_service_tools: int = 200
    tool_name_prefix: str = DEFAULT_TOOL_PREFIX
    exec_policy: ExecPolicy = field(default_factory=ExecPolicy)
    rpc_url: str | None = None
    identity_registry: str | None = None
    verify_identity_on_prepare: bool = False
    http_timeout: float = 8.0
    rpc_timeout: float = 7.0

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> MeshOptions:
        """Build options from a host plugin config object."""
        raw = dict(data or {})

        def pick(camel: str, snake: str) -> Any:
            return raw[camel] if camel in raw else raw.get(snake)

        prefix = non_empty_str(pick("toolNamePrefix", "tool_name_prefix")) or DEFAULT_TOOL_PREFIX
        return cls(
            registry_url=non_empty_str(pick("registryUrl", "registry_url")) or DEFAULT_REGISTRY_URL,
            node_binary=non_empty_str(pick("prxsNodeBinary", "node_binary")) or DEFAULT_NODE_BINARY,
            bootstrap_multiaddr=non_empty_str(pick("bootstrapMultiaddr", "bootstrap_multiaddr")),
            dev_mode=_bool(pick("devMode", "dev_mode"), True),
            default_top_k=_int(pick("defaultTopK", "default_top_k"), 5),
            cache_ttl_seconds=max(0, _number(pick("cacheTtlSeconds", "cache_ttl_seconds"), 10)),
            auto_sync_tools=_bool(pick("autoSyncTools", "auto_sync_tools"), True),
            max_service_tools=_int(pick("maxServiceTools", "max_service_tools"), 200),
            tool_name_prefix=sanitize_tool_prefix(prefix),
            exec_policy=ExecPolicy.from_values(
                host=pick("execHost", "exec_host"),
                security=pick("execSecurity", "exec_security"),
                ask=pick("execAsk", "exec_ask"),
                node=non_empty_str(pick("execNode", "exec_node")),
            ),
            rpc_url=non_empty_str(pick("erc8004RpcUrl", "rpc_url")),
            identity_registry=non_empty_str(pick("erc8004IdentityRegistry", "identity_registry")),
            verify_identity_on_prepare=_bool(pick("erc8004VerifyOnPrepare", "verify_identity_on_prepare"), False),
            http_timeout=_number(pick("httpTimeout", "http_timeout"), 8.0),
            rpc_timeout=_number(pick("rpcTimeout", "rpc_timeout"), 7.0),
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the host's camelCase config shape, omitting unset values."""
        result: dict[str, Any] = {
            "registryUrl": self.registry_url,
            "prxsNodeBinary": self.node_binary,
            "devMode": self.dev_mode,
            "defaultTopK": self.default_top_k,
            "cacheTtlSeconds": self.cache_ttl_seconds,
            "autoSyncTools": self.auto_sync_tools,
            "maxServiceTools": self.max_service_tools,
            "toolNamePrefix": self.tool_name_prefix,
            "execHost": str(self.exec_policy.host),
            "execSecurity": str(self.exec_policy.security),
            "execAsk": str(self.exec_policy.ask),
            "erc8004VerifyOnPrepare": self.verify_identity_on_prepare,
            "httpTimeout": self.http_timeout,
            "rpcTimeout": self.rpc_timeout,
        }
        if self.bootstrap_multiaddr is not None:
            result["bootstrapMultiaddr"] = self.bootstrap_multiaddr
        if self.exec_policy.node is not None:
            result["execNode"] = self.exec_policy.node
        if self.rpc_url is not None:
            result["erc8004RpcUrl"] = self.rpc_url
        if self.identity_registry is not None:
            result["erc8004IdentityRegistry"] = self.identity_registry
        return result
