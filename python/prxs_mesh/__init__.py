"""prxs-mesh — discover PRXS mesh services and prepare approval-gated node commands.

prxs-mesh never runs anything: it resolves a service and a bootstrap
multiaddr from the registry and returns the exact shell command the host
should run (after human approval) through the external node binary.

Quick start::

    import asyncio
    from prxs_mesh import MeshPlugin

    async def main():
        async with MeshPlugin.from_config({"registryUrl": "http://localhost:8080"}) as plugin:
            prepared = await plugin.planner.prepare_call("MathOracle", {"a": "2", "b": "3"})
            print(prepared.exec.command)

    asyncio.run(main())

Formatting only::

    from prxs_mesh import TargetShell, format_command

    format_command(["./bin/node", "-args", '{"q":"it\\'s"}'], TargetShell.POSIX)
"""

from __future__ import annotations

__version__ = "0.1.0"

from prxs_mesh.abi import (
    decode_address,
    decode_dynamic_bytes,
    decode_string,
    encode_call_uint,
    encode_call_uint_string,
    encode_uint256,
)
from prxs_mesh.cache import CacheEntry, TTLCache
from prxs_mesh.exceptions import (
    AbiError,
    BootstrapError,
    ChainError,
    ConfigurationError,
    IdentityError,
    PlanError,
    PrxsError,
    RegistryError,
    ServiceNotFoundError,
    TimeoutError,
    ToolError,
    TransportError,
)
from prxs_mesh.identity import IdentityResolver
from prxs_mesh.options import MeshOptions
from prxs_mesh.output import extract_result_block, parse_node_output
from prxs_mesh.plan import (
    ExecRequest,
    ExecutionPlan,
    Planner,
    PreparedCommand,
    ProviderSpawn,
    shape_payload,
)
from prxs_mesh.plugin import MeshPlugin
from prxs_mesh.policy import ExecAsk, ExecHost, ExecPolicy, ExecSecurity
from prxs_mesh.registry import RegistryClient
from prxs_mesh.shell import TargetShell, detect_target_shell, format_command
from prxs_mesh.tools import ToolDefinition, ToolRegistry, text_result
from prxs_mesh.types import (
    IdentityAnchor,
    Outcome,
    ProviderInfo,
    RegistryInfo,
    ServiceCard,
    ServiceDescriptor,
)

__all__ = [
    "__version__",
    # Core
    "MeshPlugin",
    "MeshOptions",
    "RegistryClient",
    "IdentityResolver",
    "Planner",
    "TTLCache",
    "CacheEntry",
    # Planning
    "ExecutionPlan",
    "ExecRequest",
    "PreparedCommand",
    "ProviderSpawn",
    "shape_payload",
    # Policy
    "ExecPolicy",
    "ExecHost",
    "ExecSecurity",
    "ExecAsk",
    # Shell
    "TargetShell",
    "format_command",
    "detect_target_shell",
    # ABI
    "encode_uint256",
    "encode_call_uint",
    "encode_call_uint_string",
    "decode_address",
    "decode_dynamic_bytes",
    "decode_string",
    # Tools & output
    "ToolDefinition",
    "ToolRegistry",
    "text_result",
    "extract_result_block",
    "parse_node_output",
    # Types
    "ServiceCard",
    "ProviderInfo",
    "ServiceDescriptor",
    "RegistryInfo",
    "IdentityAnchor",
    "Outcome",
    # Exceptions
    "PrxsError",
    "ConfigurationError",
    "TransportError",
    "TimeoutError",
    "RegistryError",
    "ServiceNotFoundError",
    "BootstrapError",
    "ChainError",
    "AbiError",
    "IdentityError",
    "PlanError",
    "ToolError",
]
