"""Execution plans for the external node binary.

A plan is a positional argv for the node binary. The bootstrap multiaddr
is left as a placeholder while the argv is assembled and substituted just
before the argv is rendered into a shell command. The rendered command is
returned to the host, which obtains human approval and runs it; nothing
here executes anything.

Example::

    planner = Planner(options, registry, identity)
    prepared = await planner.prepare_call("MathOracle", {"a": "1", "b": "2"})
    prepared.exec.command
    # ./bin/node -mode client -bootstrap /ip4/... -query MathOracle -args '["1","2"]'
"""

from __future__ import annotations

import json
import logging
import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from prxs_mesh.exceptions import PlanError, PrxsError
from prxs_mesh.identity import IdentityResolver
from prxs_mesh.options import MeshOptions
from prxs_mesh.policy import ExecPolicy
from prxs_mesh.registry import RegistryClient
from prxs_mesh.shell import TargetShell, detect_target_shell, format_command
from prxs_mesh.types import Outcome, ProviderInfo, ServiceCard, non_empty_str

logger = logging.getLogger(__name__)

BOOTSTRAP_PLACEHOLDER = "__BOOTSTRAP__"

CALL_INSTRUCTION = (
    "IMPORTANT: Use the host exec tool with the 'exec.command' below. "
    "Do NOT curl or make HTTP requests to any addresses."
)
CALL_NEXT = (
    "Run the host exec tool with exec.command (user should approve), "
    "then call prxs_parse_node_output to parse the result."
)
SPAWN_NEXT = (
    "Run the host exec tool with exec to start the provider. "
    "Then confirm registration via prxs_get_service / prxs_list_services."
)

PROVIDER_EXEC_TIMEOUT = 86400
PROVIDER_YIELD_MS = 1000


def shape_payload(inputs: Sequence[str], raw: Any) -> Any:
    """Project a caller payload onto a service's ordered input slots.

    With declared inputs, a list passes through unchanged, a mapping is
    re-keyed by slot name (missing keys become ``None``) and any other value
    lands in the first slot. Without inputs the payload passes through, with
    ``None`` becoming ``{}``.
    """
    if not inputs:
        return {} if raw is None else raw
    if isinstance(raw, list):
        return raw
    if isinstance(raw, Mapping):
        return [raw.get(name) for name in inputs]
    return [raw] + [None] * (len(inputs) - 1)


def dump_payload(payload: Any) -> str:
    """Compact JSON, as the node binary's ``-args`` flag expects."""
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False)


def _format_number(value: int | float) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


@dataclass(frozen=True)
class ExecutionPlan:
    """Argv for the node binary, with one bootstrap placeholder."""

    argv: tuple[str, ...]

    def fill(self, bootstrap: str) -> tuple[str, ...]:
        """Return the argv with the placeholder replaced by *bootstrap*."""
        try:
            index = self.argv.index(BOOTSTRAP_PLACEHOLDER)
        except ValueError:
            raise PlanError("Internal error: exec plan bootstrap placeholder missing") from None
        return self.argv[:index] + (bootstrap,) + self.argv[index + 1:]


@dataclass(frozen=True)
class ExecRequest:
    """The record handed to the host's approval-gated executor."""

    command: str
    policy: ExecPolicy = field(default_factory=ExecPolicy)
    background: bool = False
    timeout: int | None = None
    yield_ms: int | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"command": self.command, **self.policy.to_dict()}
        if self.background:
            result["background"] = True
        if self.timeout is not None:
            result["timeout"] = self.timeout
        if self.yield_ms is not None:
            result["yieldMs"] = self.yield_ms
        return result


@dataclass(frozen=True)
class ProviderSpawn:
    """Parameters for starting a long-running provider node."""

    agent_path: str
    port: int = 6010
    key_file: str | None = None
    stake_mode: str = "mock"
    stake_proof_path: str = "stake_proof.json"
    stake_web_port: int = 8090
    stake_amount: float = 12
    stake_chain: str = "mock-l2"
    stake_address: str = "0xDEADBEEF00000000000000000000000000DEMO"
    evm_chain_id: int = 11155111
    staking_contract: str | None = None

    @classmethod
    def from_params(cls, params: Mapping[str, Any]) -> ProviderSpawn:
        """Build from tool-call parameters, defaulting anything mistyped."""

        def number(key: str, default: Any) -> Any:
            value = params.get(key)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                return default
            return value if math.isfinite(value) else default

        agent_path = str(params.get("agentPath") or "").strip()
        if not agent_path:
            raise PlanError("agentPath is required")

        return cls(
            agent_path=agent_path,
            port=int(number("port", 6010)),
            key_file=non_empty_str(params.get("keyFile")),
            stake_mode="evm" if params.get("stakeMode") == "evm" else "mock",
            stake_proof_path=non_empty_str(params.get("stakeProofPath")) or "stake_proof.json",
            stake_web_port=int(number("stakeWebPort", 8090)),
            stake_amount=number("stakeAmount", 12),
            stake_chain=non_empty_str(params.get("stakeChain")) or "mock-l2",
            stake_address=non_empty_str(params.get("stakeAddress")) or cls.stake_address,
            evm_chain_id=int(number("evmChainId", 11155111)),
            staking_contract=non_empty_str(params.get("stakingContract")),
        )


@dataclass(frozen=True)
class PreparedCommand:
    """A fully resolved command plus the metadata shown to the caller."""

    registry_base_url: str
    bootstrap: str
    argv: tuple[str, ...]
    exec: ExecRequest
    service: ServiceCard | None = None
    providers: tuple[ProviderInfo, ...] = ()
    identity: Outcome[dict[str, Any]] | None = None

    @property
    def selected_provider(self) -> ProviderInfo | None:
        return self.providers[0] if self.providers else None

    def to_dict(self) -> dict[str, Any]:
        selected = self.selected_provider
        return {
            "registry": {"baseUrl": self.registry_base_url},
            "service": self.service.to_dict() if self.service else None,
            "providers": [p.to_dict() for p in self.providers],
            "selectedProvider": selected.to_dict() if selected else None,
            "bootstrap": self.bootstrap,
            "execPlan": {"argv": list(self.argv)},
            "exec": self.exec.to_dict(),
            "erc8004": self.identity.to_dict() if self.identity else None,
        }

    def to_tool_payload(self) -> dict[str, Any]:
        """Fields safe to show an agent.

        Provider multiaddrs are left out: agents tend to mistake them for
        HTTP endpoints.
        """
        if self.service is None:
            return {
                "registry": {"baseUrl": self.registry_base_url},
                "bootstrap": self.bootstrap,
                "execPlan": {"argv": list(self.argv)},
                "exec": self.exec.to_dict(),
                "next": SPAWN_NEXT,
            }
        payload: dict[str, Any] = {
            "service": self.service.to_dict(),
            "exec": self.exec.to_dict(),
            "bootstrap": self.bootstrap,
            "instruction": CALL_INSTRUCTION,
            "next": CALL_NEXT,
        }
        if self.identity is not None:
            payload["erc8004"] = self.identity.to_dict()
        return payload


class Planner:
    """Builds prepared commands for service calls and provider nodes.

    Parameters
    ----------
    options:
        Node binary, dev mode, exec policy and identity settings.
    registry:
        Registry client used for service and bootstrap resolution.
    identity:
        Resolver for optional identity verification on prepare.
    target_shell:
        Shell dialect for rendering. Detected from the host OS at call time
        when ``None``.
    """

    def __init__(
        self,
        options: MeshOptions,
        registry: RegistryClient,
        identity: IdentityResolver | None = None,
        *,
        target_shell: TargetShell | None = None,
    ) -> None:
        self._options = options
        self._registry = registry
        self._identity = identity
        self._target_shell = target_shell

    def _render(self, argv: Sequence[str], **exec_kwargs: Any) -> ExecRequest:
        shell = self._target_shell or detect_target_shell()
        return ExecRequest(
            command=format_command(argv, shell),
            policy=self._options.exec_policy,
            **exec_kwargs,
        )

    def build_call_plan(self, card: ServiceCard, payload: Any) -> ExecutionPlan:
        argv = [
            self._options.node_binary,
            "-mode", "client",
            "-bootstrap", BOOTSTRAP_PLACEHOLDER,
            "-query", card.name,
            "-args", dump_payload(payload),
        ]
        if not self._options.dev_mode:
            argv.append("-dev=false")
        return ExecutionPlan(tuple(argv))

    def build_provider_plan(self, spawn: ProviderSpawn) -> ExecutionPlan:
        if spawn.stake_mode == "evm" and not spawn.staking_contract:
            raise PlanError("stakingContract is required when stakeMode='evm'")

        argv = [
            self._options.node_binary,
            "-mode", "provider",
            "-port", str(spawn.port),
            "-bootstrap", BOOTSTRAP_PLACEHOLDER,
            "-agent", spawn.agent_path,
        ]
        if not self._options.dev_mode:
            argv.append("-dev=false")
        if spawn.key_file:
            argv += ["-key", spawn.key_file]

        argv += [
            "-stake-mode", spawn.stake_mode,
            "-stake-proof", spawn.stake_proof_path,
            "-stake-web-port", str(spawn.stake_web_port),
        ]
        if spawn.stake_mode == "evm":
            argv += [
                "-evm-chain-id", str(spawn.evm_chain_id),
                "-staking-contract", spawn.staking_contract,
            ]
        else:
            argv += [
                "-stake-amount", _format_number(spawn.stake_amount),
                "-stake-chain", spawn.stake_chain,
                "-stake-address", spawn.stake_address,
            ]
        return ExecutionPlan(tuple(argv))

    async def _verify(self, card: ServiceCard) -> Outcome[dict[str, Any]] | None:
        if not self._options.verify_identity_on_prepare:
            return None
        if not card.agent_id or card.agent_id <= 0:
            return None
        if self._identity is None:
            return Outcome.failure("erc8004RpcUrl is not configured")
        try:
            return Outcome(value=await self._identity.verify_card(card))
        except PrxsError as exc:
            logger.debug("Identity verification failed for %s: %s", card.name, exc)
            return Outcome.failure(exc)

    async def prepare_call(
        self,
        service_name: str,
        args: Any = None,
        *,
        args_json: str | None = None,
    ) -> PreparedCommand:
        """Prepare a client-mode call of *service_name*.

        *args_json*, when non-blank, is parsed and replaces *args*.
        """
        svc = await self._registry.resolve_service(service_name)
        bootstrap = await self._registry.resolve_bootstrap()

        raw = args
        if args_json is not None and args_json.strip():
            try:
                raw = json.loads(args_json)
            except json.JSONDecodeError as exc:
                raise PlanError(f"argsJson is not valid JSON: {exc}") from exc

        payload = shape_payload(svc.card.inputs, raw)
        logger.debug(
            "prepare_call %s: inputs=%s payload=%s",
            svc.card.name, list(svc.card.inputs), dump_payload(payload),
        )

        argv = self.build_call_plan(svc.card, payload).fill(bootstrap)
        return PreparedCommand(
            registry_base_url=self._registry.base_url,
            bootstrap=bootstrap,
            argv=argv,
            exec=self._render(argv),
            service=svc.card,
            providers=svc.providers,
            identity=await self._verify(svc.card),
        )

    async def prepare_spawn_provider(self, spawn: ProviderSpawn) -> PreparedCommand:
        """Prepare a command that starts a provider node in the background."""
        plan = self.build_provider_plan(spawn)
        bootstrap = await self._registry.resolve_bootstrap()
        argv = plan.fill(bootstrap)
        return PreparedCommand(
            registry_base_url=self._registry.base_url,
            bootstrap=bootstrap,
            argv=argv,
            exec=self._render(
                argv,
                background=True,
                timeout=PROVIDER_EXEC_TIMEOUT,
                yield_ms=PROVIDER_YIELD_MS,
            ),
        )
