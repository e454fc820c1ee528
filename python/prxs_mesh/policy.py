"""Execution policy attached to every prepared command.

prxs-mesh never runs anything itself. The host's approval-gated executor
reads these tags to decide where the command runs (``host``), which
binaries it may run (``security``) and when a human must approve
(``ask``).
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Any


class ExecHost(StrEnum):
    """Where the executor runs the command."""

    SANDBOX = "sandbox"
    GATEWAY = "gateway"
    NODE = "node"


class ExecSecurity(StrEnum):
    DENY = "deny"
    ALLOWLIST = "allowlist"
    FULL = "full"


class ExecAsk(StrEnum):
    """When the executor prompts a human for approval."""

    OFF = "off"
    ON_MISS = "on-miss"
    ALWAYS = "always"


def _coerce(enum_cls: type[StrEnum], value: Any, default: StrEnum) -> Any:
    if isinstance(value, str):
        try:
            return enum_cls(value)
        except ValueError:
            pass
    return default


@dataclass(frozen=True)
class ExecPolicy:
    """Host, security and approval tags for the external executor.

    Parameters
    ----------
    host:
        ``sandbox`` (local sandbox), ``gateway`` (trusted local host) or
        ``node`` (a named remote node).
    security:
        Executor security mode.
    ask:
        Approval prompt policy. Defaults to ``always``.
    node:
        Remote node name; only emitted when ``host`` is ``node``.
    """

    host: ExecHost = ExecHost.GATEWAY
    security: ExecSecurity = ExecSecurity.ALLOWLIST
    ask: ExecAsk = ExecAsk.ALWAYS
    node: str | None = None

    @classmethod
    def from_values(
        cls,
        host: Any = None,
        security: Any = None,
        ask: Any = None,
        node: str | None = None,
    ) -> ExecPolicy:
        """Build a policy, replacing unknown values with the defaults."""
        return cls(
            host=_coerce(ExecHost, host, ExecHost.GATEWAY),
            security=_coerce(ExecSecurity, security, ExecSecurity.ALLOWLIST),
            ask=_coerce(ExecAsk, ask, ExecAsk.ALWAYS),
            node=node,
        )

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "host": str(self.host),
            "security": str(self.security),
            "ask": str(self.ask),
        }
        if self.host is ExecHost.NODE and self.node:
            result["node"] = self.node
        return result
