"""Canonical data model for prxs-mesh.

Registry responses arrive as loosely shaped JSON. The ``from_dict`` /
``from_entry`` constructors here are the only place that JSON is
interpreted: they are total, falling back to documented defaults for
missing or mistyped optional fields, so nothing downstream ever handles
raw registry payloads.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar, Union

__all__ = [
    "JsonValue",
    "ServiceCard",
    "ProviderInfo",
    "ServiceDescriptor",
    "RegistryInfo",
    "IdentityAnchor",
    "Outcome",
]

JsonValue = Union[None, bool, int, float, str, list[Any], dict[str, Any]]

T = TypeVar("T")


def non_empty_str(value: Any) -> str | None:
    """Return *value* stripped if it is a non-blank string, else ``None``."""
    if not isinstance(value, str):
        return None
    stripped = value.strip()
    return stripped or None


def _str_tuple(value: Any) -> tuple[str, ...] | None:
    if isinstance(value, (list, tuple)):
        return tuple(str(item) for item in value)
    return None


def _as_float(value: Any, default: float) -> float:
    if value is None or isinstance(value, bool):
        return default
    try:
        result = float(value)
    except (TypeError, ValueError):
        return default
    return result if math.isfinite(result) else default


def _as_int(value: Any) -> int | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if isinstance(value, float) and not math.isfinite(value):
        return None
    return int(value)


@dataclass(frozen=True)
class ServiceCard:
    """Descriptive metadata for one invocable service.

    ``inputs`` is ordered: it defines how named arguments map onto the
    positional payload sent to the node binary.
    """

    name: str
    description: str = ""
    inputs: tuple[str, ...] = ()
    cost_per_op: float = 0.0
    version: str = "1.0.0"
    tags: tuple[str, ...] | None = None
    agent_id: int | None = None
    agent_registry: str | None = None
    agent_uri: str | None = None

    @classmethod
    def from_dict(cls, data: Any, *, default_name: str = "") -> ServiceCard:
        raw = data if isinstance(data, Mapping) else {}
        name = raw.get("name")
        return cls(
            name=str(name) if name is not None else default_name,
            description=str(raw["description"]) if raw.get("description") is not None else "",
            inputs=_str_tuple(raw.get("inputs")) or (),
            cost_per_op=_as_float(raw.get("cost_per_op"), 0.0),
            version=str(raw["version"]) if raw.get("version") is not None else "1.0.0",
            tags=_str_tuple(raw.get("tags")),
            agent_id=_as_int(raw.get("agent_id")),
            agent_registry=raw.get("agent_registry") if isinstance(raw.get("agent_registry"), str) else None,
            agent_uri=raw.get("agent_uri") if isinstance(raw.get("agent_uri"), str) else None,
        )

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "name": self.name,
            "description": self.description,
            "inputs": list(self.inputs),
            "cost_per_op": self.cost_per_op,
            "version": self.version,
        }
        if self.tags is not None:
            result["tags"] = list(self.tags)
        if self.agent_id is not None:
            result["agent_id"] = self.agent_id
        if self.agent_registry is not None:
            result["agent_registry"] = self.agent_registry
        if self.agent_uri is not None:
            result["agent_uri"] = self.agent_uri
        return result


@dataclass(frozen=True)
class ProviderInfo:
    """A peer currently offering a service."""

    id: str
    addrs: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: Any) -> ProviderInfo:
        """Accept both Go-style (``ID``/``Addrs``) and lowercase keys."""
        raw = data if isinstance(data, Mapping) else {}
        peer_id = raw.get("ID")
        if peer_id is None:
            peer_id = raw.get("id")
        addrs = _str_tuple(raw.get("Addrs"))
        if addrs is None:
            addrs = _str_tuple(raw.get("addrs")) or ()
        return cls(id=str(peer_id) if peer_id is not None else "", addrs=addrs)

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "addrs": list(self.addrs)}


@dataclass(frozen=True)
class ServiceDescriptor:
    """A service card together with the providers backing it."""

    card: ServiceCard
    providers: tuple[ProviderInfo, ...] = ()

    @classmethod
    def from_entry(cls, name: str, entry: Any) -> ServiceDescriptor:
        """Normalize one value of the registry's ``services`` object.

        Full listings carry ``{"card": {...}, "providers": [...]}``; the basic
        listing maps the name straight to a provider list, in which case a
        minimal card is synthesized from *name*.
        """
        has_card = isinstance(entry, Mapping) and isinstance(entry.get("card"), Mapping)
        if has_card:
            card = ServiceCard.from_dict(entry["card"], default_name=name)
            providers_raw = entry.get("providers")
        else:
            card = ServiceCard(name=name)
            providers_raw = entry
        providers = (
            tuple(ProviderInfo.from_dict(p) for p in providers_raw)
            if isinstance(providers_raw, (list, tuple))
            else ()
        )
        return cls(card=card, providers=providers)

    def to_dict(self) -> dict[str, Any]:
        return {
            "card": self.card.to_dict(),
            "providers": [p.to_dict() for p in self.providers],
        }


@dataclass(frozen=True)
class RegistryInfo:
    """Registry self-description; every field may be absent."""

    peer_id: str | None = None
    bootstraps: tuple[str, ...] = ()
    bootstrap: str | None = None
    multiaddrs: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: Any) -> RegistryInfo:
        raw = data if isinstance(data, Mapping) else {}
        bootstrap = raw.get("bootstrap")
        peer_id = raw.get("peer_id")
        return cls(
            peer_id=str(peer_id) if peer_id is not None else None,
            bootstraps=_str_tuple(raw.get("bootstraps")) or (),
            bootstrap=str(bootstrap) if bootstrap is not None else None,
            multiaddrs=_str_tuple(raw.get("multiaddrs")) or (),
        )

    def candidates(self) -> list[str]:
        """Bootstrap candidates in preference order, blanks dropped."""
        ordered = [*self.bootstraps, self.bootstrap, *self.multiaddrs]
        return [c for c in (non_empty_str(v) for v in ordered) if c]

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {}
        if self.peer_id is not None:
            result["peer_id"] = self.peer_id
        if self.multiaddrs:
            result["multiaddrs"] = list(self.multiaddrs)
        if self.bootstraps:
            result["bootstraps"] = list(self.bootstraps)
        if self.bootstrap is not None:
            result["bootstrap"] = self.bootstrap
        return result


@dataclass(frozen=True)
class IdentityAnchor:
    """On-chain identity read fresh from the identity registry."""

    registry: str
    agent_id: int
    owner: str
    agent_uri: str
    agent_wallet: str | None = None
    wallet_error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "registry": self.registry,
            "agentId": self.agent_id,
            "owner": self.owner,
            "agentURI": self.agent_uri,
            "agentWallet": self.agent_wallet,
        }
        if self.wallet_error is not None:
            result["agentWalletError"] = self.wallet_error
        return result


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """Result of a best-effort sub-operation.

    Exactly one of ``value`` (on success) or ``error`` is meaningful. Used
    where a failure must stay visible without aborting the caller.
    """

    value: T | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def failure(cls, error: BaseException | str) -> Outcome[T]:
        return cls(error=str(error))

    def to_dict(self) -> dict[str, Any]:
        if not self.ok:
            return {"status": "error", "error": self.error}
        payload = self.value.to_dict() if hasattr(self.value, "to_dict") else self.value
        if isinstance(payload, Mapping):
            return {"status": "ok", **payload}
        return {"status": "ok", "value": payload}
