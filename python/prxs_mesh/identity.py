"""ERC-8004 identity anchor resolution.

Reads a service's on-chain identity (owner, metadata URI, optional wallet)
from an identity registry contract through plain ``eth_call`` requests.
Nothing is signed or sent on-chain, and results are never cached: trust
decisions must reflect the latest chain state.
"""

from __future__ import annotations

import logging
import re
from typing import Any

import httpx

from prxs_mesh.abi import (
    decode_address,
    decode_dynamic_bytes,
    decode_string,
    encode_call_uint,
    encode_call_uint_string,
)
from prxs_mesh.exceptions import ChainError, ConfigurationError, IdentityError, PrxsError
from prxs_mesh.transport import get_json, post_json
from prxs_mesh.types import IdentityAnchor, Outcome, ServiceCard, non_empty_str

logger = logging.getLogger(__name__)

OWNER_OF_SELECTOR = "0x6352211e"  # ownerOf(uint256)
TOKEN_URI_SELECTOR = "0xc87b56dd"  # tokenURI(uint256)
GET_METADATA_SELECTOR = "0xcb4799f2"  # getMetadata(uint256,string)
WALLET_METADATA_KEY = "agentWallet"

_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")
_HEX_RESULT_RE = re.compile(r"^0x[0-9a-fA-F]*$")


def normalize_address(value: str) -> str:
    """Return *value* as a lowercase ``0x`` + 40 hex address."""
    trimmed = value.strip()
    if not _ADDRESS_RE.match(trimmed):
        raise ConfigurationError(f"Invalid EVM address: {value}")
    return "0x" + trimmed[2:].lower()


def wallet_from_metadata(data: bytes) -> str | None:
    """Interpret ``agentWallet`` metadata bytes as an address.

    Accepts a packed 20-byte address or a 32-byte ABI word with the address
    right-aligned. Empty metadata and zero addresses count as absent.
    """
    if not data:
        return None
    if len(data) == 20:
        addr = data
    elif len(data) == 32:
        addr = data[12:]
    else:
        raise IdentityError(f"unexpected agentWallet metadata length: {len(data)} bytes")
    if not any(addr):
        return None
    return "0x" + addr.hex()


class IdentityResolver:
    """Resolve identity anchors from an ERC-8004 identity registry.

    Parameters
    ----------
    rpc_url:
        JSON-RPC endpoint used for ``eth_call``.
    identity_registry:
        Default identity registry contract address.
    http_client:
        Optional shared :class:`httpx.AsyncClient`.
    timeout:
        Per-call timeout in seconds.
    """

    def __init__(
        self,
        rpc_url: str | None,
        identity_registry: str | None = None,
        *,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 7.0,
    ) -> None:
        self._rpc_url = non_empty_str(rpc_url)
        self._identity_registry = non_empty_str(identity_registry)
        self._http = http_client
        self._timeout = timeout

    @property
    def configured(self) -> bool:
        return self._rpc_url is not None

    async def eth_call(self, to: str, data: str) -> str:
        """Run a read-only ``eth_call`` against the latest block."""
        if self._rpc_url is None:
            raise ConfigurationError("erc8004RpcUrl is not configured")
        payload = {
            "jsonrpc": "2.0",
            "id": 1,
            "method": "eth_call",
            "params": [{"to": to, "data": data}, "latest"],
        }
        resp = await post_json(self._rpc_url, payload, client=self._http, timeout=self._timeout)
        if not isinstance(resp, dict):
            raise ChainError(f"Invalid JSON-RPC response from {self._rpc_url}")
        if resp.get("error"):
            error = resp["error"]
            message = error.get("message") if isinstance(error, dict) else None
            raise ChainError(message or "eth_call failed")
        result = resp.get("result")
        result = "" if result is None else str(result)
        if not _HEX_RESULT_RE.match(result):
            raise ChainError(f"Invalid eth_call result: {result}")
        return result

    def _registry_address(self, override: str | None) -> str:
        raw = non_empty_str(override) or self._identity_registry
        if raw is None:
            raise ConfigurationError("erc8004IdentityRegistry is not configured")
        return normalize_address(raw)

    async def _wallet(self, registry: str, agent_id: int) -> Outcome[str]:
        try:
            raw = await self.eth_call(
                registry,
                encode_call_uint_string(GET_METADATA_SELECTOR, agent_id, WALLET_METADATA_KEY),
            )
            return Outcome(value=wallet_from_metadata(decode_dynamic_bytes(raw)))
        except PrxsError as exc:
            logger.debug("agentWallet metadata unavailable for agent %d: %s", agent_id, exc)
            return Outcome.failure(exc)

    async def resolve_agent(
        self,
        agent_id: int,
        registry_override: str | None = None,
    ) -> IdentityAnchor:
        """Read owner, agent URI and wallet for *agent_id*.

        Owner and URI failures raise. The wallet lookup is best effort: a
        registry without the metadata extension yields ``agent_wallet=None``
        with the reason on ``wallet_error``.
        """
        if self._rpc_url is None:
            raise ConfigurationError("erc8004RpcUrl is not configured")
        registry = self._registry_address(registry_override)

        if isinstance(agent_id, bool) or not isinstance(agent_id, int) or agent_id <= 0:
            raise IdentityError(f"agentId must be a positive integer, got {agent_id!r}")

        owner = decode_address(await self.eth_call(registry, encode_call_uint(OWNER_OF_SELECTOR, agent_id)))
        agent_uri = decode_string(await self.eth_call(registry, encode_call_uint(TOKEN_URI_SELECTOR, agent_id)))
        wallet = await self._wallet(registry, agent_id)

        return IdentityAnchor(
            registry=registry,
            agent_id=agent_id,
            owner=owner,
            agent_uri=agent_uri,
            agent_wallet=wallet.value,
            wallet_error=wallet.error,
        )

    async def verify_card(self, card: ServiceCard) -> dict[str, Any]:
        """Check a service card's identity anchor against the chain.

        Returns ``{"status": "missing_agent_id"}`` for cards without an
        anchor. ``matchesServiceCardURI`` is ``None`` when the card does not
        advertise an ``agent_uri``.
        """
        if not card.agent_id or card.agent_id <= 0:
            return {"status": "missing_agent_id"}

        anchor = await self.resolve_agent(card.agent_id, card.agent_registry)
        card_uri = non_empty_str(card.agent_uri)
        return {
            "status": "ok",
            **anchor.to_dict(),
            "serviceCardURI": card_uri,
            "matchesServiceCardURI": anchor.agent_uri == card_uri if card_uri else None,
        }

    async def fetch_agent_card(
        self,
        agent_id: int,
        registry_override: str | None = None,
    ) -> dict[str, Any]:
        """Resolve *agent_id* and download the agent card at its URI.

        Only ``http`` and ``https`` URIs are fetched; anything else is
        reported in the ``error`` field without a request.
        """
        anchor = await self.resolve_agent(agent_id, registry_override)
        uri = anchor.agent_uri
        if not uri.startswith(("http://", "https://")):
            return {
                "agent": anchor.to_dict(),
                "error": f"Unsupported agentURI scheme (only http/https): {uri}",
            }
        card = await get_json(uri, client=self._http, timeout=self._timeout)
        return {"agent": anchor.to_dict(), "agentCard": card}
