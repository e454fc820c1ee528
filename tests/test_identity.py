"""Tests for prxs_mesh.identity."""

from __future__ import annotations

import json
from typing import Any

import httpx
import pytest

from prxs_mesh.exceptions import ChainError, ConfigurationError, IdentityError
from prxs_mesh.identity import (
    GET_METADATA_SELECTOR,
    OWNER_OF_SELECTOR,
    TOKEN_URI_SELECTOR,
    IdentityResolver,
    normalize_address,
    wallet_from_metadata,
)
from prxs_mesh.types import ServiceCard

RPC_URL = "https://rpc.example"
REGISTRY = "0x" + "Ab" * 20
OWNER = "0x" + "12" * 20
WALLET = "0x" + "34" * 20
AGENT_URI = "https://agents.example/7.json"


def _word(value: int) -> str:
    return format(value, "x").rjust(64, "0")


def _bytes_return(data: bytes) -> str:
    data_hex = data.hex()
    pad = (64 - len(data_hex) % 64) % 64
    return "0x" + _word(0x20) + _word(len(data)) + data_hex + "0" * pad


def _rpc(
    *,
    owner: Any = "0x" + "0" * 24 + OWNER[2:],
    uri: Any = None,
    metadata: Any = None,
    calls: list[dict[str, Any]] | None = None,
    agent_card: Any = None,
) -> httpx.AsyncClient:
    """Fake JSON-RPC node answering by selector.

    A value may be a hex string (``result``) or a dict (``error``).
    """
    uri = _bytes_return(AGENT_URI.encode()) if uri is None else uri
    metadata = _bytes_return(bytes.fromhex(WALLET[2:])) if metadata is None else metadata
    by_selector = {
        OWNER_OF_SELECTOR: owner,
        TOKEN_URI_SELECTOR: uri,
        GET_METADATA_SELECTOR: metadata,
    }

    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "GET":
            if agent_card is None:
                return httpx.Response(404, text="missing")
            return httpx.Response(200, json=agent_card)
        body = json.loads(request.content)
        if calls is not None:
            calls.append(body)
        data = body["params"][0]["data"]
        value = by_selector[data[:10]]
        if isinstance(value, dict):
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "error": value})
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "result": value})

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def _resolver(**kwargs: Any) -> IdentityResolver:
    return IdentityResolver(RPC_URL, REGISTRY, http_client=_rpc(**kwargs))


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class TestNormalizeAddress:
    def test_lowercases(self):
        assert normalize_address(" " + REGISTRY + " ") == REGISTRY.lower()

    @pytest.mark.parametrize("value", ["0x1234", "ab" * 20, "0x" + "zz" * 20])
    def test_invalid(self, value):
        with pytest.raises(ConfigurationError, match="Invalid EVM address"):
            normalize_address(value)


class TestWalletFromMetadata:
    def test_packed_twenty_bytes(self):
        assert wallet_from_metadata(bytes.fromhex(WALLET[2:])) == WALLET

    def test_abi_word(self):
        assert wallet_from_metadata(bytes(12) + bytes.fromhex(WALLET[2:])) == WALLET

    def test_empty_is_absent(self):
        assert wallet_from_metadata(b"") is None

    def test_zero_address_is_absent(self):
        assert wallet_from_metadata(bytes(20)) is None
        assert wallet_from_metadata(bytes(32)) is None

    def test_unexpected_length(self):
        with pytest.raises(IdentityError, match="length"):
            wallet_from_metadata(bytes(5))


# ---------------------------------------------------------------------------
# eth_call
# ---------------------------------------------------------------------------


class TestEthCall:
    @pytest.mark.asyncio
    async def test_request_shape(self):
        calls: list[dict[str, Any]] = []
        resolver = IdentityResolver(RPC_URL, REGISTRY, http_client=_rpc(calls=calls))

        await resolver.eth_call(REGISTRY, OWNER_OF_SELECTOR + _word(1))

        assert calls[0] == {
            "jsonrpc": "2.0",
            "id": 1,
            "method": "eth_call",
            "params": [{"to": REGISTRY, "data": OWNER_OF_SELECTOR + _word(1)}, "latest"],
        }

    @pytest.mark.asyncio
    async def test_rpc_error(self):
        resolver = _resolver(owner={"code": -32000, "message": "execution reverted"})
        with pytest.raises(ChainError, match="execution reverted"):
            await resolver.eth_call(REGISTRY, OWNER_OF_SELECTOR + _word(1))

    @pytest.mark.asyncio
    async def test_rpc_error_without_message(self):
        resolver = _resolver(owner={"code": -32000})
        with pytest.raises(ChainError, match="eth_call failed"):
            await resolver.eth_call(REGISTRY, OWNER_OF_SELECTOR + _word(1))

    @pytest.mark.asyncio
    async def test_non_hex_result(self):
        resolver = _resolver(owner="not-hex")
        with pytest.raises(ChainError, match="Invalid eth_call result"):
            await resolver.eth_call(REGISTRY, OWNER_OF_SELECTOR + _word(1))

    @pytest.mark.asyncio
    async def test_not_configured(self):
        resolver = IdentityResolver(None, REGISTRY)
        assert not resolver.configured
        with pytest.raises(ConfigurationError, match="erc8004RpcUrl"):
            await resolver.eth_call(REGISTRY, "0x")


# ---------------------------------------------------------------------------
# resolve_agent
# ---------------------------------------------------------------------------


class TestResolveAgent:
    @pytest.mark.asyncio
    async def test_full_anchor(self):
        anchor = await _resolver().resolve_agent(7)

        assert anchor.registry == REGISTRY.lower()
        assert anchor.agent_id == 7
        assert anchor.owner == OWNER
        assert anchor.agent_uri == AGENT_URI
        assert anchor.agent_wallet == WALLET
        assert anchor.wallet_error is None

    @pytest.mark.asyncio
    async def test_calldata(self):
        calls: list[dict[str, Any]] = []
        await _resolver(calls=calls).resolve_agent(7)

        data = [c["params"][0]["data"] for c in calls]
        assert data[0] == OWNER_OF_SELECTOR + _word(7)
        assert data[1] == TOKEN_URI_SELECTOR + _word(7)
        assert data[2].startswith(GET_METADATA_SELECTOR + _word(7) + _word(0x40))
        assert all(c["params"][0]["to"] == REGISTRY.lower() for c in calls)

    @pytest.mark.asyncio
    async def test_wallet_failure_is_best_effort(self):
        anchor = await _resolver(metadata={"code": 3, "message": "execution reverted"}).resolve_agent(7)

        assert anchor.owner == OWNER
        assert anchor.agent_wallet is None
        assert anchor.wallet_error == "execution reverted"
        assert anchor.to_dict()["agentWalletError"] == "execution reverted"

    @pytest.mark.asyncio
    async def test_wallet_unset(self):
        anchor = await _resolver(metadata=_bytes_return(b"")).resolve_agent(7)
        assert anchor.agent_wallet is None
        assert anchor.wallet_error is None

    @pytest.mark.asyncio
    async def test_owner_failure_raises(self):
        resolver = _resolver(owner={"message": "ERC721: invalid token ID"})
        with pytest.raises(ChainError, match="invalid token ID"):
            await resolver.resolve_agent(7)

    @pytest.mark.asyncio
    async def test_registry_override(self):
        other = "0x" + "cd" * 20
        calls: list[dict[str, Any]] = []
        await _resolver(calls=calls).resolve_agent(7, other)
        assert calls[0]["params"][0]["to"] == other

    @pytest.mark.asyncio
    @pytest.mark.parametrize("agent_id", [0, -1, True])
    async def test_invalid_agent_id(self, agent_id):
        with pytest.raises(IdentityError, match="positive integer"):
            await _resolver().resolve_agent(agent_id)

    @pytest.mark.asyncio
    async def test_missing_registry(self):
        resolver = IdentityResolver(RPC_URL, None, http_client=_rpc())
        with pytest.raises(ConfigurationError, match="erc8004IdentityRegistry"):
            await resolver.resolve_agent(7)

    @pytest.mark.asyncio
    async def test_missing_rpc_checked_first(self):
        resolver = IdentityResolver(None, None)
        with pytest.raises(ConfigurationError, match="erc8004RpcUrl"):
            await resolver.resolve_agent(7)


# ---------------------------------------------------------------------------
# verify_card / fetch_agent_card
# ---------------------------------------------------------------------------


class TestVerifyCard:
    @pytest.mark.asyncio
    async def test_missing_agent_id(self):
        result = await _resolver().verify_card(ServiceCard(name="Echo"))
        assert result == {"status": "missing_agent_id"}

    @pytest.mark.asyncio
    async def test_matching_uri(self):
        card = ServiceCard(name="MathOracle", agent_id=7, agent_uri=AGENT_URI)
        result = await _resolver().verify_card(card)
        assert result["status"] == "ok"
        assert result["owner"] == OWNER
        assert result["serviceCardURI"] == AGENT_URI
        assert result["matchesServiceCardURI"] is True

    @pytest.mark.asyncio
    async def test_mismatched_uri(self):
        card = ServiceCard(name="MathOracle", agent_id=7, agent_uri="https://evil.example/7.json")
        result = await _resolver().verify_card(card)
        assert result["matchesServiceCardURI"] is False

    @pytest.mark.asyncio
    async def test_card_without_uri(self):
        result = await _resolver().verify_card(ServiceCard(name="MathOracle", agent_id=7))
        assert result["serviceCardURI"] is None
        assert result["matchesServiceCardURI"] is None


class TestFetchAgentCard:
    @pytest.mark.asyncio
    async def test_fetches_http_uri(self):
        resolver = _resolver(agent_card={"name": "Math Agent"})
        result = await resolver.fetch_agent_card(7)
        assert result["agent"]["agentURI"] == AGENT_URI
        assert result["agentCard"] == {"name": "Math Agent"}

    @pytest.mark.asyncio
    async def test_unsupported_scheme(self):
        resolver = _resolver(uri=_bytes_return(b"ipfs://bafy/agent.json"))
        result = await resolver.fetch_agent_card(7)
        assert "agentCard" not in result
        assert result["error"] == "Unsupported agentURI scheme (only http/https): ipfs://bafy/agent.json"
