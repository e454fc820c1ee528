# /// script
# requires-python = ">=3.12"
# dependencies = ["prxs-mesh"]
# ///
"""03 — Verify Identity: Check a service's ERC-8004 anchor on-chain.

Demonstrates reading owner, agent URI and wallet for a service card's
agent id, and comparing the on-chain URI with the one the card claims.

    ERC8004_RPC_URL=https://rpc.sepolia.org \\
    ERC8004_IDENTITY_REGISTRY=0x... \\
    uv run examples/03_verify_identity.py MathOracle
"""

import asyncio
import json
import os
import sys

from prxs_mesh import MeshPlugin


async def main():
    service = sys.argv[1] if len(sys.argv) > 1 else "MathOracle"
    config = {
        "autoSyncTools": False,
        "erc8004RpcUrl": os.environ.get("ERC8004_RPC_URL", ""),
        "erc8004IdentityRegistry": os.environ.get("ERC8004_IDENTITY_REGISTRY", ""),
    }

    async with MeshPlugin.from_config(config) as plugin:
        svc = await plugin.registry.resolve_service(service)
        result = await plugin.identity.verify_card(svc.card)

    print(json.dumps(result, indent=2))
    if result.get("matchesServiceCardURI") is False:
        print("\nWARNING: agent URI on-chain does not match the service card")


if __name__ == "__main__":
    asyncio.run(main())
