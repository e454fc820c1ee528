# /// script
# requires-python = ">=3.12"
# dependencies = ["prxs-mesh"]
# ///
"""01 — List Services: Browse a PRXS registry.

Demonstrates fetching registry info, listing services with their inputs,
running a name search, and resolving the bootstrap multiaddr.

    PRXS_REGISTRY_URL=http://localhost:8080 uv run examples/01_list_services.py
"""

import asyncio
import os

from prxs_mesh import PrxsError, RegistryClient


async def main():
    registry = RegistryClient(os.environ.get("PRXS_REGISTRY_URL", "http://localhost:8080"))
    print(f"Registry API: {registry.base_url}\n")

    services = await registry.get_services()
    print(f"Registry lists {len(services)} services:\n")
    for name, svc in services.items():
        inputs = ", ".join(svc.card.inputs) or "-"
        print(f"  {name:20s}  inputs: {inputs:20s}  providers: {len(svc.providers)}")

    print("\n--- Search: 'math' ---")
    result = await registry.search_services("math")
    print(f"  {result}")

    print("\n--- Bootstrap ---")
    try:
        print(f"  {await registry.resolve_bootstrap()}")
    except PrxsError as exc:
        print(f"  Could not resolve: {exc}")


if __name__ == "__main__":
    asyncio.run(main())
