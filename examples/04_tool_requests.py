# /// script
# requires-python = ">=3.12"
# dependencies = ["prxs-mesh"]
# ///
"""04 — Tool Requests: Drive prxs-mesh the way an agent host does.

Demonstrates syncing per-service tools, listing them, and routing
``tools/call`` requests through ``handle_tool_request``.

    uv run examples/04_tool_requests.py
"""

import asyncio
import json
import logging

from prxs_mesh import MeshPlugin
from prxs_mesh.tools import handle_tool_request


async def main():
    logging.basicConfig(level=logging.INFO)
    async with MeshPlugin() as plugin:
        await plugin.start()

        listing = await handle_tool_request(plugin.tools, {"method": "tools/list"})
        print(f"{len(listing['tools'])} tools registered:")
        for tool in listing["tools"]:
            print(f"  {tool['name']}")

        print("\n--- prxs_prepare_call ---")
        response = await handle_tool_request(plugin.tools, {
            "method": "tools/call",
            "params": {"name": "prxs_prepare_call", "arguments": {"serviceName": "MathOracle", "args": {"a": "1"}}},
        })
        if "error" in response:
            print(f"  Error: {response['error']}")
        else:
            print(json.dumps(json.loads(response["content"][0]["text"]), indent=2))


if __name__ == "__main__":
    asyncio.run(main())
