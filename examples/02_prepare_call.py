# /// script
# requires-python = ">=3.12"
# dependencies = ["prxs-mesh"]
# ///
"""02 — Prepare Call: Turn a service call into an approval-gated command.

Demonstrates resolving a service case-insensitively, shaping named
arguments into the positional payload, and printing the command for both
shell dialects. Nothing is executed.

    uv run examples/02_prepare_call.py MathOracle a=2 b=3
"""

import asyncio
import sys

from prxs_mesh import MeshPlugin, TargetShell, format_command


async def main():
    service = sys.argv[1] if len(sys.argv) > 1 else "MathOracle"
    args = dict(arg.split("=", 1) for arg in sys.argv[2:] if "=" in arg)

    async with MeshPlugin.from_config({"autoSyncTools": False}) as plugin:
        prepared = await plugin.planner.prepare_call(service, args)

    print(f"Service:   {prepared.service.name}")
    print(f"Bootstrap: {prepared.bootstrap}")
    print(f"Argv:      {list(prepared.argv)}\n")
    print(f"POSIX:     {format_command(prepared.argv, TargetShell.POSIX)}")
    print(f"Windows:   {format_command(prepared.argv, TargetShell.WINDOWS)}")
    print(f"\nExec request: {prepared.exec.to_dict()}")


if __name__ == "__main__":
    asyncio.run(main())
