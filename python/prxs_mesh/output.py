"""Parse the node binary's stdout after the host has run a prepared call."""

from __future__ import annotations

import json
from typing import Any

RESULT_MARKER = "--- RESULT ---"
RESULT_END = "--------------"


def extract_result_block(stdout: str) -> str:
    """Return the text between the result marker and the closing rule.

    Falls back to the whole (trimmed) output when no marker is present.
    """
    idx = stdout.find(RESULT_MARKER)
    if idx == -1:
        return stdout.strip()
    after = stdout[idx + len(RESULT_MARKER):]
    end = after.find(RESULT_END)
    block = after if end == -1 else after[:end]
    return block.strip()


def parse_node_output(stdout: str) -> dict[str, Any]:
    """Extract the result block, JSON-decoding it when possible."""
    block = extract_result_block(stdout)
    try:
        return {"result": json.loads(block)}
    except json.JSONDecodeError:
        return {"result": block}
