"""Tests for prxs_mesh.output."""

from __future__ import annotations

from prxs_mesh.output import extract_result_block, parse_node_output

NODE_STDOUT = """\
[node] dialing bootstrap...
[node] found 1 provider
--- RESULT ---
{"sum": 3}
--------------
[node] done
"""


class TestExtractResultBlock:
    def test_marker_block(self):
        assert extract_result_block(NODE_STDOUT) == '{"sum": 3}'

    def test_no_closing_rule(self):
        assert extract_result_block("--- RESULT ---\n42\n") == "42"

    def test_no_marker(self):
        assert extract_result_block("  just text \n") == "just text"


class TestParseNodeOutput:
    def test_json_result(self):
        assert parse_node_output(NODE_STDOUT) == {"result": {"sum": 3}}

    def test_text_result(self):
        assert parse_node_output("--- RESULT ---\nhello\n--------------") == {"result": "hello"}

    def test_empty(self):
        assert parse_node_output("") == {"result": ""}
