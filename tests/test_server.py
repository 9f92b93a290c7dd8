"""Tests for the stdio JSON-RPC server."""

import io
import json

import pytest

from compliance_navigator.server import PROTOCOL_VERSION, TOOLS_LIST, ComplianceServer, serve
from compliance_navigator.tools import ComplianceTools


@pytest.fixture
def server(fake_scanners, fake_github):
    return ComplianceServer(ComplianceTools(tracker_factory=fake_github.factory))


def _serve(server, *lines):
    stdout = io.StringIO()
    serve(server, stdin=io.StringIO("".join(line + "\n" for line in lines)), stdout=stdout)
    return [json.loads(line) for line in stdout.getvalue().splitlines()]


class TestHandleRpc:
    """Tests for request routing."""

    def test_initialize(self, server):
        resp = server.handle_rpc({"jsonrpc": "2.0", "id": 1, "method": "initialize"})
        assert resp["id"] == 1
        assert resp["result"]["protocolVersion"] == PROTOCOL_VERSION
        assert resp["result"]["serverInfo"]["name"] == "compliance-navigator"

    def test_notifications_have_no_response(self, server):
        assert server.handle_rpc({"jsonrpc": "2.0", "method": "notifications/initialized"}) is None

    def test_tools_list(self, server):
        resp = server.handle_rpc({"jsonrpc": "2.0", "id": 2, "method": "tools/list"})
        names = [tool["name"] for tool in resp["result"]["tools"]]

        assert names == server.tools.names
        assert all(tool["inputSchema"]["type"] == "object" for tool in TOOLS_LIST)

    def test_tools_call(self, server, repo):
        resp = server.handle_rpc(
            {
                "jsonrpc": "2.0",
                "id": 3,
                "method": "tools/call",
                "params": {"name": "scan_repo", "arguments": {"repoPath": str(repo)}},
            }
        )
        result = resp["result"]

        assert result["isError"] is False
        assert result["structuredContent"]["ok"] is True
        assert json.loads(result["content"][0]["text"]) == result["structuredContent"]

    def test_tools_call_error_envelope(self, server):
        resp = server.handle_rpc(
            {
                "jsonrpc": "2.0",
                "id": 4,
                "method": "tools/call",
                "params": {"name": "scan_repo", "arguments": {"repoPath": "../x"}},
            }
        )
        assert resp["result"]["isError"] is True
        assert resp["result"]["structuredContent"]["error"]["code"] == "E_VALIDATION"

    def test_tools_call_unknown_tool(self, server):
        resp = server.handle_rpc(
            {"jsonrpc": "2.0", "id": 5, "method": "tools/call", "params": {"name": "shell"}}
        )
        assert resp["error"]["code"] == -32602

    def test_direct_method(self, server, repo):
        resp = server.handle_rpc(
            {"jsonrpc": "2.0", "id": 6, "method": "verify_audit_chain", "params": {"repoPath": str(repo)}}
        )
        assert resp["result"] == {
            "ok": True,
            "result": {
                "pass": True,
                "totalEntries": 0,
                "logPath": str(repo / ".compliance" / "audit" / "audit-chain.jsonl"),
            },
        }

    def test_invalid_params(self, server):
        resp = server.handle_rpc({"jsonrpc": "2.0", "id": 7, "method": "tools/call", "params": [1]})
        assert resp["error"]["code"] == -32602

    def test_unknown_method(self, server):
        resp = server.handle_rpc({"jsonrpc": "2.0", "id": 8, "method": "resources/list"})
        assert resp["error"]["code"] == -32601


class TestServe:
    """Tests for the line-delimited stdio loop."""

    def test_one_response_per_request(self, server):
        responses = _serve(
            server,
            json.dumps({"jsonrpc": "2.0", "id": 1, "method": "initialize"}),
            json.dumps({"jsonrpc": "2.0", "method": "notifications/initialized"}),
            "",
            json.dumps({"jsonrpc": "2.0", "id": 2, "method": "tools/list"}),
        )
        assert [r["id"] for r in responses] == [1, 2]

    def test_parse_error(self, server):
        responses = _serve(server, "{not json")
        assert responses == [
            {"jsonrpc": "2.0", "id": None, "error": {"code": -32700, "message": "Parse error"}}
        ]

    def test_non_object_request(self, server):
        responses = _serve(server, "[1, 2]")
        assert responses[0]["error"]["code"] == -32600

    def test_loop_survives_bad_lines(self, server):
        responses = _serve(
            server, "{bad", json.dumps({"jsonrpc": "2.0", "id": 9, "method": "tools/list"})
        )
        assert responses[1]["id"] == 9
