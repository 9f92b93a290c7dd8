"""Compliance Navigator server: stdio JSON-RPC 2.0 loop.

Only protocol frames are written to stdout; diagnostics go to stderr
through logging.
"""

import json
import logging
import sys
from typing import Any, Optional, TextIO

from compliance_navigator import __version__
from compliance_navigator.tools import ComplianceTools

logger = logging.getLogger(__name__)

PROTOCOL_VERSION = "2024-11-05"

_REPO = {"repoPath": {"type": "string", "description": "Absolute path to the repository"}}
_RUN = {**_REPO, "runId": {"type": "string", "pattern": "^[A-Za-z0-9._-]{1,64}$"}}

TOOLS_LIST: list[dict[str, Any]] = [
    {
        "name": "scan_repo",
        "description": (
            "Run gitleaks, npm audit and checkov against a repository, map findings to "
            "SOC2-lite or HIPAA controls and persist a run manifest."
        ),
        "inputSchema": {
            "type": "object",
            "properties": {**_REPO, "framework": {"type": "string", "enum": ["soc2", "hipaa"]}},
            "required": ["repoPath"],
            "additionalProperties": False,
        },
        "annotations": {"readOnlyHint": False},
    },
    {
        "name": "generate_audit_packet",
        "description": "Write the audit packet (index.md, findings, coverage, ROI, evidence) for a run.",
        "inputSchema": {
            "type": "object",
            "properties": _RUN,
            "required": ["repoPath", "runId"],
            "additionalProperties": False,
        },
        "annotations": {"readOnlyHint": False},
    },
    {
        "name": "plan_remediation",
        "description": "Group a run's findings into ordered remediation steps with effort estimates.",
        "inputSchema": {
            "type": "object",
            "properties": {**_RUN, "maxItems": {"type": "integer", "minimum": 1}},
            "required": ["repoPath", "runId"],
            "additionalProperties": False,
        },
        "annotations": {"readOnlyHint": False},
    },
    {
        "name": "create_tickets",
        "description": (
            "Plan remediation tickets (dryRun=true, default) or execute an approved plan "
            "(dryRun=false with approvedPlanId). Execution is refused when the plan changed "
            "or targets a different repository than the one approved."
        ),
        "inputSchema": {
            "type": "object",
            "properties": {
                **_RUN,
                "target": {"type": "string", "enum": ["github", "jira"]},
                "maxItems": {"type": "integer", "minimum": 1, "maximum": 100},
                "dryRun": {"type": "boolean"},
                "approvedPlanId": {"type": "string", "pattern": "^[A-Za-z0-9._-]{6,64}$"},
                "targetRepo": {"type": "string"},
                "reopenClosed": {"type": "boolean"},
                "labelPolicy": {"type": "string", "enum": ["require-existing", "create-if-missing"]},
            },
            "required": ["repoPath", "runId"],
            "additionalProperties": False,
        },
        "annotations": {"readOnlyHint": False, "destructiveHint": False},
    },
    {
        "name": "approve_ticket_plan",
        "description": "Record human approval of a pending ticket plan.",
        "inputSchema": {
            "type": "object",
            "properties": {
                **_REPO,
                "planId": {"type": "string", "pattern": "^[A-Za-z0-9._-]{6,64}$"},
                "approvedBy": {"type": "string"},
                "reason": {"type": "string"},
            },
            "required": ["repoPath", "planId", "approvedBy"],
            "additionalProperties": False,
        },
        "annotations": {"readOnlyHint": False},
    },
    {
        "name": "verify_audit_chain",
        "description": "Verify the hash chain of the repository's audit log.",
        "inputSchema": {
            "type": "object",
            "properties": _REPO,
            "required": ["repoPath"],
            "additionalProperties": False,
        },
        "annotations": {"readOnlyHint": True},
    },
    {
        "name": "export_audit_packet",
        "description": "Package a run's audit packet into a ZIP archive and report its SHA-256.",
        "inputSchema": {
            "type": "object",
            "properties": {**_RUN, "includeEvidence": {"type": "boolean"}},
            "required": ["repoPath", "runId"],
            "additionalProperties": False,
        },
        "annotations": {"readOnlyHint": False},
    },
    {
        "name": "create_demo_fixture",
        "description": "Provided by the external fixture generator.",
        "inputSchema": {"type": "object", "properties": _REPO, "additionalProperties": True},
        "annotations": {"readOnlyHint": False},
    },
    {
        "name": "open_dashboard",
        "description": "Provided by the external dashboard application.",
        "inputSchema": {"type": "object", "properties": _REPO, "additionalProperties": True},
        "annotations": {"readOnlyHint": True},
    },
]


class ComplianceServer:
    """Tool routing over stdio JSON-RPC."""

    def __init__(self, tools: Optional[ComplianceTools] = None) -> None:
        self.tools = tools or ComplianceTools()

    def handle_rpc(self, req: dict[str, Any]) -> Optional[dict[str, Any]]:
        """Route a single JSON-RPC request.

        Returns:
            The response frame, or ``None`` for notifications.
        """
        rpc_id = req.get("id")
        method = req.get("method", "")
        params = req.get("params") or {}
        if not isinstance(params, dict):
            return self._rpc_error(rpc_id, -32602, "Invalid params: expected an object")

        if method == "initialize":
            return self._rpc_ok(
                rpc_id,
                {
                    "protocolVersion": PROTOCOL_VERSION,
                    "serverInfo": {"name": "compliance-navigator", "version": __version__},
                    "capabilities": {"tools": {}},
                },
            )
        if method.startswith("notifications/"):
            return None
        if method == "tools/list":
            return self._rpc_ok(rpc_id, {"tools": TOOLS_LIST})

        if method == "tools/call":
            name = params.get("name", "")
            if name not in self.tools.handlers:
                return self._rpc_error(rpc_id, -32602, f"Unknown tool: {name}")
            envelope = self.tools.call(name, params.get("arguments"))
            return self._rpc_ok(
                rpc_id,
                {
                    "content": [{"type": "text", "text": json.dumps(envelope)}],
                    "structuredContent": envelope,
                    "isError": not envelope["ok"],
                },
            )

        if method in self.tools.handlers:
            return self._rpc_ok(rpc_id, self.tools.call(method, params))

        return self._rpc_error(rpc_id, -32601, f"Method not found: {method}")

    def _rpc_ok(self, rpc_id: Any, result: Any) -> dict[str, Any]:
        return {"jsonrpc": "2.0", "id": rpc_id, "result": result}

    def _rpc_error(self, rpc_id: Any, code: int, message: str) -> dict[str, Any]:
        return {"jsonrpc": "2.0", "id": rpc_id, "error": {"code": code, "message": message}}


def serve(
    server: Optional[ComplianceServer] = None,
    stdin: TextIO = sys.stdin,
    stdout: TextIO = sys.stdout,
) -> None:
    """Read one JSON request per line and write one response per line."""
    server = server or ComplianceServer()
    logger.info("compliance-navigator %s serving on stdio", __version__)

    for line in stdin:
        line = line.strip()
        if not line:
            continue
        try:
            req = json.loads(line)
        except json.JSONDecodeError:
            resp: Optional[dict[str, Any]] = {
                "jsonrpc": "2.0",
                "id": None,
                "error": {"code": -32700, "message": "Parse error"},
            }
        else:
            if not isinstance(req, dict):
                resp = server._rpc_error(None, -32600, "Invalid Request")
            else:
                resp = server.handle_rpc(req)

        if resp is not None:
            stdout.write(json.dumps(resp) + "\n")
            stdout.flush()
