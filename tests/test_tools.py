"""Tests for the tool handlers and their envelopes."""

import shutil
import zipfile
from unittest.mock import patch

import pytest

from compliance_navigator.policy import RiskTier, get_tool_risk
from compliance_navigator.tools import ComplianceTools


@pytest.fixture
def tools(fake_scanners, fake_github):
    return ComplianceTools(tracker_factory=fake_github.factory)


def _result(envelope):
    assert envelope["ok"] is True, envelope
    return envelope["result"]


def _error(envelope):
    assert envelope["ok"] is False, envelope
    return envelope["error"]


def _audit_actions(tools, repo):
    return [e.action for e in tools._audit_log(repo).entries()]


class TestScanRepo:
    """Tests for scan_repo."""

    def test_fixture_scan(self, tools, repo):
        result = _result(tools.call("scan_repo", {"repoPath": str(repo)}))

        categories = {f["category"] for f in result["findings"]}
        assert len(result["findings"]) >= 2
        assert {"secret", "misconfiguration"} <= categories
        assert result["framework"] == "soc2"
        assert result["countsByScanner"] == {"gitleaks": 1, "npm_audit": 2, "checkov": 2}
        assert result["countsBySeverity"]["actionable"]["high"] == 3
        assert result["controlCoverage"]["coveragePct"] > 0
        assert result["roiEstimate"]["hoursSavedConservative"] > 0
        assert "hipaaCoverageDetail" not in result

    def test_manifest_and_audit_entry(self, tools, repo):
        result = _result(tools.call("scan_repo", {"repoPath": str(repo)}))

        assert result["manifestPath"].endswith("manifest.json")
        entry = tools._audit_log(repo).entries()[-1]
        assert entry.action == "scan_completed"
        assert entry.payload["runId"] == result["runId"]
        assert len(entry.payload["manifestSha256"]) == 64

    def test_hipaa_detail(self, tools, repo):
        result = _result(tools.call("scan_repo", {"repoPath": str(repo), "framework": "hipaa"}))

        detail = result["hipaaCoverageDetail"]
        assert detail["technical"]["totalControls"] == 12
        assert detail["administrative"]["total"] == 7

    def test_missing_scanners_do_not_fail(self, tools, repo, fake_scanners):
        fake_scanners.missing.update({"gitleaks", "npm", "checkov"})
        result = _result(tools.call("scan_repo", {"repoPath": str(repo)}))

        assert all(s["status"] == "missing" for s in result["scannerStatuses"])
        assert result["countsBySeverity"]["actionable"] == {
            "critical": 0,
            "high": 0,
            "medium": 0,
            "low": 0,
            "info": 0,
        }
        assert result["controlCoverage"]["coveragePct"] == 0

    def test_unexpected_scanner_output_does_not_fail(self, tools, repo, fake_scanners):
        fake_scanners.checkov = {"results": {"failed_checks": ["oops"]}}
        fake_scanners.npm_audit = {"vulnerabilities": ["x"]}
        result = _result(tools.call("scan_repo", {"repoPath": str(repo)}))

        assert result["countsByScanner"] == {"gitleaks": 1}
        statuses = {s["scanner"]: s["status"] for s in result["scannerStatuses"]}
        assert statuses == {"gitleaks": "ok", "npm_audit": "ok", "checkov": "ok"}

    def test_repo_path_with_metacharacters(self, tools, repo, tmp_path):
        copy = tmp_path / "widgets (copy)"
        shutil.copytree(repo, copy)
        result = _result(tools.call("scan_repo", {"repoPath": str(copy)}))

        assert len(result["findings"]) == 5
        assert (copy / ".compliance" / "runs" / result["runId"] / "manifest.json").is_file()

    @pytest.mark.parametrize("repo_path", [None, "", "../etc", "/definitely/not/here"])
    def test_invalid_repo_path(self, tools, repo_path):
        assert _error(tools.call("scan_repo", {"repoPath": repo_path}))["code"] == "E_VALIDATION"

    def test_unknown_framework(self, tools, repo):
        error = _error(tools.call("scan_repo", {"repoPath": str(repo), "framework": "pci"}))
        assert error["code"] == "E_VALIDATION"
        assert _audit_actions(tools, repo) == ["tool_error"]


class TestRunTools:
    """Tests for tools addressing an existing run."""

    @pytest.fixture
    def run_id(self, tools, repo):
        return _result(tools.call("scan_repo", {"repoPath": str(repo)}))["runId"]

    def test_generate_audit_packet(self, tools, repo, run_id):
        result = _result(tools.call("generate_audit_packet", {"repoPath": str(repo), "runId": run_id}))

        assert result["runId"] == run_id
        assert "index.md" in result["files"]
        assert "evidence/gitleaks.json" in result["files"]
        assert _audit_actions(tools, repo)[-1] == "audit_packet_generated"

    def test_unknown_run(self, tools, repo):
        error = _error(tools.call("generate_audit_packet", {"repoPath": str(repo), "runId": "nope-1"}))
        assert error["code"] == "E_RUN_NOT_FOUND"

    @pytest.mark.parametrize("run_id", ["../x", "a/b", "", "..", "x" * 65])
    def test_invalid_run_id(self, tools, repo, run_id):
        error = _error(tools.call("generate_audit_packet", {"repoPath": str(repo), "runId": run_id}))
        assert error["code"] == "E_VALIDATION"

    def test_plan_remediation(self, tools, repo, run_id):
        result = _result(
            tools.call("plan_remediation", {"repoPath": str(repo), "runId": run_id, "maxItems": 2})
        )

        assert result["totalSteps"] == 2
        assert result["steps"][0]["stepId"] == "REM-1"
        assert result["estimatedHours"] > 0
        assert _audit_actions(tools, repo)[-1] == "remediation_planned"

    def test_plan_remediation_bounds(self, tools, repo, run_id):
        for max_items in (0, 1001, True, "5"):
            error = _error(
                tools.call(
                    "plan_remediation", {"repoPath": str(repo), "runId": run_id, "maxItems": max_items}
                )
            )
            assert error["code"] == "E_VALIDATION"

    def test_export(self, tools, repo, run_id):
        tools.call("generate_audit_packet", {"repoPath": str(repo), "runId": run_id})
        result = _result(tools.call("export_audit_packet", {"repoPath": str(repo), "runId": run_id}))

        assert zipfile.is_zipfile(result["zipPath"])
        assert result["bytes"] == result["sizeBytes"]
        assert result["includesEvidence"] is True
        assert len(result["sha256"]) == 64
        assert _audit_actions(tools, repo)[-1] == "audit_packet_exported"

    def test_export_without_packet(self, tools, repo, run_id):
        error = _error(tools.call("export_audit_packet", {"repoPath": str(repo), "runId": run_id}))

        assert error["code"] == "E_PACKET_NOT_FOUND"
        assert not (repo / ".compliance" / "exports").exists()


class TestTicketTools:
    """Tests for the dry-run, approve, execute flow through the tools."""

    @pytest.fixture
    def run_id(self, tools, repo):
        return _result(tools.call("scan_repo", {"repoPath": str(repo)}))["runId"]

    def _params(self, repo, run_id, **extra):
        return {"repoPath": str(repo), "runId": run_id, **extra}

    def test_full_flow(self, tools, repo, run_id, fake_github):
        dry = _result(tools.call("create_tickets", self._params(repo, run_id)))
        assert dry["dryRun"] is True
        assert dry["repoFullName"] == "acme/widgets"
        assert fake_github.requests == []

        approval = _result(
            tools.call(
                "approve_ticket_plan",
                {"repoPath": str(repo), "planId": dry["planId"], "approvedBy": "alice"},
            )
        )
        assert approval["approval"]["planHash"] == dry["planHash"]

        executed = _result(
            tools.call(
                "create_tickets",
                self._params(repo, run_id, dryRun=False, approvedPlanId=dry["planId"]),
            )
        )
        assert executed["dryRun"] is False
        assert executed["summary"]["created"] == 5
        assert len(fake_github.issues) == 5

        again = _error(
            tools.call(
                "create_tickets",
                self._params(repo, run_id, dryRun=False, approvedPlanId=dry["planId"]),
            )
        )
        assert again["code"] == "E_PLAN_ALREADY_EXECUTED"

    def test_execute_without_approval(self, tools, repo, run_id, fake_github):
        dry = _result(tools.call("create_tickets", self._params(repo, run_id)))
        error = _error(
            tools.call(
                "create_tickets",
                self._params(repo, run_id, dryRun=False, approvedPlanId=dry["planId"]),
            )
        )
        assert error["code"] == "E_APPROVAL_REQUIRED"
        assert fake_github.requests == []

    def test_retargeted_execution_refused(self, tools, repo, run_id, fake_github):
        dry = _result(tools.call("create_tickets", self._params(repo, run_id)))
        tools.call(
            "approve_ticket_plan", {"repoPath": str(repo), "planId": dry["planId"], "approvedBy": "alice"}
        )
        error = _error(
            tools.call(
                "create_tickets",
                self._params(
                    repo, run_id, dryRun=False, approvedPlanId=dry["planId"], targetRepo="evil/repo"
                ),
            )
        )

        assert error["code"] == "E_PLAN_HASH_MISMATCH"
        assert fake_github.requests == []

    @pytest.mark.parametrize(
        "extra",
        [
            {"dryRun": False},
            {"dryRun": True, "approvedPlanId": "abcdef123456"},
            {"target": "linear"},
            {"maxItems": 101},
            {"labelPolicy": "whatever"},
            {"dryRun": "no"},
        ],
    )
    def test_request_validation(self, tools, repo, run_id, extra):
        error = _error(tools.call("create_tickets", self._params(repo, run_id, **extra)))
        assert error["code"] == "E_VALIDATION"

    def test_approve_requires_approver(self, tools, repo, run_id):
        dry = _result(tools.call("create_tickets", self._params(repo, run_id)))
        error = _error(
            tools.call("approve_ticket_plan", {"repoPath": str(repo), "planId": dry["planId"], "approvedBy": " "})
        )
        assert error["code"] == "E_VALIDATION"


class TestVerifyAuditChain:
    """Tests for verify_audit_chain."""

    def test_empty_repo_passes(self, tools, repo):
        result = _result(tools.call("verify_audit_chain", {"repoPath": str(repo)}))
        assert result["pass"] is True
        assert result["totalEntries"] == 0

    def test_verify_does_not_append(self, tools, repo):
        tools.call("scan_repo", {"repoPath": str(repo)})
        first = _result(tools.call("verify_audit_chain", {"repoPath": str(repo)}))
        second = _result(tools.call("verify_audit_chain", {"repoPath": str(repo)}))

        assert first["pass"] is True
        assert first["totalEntries"] == second["totalEntries"] == 1

    def test_tamper_detected(self, tools, repo):
        tools.call("scan_repo", {"repoPath": str(repo)})
        tools.call("scan_repo", {"repoPath": str(repo)})
        log_path = tools._audit_log(repo).log_path
        lines = log_path.read_text().splitlines()
        lines[1] = lines[1].replace('"scan_completed"', '"scan_deleted"')
        log_path.write_text("\n".join(lines) + "\n")

        result = _result(tools.call("verify_audit_chain", {"repoPath": str(repo)}))
        assert result["pass"] is False
        assert result["firstBrokenLine"] == 2

    def test_invalid_utf8_reported_as_break(self, tools, repo):
        tools.call("scan_repo", {"repoPath": str(repo)})
        tools.call("scan_repo", {"repoPath": str(repo)})
        log_path = tools._audit_log(repo).log_path
        data = bytearray(log_path.read_bytes())
        data[data.index(b"scan_completed")] = 0xFF
        log_path.write_bytes(bytes(data))

        result = _result(tools.call("verify_audit_chain", {"repoPath": str(repo)}))

        assert result["pass"] is False
        assert result["firstBrokenLine"] == 1
        assert result["reason"] == "invalid UTF-8"
        assert log_path.read_bytes() == bytes(data)

    def test_failure_is_not_recorded_in_log(self, tools, repo):
        tools.call("scan_repo", {"repoPath": str(repo)})

        def explode(params):
            raise RuntimeError("boom")

        with patch.dict(tools.handlers, {"verify_audit_chain": explode}):
            error = _error(tools.call("verify_audit_chain", {"repoPath": str(repo)}))

        assert error["code"] == "E_INTERNAL"
        assert _audit_actions(tools, repo) == ["scan_completed"]


class TestDispatch:
    """Tests for envelope handling and unsupported tools."""

    def test_names(self, tools):
        assert len(tools.names) == 9

    def test_unknown_tool(self, tools):
        assert _error(tools.call("rm_rf", {}))["code"] == "E_VALIDATION"

    def test_non_object_arguments(self, tools):
        assert _error(tools.call("scan_repo", ["a"]))["code"] == "E_VALIDATION"

    @pytest.mark.parametrize("name", ["create_demo_fixture", "open_dashboard"])
    def test_external_tools(self, tools, name):
        assert _error(tools.call(name, {}))["code"] == "E_EXTERNAL"

    def test_internal_error_is_enveloped(self, tools, repo):
        def explode(params):
            raise RuntimeError("boom")

        with patch.dict(tools.handlers, {"plan_remediation": explode}):
            error = _error(tools.call("plan_remediation", {"repoPath": str(repo)}))

        assert error["code"] == "E_INTERNAL"
        assert _audit_actions(tools, repo) == ["tool_error"]

    def test_risk_tiers(self):
        assert get_tool_risk("create_tickets") is RiskTier.HIGH
        assert get_tool_risk("verify_audit_chain") is RiskTier.LOW
        assert get_tool_risk("unknown") is RiskTier.HIGH
