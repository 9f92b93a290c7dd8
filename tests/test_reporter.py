"""Tests for report generators."""

import json

import pytest

from compliance_navigator.compliance import ComplianceMapper
from compliance_navigator.models import SCANNER_MISSING_TAG, Finding, Severity, count_by_severity
from compliance_navigator.reporter import JSONReporter, TableReporter, create_reporter
from compliance_navigator.roi import calculate_roi

from conftest import make_finding, make_manifest


@pytest.fixture
def sample_result():
    """A scan_repo result with one secret, one IaC finding and a missing scanner."""
    missing = Finding(
        id="missing-npm_audit",
        scanner="npm_audit",
        severity=Severity.INFO,
        title="npm audit not available",
        tags=frozenset({SCANNER_MISSING_TAG}),
    )
    findings = [
        make_finding("f1", location="config/settings.py:3"),
        make_finding("f2", scanner="checkov", severity=Severity.MEDIUM, rule_id="CKV_AWS_24", location="/main.tf:1"),
        missing,
    ]
    manifest = make_manifest(findings)
    return {
        "runId": manifest.run_id,
        "framework": manifest.framework,
        "findings": [f.to_dict() for f in manifest.findings],
        "countsBySeverity": {"actionable": count_by_severity(manifest.real_findings)},
        "controlCoverage": ComplianceMapper().map_coverage(manifest).to_dict(),
        "roiEstimate": calculate_roi(manifest).to_dict(),
        "scannerStatuses": [s.to_dict() for s in manifest.scanner_statuses],
    }


class TestJSONReporter:
    """Tests for JSONReporter."""

    def test_generate_returns_valid_json(self, sample_result):
        output = JSONReporter().generate(sample_result)
        data = json.loads(output)
        assert data["runId"] == sample_result["runId"]
        assert len(data["findings"]) == 3

    def test_generate_with_custom_indent(self, sample_result):
        output = JSONReporter(indent=4).generate({"runId": "r1"})
        assert output == '{\n    "runId": "r1"\n}'


class TestTableReporter:
    """Tests for TableReporter."""

    def test_generate_includes_summary(self, sample_result):
        output = TableReporter().generate(sample_result)
        assert "Compliance Scan Summary" in output
        assert "Total Findings: 2" in output
        assert "Framework: SOC2" in output

    def test_generate_includes_tables(self, sample_result):
        output = TableReporter().generate(sample_result)
        assert "Scanners" in output
        assert "Findings" in output
        assert "CKV_AWS_24" in output
        assert "Control Coverage" in output

    def test_missing_scanner_rows_excluded(self, sample_result):
        output = TableReporter().generate(sample_result)
        assert "npm audit not available" not in output

    def test_max_findings(self, sample_result):
        output = TableReporter(max_findings=1).generate(sample_result)
        assert "... and 1 more" in output

    def test_generate_empty_result(self):
        output = TableReporter().generate({"runId": "r1", "framework": "soc2"})
        assert "Total Findings: 0" in output


class TestCreateReporter:
    """Tests for create_reporter factory."""

    def test_create_json_reporter(self):
        assert isinstance(create_reporter("json"), JSONReporter)

    def test_create_table_reporter(self):
        reporter = create_reporter("table", show_details=False)
        assert isinstance(reporter, TableReporter)
        assert reporter.show_details is False

    def test_create_invalid_format(self):
        with pytest.raises(ValueError, match="Unsupported format"):
            create_reporter("sarif")
