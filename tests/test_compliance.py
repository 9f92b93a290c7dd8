"""Tests for the compliance mapping module."""

import dataclasses
import random

import pytest

from compliance_navigator.compliance import (
    ComplianceControl,
    ComplianceFramework,
    ComplianceMapper,
    SafeguardType,
)
from compliance_navigator.models import SCANNER_MISSING_TAG, Finding, ScannerState, ScannerStatus, Severity

from conftest import make_finding, make_manifest


class TestComplianceFramework:
    """Tests for ComplianceFramework enum."""

    def test_framework_values(self):
        assert [f.value for f in ComplianceFramework] == ["soc2", "hipaa"]

    @pytest.mark.parametrize("value", ["soc2", "SOC2", "soc-2", "soc_2"])
    def test_parse_variants(self, value):
        assert ComplianceFramework.parse(value) is ComplianceFramework.SOC2

    def test_parse_unknown(self):
        with pytest.raises(ValueError):
            ComplianceFramework.parse("pci-dss")


class TestControlTables:
    """Tests for the static control tables."""

    @pytest.fixture
    def mapper(self):
        return ComplianceMapper()

    def test_soc2_has_twenty_controls(self, mapper):
        controls = mapper.get_controls(ComplianceFramework.SOC2)
        assert len(controls) == 20
        assert len({c.control_id for c in controls}) == 20
        assert all(isinstance(c, ComplianceControl) for c in controls)

    def test_hipaa_axes(self, mapper):
        technical = mapper.get_controls(ComplianceFramework.HIPAA)
        administrative = mapper.get_administrative_controls(ComplianceFramework.HIPAA)

        assert len(technical) == 12
        assert len(administrative) == 7
        assert all(c.safeguard == SafeguardType.ADMINISTRATIVE for c in administrative)
        assert all(c.requires_human_evidence for c in administrative)
        assert all(not c.scanner_mappings for c in administrative)

    def test_get_mapping_for_rule(self, mapper):
        mapping = mapper.get_mapping("CKV_AWS_19")
        ids = {(c.framework, c.control_id) for c in mapping.controls}
        assert (ComplianceFramework.SOC2, "CC6.1") in ids

    def test_get_mapping_unknown_rule(self, mapper):
        assert mapper.get_mapping("NOT_A_RULE").controls == []


class TestControlsFor:
    """Tests for finding-to-control mapping."""

    def test_secret_maps_to_access_controls(self):
        finding = make_finding("f1")
        assert "CC6.1" in finding.controls["soc2"]
        assert "C1.1" in finding.controls["soc2"]

    def test_controls_are_in_table_order(self):
        mapper = ComplianceMapper()
        finding = make_finding("f1")
        table = [c.control_id for c in mapper.get_controls(ComplianceFramework.SOC2)]
        ids = list(finding.controls["soc2"])
        assert ids == sorted(ids, key=table.index)

    def test_synthetic_finding_has_no_controls(self):
        finding = Finding(
            id="missing-gitleaks",
            scanner="gitleaks",
            severity=Severity.INFO,
            title="Gitleaks not available",
            tags=frozenset({SCANNER_MISSING_TAG}),
        )
        assert ComplianceMapper().controls_for(finding) == {}

    def test_administrative_controls_never_mapped(self):
        mapper = ComplianceMapper()
        admin_ids = {c.control_id for c in mapper.get_administrative_controls(ComplianceFramework.HIPAA)}
        for scanner, rule in [("gitleaks", "aws"), ("npm_audit", "lodash"), ("checkov", "CKV_AWS_24")]:
            finding = make_finding("x", scanner=scanner, rule_id=rule)
            assert not admin_ids & set(finding.controls["hipaa"])


class TestMapCoverage:
    """Tests for coverage computation."""

    @pytest.fixture
    def mapper(self):
        return ComplianceMapper()

    def test_empty_manifest_is_zero(self, mapper):
        coverage = mapper.map_coverage(make_manifest([]))

        assert coverage.coverage_pct == 0
        assert coverage.covered_controls == ()
        assert len(coverage.missing_controls) == 20

    def test_only_synthetic_findings_is_zero(self, mapper):
        synthetic = Finding(
            id="missing-checkov",
            scanner="checkov",
            severity=Severity.INFO,
            title="Checkov not available",
            controls={"soc2": ("CC6.1",)},
            tags=frozenset({SCANNER_MISSING_TAG}),
        )
        coverage = mapper.map_coverage(make_manifest([synthetic]))
        assert coverage.coverage_pct == 0

    def test_gitleaks_reach(self, mapper):
        coverage = mapper.map_coverage(make_manifest([make_finding("f1")]))

        assert len(coverage.covered_controls) == 11
        assert coverage.coverage_pct == 55.0
        covered = coverage.covered_controls[0]
        assert covered.evidence_finding_ids == ("f1",)

    def test_coverage_is_monotonic(self, mapper):
        findings = [
            make_finding("a"),
            make_finding("b", scanner="npm_audit", rule_id="lodash", category="dependency"),
            make_finding("c", scanner="checkov", rule_id="CKV_AWS_24", category="misconfiguration"),
        ]
        previous = 0.0
        for i in range(1, len(findings) + 1):
            pct = mapper.map_coverage(make_manifest(findings[:i])).coverage_pct
            assert pct >= previous
            previous = pct

    def test_coverage_is_order_invariant(self, mapper):
        findings = [
            make_finding("a"),
            make_finding("b", scanner="npm_audit", rule_id="lodash"),
            make_finding("c", scanner="checkov", rule_id="CKV_AWS_19"),
            make_finding("d", location="other.py:4"),
        ]
        expected = mapper.map_coverage(make_manifest(findings)).to_dict()
        shuffled = findings[:]
        random.Random(7).shuffle(shuffled)
        assert mapper.map_coverage(make_manifest(shuffled)).to_dict() == expected

    def test_hipaa_admin_controls_excluded_from_pct(self, mapper):
        findings = [
            make_finding("a"),
            make_finding("b", scanner="npm_audit", rule_id="lodash"),
            make_finding("c", scanner="checkov", rule_id="CKV_AWS_24"),
        ]
        coverage = mapper.map_coverage(make_manifest(findings, framework="hipaa"))
        data = coverage.to_dict()

        assert coverage.total_controls == 12
        assert data["administrative"]["total"] == 7
        assert data["administrative"]["requiresHumanEvidence"] is True
        assert data["technical"]["coveragePct"] == data["coveragePct"]
        assert len(coverage.covered_controls) + len(coverage.missing_controls) == 12
        # Emergency Access has no scanner mapping
        assert coverage.coverage_pct < 100

    def test_potential_coverage_counts_skipped_scanners(self, mapper):
        manifest = make_manifest([make_finding("a")])
        statuses = (
            ScannerStatus("gitleaks", ScannerState.OK),
            ScannerStatus("npm_audit", ScannerState.MISSING),
            ScannerStatus("checkov", ScannerState.MISSING),
        )
        manifest = dataclasses.replace(manifest, scanner_statuses=statuses)
        coverage = mapper.map_coverage(manifest)

        assert coverage.potential_coverage_pct == 55.0
        assert coverage.full_coverage_pct == 100.0

    def test_control_details_statuses(self, mapper):
        data = mapper.map_coverage(make_manifest([make_finding("f1")])).to_dict()
        statuses = {d["controlId"]: d["status"] for d in data["controlDetails"]}

        assert statuses["CC6.1"] == "covered"
        assert statuses["CC6.8"] == "missing"
        assert data["coveredCount"] == len(data["coveredControls"])

    def test_control_details_carry_scanner_mappings(self, mapper):
        data = mapper.map_coverage(make_manifest([make_finding("f1")])).to_dict()
        details = {d["controlId"]: d for d in data["controlDetails"]}

        cc61 = details["CC6.1"]["scannerMappings"]
        assert [(m["scanner"], m["confidence"]) for m in cc61] == [("gitleaks", 0.9), ("checkov", 0.7)]
        assert all(m["rationale"] for m in cc61)
        assert details["CC6.8"]["scannerMappings"][0]["scanner"] == "npm_audit"
