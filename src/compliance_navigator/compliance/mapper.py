"""Compliance framework mapper for normalized findings."""

import logging
from typing import Iterable, Optional

from compliance_navigator.compliance.hipaa import (
    HIPAA_ADMINISTRATIVE_CONTROLS,
    HIPAA_TECHNICAL_CONTROLS,
)
from compliance_navigator.compliance.models import (
    ComplianceControl,
    ComplianceFramework,
    ComplianceMapping,
)
from compliance_navigator.compliance.soc2 import SOC2_CONTROLS
from compliance_navigator.models import (
    ControlCoverage,
    ControlDetail,
    Finding,
    RunManifest,
    ScannerState,
)

logger = logging.getLogger(__name__)

ALL_SCANNERS = ("gitleaks", "npm_audit", "checkov")


class ComplianceMapper:
    """Maps findings to framework controls and computes scanner reach.

    A finding is evidence for every technical control its scanner maps to.
    Checkov rules listed in ``RULE_MAPPINGS`` add controls beyond that
    scanner-level reach. Administrative safeguards are never mapped.
    """

    CONTROLS: dict[ComplianceFramework, tuple[ComplianceControl, ...]] = {
        ComplianceFramework.SOC2: SOC2_CONTROLS,
        ComplianceFramework.HIPAA: HIPAA_TECHNICAL_CONTROLS,
    }

    ADMINISTRATIVE: dict[ComplianceFramework, tuple[ComplianceControl, ...]] = {
        ComplianceFramework.SOC2: (),
        ComplianceFramework.HIPAA: HIPAA_ADMINISTRATIVE_CONTROLS,
    }

    # Checkov rule IDs with control reach beyond the scanner-level mapping
    RULE_MAPPINGS: dict[str, list[tuple[ComplianceFramework, str]]] = {
        # AWS S3 Encryption
        "CKV_AWS_19": [
            (ComplianceFramework.SOC2, "CC6.1"),
            (ComplianceFramework.HIPAA, "164.312(a)(2)(iv)"),
            (ComplianceFramework.HIPAA, "164.312(e)(2)(ii)"),
        ],
        # AWS S3 Public Access
        "CKV_AWS_20": [
            (ComplianceFramework.SOC2, "CC6.6"),
            (ComplianceFramework.HIPAA, "164.312(e)(1)"),
        ],
        # AWS Security Group ingress from 0.0.0.0/0
        "CKV_AWS_23": [(ComplianceFramework.SOC2, "CC6.6")],
        "CKV_AWS_24": [
            (ComplianceFramework.SOC2, "CC6.6"),
            (ComplianceFramework.HIPAA, "164.312(a)(1)"),
        ],
        "CKV_AWS_25": [
            (ComplianceFramework.SOC2, "CC6.6"),
            (ComplianceFramework.HIPAA, "164.312(a)(1)"),
        ],
        "CKV_AWS_260": [
            (ComplianceFramework.SOC2, "CC6.6"),
            (ComplianceFramework.HIPAA, "164.312(e)(1)"),
        ],
        # AWS RDS Encryption
        "CKV_AWS_16": [
            (ComplianceFramework.SOC2, "CC6.1"),
            (ComplianceFramework.HIPAA, "164.312(a)(2)(iv)"),
        ],
        # AWS EBS Encryption
        "CKV_AWS_3": [
            (ComplianceFramework.SOC2, "CC6.1"),
            (ComplianceFramework.HIPAA, "164.312(a)(2)(iv)"),
        ],
        # AWS IAM MFA
        "CKV_AWS_14": [
            (ComplianceFramework.SOC2, "CC6.1"),
            (ComplianceFramework.HIPAA, "164.312(d)"),
        ],
        # AWS CloudTrail
        "CKV_AWS_35": [
            (ComplianceFramework.SOC2, "CC7.2"),
            (ComplianceFramework.HIPAA, "164.312(b)"),
        ],
        # AWS VPC Flow Logs
        "CKV_AWS_12": [
            (ComplianceFramework.SOC2, "CC7.2"),
            (ComplianceFramework.HIPAA, "164.312(b)"),
        ],
        # Azure Storage Public Access
        "CKV_AZURE_19": [(ComplianceFramework.SOC2, "CC6.6")],
        # Azure NSG
        "CKV_AZURE_9": [(ComplianceFramework.SOC2, "CC6.6")],
        # GCP Storage Public Access
        "CKV_GCP_5": [(ComplianceFramework.SOC2, "CC6.6")],
        # GCP Firewall
        "CKV_GCP_2": [(ComplianceFramework.SOC2, "CC6.6")],
        # Kubernetes Privileged Container
        "CKV_K8S_1": [(ComplianceFramework.SOC2, "CC6.1")],
        # Kubernetes Run as Root
        "CKV_K8S_6": [(ComplianceFramework.SOC2, "CC6.1")],
        # Kubernetes Resource Limits
        "CKV_K8S_11": [(ComplianceFramework.SOC2, "CC6.8")],
    }

    def get_supported_frameworks(self) -> list[ComplianceFramework]:
        """Get list of supported compliance frameworks."""
        return list(ComplianceFramework)

    def get_controls(self, framework: ComplianceFramework) -> tuple[ComplianceControl, ...]:
        """Technical controls that count toward scanner reach, in table order."""
        return self.CONTROLS[framework]

    def get_administrative_controls(
        self, framework: ComplianceFramework
    ) -> tuple[ComplianceControl, ...]:
        return self.ADMINISTRATIVE[framework]

    def get_control(
        self, framework: ComplianceFramework, control_id: str
    ) -> Optional[ComplianceControl]:
        for control in self.CONTROLS[framework] + self.ADMINISTRATIVE[framework]:
            if control.control_id == control_id:
                return control
        return None

    def get_mapping(self, rule_id: str) -> ComplianceMapping:
        """Get rule-level compliance mapping for a scanner rule.

        Args:
            rule_id: The scanner rule ID.

        Returns:
            ComplianceMapping with associated controls.
        """
        mapping = ComplianceMapping(rule_id=rule_id)
        for framework, control_id in self.RULE_MAPPINGS.get(rule_id, []):
            control = self.get_control(framework, control_id)
            if control is not None:
                mapping.controls.append(control)
        return mapping

    def controls_for(self, finding: Finding) -> dict[str, tuple[str, ...]]:
        """Control IDs a finding is evidence for, keyed by framework id.

        Control IDs are returned in table order for each framework.
        """
        if finding.is_synthetic:
            return {}

        rule_controls = {
            (c.framework, c.control_id) for c in self.get_mapping(finding.rule_id).controls
        }
        result: dict[str, tuple[str, ...]] = {}
        for framework in self.get_supported_frameworks():
            ids = tuple(
                control.control_id
                for control in self.CONTROLS[framework]
                if finding.scanner in control.scanners
                or (framework, control.control_id) in rule_controls
            )
            result[framework.value] = ids
        return result

    def annotate(self, finding: Finding) -> Finding:
        """Return a copy of ``finding`` with its control references filled in."""
        return finding.with_controls(self.controls_for(finding))

    def order_controls(self, framework: ComplianceFramework, control_ids: Iterable[str]) -> tuple[str, ...]:
        wanted = set(control_ids)
        return tuple(c.control_id for c in self.CONTROLS[framework] if c.control_id in wanted)

    def reachable_controls(
        self, framework: ComplianceFramework, scanners: Iterable[str]
    ) -> set[str]:
        """Controls any of ``scanners`` could produce evidence for."""
        scanner_set = set(scanners)
        return {
            control.control_id
            for control in self.CONTROLS[framework]
            if control.scanners & scanner_set
        }

    def get_framework_summary(
        self,
        findings: Iterable[Finding],
        framework: ComplianceFramework,
    ) -> dict[str, list[Finding]]:
        """Group findings by control within a framework.

        Args:
            findings: Annotated findings.
            framework: The compliance framework.

        Returns:
            Dict mapping control_id to the findings that reference it.
            Control IDs outside the framework's technical set are ignored.
        """
        known = {c.control_id for c in self.CONTROLS[framework]}
        by_control: dict[str, list[Finding]] = {}
        for finding in findings:
            if finding.is_synthetic:
                continue
            for control_id in finding.controls.get(framework.value, ()):
                if control_id in known:
                    by_control.setdefault(control_id, []).append(finding)
        return by_control

    def map_coverage(
        self,
        manifest: RunManifest,
        framework: Optional[ComplianceFramework] = None,
    ) -> ControlCoverage:
        """Compute scanner reach of a run over a framework's technical controls.

        Args:
            manifest: The run to evaluate.
            framework: Framework to evaluate; defaults to the run's framework.

        Returns:
            ControlCoverage with covered and missing controls in table order.
        """
        framework = framework or ComplianceFramework.parse(manifest.framework)
        controls = self.CONTROLS[framework]
        by_control = self.get_framework_summary(manifest.findings, framework)

        covered: list[ControlDetail] = []
        missing: list[ControlDetail] = []
        for control in controls:
            evidence = by_control.get(control.control_id)
            mappings = tuple(m.to_dict() for m in control.scanner_mappings)
            if evidence:
                ids = tuple(sorted({f.id for f in evidence}))
                covered.append(ControlDetail(control.control_id, control.title, ids, mappings))
            else:
                missing.append(ControlDetail(control.control_id, control.title, (), mappings))

        ran = [
            s.scanner
            for s in manifest.scanner_statuses
            if s.state in (ScannerState.OK, ScannerState.SKIPPED)
        ]
        potential = self.reachable_controls(framework, ran)
        full = self.reachable_controls(framework, ALL_SCANNERS)

        administrative = tuple(
            {
                "controlId": c.control_id,
                "controlName": c.title,
                "cfrSection": c.category,
                "description": c.description,
                "requiresHumanEvidence": True,
            }
            for c in self.ADMINISTRATIVE[framework]
        )

        coverage = ControlCoverage(
            framework=framework.value,
            total_controls=len(controls),
            covered_controls=tuple(covered),
            missing_controls=tuple(missing),
            potential_coverage_pct=_pct(len(potential), len(controls)),
            full_coverage_pct=_pct(len(full), len(controls)),
            administrative_controls=administrative,
        )
        logger.debug(
            "%s coverage for run %s: %d/%d controls",
            framework.value,
            manifest.run_id,
            len(covered),
            len(controls),
        )
        return coverage


def _pct(count: int, total: int) -> float:
    if total == 0:
        return 0.0
    return round(count / total * 100, 1)
