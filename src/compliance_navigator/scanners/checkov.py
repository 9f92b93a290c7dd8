"""Checkov infrastructure-as-code adapter."""

import logging
from typing import Any

from compliance_navigator.models import Finding, Severity
from compliance_navigator.scanners.base import ScanContext, ScannerAdapter, ScannerKind, finding_id

logger = logging.getLogger(__name__)


class CheckovAdapter(ScannerAdapter):
    """Runs ``checkov -d <repo> -o json`` and normalizes failed checks."""

    kind = ScannerKind.CHECKOV
    label = "Checkov"
    install_hint = "Install checkov: pip install checkov"

    def build_command(self, ctx: ScanContext) -> list[str]:
        return ["checkov", "-d", str(ctx.repo_path), "-o", "json"]

    def version_command(self) -> list[str]:
        return ["checkov", "--version"]

    def parse(self, document: Any, evidence_ref: str) -> list[Finding]:
        # A single framework yields one object, several yield a list.
        check_types = document if isinstance(document, list) else [document]

        findings = []
        for check_type in check_types:
            if not isinstance(check_type, dict):
                continue
            results = check_type.get("results")
            failed = results.get("failed_checks") if isinstance(results, dict) else None
            if not isinstance(failed, list):
                continue
            framework = str(check_type.get("check_type") or "iac")
            for check in failed:
                if not isinstance(check, dict):
                    logger.warning("Skipping malformed checkov result: %r", check)
                    continue
                findings.append(self._finding(check, framework, evidence_ref))
        return findings

    def _finding(self, check: dict, framework: str, evidence_ref: str) -> Finding:
        check_id = str(check.get("check_id") or "unknown")
        resource = str(check.get("resource") or "")
        file_path = str(check.get("file_path") or "")
        line_range = check.get("file_line_range")
        if isinstance(line_range, list) and line_range:
            location = f"{file_path}:{line_range[0]}"
        else:
            location = file_path

        guideline = check.get("guideline")
        if guideline:
            remediation = f"See guidance: {guideline}"
        else:
            remediation = (
                f'Fix the misconfiguration identified by {check_id} in resource "{resource}".'
            )

        return Finding(
            id=finding_id(scanner=self.kind.value, checkId=check_id, resource=resource, file=file_path),
            scanner=self.kind.value,
            severity=Severity.parse(check.get("severity"), default=Severity.MEDIUM),
            title=str(check.get("check_name") or check.get("description") or "") or f"IaC misconfiguration: {check_id}",
            location=location,
            rule_id=check_id,
            category="misconfiguration",
            description=(
                f'{framework} check "{check_id}" failed on resource "{resource}" in {file_path}'
            ),
            remediation=remediation,
            evidence_ref=evidence_ref,
            tags=frozenset({"iac", framework, check_id}),
        )
