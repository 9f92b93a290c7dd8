"""Gitleaks secret detection adapter."""

import logging
from typing import Any

from compliance_navigator.models import Finding, Severity
from compliance_navigator.process import ProcessResult
from compliance_navigator.scanners.base import ScanContext, ScannerAdapter, ScannerKind, finding_id

logger = logging.getLogger(__name__)

CRITICAL_RULE_PATTERNS = ("private-key", "aws-secret", "github-pat")

REMEDIATION = (
    "Rotate the exposed credential and remove it from source code. "
    "Consider using environment variables or a secrets manager."
)


class GitleaksAdapter(ScannerAdapter):
    """Runs ``gitleaks detect`` and normalizes its JSON report."""

    kind = ScannerKind.GITLEAKS
    label = "Gitleaks"
    install_hint = "Install gitleaks: https://github.com/gitleaks/gitleaks#installing"

    def build_command(self, ctx: ScanContext) -> list[str]:
        argv = [
            "gitleaks",
            "detect",
            "--source",
            str(ctx.repo_path),
            "--report-format",
            "json",
            "--report-path",
            str(ctx.evidence_dir / self.evidence_name),
            "--no-git",
        ]
        config = ctx.repo_path / ".gitleaks.toml"
        if config.is_file():
            argv += ["--config", str(config)]
        return argv

    def version_command(self) -> list[str]:
        return ["gitleaks", "version"]

    def read_output(self, ctx: ScanContext, result: ProcessResult) -> str:
        # The JSON report goes to --report-path; stdout only carries the banner.
        report = ctx.evidence_dir / self.evidence_name
        if report.is_file():
            return report.read_text(encoding="utf-8")
        return result.stdout

    def parse(self, document: Any, evidence_ref: str) -> list[Finding]:
        if not isinstance(document, list):
            logger.warning("Unexpected gitleaks report shape: %s", type(document).__name__)
            return []

        findings = []
        for leak in document:
            if not isinstance(leak, dict):
                logger.warning("Skipping malformed gitleaks entry: %r", leak)
                continue
            rule_id = str(leak.get("RuleID") or "unknown")
            file_path = str(leak.get("File") or "")
            line = leak.get("StartLine")
            location = f"{file_path}:{line}" if line is not None else file_path
            extra_tags = leak.get("Tags")
            if not isinstance(extra_tags, list):
                extra_tags = []

            findings.append(
                Finding(
                    id=finding_id(scanner=self.kind.value, rule=rule_id, file=file_path, line=line),
                    scanner=self.kind.value,
                    severity=self._severity(rule_id),
                    title=str(leak.get("Description") or "") or f"Secret detected: {rule_id}",
                    location=location,
                    rule_id=rule_id,
                    category="secret",
                    description=f'Secret detected by rule "{rule_id}" in {location}',
                    remediation=REMEDIATION,
                    evidence_ref=evidence_ref,
                    tags=frozenset({"secret", rule_id, *(str(t) for t in extra_tags)}),
                )
            )
        return findings

    @staticmethod
    def _severity(rule_id: str) -> Severity:
        lowered = rule_id.lower()
        if any(pattern in lowered for pattern in CRITICAL_RULE_PATTERNS):
            return Severity.CRITICAL
        return Severity.HIGH
