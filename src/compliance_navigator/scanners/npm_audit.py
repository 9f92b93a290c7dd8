"""npm audit dependency vulnerability adapter."""

import logging
from typing import Any, Optional

from compliance_navigator.models import Finding, Severity
from compliance_navigator.scanners.base import ScanContext, ScannerAdapter, ScannerKind, finding_id

logger = logging.getLogger(__name__)


class NpmAuditAdapter(ScannerAdapter):
    """Runs ``npm audit --json`` for repositories with a package.json."""

    kind = ScannerKind.NPM_AUDIT
    label = "npm audit"
    install_hint = "Install Node.js and npm: https://nodejs.org/"

    def build_command(self, ctx: ScanContext) -> list[str]:
        return ["npm", "audit", "--json"]

    def version_command(self) -> list[str]:
        return ["npm", "--version"]

    def skip_reason(self, ctx: ScanContext) -> Optional[str]:
        if not (ctx.repo_path / "package.json").is_file():
            return "No package.json found"
        return None

    def parse(self, document: Any, evidence_ref: str) -> list[Finding]:
        if not isinstance(document, dict):
            logger.warning("Unexpected npm audit output shape: %s", type(document).__name__)
            return []

        vulnerabilities = document.get("vulnerabilities") or {}
        if not isinstance(vulnerabilities, dict):
            logger.warning("Unexpected npm audit vulnerabilities shape: %s", type(vulnerabilities).__name__)
            return []
        findings = []
        for name, vuln in vulnerabilities.items():
            if not isinstance(vuln, dict):
                continue
            raw_severity = str(vuln.get("severity") or "")
            direct = "Direct" if vuln.get("isDirect") else "Transitive"
            findings.append(
                Finding(
                    id=finding_id(scanner=self.kind.value, pkg=name, severity=raw_severity),
                    scanner=self.kind.value,
                    severity=Severity.parse(raw_severity, default=Severity.INFO),
                    title=self._title(name, vuln),
                    location="package.json",
                    rule_id=name,
                    category="dependency",
                    description=(
                        f'{direct} dependency "{name}" has known vulnerabilities '
                        f"(severity: {raw_severity or 'unknown'})."
                    ),
                    remediation=self._fix_advice(vuln.get("fixAvailable")),
                    evidence_ref=evidence_ref,
                    tags=frozenset({"dependency", name}),
                )
            )
        return findings

    @staticmethod
    def _title(name: str, vuln: dict) -> str:
        via_entries = vuln.get("via")
        if not isinstance(via_entries, list):
            return f"Vulnerable dependency: {name}"
        for via in via_entries:
            if isinstance(via, dict) and via.get("title"):
                return f"{name}: {via['title']}"
        return f"Vulnerable dependency: {name}"

    @staticmethod
    def _fix_advice(fix: Any) -> str:
        if fix is True:
            return "Run `npm audit fix` to update to a patched version."
        if isinstance(fix, dict) and fix.get("name"):
            breaking = " (BREAKING CHANGE)" if fix.get("isSemVerMajor") else ""
            return f"Update {fix['name']} to {fix.get('version', 'a patched version')}{breaking}."
        return "No automated fix available. Review and manually update the dependency."
